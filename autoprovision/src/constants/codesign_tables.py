from types import MappingProxyType

from autoprovision.src.apple.models import (
    CertificateType,
    DeviceClass,
    DistributionType,
    Platform,
    ProfileType,
)

CERTIFICATE_TYPE_BY_DISTRIBUTION = MappingProxyType(
    {
        DistributionType.DEVELOPMENT: CertificateType.IOS_DEVELOPMENT,
        DistributionType.APP_STORE: CertificateType.IOS_DISTRIBUTION,
        DistributionType.AD_HOC: CertificateType.IOS_DISTRIBUTION,
        DistributionType.ENTERPRISE: CertificateType.IOS_DISTRIBUTION,
    }
)

PROFILE_TYPE_BY_PLATFORM = MappingProxyType(
    {
        Platform.IOS: MappingProxyType(
            {
                DistributionType.DEVELOPMENT: ProfileType.IOS_APP_DEVELOPMENT,
                DistributionType.APP_STORE: ProfileType.IOS_APP_STORE,
                DistributionType.AD_HOC: ProfileType.IOS_APP_ADHOC,
                DistributionType.ENTERPRISE: ProfileType.IOS_APP_INHOUSE,
            }
        ),
        Platform.TVOS: MappingProxyType(
            {
                DistributionType.DEVELOPMENT: ProfileType.TVOS_APP_DEVELOPMENT,
                DistributionType.APP_STORE: ProfileType.TVOS_APP_STORE,
                DistributionType.AD_HOC: ProfileType.TVOS_APP_ADHOC,
                DistributionType.ENTERPRISE: ProfileType.TVOS_APP_INHOUSE,
            }
        ),
    }
)

# Reverse lookups used for deterministic profile naming
PLATFORM_BY_PROFILE_TYPE = MappingProxyType(
    {
        profile_type: platform
        for platform, by_distribution in PROFILE_TYPE_BY_PLATFORM.items()
        for profile_type in by_distribution.values()
    }
)

DISTRIBUTION_BY_PROFILE_TYPE = MappingProxyType(
    {
        profile_type: distribution
        for by_distribution in PROFILE_TYPE_BY_PLATFORM.values()
        for distribution, profile_type in by_distribution.items()
    }
)

DEVICE_CLASSES_BY_PLATFORM = MappingProxyType(
    {
        Platform.IOS: frozenset(
            {
                DeviceClass.APPLE_WATCH.value,
                DeviceClass.IPAD.value,
                DeviceClass.IPHONE.value,
                DeviceClass.IPOD.value,
            }
        ),
        Platform.TVOS: frozenset({DeviceClass.APPLE_TV.value}),
    }
)

# Only these distribution types put a device list into the profile
DEVICE_LIST_DISTRIBUTIONS = frozenset(
    {DistributionType.DEVELOPMENT, DistributionType.AD_HOC}
)
