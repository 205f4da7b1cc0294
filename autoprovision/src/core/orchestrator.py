from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.models import (
    CertificateType,
    DistributionType,
    Platform,
    Profile,
    ProfileType,
    TestDevice,
)
from autoprovision.src.apple.portal_client import DeveloperPortalClient
from autoprovision.src.certificates.local_certificates import LocalCertificate
from autoprovision.src.constants.codesign_tables import (
    CERTIFICATE_TYPE_BY_DISTRIBUTION,
    DEVICE_LIST_DISTRIBUTIONS,
    PROFILE_TYPE_BY_PLATFORM,
)
from autoprovision.src.core.bundle_id_manager import BundleIDManager, RunContext
from autoprovision.src.core.certificate_matcher import (
    MatchedCertificate,
    select_certificates,
)
from autoprovision.src.core.device_registrar import ensure_test_devices
from autoprovision.src.core.entitlements import EntitlementClassifier
from autoprovision.src.core.errors import (
    AutoProvisionError,
    MissingCertificateError,
    MissingICloudContainersError,
)
from autoprovision.src.core.profile_manager import (
    ProfileManager,
    create_wildcard_bundle_id,
)

console = get_console()


@dataclass
class AppLayout:
    """What the project needs signed"""

    team_id: str
    platform: Platform
    # Ordered, the first entry is the main target
    entitlements_by_bundle_id: Dict[str, Optional[Dict[str, Any]]]
    ui_test_bundle_ids: List[str] = field(default_factory=list)

    @property
    def main_bundle_id(self) -> str:
        return next(iter(self.entitlements_by_bundle_id))


@dataclass
class CodesignAssets:
    certificate: MatchedCertificate
    archivable_target_profiles: Dict[str, Profile] = field(default_factory=dict)
    ui_test_target_profiles: Dict[str, Profile] = field(default_factory=dict)


def profile_types_for(platform) -> Mapping[DistributionType, ProfileType]:
    try:
        profile_types = PROFILE_TYPE_BY_PLATFORM.get(Platform(platform))
    except ValueError:
        profile_types = None
    if profile_types is None:
        raise AutoProvisionError(f"no profiles for platform: {platform}")
    return profile_types


def requires_device_list(distribution_types: List[DistributionType]) -> bool:
    return any(d in DEVICE_LIST_DISTRIBUTIONS for d in distribution_types)


def select_certificates_and_distribution_types(
    client: DeveloperPortalClient,
    certificates: List[LocalCertificate],
    distribution_type: DistributionType,
    team_id: str,
    sign_uitest_targets: bool,
) -> Tuple[Dict[CertificateType, List[MatchedCertificate]], List[DistributionType]]:
    """Match certificates once and work out which distribution types to provision.

    Development is provisioned next to any other distribution type when a
    development certificate is available. It is only required when UI test
    targets have to be signed.
    """
    distribution_type = DistributionType(distribution_type)
    certificate_type = CERTIFICATE_TYPE_BY_DISTRIBUTION[distribution_type]

    distribution_types = [distribution_type]
    required_types = {certificate_type: True}
    if distribution_type != DistributionType.DEVELOPMENT:
        distribution_types.append(DistributionType.DEVELOPMENT)
        required_types[CertificateType.IOS_DEVELOPMENT] = sign_uitest_targets

    certificates_by_type = select_certificates(client, certificates, required_types, team_id)

    if len(certificates_by_type) == 1 and distribution_type != DistributionType.DEVELOPMENT:
        # No development certificate uploaded
        distribution_types = [distribution_type]

    console.print(
        "ensuring codesigning files for distribution types: "
        + ", ".join(d.value for d in distribution_types)
    )
    return certificates_by_type, distribution_types


class CodesignAssetManager:
    """Runs the whole provisioning flow for one project"""

    def __init__(
        self,
        client: DeveloperPortalClient,
        test_devices: Optional[List[TestDevice]] = None,
        classifier: Optional[EntitlementClassifier] = None,
        clock=None,
    ):
        self.client = client
        self.test_devices = list(test_devices or [])
        self.classifier = classifier or EntitlementClassifier()
        self.clock = clock

    def auto_codesign(
        self,
        distribution_type: DistributionType,
        layout: AppLayout,
        certificates: List[LocalCertificate],
        min_profile_days_valid: int = 0,
    ) -> Dict[DistributionType, CodesignAssets]:
        # Nothing may be created on the portal for an unsupported project
        self.classifier.ensure_supported(layout.entitlements_by_bundle_id)
        profile_types_for(layout.platform)

        certificates_by_type, distribution_types = select_certificates_and_distribution_types(
            self.client,
            certificates,
            distribution_type,
            layout.team_id,
            bool(layout.ui_test_bundle_ids),
        )

        device_ids: List[str] = []
        if requires_device_list(distribution_types):
            device_ids = ensure_test_devices(self.client, self.test_devices, layout.platform)

        return self.ensure_profiles(
            distribution_types, certificates_by_type, layout, device_ids, min_profile_days_valid
        )

    def ensure_profiles(
        self,
        distribution_types: List[DistributionType],
        certificates_by_type: Mapping[CertificateType, List[MatchedCertificate]],
        layout: AppLayout,
        device_ids: List[str],
        min_profile_days_valid: int = 0,
    ) -> Dict[DistributionType, CodesignAssets]:
        profile_types = profile_types_for(layout.platform)
        context = RunContext()
        bundle_ids = BundleIDManager(self.client, self.classifier, context)
        profiles = ProfileManager(self.client, bundle_ids, clock=self.clock)

        assets_by_distribution: Dict[DistributionType, CodesignAssets] = {}
        for distribution_type in distribution_types:
            console.print(f"\n[blue]Checking {distribution_type.value} provisioning profiles")
            certificate_type = CERTIFICATE_TYPE_BY_DISTRIBUTION[distribution_type]
            certificates = certificates_by_type.get(certificate_type) or []
            if not certificates:
                raise MissingCertificateError(certificate_type.value, layout.team_id)
            if len(certificates) > 1:
                console.print(
                    f"[yellow]Multiple certificates provided for distribution type: {distribution_type.value}"
                )
                for certificate in certificates:
                    console.print(f"[yellow]- {certificate.local.common_name}")
                console.print(f"[yellow]Using: {certificates[0].local.common_name}")
            debug(
                f"Using certificate for distribution type {distribution_type.value} "
                f"(certificate type {certificate_type.value}): {certificates[0]}"
            )

            assets = CodesignAssets(certificate=certificates[0])
            certificate_ids = [c.id for c in certificates]
            profile_type = profile_types[distribution_type]
            profile_device_ids = (
                device_ids if distribution_type in DEVICE_LIST_DISTRIBUTIONS else []
            )

            for bundle_id, entitlements in layout.entitlements_by_bundle_id.items():
                assets.archivable_target_profiles[bundle_id] = profiles.ensure_profile(
                    profile_type,
                    bundle_id,
                    entitlements,
                    certificate_ids,
                    profile_device_ids,
                    min_profile_days_valid,
                )

            if layout.ui_test_bundle_ids and distribution_type == DistributionType.DEVELOPMENT:
                # Capabilities can not be added to wildcard App IDs, Xcode
                # signs UI test targets with wildcard profiles as well
                for bundle_id in layout.ui_test_bundle_ids:
                    assets.ui_test_target_profiles[bundle_id] = profiles.ensure_profile(
                        profile_type,
                        create_wildcard_bundle_id(bundle_id),
                        None,
                        certificate_ids,
                        profile_device_ids,
                        min_profile_days_valid,
                    )

            assets_by_distribution[distribution_type] = assets

        if context.containers_by_bundle_id:
            console.print("\n[red]Unable to automatically assign iCloud containers to the following app IDs:")
            for bundle_id, containers in context.containers_by_bundle_id.items():
                console.print(f"[yellow]{bundle_id}, containers:")
                for container in containers:
                    console.print(f"[yellow]- {container}")
            raise MissingICloudContainersError(dict(context.containers_by_bundle_id))

        return assets_by_distribution
