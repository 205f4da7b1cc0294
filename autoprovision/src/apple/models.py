from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class CertificateType(str, Enum):
    IOS_DEVELOPMENT = "IOS_DEVELOPMENT"
    IOS_DISTRIBUTION = "IOS_DISTRIBUTION"


class DistributionType(str, Enum):
    DEVELOPMENT = "development"
    APP_STORE = "app-store"
    AD_HOC = "ad-hoc"
    ENTERPRISE = "enterprise"


class Platform(str, Enum):
    IOS = "iOS"
    TVOS = "tvOS"
    MACOS = "macOS"


class ProfileType(str, Enum):
    IOS_APP_DEVELOPMENT = "IOS_APP_DEVELOPMENT"
    IOS_APP_STORE = "IOS_APP_STORE"
    IOS_APP_ADHOC = "IOS_APP_ADHOC"
    IOS_APP_INHOUSE = "IOS_APP_INHOUSE"
    TVOS_APP_DEVELOPMENT = "TVOS_APP_DEVELOPMENT"
    TVOS_APP_STORE = "TVOS_APP_STORE"
    TVOS_APP_ADHOC = "TVOS_APP_ADHOC"
    TVOS_APP_INHOUSE = "TVOS_APP_INHOUSE"


class ProfileState(str, Enum):
    ACTIVE = "ACTIVE"
    INVALID = "INVALID"


class BundleIDPlatform(str, Enum):
    IOS = "IOS"
    MAC_OS = "MAC_OS"


class DevicePlatform(str, Enum):
    IOS = "IOS"
    MAC_OS = "MAC_OS"


class DeviceClass(str, Enum):
    APPLE_WATCH = "APPLE_WATCH"
    IPAD = "IPAD"
    IPHONE = "IPHONE"
    IPOD = "IPOD"
    APPLE_TV = "APPLE_TV"
    MAC = "MAC"


class DeviceStatus(str, Enum):
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"


@dataclass
class PortalCertificate:
    id: str
    serial_number: int
    certificate_type: str
    name: str
    display_name: Optional[str] = None
    expiration_date: Optional[datetime] = None


@dataclass
class CapabilityOption:
    key: str
    enabled: bool = True


@dataclass
class CapabilitySetting:
    key: str
    options: List[CapabilityOption] = field(default_factory=list)


@dataclass
class BundleIDCapability:
    capability_type: str
    settings: List[CapabilitySetting] = field(default_factory=list)
    id: Optional[str] = None


@dataclass
class BundleID:
    id: str
    identifier: str
    name: str
    platform: Optional[str] = None
    # JSON:API relationship links, keyed by relationship name
    links: Dict[str, str] = field(default_factory=dict)


@dataclass
class Device:
    id: str
    name: str
    udid: str
    status: str
    device_class: str
    platform: str
    model: Optional[str] = None


@dataclass
class Profile:
    id: str
    name: str
    uuid: str
    profile_state: str
    profile_type: str
    platform: str
    expiration_date: datetime
    content: bytes = b""
    links: Dict[str, str] = field(default_factory=dict)


@dataclass
class TestDevice:
    """A device the build service knows about and wants on the portal"""

    __test__ = False

    device_id: str
    title: str = ""
    device_type: str = ""
    updated_at: str = ""
