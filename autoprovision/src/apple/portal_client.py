from abc import ABC, abstractmethod
from typing import List, Optional, Set

from autoprovision.src.apple.models import (
    BundleID,
    BundleIDCapability,
    Device,
    DevicePlatform,
    PortalCertificate,
    Profile,
    ProfileType,
)


class DeveloperPortalClient(ABC):
    """Everything the provisioning engine needs from the developer portal.

    Implementations raise PortalAPIError for failed requests. Listing calls
    return the full, already paginated result.
    """

    # Certificates

    @abstractmethod
    def list_certificates(self) -> List[PortalCertificate]:
        ...

    @abstractmethod
    def find_certificate_by_serial(self, serial: int) -> Optional[PortalCertificate]:
        ...

    # Bundle IDs

    @abstractmethod
    def find_bundle_id(self, identifier: str) -> Optional[BundleID]:
        """Exact identifier match, None when the App ID does not exist"""

    @abstractmethod
    def create_bundle_id(self, identifier: str, name: str) -> BundleID:
        ...

    @abstractmethod
    def list_capabilities(self, bundle_id: BundleID) -> List[BundleIDCapability]:
        ...

    @abstractmethod
    def enable_capability(
        self, bundle_id: BundleID, capability: BundleIDCapability
    ) -> None:
        ...

    # Profiles

    @abstractmethod
    def find_profile(self, name: str, profile_type: ProfileType) -> Optional[Profile]:
        ...

    @abstractmethod
    def create_profile(
        self,
        name: str,
        profile_type: ProfileType,
        bundle_id: BundleID,
        certificate_ids: List[str],
        device_ids: List[str],
    ) -> Profile:
        ...

    @abstractmethod
    def delete_profile(self, profile_id: str) -> None:
        """Delete a profile, a profile that is already gone is not an error"""

    @abstractmethod
    def list_bundle_id_profiles(self, bundle_id: BundleID) -> List[Profile]:
        """Profiles through the App ID relationship, expired ones included"""

    @abstractmethod
    def profile_certificate_ids(self, profile: Profile) -> Set[str]:
        ...

    @abstractmethod
    def profile_device_ids(self, profile: Profile) -> Set[str]:
        ...

    @abstractmethod
    def profile_bundle_id(self, profile: Profile) -> BundleID:
        ...

    # Devices

    @abstractmethod
    def list_devices(
        self, udid: Optional[str] = None, platform: DevicePlatform = DevicePlatform.IOS
    ) -> List[Device]:
        """Enabled devices of the given device platform"""

    @abstractmethod
    def register_device(self, udid: str, name: str, platform: DevicePlatform) -> Device:
        """Raises DeviceRegistrationError when the portal rejects the device"""
