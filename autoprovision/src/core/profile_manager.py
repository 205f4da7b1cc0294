from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.models import BundleID, Profile, ProfileState, ProfileType
from autoprovision.src.apple.portal_client import DeveloperPortalClient
from autoprovision.src.constants.capability_mappings import ICLOUD_CONTAINERS_KEY
from autoprovision.src.constants.codesign_tables import (
    DISTRIBUTION_BY_PROFILE_TYPE,
    PLATFORM_BY_PROFILE_TYPE,
)
from autoprovision.src.core.bundle_id_manager import BundleIDManager, Entitlements
from autoprovision.src.core.errors import (
    AutoProvisionError,
    InvalidBundleIDError,
    MismatchKind,
    PortalAPIError,
    ProfileConflictError,
    ProfileMismatch,
)
from autoprovision.src.profiles.profile_content import profile_entitlements

console = get_console()

MULTIPLE_PROFILES_ERROR = "multiple profiles found with the name"


def profile_name(profile_type: ProfileType, bundle_id: str) -> str:
    """Name of the managed profile: `[Wildcard ]Bitrise <platform> <distribution> - (<bundle id>)`"""
    try:
        profile_type = ProfileType(profile_type)
    except ValueError:
        raise AutoProvisionError(f"unknown profile type: {profile_type}") from None

    platform = PLATFORM_BY_PROFILE_TYPE[profile_type]
    distribution = DISTRIBUTION_BY_PROFILE_TYPE[profile_type]

    prefix = ""
    if bundle_id.endswith(".*"):
        # `*` is not allowed in profile names
        bundle_id = bundle_id[:-2]
        prefix = "Wildcard "

    return f"{prefix}Bitrise {platform.value} {distribution.value} - ({bundle_id})"


def create_wildcard_bundle_id(bundle_id: str) -> str:
    """`com.acme.app` -> `com.acme.*`

    The prefix left after dropping the last component has to be a reverse
    domain itself, so `com.acme` is rejected instead of becoming `com.*`.
    """
    index = bundle_id.rfind(".")
    if index <= 0 or "." not in bundle_id[:index]:
        raise InvalidBundleIDError(
            f"invalid bundle id ({bundle_id}): can not derive a wildcard bundle id"
        )
    return bundle_id[:index] + ".*"


def is_profile_expired(
    profile: Profile, min_days_valid: int, now: Optional[datetime] = None
) -> bool:
    """Expired, or expiring within `min_days_valid` days"""
    threshold = now or datetime.now(timezone.utc)
    if min_days_valid > 0:
        threshold += timedelta(days=min_days_valid)
    return profile.expiration_date <= threshold


def is_multiple_profiles_error(error: Exception) -> bool:
    return MULTIPLE_PROFILES_ERROR in str(error).lower()


def _as_strings(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def find_missing_containers(
    project_entitlements: Entitlements, profile_entitlements_: Mapping[str, Any]
) -> List[str]:
    required = _as_strings((project_entitlements or {}).get(ICLOUD_CONTAINERS_KEY))
    present = set(_as_strings(profile_entitlements_.get(ICLOUD_CONTAINERS_KEY)))
    return [c for c in required if c not in present]


class ProfileManager:
    """Finds, validates and (re)generates the managed provisioning profiles"""

    def __init__(
        self,
        client: DeveloperPortalClient,
        bundle_ids: BundleIDManager,
        clock=None,
    ):
        self.client = client
        self.bundle_ids = bundle_ids
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def check_profile(
        self,
        profile: Profile,
        entitlements: Entitlements,
        certificate_ids: List[str],
        device_ids: List[str],
        min_days_valid: int,
    ) -> Optional[ProfileMismatch]:
        """The first reason the profile does not satisfy the project, None if it does"""
        if is_profile_expired(profile, min_days_valid, self._clock()):
            return ProfileMismatch(
                MismatchKind.EXPIRED,
                f"profile expired, or will expire in less than {min_days_valid} day(s)",
            )

        try:
            return (
                self._check_entitlements(profile, entitlements)
                or self._check_certificates(profile, certificate_ids)
                or self._check_devices(profile, device_ids)
            )
        except PortalAPIError as e:
            if not e.is_not_found:
                raise
            return ProfileMismatch(
                MismatchKind.CONCURRENTLY_REMOVED,
                f"profile or one of its relationships was removed meanwhile: {e}",
            )

    def _check_entitlements(
        self, profile: Profile, entitlements: Entitlements
    ) -> Optional[ProfileMismatch]:
        if (entitlements or {}).get(ICLOUD_CONTAINERS_KEY):
            missing = find_missing_containers(
                entitlements, profile_entitlements(profile.content)
            )
            if missing:
                return ProfileMismatch(
                    MismatchKind.MISSING_CONTAINERS,
                    "project uses containers that are missing from the provisioning profile: "
                    + ", ".join(missing),
                )

        bundle_id = self.client.profile_bundle_id(profile)
        return self.bundle_ids.check_bundle_id(bundle_id, entitlements)

    def _check_certificates(
        self, profile: Profile, certificate_ids: List[str]
    ) -> Optional[ProfileMismatch]:
        present = self.client.profile_certificate_ids(profile)
        for certificate_id in certificate_ids:
            if certificate_id not in present:
                return ProfileMismatch(
                    MismatchKind.MISSING_CERTIFICATE,
                    f"certificate with ID ({certificate_id}) not included in the profile",
                )
        return None

    def _check_devices(
        self, profile: Profile, device_ids: List[str]
    ) -> Optional[ProfileMismatch]:
        present = self.client.profile_device_ids(profile)
        for device_id in device_ids:
            if device_id not in present:
                return ProfileMismatch(
                    MismatchKind.MISSING_DEVICE,
                    f"device with ID ({device_id}) not included in the profile",
                )
        return None

    def ensure_profile(
        self,
        profile_type: ProfileType,
        bundle_id_identifier: str,
        entitlements: Entitlements,
        certificate_ids: List[str],
        device_ids: List[str],
        min_days_valid: int = 0,
    ) -> Profile:
        console.print(f"\n[blue]  Checking bundle id: {bundle_id_identifier}")
        debug(f"  capabilities: {dict(entitlements or {})}")

        name = profile_name(profile_type, bundle_id_identifier)
        profile = self.client.find_profile(name, profile_type)

        if profile is None:
            console.print("[yellow]  profile does not exist, generating...")
        else:
            console.print(
                f"  Bitrise managed profile found: {profile.name} ID: {profile.id} "
                f"UUID: {profile.uuid} Expiry: {profile.expiration_date}"
            )

            if profile.profile_state == ProfileState.ACTIVE:
                mismatch = self.check_profile(
                    profile, entitlements, certificate_ids, device_ids, min_days_valid
                )
                if mismatch is None:
                    console.print("[green]  profile is in sync with the project requirements")
                    return profile
                console.print(
                    f"[yellow]  the profile is not in sync with the project requirements ({mismatch}), regenerating ..."
                )
            elif profile.profile_state == ProfileState.INVALID:
                # The profile turns invalid when its bundle ID gets modified
                console.print("[yellow]  the profile state is invalid, regenerating ...")

            self.client.delete_profile(profile.id)

        bundle_id = self.bundle_ids.ensure_bundle_id(bundle_id_identifier, entitlements)

        console.print(f"\n[blue]  Creating profile for bundle id: {bundle_id.name}")
        profile = self._create_profile(
            name, profile_type, bundle_id, certificate_ids, device_ids
        )
        console.print(f"[green]  profile created: {profile.name}")
        return profile

    def _create_profile(
        self,
        name: str,
        profile_type: ProfileType,
        bundle_id: BundleID,
        certificate_ids: List[str],
        device_ids: List[str],
    ) -> Profile:
        try:
            return self.client.create_profile(
                name, profile_type, bundle_id, certificate_ids, device_ids
            )
        except PortalAPIError as e:
            if e.is_unauthorized:
                raise
            if not is_multiple_profiles_error(e):
                raise AutoProvisionError(
                    f"failed to create profile ({name}) for {bundle_id.identifier}: {e}"
                ) from e
            # Expired profiles are not returned by the name search, only
            # through the App ID's profiles relationship
            console.print("[yellow]  Profile already exists, but expired, cleaning up...")
            self._delete_expired_profile(bundle_id, name, e)

        try:
            return self.client.create_profile(
                name, profile_type, bundle_id, certificate_ids, device_ids
            )
        except PortalAPIError as e:
            raise ProfileConflictError(name, e) from e

    def _delete_expired_profile(
        self, bundle_id: BundleID, name: str, cause: Exception
    ) -> None:
        for profile in self.client.list_bundle_id_profiles(bundle_id):
            if profile.name == name:
                debug(f"  deleting expired profile {profile.id}")
                self.client.delete_profile(profile.id)
                return
        raise ProfileConflictError(name, cause)
