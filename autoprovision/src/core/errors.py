from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class AutoProvisionError(Exception):
    """Base class for every error the provisioning run can surface"""


class ConfigError(AutoProvisionError):
    pass


class PortalAPIError(AutoProvisionError):
    """A non-2xx answer from the developer portal"""

    def __init__(
        self,
        status_code: int,
        method: str,
        url: str,
        errors: Optional[List[dict]] = None,
        body: str = "",
    ):
        self.status_code = status_code
        self.method = method
        self.url = url
        self.errors = errors or []
        self.body = body
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        details = []
        for error in self.errors:
            parts = [error.get("code"), error.get("title"), error.get("detail")]
            details.append(" - ".join(str(p) for p in parts if p))
        summary = "; ".join(d for d in details if d) or self.body.strip()
        message = f"{self.method} {self.url}: {self.status_code}"
        return f"{message} {summary}" if summary else message

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class DeviceRegistrationError(AutoProvisionError):
    """The portal refused a device, usually an invalid UDID or a Mac"""

    def __init__(self, udid: str, reason: str):
        self.udid = udid
        self.reason = reason
        super().__init__(f"failed to register device ({udid}): {reason}")


class MissingCertificateError(AutoProvisionError):
    def __init__(self, certificate_type: str, team_id: str):
        self.certificate_type = certificate_type
        self.team_id = team_id
        super().__init__(
            f"no valid {certificate_type} type certificates uploaded with Team ID ({team_id})"
        )


class UnmatchedCertificatesError(AutoProvisionError):
    """None of the local certificates of a required type exist on the portal"""

    def __init__(self, certificate_type: str, common_names: List[str]):
        self.certificate_type = certificate_type
        self.common_names = common_names
        listing = "\n".join(f"- {name}" for name in common_names)
        super().__init__(
            f"not found any of the following {certificate_type} certificates on Developer Portal:\n{listing}"
        )


class UnsupportedEntitlementError(AutoProvisionError):
    def __init__(self, entitlement: str, bundle_id: str):
        self.entitlement = entitlement
        self.bundle_id = bundle_id
        super().__init__(
            f"can not create profile with unsupported entitlement ({entitlement}) "
            f"for the bundle ID {bundle_id}, due to App Store Connect API limitations"
        )


class InvalidBundleIDError(AutoProvisionError):
    pass


class ProfileConflictError(AutoProvisionError):
    """Profile creation still conflicts after the expired profile was removed"""

    def __init__(self, profile_name: str, cause: Exception):
        self.profile_name = profile_name
        self.cause = cause
        super().__init__(f"failed to create profile ({profile_name}): {cause}")


class MissingICloudContainersError(AutoProvisionError):
    MANAGE_URL = "https://developer.apple.com/account/resources/identifiers/list"

    def __init__(self, containers_by_bundle_id: Dict[str, List[str]]):
        self.containers_by_bundle_id = containers_by_bundle_id
        lines = []
        for bundle_id, containers in containers_by_bundle_id.items():
            lines.append(f"{bundle_id}: {', '.join(containers)}")
        super().__init__(
            "you have to manually add the listed containers to your app ID at: "
            f"{self.MANAGE_URL}\n" + "\n".join(lines)
        )


class PortalDataError(AutoProvisionError):
    pass


class CertificateDownloadError(AutoProvisionError):
    pass


class ProfileContentError(AutoProvisionError):
    pass


class KeychainError(AutoProvisionError):
    pass


class MismatchKind(Enum):
    EXPIRED = "expired"
    MISSING_CONTAINERS = "missing-containers"
    MISSING_CAPABILITY = "missing-capability"
    MISSING_CERTIFICATE = "missing-certificate"
    MISSING_DEVICE = "missing-device"
    CONCURRENTLY_REMOVED = "concurrently-removed"


@dataclass(frozen=True)
class ProfileMismatch:
    """Why an existing App ID or profile does not satisfy the project.

    Always recoverable: the caller regenerates the profile or syncs the App ID.
    """

    kind: MismatchKind
    reason: str

    def __str__(self) -> str:
        return self.reason
