from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from autoprovision.logger import debug
from autoprovision.src.apple.models import (
    BundleIDCapability,
    CapabilityOption,
    CapabilitySetting,
)
from autoprovision.src.constants.capability_mappings import (
    CAPABILITY_MAPPING,
    CAPABILITY_SETTINGS,
    DATA_PROTECTION_KEY,
    DATA_PROTECTION_LEVELS,
    ICLOUD_CONTAINERS_KEY,
    ICLOUD_KVSTORE_KEY,
    ICLOUD_SERVICES_KEY,
    IGNORED_ENTITLEMENTS,
    PROFILE_ATTACHED_CAPABILITIES,
)
from autoprovision.src.core.errors import (
    AutoProvisionError,
    MismatchKind,
    ProfileMismatch,
    UnsupportedEntitlementError,
)


class EntitlementKind(Enum):
    CAPABILITY = "capability"
    IGNORED = "ignored"
    PROFILE_ATTACHED = "profile-attached"
    UNKNOWN = "unknown"


def _settings_from_table(raw_settings: List[dict]) -> List[CapabilitySetting]:
    return [
        CapabilitySetting(
            key=setting["key"],
            options=[CapabilityOption(key=o["key"]) for o in setting["options"]],
        )
        for setting in raw_settings
    ]


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def icloud_containers(entitlements: Optional[Mapping[str, Any]]) -> List[str]:
    """Containers the project asks for, if it uses CloudKit or iCloud Documents"""
    if not entitlements:
        return []
    services = _as_list(entitlements.get(ICLOUD_SERVICES_KEY))
    if "CloudDocuments" not in services and "CloudKit" not in services:
        return []
    return [str(c) for c in _as_list(entitlements.get(ICLOUD_CONTAINERS_KEY))]


class EntitlementClassifier:
    """Maps project entitlements to developer portal capabilities.

    The lookup tables are frozen when the classifier is built, so one instance
    can be shared by every reconciler of a run.
    """

    def __init__(
        self,
        capability_mapping: Mapping[str, Iterable[str]] = CAPABILITY_MAPPING,
        ignored: Iterable[str] = IGNORED_ENTITLEMENTS,
        profile_attached: Mapping[str, Iterable[str]] = PROFILE_ATTACHED_CAPABILITIES,
    ):
        self._capability_by_key = MappingProxyType(
            {
                key: capability_type
                for capability_type, keys in capability_mapping.items()
                for key in keys
            }
        )
        self._ignored = frozenset(ignored)
        self._profile_attached = frozenset(
            key for keys in profile_attached.values() for key in keys
        )

    def classify(self, key: str) -> EntitlementKind:
        if key in self._profile_attached:
            return EntitlementKind.PROFILE_ATTACHED
        if key in self._ignored:
            return EntitlementKind.IGNORED
        if key in self._capability_by_key:
            return EntitlementKind.CAPABILITY
        return EntitlementKind.UNKNOWN

    def capability_type(self, key: str) -> Optional[str]:
        return self._capability_by_key.get(key)

    def appears_on_developer_portal(self, key: str) -> bool:
        return self.classify(key) is EntitlementKind.CAPABILITY

    def is_profile_attached(self, key: str) -> bool:
        return self.classify(key) is EntitlementKind.PROFILE_ATTACHED

    def find_unsupported_entitlement(
        self, entitlements_by_bundle_id: Mapping[str, Optional[Mapping[str, Any]]]
    ) -> Optional[Tuple[str, str]]:
        """Return (entitlement, bundle id) of the first entitlement the API can not generate"""
        for bundle_id, entitlements in entitlements_by_bundle_id.items():
            for key in entitlements or {}:
                if self.is_profile_attached(key):
                    return key, bundle_id
        return None

    def ensure_supported(
        self, entitlements_by_bundle_id: Mapping[str, Optional[Mapping[str, Any]]]
    ) -> None:
        if unsupported := self.find_unsupported_entitlement(entitlements_by_bundle_id):
            entitlement, bundle_id = unsupported
            raise UnsupportedEntitlementError(entitlement, bundle_id)

    def capability_for(self, key: str, value: Any) -> Optional[BundleIDCapability]:
        """The capability (with settings) that enables a single entitlement"""
        capability_type = self.capability_type(key)
        if capability_type is None or not self.appears_on_developer_portal(key):
            return None

        if key == DATA_PROTECTION_KEY:
            level = self._data_protection_level(value)
            settings = [
                CapabilitySetting(
                    key="DATA_PROTECTION_PERMISSION_LEVEL",
                    options=[CapabilityOption(key=level)],
                )
            ]
        else:
            settings = _settings_from_table(CAPABILITY_SETTINGS.get(capability_type, []))

        return BundleIDCapability(capability_type=capability_type, settings=settings)

    def capabilities_to_enable(
        self,
        entitlements: Optional[Mapping[str, Any]],
        enabled: Iterable[BundleIDCapability] = (),
    ) -> List[BundleIDCapability]:
        """One capability per capability type, in entitlement order.

        Entitlements already satisfied by an `enabled` capability are skipped.
        """
        enabled = list(enabled)
        capabilities: Dict[str, BundleIDCapability] = {}
        for key, value in (entitlements or {}).items():
            kind = self.classify(key)
            if kind is EntitlementKind.UNKNOWN:
                debug(f"  entitlement ({key}) has no developer portal capability, skipping")
                continue
            if any(self.matches(key, value, cap) for cap in enabled):
                continue
            capability = self.capability_for(key, value)
            if capability is not None and capability.capability_type not in capabilities:
                capabilities[capability.capability_type] = capability
        return list(capabilities.values())

    def matches(self, key: str, value: Any, capability: BundleIDCapability) -> bool:
        """Whether an enabled App ID capability satisfies the entitlement"""
        capability_type = self.capability_type(key)
        if capability_type is None or capability.capability_type != capability_type:
            return False

        if capability_type == "ICLOUD":
            return self._icloud_matches(key, value, capability)
        if key == DATA_PROTECTION_KEY:
            return self._data_protection_matches(value, capability)
        return True

    def check_bundle_id_entitlements(
        self,
        capabilities: List[BundleIDCapability],
        entitlements: Optional[Mapping[str, Any]],
    ) -> Optional[ProfileMismatch]:
        for key, value in (entitlements or {}).items():
            if not self.appears_on_developer_portal(key):
                continue

            if not any(self.matches(key, value, cap) for cap in capabilities):
                return ProfileMismatch(
                    MismatchKind.MISSING_CAPABILITY,
                    f"bundle ID missing Capability ({self.capability_type(key)}) "
                    f"required by project Entitlement ({key})",
                )
        return None

    @staticmethod
    def _data_protection_level(value: Any) -> str:
        level = DATA_PROTECTION_LEVELS.get(str(value))
        if level is None:
            raise AutoProvisionError(
                f"no data protection level found for entitlement value: {value}"
            )
        return level

    def _data_protection_matches(self, value: Any, capability: BundleIDCapability) -> bool:
        level = self._data_protection_level(value)
        if len(capability.settings) != 1:
            return False
        setting = capability.settings[0]
        if setting.key != "DATA_PROTECTION_PERMISSION_LEVEL" or len(setting.options) != 1:
            return False
        return setting.options[0].key == level

    @staticmethod
    def _icloud_matches(key: str, value: Any, capability: BundleIDCapability) -> bool:
        if len(capability.settings) != 1:
            return False
        setting = capability.settings[0]
        if setting.key != "ICLOUD_VERSION" or len(setting.options) != 1:
            return False

        uses_services = key == ICLOUD_KVSTORE_KEY or bool(_as_list(value))
        return not uses_services or setting.options[0].key == "XCODE_6"
