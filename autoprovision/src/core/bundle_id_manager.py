from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.models import BundleID, BundleIDCapability
from autoprovision.src.apple.portal_client import DeveloperPortalClient
from autoprovision.src.core.entitlements import EntitlementClassifier, icloud_containers
from autoprovision.src.core.errors import ProfileMismatch

console = get_console()

Entitlements = Optional[Mapping[str, Any]]


@dataclass
class RunContext:
    """State shared by the reconcilers of a single provisioning run"""

    bundle_ids: Dict[str, BundleID] = field(default_factory=dict)
    # iCloud containers that have to be assigned by hand, by bundle identifier
    containers_by_bundle_id: Dict[str, List[str]] = field(default_factory=dict)


def app_id_name(bundle_id: str) -> str:
    """Human readable App ID name, e.g. `Bitrise com acme app`"""
    prefix = "Wildcard " if bundle_id.endswith(".*") else ""
    name = bundle_id
    for separator in (".", "_", "-", "*"):
        name = name.replace(separator, " ")
    return f"{prefix}Bitrise {name}"


class BundleIDManager:
    def __init__(
        self,
        client: DeveloperPortalClient,
        classifier: EntitlementClassifier,
        context: RunContext,
    ):
        self.client = client
        self.classifier = classifier
        self.context = context

    def find_bundle_id(self, identifier: str) -> Optional[BundleID]:
        cached = self.context.bundle_ids.get(identifier)
        if cached is not None:
            debug(f"  app ID cache hit: {identifier}")
            return cached
        return self.client.find_bundle_id(identifier)

    def check_bundle_id(
        self,
        bundle_id: BundleID,
        entitlements: Entitlements,
        capabilities: Optional[List[BundleIDCapability]] = None,
    ) -> Optional[ProfileMismatch]:
        """None when every portal entitlement has its capability enabled"""
        if capabilities is None:
            capabilities = self.client.list_capabilities(bundle_id)
        return self.classifier.check_bundle_id_entitlements(capabilities, entitlements)

    def sync_bundle_id(
        self,
        bundle_id: BundleID,
        entitlements: Entitlements,
        capabilities: Optional[List[BundleIDCapability]] = None,
    ) -> None:
        """Enable the missing capabilities, never disable extra ones"""
        to_enable = self.classifier.capabilities_to_enable(entitlements, capabilities or [])
        for capability in to_enable:
            console.print(f"  enabling capability: {capability.capability_type}")
            self.client.enable_capability(bundle_id, capability)

    def ensure_bundle_id(self, identifier: str, entitlements: Entitlements) -> BundleID:
        console.print(f"\n[blue]  Searching for app ID for bundle ID: {identifier}")

        bundle_id = self.find_bundle_id(identifier)
        if bundle_id is not None:
            console.print(f"  app ID found: {bundle_id.name}")
            self.context.bundle_ids[identifier] = bundle_id

            capabilities = self.client.list_capabilities(bundle_id)
            mismatch = self.check_bundle_id(bundle_id, entitlements, capabilities)
            if mismatch is None:
                console.print("  app ID capabilities are in sync with the project capabilities")
                return bundle_id

            console.print(f"[yellow]  app ID capabilities invalid: {mismatch}")
            console.print(
                "[yellow]  app ID capabilities are not in sync with the project capabilities, synchronizing..."
            )
            self.sync_bundle_id(bundle_id, entitlements, capabilities)
            return bundle_id

        console.print("[yellow]  app ID not found, generating...")
        bundle_id = self.client.create_bundle_id(identifier, app_id_name(identifier))

        containers = icloud_containers(entitlements)
        if containers:
            self.context.containers_by_bundle_id[identifier] = containers
            console.print(
                f"[red]  app ID created but couldn't add iCloud containers: {', '.join(containers)}"
            )

        self.sync_bundle_id(bundle_id, entitlements)
        self.context.bundle_ids[identifier] = bundle_id
        return bundle_id
