import argparse
from typing import Dict, List, Optional

from rich.table import Table

from autoprovision.arguments import config_overrides
from autoprovision.logger import get_console, set_verbose
from autoprovision.src.apple.client_factory import create_client
from autoprovision.src.apple.models import DistributionType
from autoprovision.src.certificates.local_certificates import (
    LocalCertificate,
    download_certificates,
)
from autoprovision.src.core.entitlements import EntitlementClassifier
from autoprovision.src.core.errors import AutoProvisionError, PortalDataError
from autoprovision.src.core.keychain import KeychainInstaller
from autoprovision.src.core.orchestrator import AppLayout, CodesignAssetManager, CodesignAssets
from autoprovision.src.profiles.profile_content import write_profile
from autoprovision.src.utils.config_loader import Config, load_config
from autoprovision.src.utils.layout_loader import load_layout
from autoprovision.src.utils.outputs import build_outputs, export_outputs
from autoprovision.src.utils.portal_data import PortalData, PortalDataDownloader

console = get_console()


def print_config(config: Config) -> None:
    table = Table(title="Configuration")
    table.add_column("Input", style="cyan")
    table.add_column("Value")
    for name, value in config.masked_items():
        table.add_row(name, value)
    console.print(table)


def fetch_portal_data(config: Config) -> Optional[PortalData]:
    if config.connection == "off":
        return None
    if not config.build_url:
        console.print(
            "[yellow]Connected Apple Developer Portal Account not found: "
            "build_url and build_api_token are not set"
        )
        return None

    console.print("\n[blue]Fetching Apple Developer connection")
    try:
        return PortalDataDownloader(config.build_url, config.build_api_token).get_portal_data()
    except PortalDataError as e:
        # The inputs may still carry an API key
        console.print(f"[yellow]Failed to fetch Apple Developer connection: {e}")
        return None


def print_layout(layout: AppLayout) -> None:
    console.print("\n[blue]Analyzing project")
    console.print(f"project team ID: {layout.team_id}")
    console.print(f"platform: {layout.platform.value}")
    console.print("bundle IDs:")
    for bundle_id in layout.entitlements_by_bundle_id:
        console.print(f"- {bundle_id}")
    if layout.ui_test_bundle_ids:
        console.print("UI test target bundle IDs:")
        for bundle_id in layout.ui_test_bundle_ids:
            console.print(f"- {bundle_id}")


def signing_certificates(
    assets_by_distribution: Dict[DistributionType, CodesignAssets]
) -> List[LocalCertificate]:
    certificates = []
    seen = set()
    for assets in assets_by_distribution.values():
        local = assets.certificate.local
        if local.serial_number not in seen:
            seen.add(local.serial_number)
            certificates.append(local)
    return certificates


def install_codesign_assets(
    config: Config, assets_by_distribution: Dict[DistributionType, CodesignAssets]
) -> None:
    console.print("\n[blue]Installing certificates")
    KeychainInstaller(config.keychain_path, config.keychain_password).install_certificates(
        signing_certificates(assets_by_distribution)
    )

    for distribution_type, assets in assets_by_distribution.items():
        console.print(f"\n[blue]Installing {distribution_type.value} profiles")
        profiles = list(assets.archivable_target_profiles.values()) + list(
            assets.ui_test_target_profiles.values()
        )
        for profile in profiles:
            console.print(f"- {profile.name}")
            write_profile(profile)


def provision(config: Config) -> Dict[str, str]:
    layout = load_layout(config.layout_path, config.sign_uitest_targets, config.team_id)
    print_layout(layout)

    # Fail before any portal request when a profile could never be generated
    classifier = EntitlementClassifier()
    classifier.ensure_supported(layout.entitlements_by_bundle_id)

    portal_data = fetch_portal_data(config)
    client = create_client(config, layout.team_id, portal_data)

    console.print("\n[blue]Downloading certificates")
    certificates = download_certificates(config.certificate_file_urls())

    test_devices = []
    if config.register_test_devices and portal_data is not None:
        test_devices = portal_data.test_devices

    manager = CodesignAssetManager(client, test_devices=test_devices, classifier=classifier)
    assets_by_distribution = manager.auto_codesign(
        config.distribution_type, layout, certificates, config.min_profile_days_valid
    )

    install_codesign_assets(config, assets_by_distribution)

    outputs = build_outputs(config.distribution_type, layout, assets_by_distribution)
    export_outputs(outputs, config.output_path)
    return outputs


def run_provision_command(args: argparse.Namespace) -> int:
    try:
        config = load_config(
            config_overrides(args),
            config_path=getattr(args, "config_path", None),
            env_file=getattr(args, "env_file", None),
        )
    except AutoProvisionError as e:
        console.print(f"[red]Config: {e}")
        return 1

    set_verbose(config.verbose_log)
    print_config(config)

    try:
        provision(config)
    except AutoProvisionError as e:
        console.print(f"\n[red]Error:[/] {e}")
        return 1

    console.print("\n[green]Code signing assets are ready")
    return 0
