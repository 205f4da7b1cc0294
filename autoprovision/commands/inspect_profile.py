import argparse

from rich.table import Table

from autoprovision.logger import get_console
from autoprovision.src.core.errors import ProfileContentError
from autoprovision.src.profiles.profile_content import load_profile_file

console = get_console()


def run_inspect_profile_command(args: argparse.Namespace) -> int:
    if not args.profile_path.exists():
        console.print(f"[red]Error:[/] profile not found: {args.profile_path}")
        return 1

    try:
        profile = load_profile_file(args.profile_path)
    except ProfileContentError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1

    table = Table(title=str(args.profile_path.name), show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Name", str(profile.get("Name", "")))
    table.add_row("UUID", str(profile.get("UUID", "")))
    table.add_row("Team", ", ".join(profile.get("TeamIdentifier") or []))
    table.add_row("Expiration", str(profile.get("ExpirationDate", "")))
    table.add_row("Devices", str(len(profile.get("ProvisionedDevices") or [])))
    console.print(table)

    entitlements = profile.get("Entitlements") or {}
    console.print("\n[blue]Entitlements")
    for key in sorted(entitlements):
        console.print(f"- {key}: {entitlements[key]}")
    return 0
