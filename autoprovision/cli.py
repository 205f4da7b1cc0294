import argparse
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme
from rich_argparse import RichHelpFormatter

from autoprovision.arguments import add_provision_arguments
from autoprovision.src.constants.cli_constants import (
    __version__,
    get_banner_text,
    APP_DESCRIPTION,
)


class AutoProvisionHelpFormatter(RichHelpFormatter):
    """Help formatter with the autoprovision colour theme"""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=30, width=100)
        self.console = Console(
            theme=Theme(
                {
                    "command": "bold cyan",
                    "argument": "green",
                    "option": "yellow",
                    "version": "blue",
                    "title": "bold magenta",
                }
            )
        )

    def start_section(self, heading):
        heading_text = Text(heading, style="title")
        super().start_section(str(heading_text))


def display_banner():
    console = Console()
    banner = get_banner_text()

    version_info = Text(f"v{__version__}", style="version")
    tagline = Text(APP_DESCRIPTION, style="italic")

    panel = Panel.fit(
        Text.assemble(banner, "\n", tagline, "\n", version_info),
        border_style="green",
        padding=(1, 2),
    )
    console.print(panel)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autoprovision",
        description=f"autoprovision: {APP_DESCRIPTION}",
        formatter_class=AutoProvisionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"autoprovision {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command")

    provision_parser = subparsers.add_parser(
        "provision",
        help="Ensure certificates, App IDs, devices and profiles for a project",
        formatter_class=AutoProvisionHelpFormatter,
        description="Reconcile the Developer Portal with the project and install the signing files.",
    )
    add_provision_arguments(provision_parser)

    inspect_parser = subparsers.add_parser(
        "inspect-profile",
        help="Print the details of a provisioning profile",
        formatter_class=AutoProvisionHelpFormatter,
        description="Decode a .mobileprovision / .provisionprofile file.",
    )
    inspect_parser.add_argument(
        "profile_path", type=Path, help="Path to the provisioning profile"
    )

    return parser


def main():
    if len(sys.argv) == 1 or "-h" in sys.argv or "--help" in sys.argv:
        display_banner()

    parser = create_parser()
    args = parser.parse_args()

    if args.command == "provision":
        from autoprovision.commands.provision import run_provision_command

        return run_provision_command(args)
    elif args.command == "inspect-profile":
        from autoprovision.commands.inspect_profile import run_inspect_profile_command

        return run_inspect_profile_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
