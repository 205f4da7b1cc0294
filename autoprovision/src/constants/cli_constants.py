from rich.text import Text

__version__ = "0.1.0"

APP_DESCRIPTION = "Keep App IDs, provisioning profiles and test devices in sync with your project"


def get_banner_text() -> Text:
    """Banner shown above the help output"""
    return Text("autoprovision", style="bold green")
