import argparse
from pathlib import Path
from typing import Any, Dict

from autoprovision.src.apple.models import DistributionType


def add_provision_arguments(parser):
    """Add the provisioning inputs to an existing parser.

    Every flag defaults to None so unset flags fall through to the
    environment and the config file.
    """
    parser.add_argument(
        "--layout",
        dest="layout_path",
        type=str,
        help="Path to the project layout TOML (targets, entitlements) [default: autoprovision.toml]",
    )

    parser.add_argument(
        "--distribution-type",
        "-d",
        choices=[d.value for d in DistributionType],
        help="Distribution type to provision for [default: development]",
    )

    parser.add_argument(
        "--team-id",
        type=str,
        help="Developer Portal team ID [default: the one in the layout]",
    )

    parser.add_argument(
        "--connection",
        choices=["automatic", "api_key", "apple_id", "off"],
        help="Which Apple service connection to use [default: automatic]",
    )

    parser.add_argument(
        "--api-key-path",
        type=str,
        help="Path to the App Store Connect API private key (.p8)",
    )

    parser.add_argument(
        "--api-key-id",
        type=str,
        help="App Store Connect API key ID",
    )

    parser.add_argument(
        "--api-issuer",
        type=str,
        help="App Store Connect API issuer ID",
    )

    parser.add_argument(
        "--session-path",
        type=str,
        help="Cookie jar of an authenticated Apple ID session (apple_id connection)",
    )

    parser.add_argument(
        "--certificate-url",
        dest="certificate_urls",
        action="append",
        help="URL of a PKCS#12 certificate (file:// for local files), can be repeated",
    )

    parser.add_argument(
        "--passphrase",
        dest="passphrases",
        action="append",
        help="Passphrase of the matching --certificate-url, can be repeated",
    )

    parser.add_argument(
        "--min-profile-days-valid",
        type=int,
        help="Regenerate profiles expiring within this many days [default: 0]",
    )

    parser.add_argument(
        "--sign-uitest-targets",
        action="store_true",
        default=None,
        help="Also provision wildcard profiles for UI test targets [default: disabled]",
    )

    parser.add_argument(
        "--register-test-devices",
        action="store_true",
        default=None,
        help="Register the build service's test devices on the portal [default: disabled]",
    )

    parser.add_argument(
        "--keychain-path",
        type=str,
        help="Keychain to install the certificates into [default: login keychain]",
    )

    parser.add_argument(
        "--output-path",
        type=str,
        help="Env file to write the exported outputs to [default: print only]",
    )

    parser.add_argument(
        "--config",
        dest="config_path",
        type=Path,
        help="Config TOML path [default: ~/.autoprovision/config.toml]",
    )

    parser.add_argument(
        "--env-file",
        type=str,
        help="Dotenv file to load [default: nearest .env]",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        dest="verbose_log",
        action="store_true",
        default=None,
        help="Enable debug logging [default: disabled]",
    )


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Config values set on the command line"""
    skip = {"command", "config_path", "env_file"}
    return {
        key: value
        for key, value in vars(args).items()
        if key not in skip and value is not None
    }
