from pathlib import Path
from typing import Optional

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.app_store_connect_api import AppStoreConnectClient
from autoprovision.src.apple.developer_portal_api import DeveloperPortalSessionClient
from autoprovision.src.apple.portal_client import DeveloperPortalClient
from autoprovision.src.core.errors import ConfigError
from autoprovision.src.utils.config_loader import Config
from autoprovision.src.utils.portal_data import PortalData

console = get_console()

NOT_CONNECTED = (
    "Apple service connection not found. Most likely there is no configured "
    "Apple Developer connection for the build."
)


def read_api_key(path: str) -> str:
    key_path = Path(path).expanduser()
    try:
        return key_path.read_text()
    except OSError as e:
        raise ConfigError(f"api_key_path: failed to read the private key ({key_path}): {e}") from e


def _input_api_key_client(config: Config) -> Optional[DeveloperPortalClient]:
    if not config.api_key_path:
        return None
    console.print("[green]Using Apple service connection with the API key from the inputs")
    return AppStoreConnectClient(
        key_id=config.api_key_id,
        issuer_id=config.api_issuer,
        private_key=read_api_key(config.api_key_path),
    )


def _connection_api_key_client(portal_data: Optional[PortalData]) -> Optional[DeveloperPortalClient]:
    if portal_data is None:
        return None
    console.print("[green]Using Apple service connection with API key")
    return AppStoreConnectClient(
        key_id=portal_data.key_id,
        issuer_id=portal_data.issuer_id,
        private_key=portal_data.private_key,
    )


def _apple_id_client(
    config: Config, team_id: str, portal_data: Optional[PortalData]
) -> Optional[DeveloperPortalClient]:
    if config.session_path:
        console.print("[green]Using Apple service connection with Apple ID session")
        return DeveloperPortalSessionClient.from_cookie_jar(
            team_id, str(Path(config.session_path).expanduser())
        )
    if portal_data is not None and portal_data.session_cookies:
        console.print("[green]Using Apple service connection with Apple ID session")
        return DeveloperPortalSessionClient.from_cookies(team_id, portal_data.session_cookies)
    return None


def create_client(
    config: Config, team_id: str, portal_data: Optional[PortalData] = None
) -> DeveloperPortalClient:
    """Pick the portal client once, based on the connection input.

    automatic: input API key, then the connected API key, then an Apple ID session
    api_key:   the connected API key
    apple_id:  an Apple ID session (cookie jar or connected session)
    off:       the input API key
    """
    console.print("\n[blue]Initializing Developer Portal client")
    debug(f"connection: {config.connection}")

    if config.connection == "automatic":
        candidates = (
            lambda: _input_api_key_client(config),
            lambda: _connection_api_key_client(portal_data),
            lambda: _apple_id_client(config, team_id, portal_data),
        )
    elif config.connection == "api_key":
        candidates = (lambda: _connection_api_key_client(portal_data),)
    elif config.connection == "apple_id":
        candidates = (lambda: _apple_id_client(config, team_id, portal_data),)
    elif config.connection == "off":
        candidates = (lambda: _input_api_key_client(config),)
    else:
        raise ConfigError(f"connection: unexpected value ({config.connection})")

    for candidate in candidates:
        client = candidate()
        if client is not None:
            return client

    if portal_data is None and config.connection != "off":
        console.print(f"[yellow]{NOT_CONNECTED}")
    raise ConfigError(
        f"could not configure Apple service authentication for connection ({config.connection}): "
        "no matching credentials found"
    )
