import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlsplit

import requests

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.app_store_connect_api import create_retrying_session
from autoprovision.src.apple.models import TestDevice
from autoprovision.src.core.errors import PortalDataError

console = get_console()

PORTAL_DATA_FILE = "apple_developer_portal_data.json"


@dataclass
class PortalData:
    """Apple Developer connection the build service shares with the build"""

    key_id: str
    issuer_id: str
    private_key: str = field(repr=False)
    test_devices: List[TestDevice] = field(default_factory=list)
    session_cookies: Dict[str, str] = field(default_factory=dict, repr=False)
    team_id: str = ""


def _parse_test_devices(items: Any) -> List[TestDevice]:
    devices = []
    for item in items or []:
        if not isinstance(item, dict) or not item.get("device_identifier"):
            debug(f"Skipping malformed test device entry: {item}")
            continue
        devices.append(
            TestDevice(
                device_id=item["device_identifier"],
                title=item.get("title") or "",
                device_type=item.get("device_type") or "",
                updated_at=item.get("updated_at") or "",
            )
        )
    return devices


def _parse_session_cookies(data: Any) -> Dict[str, str]:
    """`{"<host url>": [{"name": ..., "value": ...}, ...]}` -> `{name: value}`"""
    cookies: Dict[str, str] = {}
    if not isinstance(data, dict):
        return cookies
    for host_cookies in data.values():
        for cookie in host_cookies or []:
            if isinstance(cookie, dict) and cookie.get("name"):
                cookies[cookie["name"]] = str(cookie.get("value") or "")
    return cookies


def parse_portal_data(content: bytes) -> PortalData:
    try:
        payload = json.loads(content)
    except ValueError as e:
        raise PortalDataError(f"failed to parse Apple Developer connection data: {e}") from e
    if not isinstance(payload, dict):
        raise PortalDataError("failed to parse Apple Developer connection data: not a JSON object")

    for key in ("issuer_id", "key_id", "private_key"):
        if not payload.get(key):
            raise PortalDataError(
                f"invalid App Store Connect API authentication data: missing {key}"
            )

    return PortalData(
        key_id=payload["key_id"],
        issuer_id=payload["issuer_id"],
        private_key=payload["private_key"],
        test_devices=_parse_test_devices(payload.get("test_devices")),
        session_cookies=_parse_session_cookies(payload.get("session_cookies")),
        team_id=payload.get("team_id") or "",
    )


class PortalDataDownloader:
    """Fetches the connection data from the build service, or a local file"""

    TIMEOUT = 60

    def __init__(
        self,
        build_url: str,
        build_api_token: str = "",
        session: Optional[requests.Session] = None,
    ):
        self.build_url = build_url
        self.build_api_token = build_api_token
        self.session = session or create_retrying_session()

    @property
    def data_url(self) -> str:
        return self.build_url.rstrip("/") + "/" + PORTAL_DATA_FILE

    def _read_file(self) -> bytes:
        path = unquote(urlsplit(self.build_url).path)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise PortalDataError(f"failed to read connection data ({path}): {e}") from e

    def _download(self) -> bytes:
        headers = {}
        if self.build_api_token:
            headers["BUILD_API_TOKEN"] = self.build_api_token

        try:
            response = self.session.get(self.data_url, headers=headers, timeout=self.TIMEOUT)
        except requests.RequestException as e:
            raise PortalDataError(f"failed to download connection data: {e}") from e

        if response.status_code == 401:
            raise PortalDataError(
                "unauthorized to fetch the Apple Developer connection data, "
                "check that the build API token is valid"
            )
        if not 200 <= response.status_code < 300:
            raise PortalDataError(
                f"failed to download connection data: request failed with status HTTP{response.status_code}"
            )
        return response.content

    def get_portal_data(self) -> PortalData:
        if not self.build_url:
            raise PortalDataError("build_url is required to fetch the Apple Developer connection data")

        if self.build_url.startswith("file://"):
            content = self._read_file()
        else:
            content = self._download()

        data = parse_portal_data(content)
        console.print("[green]Apple Developer connection data fetched")
        debug(f"key ID: {data.key_id}, issuer ID: {data.issuer_id}, {len(data.test_devices)} test devices")
        return data
