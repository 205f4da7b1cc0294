import http.cookiejar as cookielib
import os
from typing import Dict, List, Optional, Set
from urllib.parse import parse_qsl, urlencode, urlsplit

import requests

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.app_store_connect_api import (
    create_retrying_session,
    error_from_response,
)
from autoprovision.src.apple.models import (
    BundleID,
    BundleIDCapability,
    BundleIDPlatform,
    Device,
    DevicePlatform,
    DeviceStatus,
    PortalCertificate,
    Profile,
    ProfileType,
)
from autoprovision.src.apple.portal_client import DeveloperPortalClient
from autoprovision.src.apple.resources import (
    capability_payload,
    parse_bundle_id,
    parse_capability,
    parse_certificate,
    parse_device,
    parse_profile,
)
from autoprovision.src.core.errors import (
    ConfigError,
    DeviceRegistrationError,
    PortalAPIError,
)

console = get_console()


class DeveloperPortalSessionClient(DeveloperPortalClient):
    """Developer Portal web API client riding an existing Apple ID session.

    The session has to be authenticated already: cookies are loaded from a
    cookie jar file (or handed over as a name/value mapping) and the csrf
    tokens are read from them. Reads are POSTs carrying the query string in
    the body, with `X-HTTP-Method-Override: GET`, scoped by `teamId`.
    """

    BASE_URL = "https://developer.apple.com/services-account/v1/"
    PAGE_LIMIT = 1000
    TIMEOUT = 60

    def __init__(self, team_id: str, session: Optional[requests.Session] = None):
        if not team_id:
            raise ConfigError("team_id is required for the Apple ID session client")
        self.team_id = team_id
        self.session = session or create_retrying_session()
        self.read_headers = {
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "en-US,en;q=0.5",
            "Content-Type": "application/vnd.api+json",
            "X-Requested-With": "XMLHttpRequest",
            "X-HTTP-Method-Override": "GET",
        }
        self._certificates: Optional[List[PortalCertificate]] = None

    @classmethod
    def from_cookie_jar(cls, team_id: str, cookie_path: str) -> "DeveloperPortalSessionClient":
        if not os.path.exists(cookie_path):
            raise ConfigError(f"session cookie jar not found: {cookie_path}")
        session = create_retrying_session()
        jar = cookielib.LWPCookieJar(filename=cookie_path)
        try:
            jar.load(ignore_discard=True, ignore_expires=True)
        except (OSError, cookielib.LoadError) as e:
            raise ConfigError(f"failed to load session cookies ({cookie_path}): {e}") from e
        session.cookies = jar
        console.print(f"[green]Loaded {len(jar)} session cookies from {cookie_path}")
        return cls(team_id, session=session)

    @classmethod
    def from_cookies(
        cls, team_id: str, cookies: Dict[str, str]
    ) -> "DeveloperPortalSessionClient":
        session = create_retrying_session()
        for name, value in cookies.items():
            session.cookies.set(name, value, domain=".apple.com")
        return cls(team_id, session=session)

    def _cookie_value(self, name: str) -> Optional[str]:
        for cookie in self.session.cookies:
            if cookie.name == name:
                return cookie.value
        return None

    @property
    def write_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "en-US,en;q=0.5",
            "Content-Type": "application/vnd.api+json",
            "X-Requested-With": "XMLHttpRequest",
            "Origin": "https://developer.apple.com",
            "csrf": self._cookie_value("csrf") or "",
            "csrf_ts": self._cookie_value("csrf_ts") or "",
        }

    # Transport

    def _send(self, method: str, url: str, headers: dict, body: dict) -> Optional[dict]:
        debug(f"{method} {url}")
        response = self.session.request(
            method, url, json=body, headers=headers, timeout=self.TIMEOUT
        )
        if not 200 <= response.status_code < 300:
            raise error_from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _read(self, path: str, query: Optional[dict] = None) -> dict:
        payload = {"teamId": self.team_id}
        if query:
            payload["urlEncodedQueryParams"] = urlencode(query, safe="[],")
        return self._send("POST", self.BASE_URL + path, self.read_headers, payload) or {}

    def _write(self, method: str, path: str, data: dict) -> Optional[dict]:
        data.setdefault("attributes", {})["teamId"] = self.team_id
        return self._send(method, self.BASE_URL + path, self.write_headers, {"data": data})

    def _paginate(self, path: str, query: Optional[dict] = None) -> List[dict]:
        resources = []
        query = {"limit": self.PAGE_LIMIT, **(query or {})}
        while True:
            page = self._read(path, query)
            resources.extend(page.get("data") or [])
            next_link = (page.get("links") or {}).get("next")
            if not next_link:
                return resources
            parts = urlsplit(next_link)
            path = parts.path.split("/services-account/v1/", 1)[-1]
            query = dict(parse_qsl(parts.query))

    def _document(self, path: str, include: str) -> dict:
        return self._read(path, {"include": include})

    @staticmethod
    def _relationship_ids(document: dict, name: str) -> Set[str]:
        data = (((document.get("data") or {}).get("relationships") or {}).get(name) or {}).get("data")
        if data is None:
            return set()
        if isinstance(data, dict):
            return {data["id"]}
        return {item["id"] for item in data}

    @staticmethod
    def _included(document: dict, resource_type: str) -> List[dict]:
        return [i for i in document.get("included") or [] if i.get("type") == resource_type]

    # Certificates

    def list_certificates(self) -> List[PortalCertificate]:
        if self._certificates is None:
            console.print(f"[blue]Fetching certificates for team {self.team_id}...")
            resources = self._paginate("certificates", {"sort": "displayName"})
            self._certificates = [parse_certificate(r) for r in resources]
            console.print(f"[green]Found {len(self._certificates)} certificates")
        return self._certificates

    def find_certificate_by_serial(self, serial: int) -> Optional[PortalCertificate]:
        return next(
            (c for c in self.list_certificates() if c.serial_number == serial), None
        )

    # Bundle IDs

    def find_bundle_id(self, identifier: str) -> Optional[BundleID]:
        resources = self._paginate("bundleIds", {"filter[identifier]": identifier})
        # Find exact match only
        return next(
            (
                parse_bundle_id(r)
                for r in resources
                if r["attributes"]["identifier"] == identifier
            ),
            None,
        )

    def create_bundle_id(self, identifier: str, name: str) -> BundleID:
        data = {
            "type": "bundleIds",
            "attributes": {
                "identifier": identifier,
                "name": name,
                "seedId": self.team_id,
                "platform": BundleIDPlatform.IOS.value,
            },
            "relationships": {"bundleIdCapabilities": {"data": []}},
        }
        return parse_bundle_id(self._write("POST", "bundleIds", data)["data"])

    def list_capabilities(self, bundle_id: BundleID) -> List[BundleIDCapability]:
        document = self._document(
            f"bundleIds/{bundle_id.id}", "bundleIdCapabilities,bundleIdCapabilities.capability"
        )
        return [
            parse_capability(item)
            for item in self._included(document, "bundleIdCapabilities")
            if (item.get("attributes") or {}).get("enabled", True)
        ]

    def enable_capability(
        self, bundle_id: BundleID, capability: BundleIDCapability
    ) -> None:
        # The web portal replaces the whole capability list, keep what is enabled
        enabled = [
            c
            for c in self.list_capabilities(bundle_id)
            if c.capability_type != capability.capability_type
        ]
        capabilities_data = [
            {
                "type": "bundleIdCapabilities",
                "attributes": {"enabled": True, "settings": capability_payload(c)},
                "relationships": {
                    "capability": {"data": {"type": "capabilities", "id": c.capability_type}}
                },
            }
            for c in enabled + [capability]
        ]
        data = {
            "type": "bundleIds",
            "id": bundle_id.id,
            "attributes": {
                "identifier": bundle_id.identifier,
                "name": bundle_id.name,
                "seedId": self.team_id,
            },
            "relationships": {"bundleIdCapabilities": {"data": capabilities_data}},
        }
        self._write("PATCH", f"bundleIds/{bundle_id.id}", data)

    # Profiles

    def find_profile(self, name: str, profile_type: ProfileType) -> Optional[Profile]:
        resources = self._paginate(
            "profiles",
            {"filter[name]": name, "filter[profileType]": ProfileType(profile_type).value},
        )
        for profile in map(parse_profile, resources):
            if profile.name == name:
                return profile
        return None

    def create_profile(
        self,
        name: str,
        profile_type: ProfileType,
        bundle_id: BundleID,
        certificate_ids: List[str],
        device_ids: List[str],
    ) -> Profile:
        data = {
            "type": "profiles",
            "attributes": {"name": name, "profileType": ProfileType(profile_type).value},
            "relationships": {
                "bundleId": {"data": {"type": "bundleIds", "id": bundle_id.id}},
                "certificates": {
                    "data": [{"type": "certificates", "id": i} for i in certificate_ids]
                },
                "devices": {"data": [{"type": "devices", "id": i} for i in device_ids]},
            },
        }
        return parse_profile(self._write("POST", "profiles", data)["data"])

    def delete_profile(self, profile_id: str) -> None:
        try:
            self._send(
                "DELETE",
                f"{self.BASE_URL}profiles/{profile_id}",
                self.write_headers,
                {"teamId": self.team_id},
            )
        except PortalAPIError as e:
            if not e.is_not_found:
                raise
            debug(f"Profile {profile_id} was already deleted")

    def list_bundle_id_profiles(self, bundle_id: BundleID) -> List[Profile]:
        document = self._document(f"bundleIds/{bundle_id.id}", "profiles")
        return [parse_profile(item) for item in self._included(document, "profiles")]

    def profile_certificate_ids(self, profile: Profile) -> Set[str]:
        document = self._document(f"profiles/{profile.id}", "certificates")
        return self._relationship_ids(document, "certificates")

    def profile_device_ids(self, profile: Profile) -> Set[str]:
        document = self._document(f"profiles/{profile.id}", "devices")
        return self._relationship_ids(document, "devices")

    def profile_bundle_id(self, profile: Profile) -> BundleID:
        document = self._document(f"profiles/{profile.id}", "bundleId")
        included = self._included(document, "bundleIds")
        if not included:
            raise PortalAPIError(
                status_code=404,
                method="GET",
                url=f"{self.BASE_URL}profiles/{profile.id}",
                body="profile has no bundle ID",
            )
        return parse_bundle_id(included[0])

    # Devices

    def list_devices(
        self, udid: Optional[str] = None, platform: DevicePlatform = DevicePlatform.IOS
    ) -> List[Device]:
        query = {
            "filter[status]": DeviceStatus.ENABLED.value,
            "filter[platform]": DevicePlatform(platform).value,
        }
        if udid:
            query["filter[udid]"] = udid
        return [parse_device(r) for r in self._paginate("devices", query)]

    def register_device(self, udid: str, name: str, platform: DevicePlatform) -> Device:
        data = {
            "type": "devices",
            "attributes": {
                "name": name,
                "udid": udid,
                "platform": DevicePlatform(platform).value,
            },
        }
        try:
            response = self._write("POST", "devices", data)
        except PortalAPIError as e:
            if e.is_conflict:
                raise DeviceRegistrationError(udid, str(e)) from e
            raise
        return parse_device(response["data"])
