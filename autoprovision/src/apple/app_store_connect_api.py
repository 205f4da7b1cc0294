from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set
from urllib.parse import urljoin

import jwt
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from autoprovision.logger import debug
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
    format_serial,
    parse_bundle_id,
    parse_capability,
    parse_certificate,
    parse_device,
    parse_profile,
)
from autoprovision.src.core.errors import DeviceRegistrationError, PortalAPIError


def create_retrying_session() -> requests.Session:
    """A requests session retrying connection errors and 429/5xx answers"""
    session = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def error_from_response(response: requests.Response) -> PortalAPIError:
    """Decode a JSON:API `errors` document, falling back to the raw body"""
    errors = []
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        errors = payload.get("errors") or []
    return PortalAPIError(
        status_code=response.status_code,
        method=response.request.method if response.request is not None else "",
        url=response.url,
        errors=errors,
        body=response.text if not errors else "",
    )


class AppStoreConnectClient(DeveloperPortalClient):
    """App Store Connect API client authenticated with an API key"""

    BASE_URL = "https://api.appstoreconnect.apple.com/v1/"
    AUDIENCE = "appstoreconnect-v1"
    TOKEN_LIFETIME = timedelta(minutes=20)
    TOKEN_REFRESH_MARGIN = timedelta(minutes=1)
    PAGE_LIMIT = 200
    TIMEOUT = 60

    def __init__(
        self,
        key_id: str,
        issuer_id: str,
        private_key: str,
        session: Optional[requests.Session] = None,
        base_url: str = BASE_URL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.key_id = key_id
        self.issuer_id = issuer_id
        self.private_key = private_key
        self.base_url = base_url
        self.session = session or create_retrying_session()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    # Transport

    def signed_token(self) -> str:
        """Return the cached JWT, signing a new one shortly before it expires"""
        now = self._clock()
        if (
            self._token is not None
            and self._token_expires_at - now > self.TOKEN_REFRESH_MARGIN
        ):
            return self._token

        expires_at = now + self.TOKEN_LIFETIME
        claims = {
            "iss": self.issuer_id,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "aud": self.AUDIENCE,
        }
        self._token = jwt.encode(
            claims, self.private_key, algorithm="ES256", headers={"kid": self.key_id}
        )
        self._token_expires_at = expires_at
        debug(f"Signed new App Store Connect token, valid until {expires_at}")
        return self._token

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> Optional[dict]:
        url = endpoint if endpoint.startswith("http") else urljoin(self.base_url, endpoint)
        headers = {
            "Authorization": f"Bearer {self.signed_token()}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        debug(f"{method} {url}")
        response = self.session.request(
            method, url, params=params, json=body, headers=headers, timeout=self.TIMEOUT
        )
        if not 200 <= response.status_code < 300:
            raise error_from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _paginate(self, endpoint: str, params: Optional[dict] = None) -> List[dict]:
        """Drain every page of a list endpoint by following `links.next`"""
        resources = []
        query = {"limit": self.PAGE_LIMIT, **(params or {})}
        next_url: Optional[str] = endpoint
        while next_url:
            page = self._request("GET", next_url, params=query) or {}
            resources.extend(page.get("data") or [])
            next_url = (page.get("links") or {}).get("next")
            # The next link already carries the cursor and the filters
            query = None
        return resources

    def _related(self, links: Dict[str, str], name: str, fallback: str) -> str:
        return links.get(name) or fallback

    # Certificates

    def list_certificates(self) -> List[PortalCertificate]:
        return [parse_certificate(r) for r in self._paginate("certificates")]

    def find_certificate_by_serial(self, serial: int) -> Optional[PortalCertificate]:
        resources = self._paginate(
            "certificates", {"filter[serialNumber]": format_serial(serial)}
        )
        for certificate in map(parse_certificate, resources):
            if certificate.serial_number == serial:
                return certificate
        return None

    # Bundle IDs

    def find_bundle_id(self, identifier: str) -> Optional[BundleID]:
        # filter[identifier] is a "contains" filter
        resources = self._paginate("bundleIds", {"filter[identifier]": identifier})
        for bundle_id in map(parse_bundle_id, resources):
            if bundle_id.identifier == identifier:
                return bundle_id
        return None

    def create_bundle_id(self, identifier: str, name: str) -> BundleID:
        body = {
            "data": {
                "type": "bundleIds",
                "attributes": {
                    "identifier": identifier,
                    "name": name,
                    "platform": BundleIDPlatform.IOS.value,
                },
            }
        }
        return parse_bundle_id(self._request("POST", "bundleIds", body=body)["data"])

    def list_capabilities(self, bundle_id: BundleID) -> List[BundleIDCapability]:
        url = self._related(
            bundle_id.links,
            "bundleIdCapabilities",
            f"bundleIds/{bundle_id.id}/bundleIdCapabilities",
        )
        return [parse_capability(r) for r in self._paginate(url)]

    def enable_capability(
        self, bundle_id: BundleID, capability: BundleIDCapability
    ) -> None:
        body = {
            "data": {
                "type": "bundleIdCapabilities",
                "attributes": {
                    "capabilityType": capability.capability_type,
                    "settings": capability_payload(capability),
                },
                "relationships": {
                    "bundleId": {"data": {"type": "bundleIds", "id": bundle_id.id}}
                },
            }
        }
        self._request("POST", "bundleIdCapabilities", body=body)

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
        body = {
            "data": {
                "type": "profiles",
                "attributes": {
                    "name": name,
                    "profileType": ProfileType(profile_type).value,
                },
                "relationships": {
                    "bundleId": {"data": {"type": "bundleIds", "id": bundle_id.id}},
                    "certificates": {
                        "data": [{"type": "certificates", "id": i} for i in certificate_ids]
                    },
                    "devices": {"data": [{"type": "devices", "id": i} for i in device_ids]},
                },
            }
        }
        return parse_profile(self._request("POST", "profiles", body=body)["data"])

    def delete_profile(self, profile_id: str) -> None:
        try:
            self._request("DELETE", f"profiles/{profile_id}")
        except PortalAPIError as e:
            if not e.is_not_found:
                raise
            debug(f"Profile {profile_id} was already deleted")

    def list_bundle_id_profiles(self, bundle_id: BundleID) -> List[Profile]:
        url = self._related(bundle_id.links, "profiles", f"bundleIds/{bundle_id.id}/profiles")
        return [parse_profile(r) for r in self._paginate(url)]

    def profile_certificate_ids(self, profile: Profile) -> Set[str]:
        url = self._related(profile.links, "certificates", f"profiles/{profile.id}/certificates")
        return {r["id"] for r in self._paginate(url)}

    def profile_device_ids(self, profile: Profile) -> Set[str]:
        url = self._related(profile.links, "devices", f"profiles/{profile.id}/devices")
        return {r["id"] for r in self._paginate(url)}

    def profile_bundle_id(self, profile: Profile) -> BundleID:
        url = self._related(profile.links, "bundleId", f"profiles/{profile.id}/bundleId")
        return parse_bundle_id(self._request("GET", url)["data"])

    # Devices

    def list_devices(
        self, udid: Optional[str] = None, platform: DevicePlatform = DevicePlatform.IOS
    ) -> List[Device]:
        params = {
            "filter[platform]": DevicePlatform(platform).value,
            "filter[status]": DeviceStatus.ENABLED.value,
        }
        if udid:
            params["filter[udid]"] = udid
        return [parse_device(r) for r in self._paginate("devices", params)]

    def register_device(self, udid: str, name: str, platform: DevicePlatform) -> Device:
        body = {
            "data": {
                "type": "devices",
                "attributes": {
                    "name": name,
                    "udid": udid,
                    "platform": DevicePlatform(platform).value,
                },
            }
        }
        try:
            response = self._request("POST", "devices", body=body)
        except PortalAPIError as e:
            if e.is_conflict:
                reason = "; ".join(
                    err.get("detail") or err.get("title") or "" for err in e.errors
                )
                raise DeviceRegistrationError(udid, reason or str(e)) from e
            raise
        return parse_device(response["data"])
