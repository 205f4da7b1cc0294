import base64
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from autoprovision.src.apple.models import (
    BundleID,
    BundleIDCapability,
    CapabilityOption,
    CapabilitySetting,
    Device,
    PortalCertificate,
    Profile,
)

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse the ISO 8601 timestamps the portal sends, always timezone aware"""
    if not value:
        return None
    # 2021-08-18T10:51:41.000+0000 -> 2021-08-18T10:51:41.000+00:00
    value = _COMPACT_OFFSET.sub(r"\1:\2", value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_serial(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def format_serial(serial: int) -> str:
    return format(serial, "X")


def relationship_links(resource: dict) -> Dict[str, str]:
    """Collect `relationships.<name>.links.related` URLs of a resource"""
    links = {}
    for name, relationship in (resource.get("relationships") or {}).items():
        related = ((relationship or {}).get("links") or {}).get("related")
        if related:
            links[name] = related
    return links


def parse_certificate(resource: dict) -> PortalCertificate:
    attrs = resource["attributes"]
    return PortalCertificate(
        id=resource["id"],
        serial_number=parse_serial(attrs["serialNumber"]),
        certificate_type=attrs["certificateType"],
        name=attrs.get("name", ""),
        display_name=attrs.get("displayName"),
        expiration_date=parse_date(attrs.get("expirationDate")),
    )


def parse_bundle_id(resource: dict) -> BundleID:
    attrs = resource["attributes"]
    return BundleID(
        id=resource["id"],
        identifier=attrs["identifier"],
        name=attrs.get("name", ""),
        platform=attrs.get("platform"),
        links=relationship_links(resource),
    )


def parse_capability(resource: dict) -> BundleIDCapability:
    attrs = resource.get("attributes") or {}
    settings = []
    for setting in attrs.get("settings") or []:
        options = [
            CapabilityOption(key=option["key"], enabled=option.get("enabled", True))
            for option in setting.get("options") or []
        ]
        settings.append(CapabilitySetting(key=setting["key"], options=options))

    capability_type = attrs.get("capabilityType")
    if capability_type is None:
        # The web portal puts the type on the capability relationship
        capability_type = (
            ((resource.get("relationships") or {}).get("capability") or {}).get("data")
            or {}
        ).get("id", "")

    return BundleIDCapability(
        capability_type=capability_type, settings=settings, id=resource.get("id")
    )


def parse_profile(resource: dict) -> Profile:
    attrs = resource["attributes"]
    content = attrs.get("profileContent") or ""
    return Profile(
        id=resource["id"],
        name=attrs["name"],
        uuid=attrs.get("uuid", ""),
        profile_state=attrs.get("profileState", ""),
        profile_type=attrs.get("profileType", ""),
        platform=attrs.get("platform", ""),
        expiration_date=parse_date(attrs.get("expirationDate")),
        content=base64.b64decode(content) if content else b"",
        links=relationship_links(resource),
    )


def parse_device(resource: dict) -> Device:
    attrs = resource["attributes"]
    return Device(
        id=resource["id"],
        name=attrs.get("name", ""),
        udid=attrs["udid"],
        status=attrs.get("status", ""),
        device_class=attrs.get("deviceClass", ""),
        platform=attrs.get("platform", ""),
        model=attrs.get("model"),  # model can be null
    )


def capability_payload(capability: BundleIDCapability) -> List[dict]:
    return [
        {
            "key": setting.key,
            "options": [
                {"key": option.key, "enabled": option.enabled}
                for option in setting.options
            ],
        }
        for setting in capability.settings
    ]
