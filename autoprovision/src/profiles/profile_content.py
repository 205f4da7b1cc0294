import os
import plistlib
from pathlib import Path
from typing import Optional, Union

from asn1crypto.cms import ContentInfo

from autoprovision.logger import debug
from autoprovision.src.apple.models import BundleIDPlatform, Profile
from autoprovision.src.core.errors import ProfileContentError

PROFILE_EXTENSIONS = {
    BundleIDPlatform.IOS.value: ".mobileprovision",
    BundleIDPlatform.MAC_OS.value: ".provisionprofile",
}


def default_profiles_dir() -> Path:
    """Directory Xcode picks installed provisioning profiles up from"""
    return Path(os.path.expanduser("~")) / "Library/MobileDevice/Provisioning Profiles"


def parse_profile_content(content: bytes) -> dict:
    """Decode a provisioning profile without the macOS security command.

    The profile is a CMS SignedData envelope, the property list is its
    encapsulated content.
    """
    if not content:
        raise ProfileContentError("profile content is empty")
    try:
        content_info = ContentInfo.load(content)
        signed_data = content_info["content"]
        plist_data = signed_data["encap_content_info"]["content"].native
        return plistlib.loads(plist_data)
    except (ValueError, TypeError, KeyError) as e:
        raise ProfileContentError(f"failed to parse pkcs7 from profile content: {e}") from e


def profile_entitlements(content: bytes) -> dict:
    return parse_profile_content(content).get("Entitlements") or {}


def load_profile_file(path: Union[str, Path]) -> dict:
    with open(path, "rb") as f:
        return parse_profile_content(f.read())


def write_profile(profile: Profile, profiles_dir: Optional[Path] = None) -> Path:
    """Install the profile as <UUID>.mobileprovision (.provisionprofile on macOS)"""
    extension = PROFILE_EXTENSIONS.get(profile.platform)
    if extension is None:
        supported = ", ".join(PROFILE_EXTENSIONS)
        raise ProfileContentError(
            f"failed to write profile to file, unsupported platform: ({profile.platform}). "
            f"Supported platforms: {supported}"
        )

    profiles_dir = Path(profiles_dir) if profiles_dir else default_profiles_dir()
    profiles_dir.mkdir(parents=True, exist_ok=True)

    path = profiles_dir / f"{profile.uuid}{extension}"
    path.write_bytes(profile.content)
    os.chmod(path, 0o600)
    debug(f"Wrote profile {profile.name} to {path}")
    return path
