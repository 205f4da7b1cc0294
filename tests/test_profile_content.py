import os
import stat
from datetime import datetime

import pytest

from autoprovision.src.apple.models import Profile
from autoprovision.src.core.errors import ProfileContentError
from autoprovision.src.profiles.profile_content import (
    load_profile_file,
    parse_profile_content,
    profile_entitlements,
    write_profile,
)
from tests.fakes import NOW, make_profile_content

PAYLOAD = {
    "Name": "Bitrise iOS development - (com.acme.app)",
    "UUID": "8b5a2c3e-0000-4000-8000-000000000001",
    "ExpirationDate": datetime(2025, 6, 1, 12, 0),
    "TeamIdentifier": ["TEAM123456"],
    "Entitlements": {
        "application-identifier": "TEAM123456.com.acme.app",
        "aps-environment": "development",
    },
}


def make_profile(platform="IOS", content=b"profile"):
    return Profile(
        id="p1",
        name="Bitrise iOS development - (com.acme.app)",
        uuid="8b5a2c3e-0000-4000-8000-000000000001",
        profile_state="ACTIVE",
        profile_type="IOS_APP_DEVELOPMENT",
        platform=platform,
        expiration_date=NOW,
        content=content,
    )


def test_parse_profile_content():
    parsed = parse_profile_content(make_profile_content(PAYLOAD))

    assert parsed["Name"] == PAYLOAD["Name"]
    assert parsed["UUID"] == PAYLOAD["UUID"]


def test_profile_entitlements():
    entitlements = profile_entitlements(make_profile_content(PAYLOAD))

    assert entitlements["aps-environment"] == "development"
    assert profile_entitlements(make_profile_content({"Name": "x"})) == {}


@pytest.mark.parametrize("content", [b"", b"not a pkcs7 envelope"])
def test_invalid_content(content):
    with pytest.raises(ProfileContentError):
        parse_profile_content(content)


def test_load_profile_file(tmp_path):
    path = tmp_path / "profile.mobileprovision"
    path.write_bytes(make_profile_content(PAYLOAD))

    assert load_profile_file(path)["TeamIdentifier"] == ["TEAM123456"]


@pytest.mark.parametrize(
    "platform, extension", [("IOS", ".mobileprovision"), ("MAC_OS", ".provisionprofile")]
)
def test_write_profile(tmp_path, platform, extension):
    path = write_profile(make_profile(platform), tmp_path / "profiles")

    assert path == tmp_path / "profiles" / f"8b5a2c3e-0000-4000-8000-000000000001{extension}"
    assert path.read_bytes() == b"profile"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_write_profile_unsupported_platform(tmp_path):
    with pytest.raises(ProfileContentError):
        write_profile(make_profile("UNIVERSAL"), tmp_path)
