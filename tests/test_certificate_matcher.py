from datetime import datetime, timedelta, timezone

import pytest

from autoprovision.src.apple.models import CertificateType
from autoprovision.src.certificates.local_certificates import (
    filter_valid_certificates,
    is_distribution_certificate,
)
from autoprovision.src.core.certificate_matcher import select_certificates
from autoprovision.src.core.errors import (
    MissingCertificateError,
    PortalAPIError,
    UnmatchedCertificatesError,
)
from tests.fakes import TEAM_ID, make_local_certificate

DEVELOPMENT = CertificateType.IOS_DEVELOPMENT
DISTRIBUTION = CertificateType.IOS_DISTRIBUTION


def development_certificate(serial_number=0x1A2B, **kwargs):
    return make_local_certificate("Apple Development: John Doe (ABCDE12345)", serial_number, **kwargs)


def distribution_certificate(serial_number=0x3C4D, **kwargs):
    return make_local_certificate("iPhone Distribution: Acme Inc (TEAM123456)", serial_number, **kwargs)


@pytest.mark.parametrize(
    "common_name, expected",
    [
        ("iPhone Distribution: Acme", True),
        ("Apple Distribution: Acme", True),
        ("APPLE DISTRIBUTION: Acme", True),
        ("Apple Development: John", False),
        ("iPhone Developer: John", False),
    ],
)
def test_is_distribution_certificate(common_name, expected):
    assert is_distribution_certificate(make_local_certificate(common_name)) is expected


def test_filter_valid_certificates():
    now = datetime.now(timezone.utc)
    expired = development_certificate(
        0x1, not_valid_before=now - timedelta(days=400), not_valid_after=now - timedelta(days=1)
    )
    not_yet_valid = development_certificate(0x2, not_valid_before=now + timedelta(days=1))
    older = development_certificate(0x3, not_valid_after=now + timedelta(days=10))
    newer = development_certificate(0x4, not_valid_after=now + timedelta(days=200))
    other_team = development_certificate(0x5, team_id="OTHERTEAM1")

    result = filter_valid_certificates([expired, not_yet_valid, older, newer, other_team], now)

    assert result.invalid == [expired, not_yet_valid]
    assert result.duplicated == [older]
    assert result.valid == [newer, other_team]


def test_select_matches_local_certificates_with_portal(client):
    development = development_certificate()
    portal = client.add_certificate(development.serial_number)

    matched = select_certificates(client, [development], {DEVELOPMENT: True}, TEAM_ID)

    assert list(matched) == [DEVELOPMENT]
    assert matched[DEVELOPMENT][0].id == portal.id
    assert matched[DEVELOPMENT][0].local is development


def test_only_certificates_on_the_portal_are_matched(client):
    john = make_local_certificate("Apple Development: John Doe (ABCDE12345)", 0x11)
    jane = make_local_certificate("Apple Development: Jane Roe (FGHIJ67890)", 0x22)
    ci = make_local_certificate("Apple Development: CI Runner (KLMNO13579)", 0x33)
    john_portal = client.add_certificate(john.serial_number)
    ci_portal = client.add_certificate(ci.serial_number)

    matched = select_certificates(client, [john, jane, ci], {DEVELOPMENT: True}, TEAM_ID)

    assert {(m.local.serial_number, m.id) for m in matched[DEVELOPMENT]} == {
        (john.serial_number, john_portal.id),
        (ci.serial_number, ci_portal.id),
    }
    assert len(client.calls_to("find_certificate_by_serial")) == 3


def test_required_type_without_local_certificate(client):
    with pytest.raises(MissingCertificateError) as exc_info:
        select_certificates(client, [development_certificate()], {DISTRIBUTION: True}, TEAM_ID)

    assert exc_info.value.team_id == TEAM_ID
    assert client.calls == []


def test_certificates_of_other_teams_are_ignored(client):
    certificate = development_certificate(team_id="OTHERTEAM1")
    client.add_certificate(certificate.serial_number)

    with pytest.raises(MissingCertificateError):
        select_certificates(client, [certificate], {DEVELOPMENT: True}, TEAM_ID)


def test_required_type_without_portal_match(client):
    with pytest.raises(UnmatchedCertificatesError) as exc_info:
        select_certificates(client, [development_certificate()], {DEVELOPMENT: True}, TEAM_ID)

    assert "Apple Development: John Doe" in exc_info.value.common_names[0]


def test_optional_type_without_portal_match_is_left_out(client):
    distribution = distribution_certificate()
    client.add_certificate(distribution.serial_number, "IOS_DISTRIBUTION")

    matched = select_certificates(
        client,
        [distribution, development_certificate()],
        {DISTRIBUTION: True, DEVELOPMENT: False},
        TEAM_ID,
    )

    assert list(matched) == [DISTRIBUTION]


def test_unauthorized_lookup_propagates(client):
    def unauthorized(_serial):
        raise PortalAPIError(status_code=401, method="GET", url="certificates")

    client.find_certificate_by_serial = unauthorized

    with pytest.raises(PortalAPIError):
        select_certificates(client, [development_certificate()], {DEVELOPMENT: True}, TEAM_ID)


def test_failed_lookup_is_treated_as_not_found(client):
    def unavailable(_serial):
        raise PortalAPIError(status_code=500, method="GET", url="certificates")

    client.find_certificate_by_serial = unavailable

    assert select_certificates(
        client, [development_certificate()], {DEVELOPMENT: False}, TEAM_ID
    ) == {}
