import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from autoprovision.src.apple.app_store_connect_api import AppStoreConnectClient
from autoprovision.src.apple.models import DevicePlatform
from autoprovision.src.core.errors import DeviceRegistrationError, PortalAPIError


@pytest.fixture(scope="module")
def signing_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def private_key_pem(signing_key):
    return signing_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


class FakeResponse:
    def __init__(self, status_code=200, payload=None, url="", method="GET"):
        self.status_code = status_code
        self.content = json.dumps(payload).encode() if payload is not None else b""
        self.text = self.content.decode()
        self.url = url
        self.request = SimpleNamespace(method=method)

    def json(self):
        return json.loads(self.content)


class FakeSession:
    """Answers requests from a queue and records them"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.requests.append(
            SimpleNamespace(method=method, url=url, params=params, body=json, headers=headers)
        )
        response = self.responses.pop(0)
        response.url = url
        return response


class Clock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now


def make_client(private_key_pem, session=None, clock=None):
    return AppStoreConnectClient(
        key_id="KEY123",
        issuer_id="issuer-uuid",
        private_key=private_key_pem,
        session=session or FakeSession(),
        clock=clock,
    )


def certificate_resource(id_, serial):
    return {
        "type": "certificates",
        "id": id_,
        "attributes": {
            "serialNumber": serial,
            "certificateType": "IOS_DEVELOPMENT",
            "name": "Apple Development: John Doe",
            "expirationDate": "2025-06-01T12:00:00.000+0000",
        },
    }


def test_token_claims(private_key_pem, signing_key):
    client = make_client(private_key_pem)

    token = client.signed_token()

    assert jwt.get_unverified_header(token)["kid"] == "KEY123"
    claims = jwt.decode(
        token, signing_key.public_key(), algorithms=["ES256"], audience="appstoreconnect-v1"
    )
    assert claims["iss"] == "issuer-uuid"
    assert claims["exp"] - claims["iat"] == 20 * 60


def test_token_is_reused_until_close_to_expiry(private_key_pem):
    clock = Clock()
    client = make_client(private_key_pem, clock=clock)

    first = client.signed_token()
    clock.now += timedelta(minutes=18)
    assert client.signed_token() == first

    clock.now += timedelta(minutes=1, seconds=30)
    assert client.signed_token() != first


def test_pagination_drains_every_page(private_key_pem):
    next_url = "https://api.appstoreconnect.apple.com/v1/certificates?cursor=abc&limit=200"
    session = FakeSession(
        FakeResponse(payload={"data": [certificate_resource("c1", "1A")], "links": {"next": next_url}}),
        FakeResponse(payload={"data": [certificate_resource("c2", "2B")], "links": {}}),
    )
    client = make_client(private_key_pem, session)

    certificates = client.list_certificates()

    assert [c.id for c in certificates] == ["c1", "c2"]
    assert [c.serial_number for c in certificates] == [0x1A, 0x2B]
    assert certificates[0].expiration_date == datetime(2025, 6, 1, 12, tzinfo=timezone.utc)
    assert session.requests[0].params == {"limit": 200}
    assert session.requests[1].url == next_url
    assert session.requests[1].params is None


def test_find_certificate_by_serial_requires_exact_match(private_key_pem):
    session = FakeSession(
        FakeResponse(payload={"data": [certificate_resource("c1", "1A2B00"), certificate_resource("c2", "1A2B")]})
    )
    client = make_client(private_key_pem, session)

    certificate = client.find_certificate_by_serial(0x1A2B)

    assert certificate.id == "c2"
    assert session.requests[0].params["filter[serialNumber]"] == "1A2B"


def test_error_response_is_decoded(private_key_pem):
    errors = [{"status": "404", "code": "NOT_FOUND", "detail": "There is no resource"}]
    session = FakeSession(FakeResponse(404, {"errors": errors}))
    client = make_client(private_key_pem, session)

    with pytest.raises(PortalAPIError) as exc_info:
        client.profile_bundle_id(SimpleNamespace(id="p1", links={}))

    assert exc_info.value.is_not_found
    assert exc_info.value.errors == errors
    assert "There is no resource" in str(exc_info.value)


def test_delete_tolerates_missing_profile(private_key_pem):
    session = FakeSession(FakeResponse(404, {"errors": []}, method="DELETE"))
    client = make_client(private_key_pem, session)

    client.delete_profile("p1")

    assert session.requests[0].method == "DELETE"


def test_register_device_conflict(private_key_pem):
    errors = [{"status": "409", "code": "ENTITY_ERROR", "detail": "Invalid UDID"}]
    session = FakeSession(FakeResponse(409, {"errors": errors}, method="POST"))
    client = make_client(private_key_pem, session)

    with pytest.raises(DeviceRegistrationError) as exc_info:
        client.register_device("bad-udid", "Bitrise test device", DevicePlatform.IOS)

    assert exc_info.value.reason == "Invalid UDID"


def test_list_devices_filters(private_key_pem):
    session = FakeSession(FakeResponse(payload={"data": []}))
    client = make_client(private_key_pem, session)

    client.list_devices(platform=DevicePlatform.IOS)

    params = session.requests[0].params
    assert params["filter[platform]"] == "IOS"
    assert params["filter[status]"] == "ENABLED"
    assert "filter[udid]" not in params
