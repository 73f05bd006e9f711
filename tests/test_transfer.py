"""Tests for the Glass credential bundle and its transport helpers."""

import json

import pytest

from glass_companion.storage import StoredCredentialRecord
from glass_companion.transfer import CredentialBundle, qr_payload, send_to_glass
from tests.fixtures.token_fixtures import NOW


class FakeTransport:
    """In-memory stand-in for the Bluetooth link to Glass."""

    def __init__(self, connected=True, succeed=True):
        self.connected = connected
        self.succeed = succeed
        self.sent = []

    def is_connected(self):
        return self.connected

    def send_credentials(self, provider, payload):
        self.sent.append((provider, payload))
        return self.succeed


@pytest.fixture
def signed_in_strava(strava_manager, strava_store):
    strava_store.save(
        StoredCredentialRecord(
            access_token="tok1",
            refresh_token="ref1",
            expires_at=NOW + 3600,
            identity={"athlete_id": "7", "athlete_name": "A B"},
        )
    )
    return strava_manager


class TestCredentialBundle:
    """Test the transfer schema."""

    def test_payload_schema(self):
        bundle = CredentialBundle("a", "r", 123, {"id": "7"})
        assert bundle.to_payload() == {"at": "a", "rt": "r", "ea": 123, "id": "7"}

    def test_json_is_compact(self):
        bundle = CredentialBundle("a", None, 123, {"email": "x@example.com"})
        text = bundle.to_json()
        assert " " not in text
        assert json.loads(text) == {"at": "a", "rt": None, "ea": 123, "email": "x@example.com"}

    def test_identifiers_are_read_only(self):
        source = {"id": "7"}
        bundle = CredentialBundle("a", "r", 1, source)
        source["id"] = "8"
        assert bundle.identifiers["id"] == "7"
        with pytest.raises(TypeError):
            bundle.identifiers["id"] = "9"

    def test_reserved_identifier_keys_rejected(self):
        with pytest.raises(ValueError, match="clash"):
            CredentialBundle("a", "r", 1, {"at": "x"})

    def test_from_payload(self):
        bundle = CredentialBundle.from_payload(
            {"at": "a", "rt": None, "ea": "123", "email": "x@example.com", "id": "1"}
        )
        assert bundle.access_token == "a"
        assert bundle.refresh_token is None
        assert bundle.expires_at == 123
        assert dict(bundle.identifiers) == {"email": "x@example.com", "id": "1"}

    @pytest.mark.parametrize(
        "payload",
        [{"rt": "r", "ea": 1}, {"at": "a", "rt": "r", "ea": "soon"}, {"at": "a", "rt": "r"}],
    )
    def test_from_payload_rejects_invalid(self, payload):
        with pytest.raises(ValueError, match="Invalid credential payload"):
            CredentialBundle.from_payload(payload)


class TestSendToGlass:
    """Test pushing credentials over the transport."""

    def test_sends_payload(self, signed_in_strava):
        transport = FakeTransport()

        assert send_to_glass(signed_in_strava, transport) is True
        assert transport.sent == [
            ("strava", {"at": "tok1", "rt": "ref1", "ea": NOW + 3600, "id": "7"})
        ]

    def test_not_connected(self, signed_in_strava):
        transport = FakeTransport(connected=False)

        assert send_to_glass(signed_in_strava, transport) is False
        assert transport.sent == []

    def test_nothing_to_send(self, strava_manager):
        transport = FakeTransport()

        assert send_to_glass(strava_manager, transport) is False
        assert transport.sent == []

    def test_transport_failure(self, signed_in_strava):
        transport = FakeTransport(succeed=False)
        assert send_to_glass(signed_in_strava, transport) is False


class TestQrPayload:
    """Test the QR-code text."""

    def test_qr_matches_transport_schema(self, signed_in_strava):
        text = qr_payload(signed_in_strava)
        assert json.loads(text) == signed_in_strava.export_for_transfer().to_payload()

    def test_qr_without_credentials(self, strava_manager):
        assert qr_payload(strava_manager) is None
