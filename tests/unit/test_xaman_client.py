"""
Unit tests for the Xaman client and network selection.

The HTTP session is a Mock; no request leaves the process.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from pollux.config import settings
from pollux.errors import ConfigurationError, UpstreamError, ValidationError
from pollux.wallet.network import resolve_network
from pollux.wallet.xaman import (
    XamanClient,
    extract_account,
    parse_amount,
    parse_status_message,
    parse_webhook,
    to_hex,
    xah_to_drops,
)

CREATED = {
    "uuid": "0f1e2d3c-aaaa-bbbb-cccc-1234567890ab",
    "next": {"always": "https://xumm.app/sign/0f1e2d3c"},
    "refs": {
        "qr_png": "https://xumm.app/sign/0f1e2d3c_q.png",
        "websocket_status": "wss://xumm.app/sign/0f1e2d3c",
    },
}


def _response(status=200, body=None, text=""):
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = text
    response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def destinations(monkeypatch):
    monkeypatch.setattr(settings, "xah_destination_testnet", "rTestDestination")
    monkeypatch.setattr(settings, "xah_destination_mainnet", "rMainDestination")
    monkeypatch.setattr(settings, "hook_address_testnet", None)
    monkeypatch.setattr(settings, "hook_address_mainnet", None)
    monkeypatch.setattr(settings, "webhook_url", None)


@pytest.fixture
def http():
    session = Mock()
    session.request.return_value = _response(body=CREATED)
    return session


@pytest.fixture
def client(http):
    return XamanClient(api_key="key", api_secret="secret", base_url="https://xaman.test/api", http=http)


def _sent_body(http):
    return http.request.call_args.kwargs["json"]


class TestAmounts:

    def test_drops_round_down(self):
        assert xah_to_drops("1.2345678") == "1234567"
        assert xah_to_drops(10) == "10000000"
        assert xah_to_drops(Decimal("0.000001")) == "1"

    def test_sub_drop_rejected(self):
        with pytest.raises(ValidationError):
            xah_to_drops("0.0000001")

    @pytest.mark.parametrize("raw", [None, "", "abc", "0", "-5", True, "Infinity"])
    def test_invalid_amounts(self, raw):
        with pytest.raises(ValidationError):
            parse_amount(raw)

    def test_hex(self):
        assert to_hex("application/json") == "6170706C69636174696F6E2F6A736F6E"


class TestNetwork:

    def test_testnet(self, destinations):
        net = resolve_network("testnet")
        assert net.network_id == 21338
        assert net.destination == "rTestDestination"

    def test_hook_address_wins(self, destinations, monkeypatch):
        monkeypatch.setattr(settings, "hook_address_mainnet", "rHook")
        assert resolve_network("MAINNET").destination == "rHook"

    def test_generic_destination_fallback(self, destinations, monkeypatch):
        monkeypatch.setattr(settings, "xah_destination_mainnet", None)
        monkeypatch.setattr(settings, "xah_destination", "rGeneric")
        assert resolve_network("mainnet").destination == "rGeneric"

    def test_unknown_network(self):
        with pytest.raises(ValidationError):
            resolve_network("devnet")


class TestPaymentPayload:

    def test_native_payment(self, client, http, destinations):
        ref = client.create_payment_payload("1.5", network="testnet", memo='{"t":1}')

        assert ref.uuid == CREATED["uuid"]
        assert ref.to_dict()["nextUrl"] == CREATED["next"]["always"]

        method, url = http.request.call_args.args
        assert (method, url) == ("POST", "https://xaman.test/api/payload")
        assert http.request.call_args.kwargs["headers"]["X-API-Key"] == "key"

        body = _sent_body(http)
        txjson = body["txjson"]
        assert txjson["TransactionType"] == "Payment"
        assert txjson["Destination"] == "rTestDestination"
        assert txjson["NetworkID"] == 21338
        assert txjson["Amount"] == "1500000"
        assert txjson["Memos"][0]["Memo"]["MemoData"] == to_hex('{"t":1}')
        assert body["options"]["submit"] is True
        assert body["options"]["return_url"]["web"] == f"{settings.base_url}/chess"
        assert "webhook" not in body["options"]

    def test_issued_currency(self, client, http, destinations):
        client.create_payment_payload("25", currency="USD", issuer="rIssuer", network="mainnet")

        assert _sent_body(http)["txjson"]["Amount"] == {
            "value": "25",
            "currency": "USD",
            "issuer": "rIssuer",
        }

    def test_webhook_included_when_configured(self, client, http, destinations, monkeypatch):
        monkeypatch.setattr(settings, "webhook_url", "https://api.example/webhook")
        client.create_payment_payload("1")

        assert _sent_body(http)["options"]["webhook"] == "https://api.example/webhook"

    def test_missing_destination(self, client, destinations, monkeypatch):
        monkeypatch.setattr(settings, "xah_destination_testnet", None)

        with pytest.raises(ConfigurationError):
            client.create_payment_payload("1", network="testnet")

    def test_no_signing_url(self, client, http, destinations):
        http.request.return_value = _response(body={"uuid": "x"})

        with pytest.raises(UpstreamError):
            client.create_payment_payload("1")


class TestSignin:

    def test_signin_is_not_submitted(self, client, http):
        client.create_signin_payload(return_url="https://app.example/login")

        body = _sent_body(http)
        assert body["txjson"]["TransactionType"] == "SignIn"
        assert body["options"]["submit"] is False
        assert body["options"]["return_url"] == {
            "web": "https://app.example/login",
            "app": "https://app.example/login",
        }

    def test_verify_signed(self, client, http):
        http.request.return_value = _response(body={
            "meta": {"signed": True, "resolved": True},
            "response": {"account": "rSigner", "signer": "rOther"},
        })

        status = client.verify_signin("0f1e2d3c-aaaa-bbbb")

        assert status.signed is True
        assert status.account == "rSigner"
        assert http.request.call_args.args == ("GET", "https://xaman.test/api/payload/0f1e2d3c-aaaa-bbbb")

    def test_verify_unsigned(self, client, http):
        http.request.return_value = _response(body={"meta": {"signed": False, "resolved": False}})

        status = client.verify_signin("0f1e2d3c-aaaa-bbbb")

        assert status.to_dict()["signed"] is False
        assert status.account is None

    def test_short_uuid(self, client, http):
        with pytest.raises(ValidationError) as exc_info:
            client.verify_signin("abc")

        assert exc_info.value.payload == {"signed": False}
        http.request.assert_not_called()


class TestTransport:

    def test_error_status(self, client, http):
        http.request.return_value = _response(status=403, text="Forbidden")

        with pytest.raises(UpstreamError) as exc_info:
            client.get_payload("0f1e2d3c-aaaa-bbbb")

        assert exc_info.value.message == "Xaman API error: 403"
        assert exc_info.value.payload == {"details": "Forbidden"}

    def test_connection_error(self, client, http):
        http.request.side_effect = requests.ConnectionError("down")

        with pytest.raises(UpstreamError):
            client.get_payload("0f1e2d3c-aaaa-bbbb")

    def test_missing_credentials(self, http, monkeypatch):
        monkeypatch.setattr(settings, "xaman_api_key", None)
        monkeypatch.setattr(settings, "xaman_api_secret", None)

        with pytest.raises(ConfigurationError):
            XamanClient(http=http).get_payload("0f1e2d3c-aaaa-bbbb")
        http.request.assert_not_called()


class TestParsing:

    def test_account_precedence(self):
        assert extract_account({"response": {"txjson": {"Account": "rTx"}}}) == "rTx"
        assert extract_account({
            "application": {"issued_user_token": "rToken"},
            "response": {"dispatched_to": "rDispatched"},
        }) == "rToken"
        assert extract_account({}) is None

    def test_status_messages(self):
        assert parse_status_message('{"signed": true, "account": "rA"}').account == "rA"
        assert parse_status_message(b'{"expired": true}').resolved is True
        assert parse_status_message({"expires_in_seconds": 290}).resolved is False

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
    def test_invalid_status_message(self, raw):
        with pytest.raises(ValidationError):
            parse_status_message(raw)

    def test_webhook(self):
        event = parse_webhook({
            "meta": {"payload_uuidv4": "abc-123"},
            "payloadResponse": {"signed": False},
        })

        assert event.uuid == "abc-123"
        assert event.signed is False
        assert event.resolved is True
