"""
Xaman (formerly XUMM) platform API client.

Xaman is the wallet app players sign with. The service never holds keys:
it asks Xaman to create a payload (a transaction or a SignIn request), the
player signs it in the app, and the client polls or listens on the
payload's websocket until it resolves.

Only the handful of endpoints the service needs are wrapped:
- POST /payload            create a Payment or SignIn payload
- GET  /payload/{uuid}     read back a payload and its signer

Usage:
    client = XamanClient()
    ref = client.create_payment_payload(Decimal("10"), network="testnet")
    ...
    status = client.verify_signin(ref.uuid)
"""

import json
import logging
import time
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Optional, Union

import requests

from pollux.config import settings
from pollux.errors import ConfigurationError, UpstreamError, ValidationError
from pollux.wallet.network import resolve_network

logger = logging.getLogger(__name__)

NATIVE_CURRENCY = "XAH"
DROPS_PER_XAH = Decimal(1_000_000)
MEMO_TYPE = "application/json"


def parse_amount(raw) -> Decimal:
    """Amounts arrive as numbers or strings and must be positive."""
    if raw is None or raw == "" or isinstance(raw, bool):
        raise ValidationError("Invalid amount")
    try:
        amount = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationError("Invalid amount") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Invalid amount")
    return amount


def xah_to_drops(amount) -> str:
    """XAH -> drops, rounded down. Sub-drop amounts are rejected."""
    drops = (parse_amount(amount) * DROPS_PER_XAH).to_integral_value(rounding=ROUND_FLOOR)
    if drops <= 0:
        raise ValidationError("Invalid amount")
    return str(int(drops))


def to_hex(text: str) -> str:
    return text.encode("utf-8").hex().upper()


@dataclass
class PayloadRef:
    """Where to send the player to sign a payload."""
    uuid: str
    next_url: str
    qr_url: Optional[str] = None
    websocket_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "uuid": self.uuid,
            "nextUrl": self.next_url,
            "qrUrl": self.qr_url,
            "websocketUrl": self.websocket_url,
        }


@dataclass
class SigninStatus:
    signed: bool
    resolved: bool
    account: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "signed": self.signed,
            "resolved": self.resolved,
            "account": self.account,
            "timestamp": int(time.time() * 1000),
        }


@dataclass
class PayloadEvent:
    """
    A payload status update, from the websocket or a webhook.

    signed is None while the payload is still open.
    """
    signed: Optional[bool] = None
    account: Optional[str] = None
    expired: bool = False
    uuid: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.signed is not None or self.expired


def extract_account(data: dict) -> Optional[str]:
    """Find the signing account in a payload; Xaman puts it in several places."""
    response = data.get("response") or {}
    application = data.get("application") or {}
    txjson = response.get("txjson") or {}

    for candidate in (
        response.get("account"),
        response.get("signer"),
        application.get("issued_user_token"),
        response.get("dispatched_to"),
        txjson.get("Account"),
    ):
        if candidate:
            return candidate
    return None


def parse_status_message(message: Union[str, bytes, dict]) -> PayloadEvent:
    """
    Parse a payload websocket message such as {"signed": true, "account": "r..."}.

    Keep-alive messages ({"message": "..."}, {"expires_in_seconds": 290})
    come back as an unresolved event.
    """
    if isinstance(message, (str, bytes)):
        try:
            data = json.loads(message)
        except ValueError:
            raise ValidationError("Invalid status message") from None
    else:
        data = message

    if not isinstance(data, dict):
        raise ValidationError("Invalid status message")

    signed = data.get("signed")
    return PayloadEvent(
        signed=bool(signed) if signed is not None else None,
        account=data.get("account"),
        expired=bool(data.get("expired")),
        uuid=data.get("payload_uuidv4"),
    )


def parse_webhook(body: dict) -> PayloadEvent:
    """Webhook calls carry the same facts under meta/payloadResponse."""
    meta = body.get("meta") or {}
    response = body.get("payloadResponse") or {}
    signed = response.get("signed")
    return PayloadEvent(
        signed=bool(signed) if signed is not None else None,
        account=response.get("account") or (body.get("userToken") or {}).get("user_token"),
        expired=False,
        uuid=meta.get("payload_uuidv4") or response.get("payload_uuidv4"),
    )


class XamanClient:
    """
    Thin wrapper around the Xaman platform REST API.

    Credentials come from settings unless passed in. A missing key or
    secret raises ConfigurationError on the first call, not at construction,
    so the web app can start without them.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.api_key = api_key or settings.xaman_api_key
        self.api_secret = api_secret or settings.xaman_api_secret
        self.base_url = (base_url or settings.xaman_api_url).rstrip("/")
        self.timeout = timeout or settings.xaman_request_timeout_seconds
        self.http = http or requests.Session()

    # =========================================================================
    # Payload creation
    # =========================================================================

    def create_payment_payload(
        self,
        amount,
        currency: str = NATIVE_CURRENCY,
        issuer: Optional[str] = None,
        memo: Optional[str] = None,
        network: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> PayloadRef:
        """
        Create a Payment payload to the network's destination account.

        XAH (or any currency without an issuer) is sent as a drops string;
        issued currencies as a {value, currency, issuer} amount.
        """
        value = parse_amount(amount)
        net = resolve_network(network)
        if not net.destination:
            raise ConfigurationError(
                "Server configuration error - missing destination", {"network": net.name}
            )

        txjson: dict[str, Any] = {
            "TransactionType": "Payment",
            "Destination": net.destination,
            "NetworkID": net.network_id,
        }
        if currency == NATIVE_CURRENCY or not issuer:
            txjson["Amount"] = xah_to_drops(value)
        else:
            txjson["Amount"] = {"value": str(value), "currency": currency, "issuer": issuer}

        if memo:
            txjson["Memos"] = [
                {"Memo": {"MemoType": to_hex(MEMO_TYPE), "MemoData": to_hex(memo)}}
            ]

        body = {
            "txjson": txjson,
            "options": self._options(
                submit=True,
                expire=settings.payment_expire_minutes,
                return_url=return_url or f"{settings.base_url}/chess",
            ),
            "custom_meta": {"instruction": f"Pay {value} {currency}"},
        }

        logger.info("Creating payment payload: %s %s to %s on %s", value, currency, net.destination, net.name)
        return self._create(body)

    def create_signin_payload(
        self,
        return_url: Optional[str] = None,
        network: Optional[str] = None,
    ) -> PayloadRef:
        net = resolve_network(network)
        body = {
            "txjson": {"TransactionType": "SignIn", "NetworkID": net.network_id},
            "options": self._options(
                submit=False,
                expire=settings.signin_expire_minutes,
                return_url=return_url,
            ),
            "custom_meta": {"instruction": "Sign in to PolluxChess"},
        }
        return self._create(body)

    def _options(self, submit: bool, expire: int, return_url: Optional[str]) -> dict:
        options: dict[str, Any] = {"submit": submit, "expire": expire}
        if return_url:
            options["return_url"] = {"web": return_url, "app": return_url}
        if settings.webhook_url:
            options["webhook"] = settings.webhook_url
        return options

    def _create(self, body: dict) -> PayloadRef:
        data = self._request("POST", "/payload", json=body)
        next_url = (data.get("next") or {}).get("always")
        if not next_url:
            logger.error("Xaman did not return a signing URL: %s", data)
            raise UpstreamError("Failed to create payment request")

        refs = data.get("refs") or {}
        ref = PayloadRef(
            uuid=data.get("uuid"),
            next_url=next_url,
            qr_url=refs.get("qr_png"),
            websocket_url=refs.get("websocket_status"),
        )
        logger.info("Xaman payload created: %s", ref.uuid)
        return ref

    # =========================================================================
    # Payload lookup
    # =========================================================================

    def get_payload(self, uuid: str) -> dict:
        if not uuid:
            raise ValidationError("Missing payload UUID")
        return self._request("GET", f"/payload/{uuid}")

    def verify_signin(self, uuid: str) -> SigninStatus:
        """Whether a SignIn payload was signed, and by which account."""
        if not uuid or len(uuid) < 10:
            raise ValidationError("Invalid UUID", {"signed": False})

        data = self.get_payload(uuid)
        meta = data.get("meta") or {}
        status = SigninStatus(
            signed=meta.get("signed") is True,
            resolved=meta.get("resolved") is True,
            account=extract_account(data),
        )
        if status.signed and not status.account:
            logger.warning("Payload %s signed but no account found", uuid)
        return status

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.api_key or not self.api_secret:
            raise ConfigurationError("Server configuration error - missing Xaman credentials")

        headers = {
            "X-API-Key": self.api_key,
            "X-API-Secret": self.api_secret,
            "Content-Type": "application/json",
        }
        try:
            response = self.http.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            logger.error("Xaman %s %s failed: %s", method, path, exc)
            raise UpstreamError("Wallet provider unavailable") from exc

        if not response.ok:
            logger.error("Xaman API error %s on %s %s: %s", response.status_code, method, path, response.text)
            raise UpstreamError(
                f"Xaman API error: {response.status_code}",
                {"details": response.text},
            )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Invalid response from wallet provider") from exc
