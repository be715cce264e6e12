"""Xahau network settings and the Xaman sign-in/payment client."""

from pollux.wallet.network import NETWORK_IDS, XahauNetwork, resolve_network
from pollux.wallet.xaman import (
    PayloadEvent,
    PayloadRef,
    SigninStatus,
    XamanClient,
    parse_amount,
    parse_status_message,
    parse_webhook,
    xah_to_drops,
)

__all__ = [
    "NETWORK_IDS",
    "XahauNetwork",
    "resolve_network",
    "XamanClient",
    "PayloadRef",
    "SigninStatus",
    "PayloadEvent",
    "parse_amount",
    "parse_status_message",
    "parse_webhook",
    "xah_to_drops",
]
