"""
Xahau network selection.

Payments can target mainnet or testnet. Each network has its own network
id (which Xaman needs in the txjson), RPC endpoint, payment destination
and tournament hook account. Destinations prefer the hook account, then
the per-network destination, then (mainnet only) the generic one.
"""

from dataclasses import dataclass
from typing import Optional

from pollux.config import settings
from pollux.errors import ValidationError

MAINNET = "mainnet"
TESTNET = "testnet"

NETWORK_IDS: dict[str, int] = {
    MAINNET: 21337,
    TESTNET: 21338,
}


@dataclass(frozen=True)
class XahauNetwork:
    name: str
    network_id: int
    rpc_url: str
    destination: Optional[str]
    hook_address: Optional[str]


def resolve_network(name: Optional[str] = None) -> XahauNetwork:
    """
    Look up a network by name, defaulting to settings.xahau_network.

    Raises:
        ValidationError: If the name is not 'mainnet' or 'testnet'
    """
    name = (name or settings.xahau_network).strip().lower()
    if name not in NETWORK_IDS:
        raise ValidationError("Invalid network", {"network": name, "allowed": list(NETWORK_IDS)})

    if name == TESTNET:
        return XahauNetwork(
            name=TESTNET,
            network_id=NETWORK_IDS[TESTNET],
            rpc_url=settings.xahau_testnet_rpc,
            destination=settings.hook_address_testnet or settings.xah_destination_testnet,
            hook_address=settings.hook_address_testnet,
        )

    return XahauNetwork(
        name=MAINNET,
        network_id=NETWORK_IDS[MAINNET],
        rpc_url=settings.xahau_mainnet_rpc,
        destination=(
            settings.hook_address_mainnet
            or settings.xah_destination_mainnet
            or settings.xah_destination
        ),
        hook_address=settings.hook_address_mainnet,
    )
