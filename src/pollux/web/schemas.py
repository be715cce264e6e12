"""Request bodies for the JSON API. Clients send camelCase keys."""

from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Tournaments
# =============================================================================

class JoinRequest(CamelModel):
    player_address: str
    tournament_size: int
    entry_fee: Decimal
    currency: str
    issuer: Optional[str] = None
    # Wallet that signed the entry payment, when the client knows it
    signer_address: Optional[str] = None
    tx_hash: Optional[str] = None


class TournamentPlayerRequest(CamelModel):
    player_address: str
    tournament_id: str


class ForfeitRequest(TournamentPlayerRequest):
    reason: Optional[str] = None


class RefundRequest(TournamentPlayerRequest):
    reason: Optional[str] = None


class CleanupRequest(CamelModel):
    player_address: str


# =============================================================================
# Games
# =============================================================================

class MoveRequest(CamelModel):
    player_address: str
    # UCI ("e2e4") or SAN ("e4")
    move: str


class ResignRequest(CamelModel):
    player_address: str


# =============================================================================
# Profiles
# =============================================================================

class BotResultRequest(CamelModel):
    result: str


class SettingsUpdate(CamelModel):
    confirm_moves: Optional[bool] = None
    highlight_legal_moves: Optional[bool] = None
    auto_queen_promotion: Optional[bool] = None


# =============================================================================
# Wallet
# =============================================================================

class PaymentRequest(CamelModel):
    # Validated by the client wrapper so bad amounts get "Invalid amount"
    amount: Optional[Union[Decimal, str]] = None
    currency: str = "XAH"
    issuer: Optional[str] = None
    memo: Optional[str] = None
    network: Optional[str] = None
    return_url: Optional[str] = None


class SigninRequest(CamelModel):
    return_url: Optional[str] = None
    network: Optional[str] = None


class PayloadLookupRequest(CamelModel):
    uuid: Optional[str] = None
