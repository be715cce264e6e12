"""
SQLAlchemy ORM models for Pollux.

This module defines all database tables and their relationships.
The schema is designed around the tournament lifecycle: players queue
into a waiting tournament, the tournament fills and starts, a game is
played, and the tournament completes (or is cancelled/expired).

Key design decisions:
- Tournament and game ids are UUID strings (clients pass them in URLs)
- A player may hold at most one row per tournament (unique constraint)
- Tournament rows are never deleted; player rows are deleted on leave,
  cleanup and expiry
- Prize and refund obligations are recorded as rows, payout happens elsewhere
- Profiles and settings are keyed by wallet address and never deleted

Tables:
- tournaments: Matchmaking brackets at a fixed entry fee/currency
- tournament_players: Wallets registered in a tournament
- tournament_games: Head-to-head game state (board, clocks, result)
- player_profiles: Per-wallet stats and ratings
- player_settings: Per-wallet UI preferences
- prize_distributions: Prizes and refunds owed to wallets
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def utc_now() -> datetime:
    """Naive UTC timestamp, matching how the columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Tournament Models
# =============================================================================

class Tournament(Base):
    """
    A matchmaking bracket of N players at a fixed entry fee.

    Lifecycle:
    - 'waiting': created on the first join with no open slot
    - 'in_progress': player count reached tournament_size
    - 'completed': the game resolved (or a player forfeited)
    - 'cancelled': everyone left, or the game was abandoned/timed out
    - 'expired': stayed 'waiting' past the waiting TTL

    entry_fee, currency and issuer are fixed at creation; matchmaking
    relies on them to find compatible brackets.
    """
    __tablename__ = "tournaments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tournament_size: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_fee: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(40), nullable=False)
    # None for the native currency (XAH)
    issuer: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="waiting")
    prize_pool: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)

    # Winning wallet address (None for a split result)
    winner: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    cancelled_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    forfeit_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    players: Mapped[list["TournamentPlayer"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="TournamentPlayer.player_order",
    )
    games: Mapped[list["TournamentGame"]] = relationship(back_populates="tournament")

    __table_args__ = (
        Index(
            "idx_tournaments_matchmaking",
            "status", "tournament_size", "entry_fee", "currency",
        ),
        Index("idx_tournaments_status_created", "status", "created_at"),
        CheckConstraint("tournament_size IN (2, 4, 8, 16)", name="ck_tournament_size"),
    )

    def __repr__(self) -> str:
        return (
            f"<Tournament(id='{self.id}', size={self.tournament_size}, "
            f"fee={self.entry_fee} {self.currency}, status='{self.status}')>"
        )


class TournamentPlayer(Base):
    """
    A wallet registered in a tournament.

    player_order is 1-based join order; in a 2-player tournament order 1
    plays white and order 2 plays black. The (tournament_id, player_address)
    unique constraint is what makes a duplicate join idempotent.
    """
    __tablename__ = "tournament_players"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[str] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    player_address: Mapped[str] = mapped_column(String(64), nullable=False)
    player_order: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="waiting")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    forfeited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Payment transaction that paid the entry fee, when the client reports it
    tx_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    forfeited_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    won_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tournament: Mapped["Tournament"] = relationship(back_populates="players")

    __table_args__ = (
        UniqueConstraint("tournament_id", "player_address", name="uq_tournament_player"),
        Index("idx_tournament_players_address", "player_address"),
        # Row ids identify an entry fee payment; SQLite must not reuse them
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return (
            f"<TournamentPlayer(tournament='{self.tournament_id}', "
            f"address='{self.player_address}', order={self.player_order})>"
        )


class TournamentGame(Base):
    """
    Head-to-head game state for a 2-player tournament.

    Clocks are stored as seconds remaining at the start of the current
    turn; the live value is derived from turn_started_at. White's clock
    does not run until white has made the first move.
    """
    __tablename__ = "tournament_games"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tournament_id: Mapped[str] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )

    player_white: Mapped[str] = mapped_column(String(64), nullable=False)
    player_black: Mapped[str] = mapped_column(String(64), nullable=False)

    fen: Mapped[str] = mapped_column(Text, nullable=False, default=STARTING_FEN)
    # UCI strings in play order
    moves: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)

    white_time_remaining: Mapped[float] = mapped_column(Float, nullable=False)
    black_time_remaining: Mapped[float] = mapped_column(Float, nullable=False)
    turn_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_move_made: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    # 'white', 'black' or 'tie'
    result: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    # checkmate, draw, timeout, resignation, forfeit, first_move_timeout, abandoned
    result_reason: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    winner: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tournament: Mapped["Tournament"] = relationship(back_populates="games")

    __table_args__ = (
        UniqueConstraint("tournament_id", name="uq_tournament_game"),
        Index("idx_games_status_created", "status", "created_at"),
        Index("idx_games_white", "player_white"),
        Index("idx_games_black", "player_black"),
    )

    def __repr__(self) -> str:
        return (
            f"<TournamentGame(id='{self.id}', white='{self.player_white}', "
            f"black='{self.player_black}', status='{self.status}')>"
        )


# =============================================================================
# Player Models
# =============================================================================

class PlayerProfile(Base):
    """
    Per-wallet stats, created lazily on first login.

    bot_elo is a simple ladder rank (+1 per win, -1 per loss, floor 1) used
    to pick bot opponents. multiplayer_elo is a standard ELO rating updated
    after tournament games.
    """
    __tablename__ = "player_profiles"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True)

    bot_elo: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    multiplayer_elo: Mapped[float] = mapped_column(Float, nullable=False, default=1200.0)

    bot_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bot_losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bot_draws: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    multiplayer_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    multiplayer_losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    multiplayer_draws: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_games: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<PlayerProfile(address='{self.wallet_address}', bot_elo={self.bot_elo})>"


class PlayerSettings(Base):
    """UI preferences for a wallet."""

    __tablename__ = "player_settings"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    confirm_moves: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    highlight_legal_moves: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_queen_promotion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<PlayerSettings(address='{self.wallet_address}')>"


# =============================================================================
# Payout Models
# =============================================================================

class PrizeDistribution(Base):
    """
    A prize or refund owed to a wallet.

    Rows are written as 'pending'; the on-chain payout is performed by an
    external process which flips them to 'sent' or 'failed'.

    distribution_type:
    - 'win': winner takes the whole pool
    - 'split': equal material on a draw, each side gets half
    - 'forfeit': opponent forfeited
    - 'refund': entry fee returned (cancelled/expired tournament)

    Refunds carry entry_id, the tournament_players row id of the entry
    being refunded. Player rows are deleted on leave and expiry, so it is
    a plain integer rather than a foreign key. A wallet that leaves and
    rejoins the same tournament paid twice and gets one refund per entry.
    """
    __tablename__ = "prize_distributions"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[str] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    recipient_address: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(40), nullable=False)
    issuer: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    distribution_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    entry_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_prize_distributions_status", "status", "created_at"),
        Index("idx_prize_distributions_tournament", "tournament_id"),
        UniqueConstraint("entry_id", "distribution_type", name="uq_prize_distribution_entry"),
    )

    def __repr__(self) -> str:
        return (
            f"<PrizeDistribution(tournament='{self.tournament_id}', "
            f"to='{self.recipient_address}', amount={self.amount} {self.currency}, "
            f"type='{self.distribution_type}')>"
        )
