"""
Tournament matchmaking.

A join either lands the player in the oldest compatible waiting tournament
(same size, entry fee, currency and issuer, not yet expired, not full) or
creates a new one. The tournament row is locked (SELECT ... FOR UPDATE)
before its players are counted, and the count and insert happen in the
same transaction, so two concurrent joins can never overfill a bracket.
The insert runs in a savepoint: if the (tournament_id, player_address)
unique constraint fires, the player already holds the slot and the join is
reported as "Already joined".

When the last slot fills, the tournament starts. For 2-player tournaments
the game is created straight away.

Usage:
    service = TournamentService(session)
    result = service.join("rPlayer...", tournament_size=2, entry_fee="10", currency="XAH")
    session.commit()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pollux.config import settings
from pollux.db.models import PrizeDistribution, Tournament, TournamentGame, TournamentPlayer, utc_now
from pollux.errors import (
    AlreadyInTournamentError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TournamentFullError,
    ValidationError,
    WalletMismatchError,
)
from pollux.games.lifecycle import GameService
from pollux.games.prizes import record_refunds
from pollux.statuses import (
    CANCELLED,
    EXPIRED,
    IN_PROGRESS,
    PLAYER_JOINED,
    PLAYER_WAITING,
    WAITING,
    get_status_group,
    normalize_status,
)

logger = logging.getLogger(__name__)

ALL_PLAYERS_LEFT = "All players left tournament"

# Matches the Numeric(20, 6) money columns
FEE_QUANTUM = Decimal("0.000001")
MAX_ENTRY_FEE = Decimal("100000000000000")


@dataclass
class JoinResult:
    """Outcome of a successful (or idempotent) join."""
    tournament_id: str
    player_count: int
    tournament_size: int
    is_full: bool
    game_id: Optional[str] = None
    message: str = "Joined tournament"
    already_joined: bool = False

    def to_dict(self) -> dict:
        return {
            "success": True,
            "tournamentId": self.tournament_id,
            "playerCount": self.player_count,
            "tournamentSize": self.tournament_size,
            "isFull": self.is_full,
            "gameId": self.game_id,
            "message": self.message,
        }


def parse_entry_fee(raw) -> Decimal:
    """
    Entry fees arrive as numbers or strings; they must be positive and fit
    the money columns exactly, so "10" and "10.000000" match the same bracket.
    """
    if raw is None or raw == "":
        raise ValidationError("Missing required fields", {"details": ["entryFee"]})
    try:
        fee = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationError("Invalid entry fee", {"entryFee": str(raw)}) from None
    if not fee.is_finite() or fee <= 0 or fee >= MAX_ENTRY_FEE:
        raise ValidationError("Invalid entry fee", {"entryFee": str(raw)})
    if fee != fee.quantize(FEE_QUANTUM):
        raise ValidationError(
            "Entry fee has more than 6 decimal places", {"entryFee": str(raw)}
        )
    return fee.quantize(FEE_QUANTUM)


class TournamentService:
    """
    Join, leave and inspect tournaments.

    The service flushes but never commits; the caller owns the transaction.
    """

    def __init__(self, db: Session, game_service: Optional[GameService] = None):
        self.db = db
        self.games = game_service or GameService(db)

    # =========================================================================
    # Join
    # =========================================================================

    def join(
        self,
        player_address: str,
        tournament_size: int,
        entry_fee,
        currency: str,
        issuer: Optional[str] = None,
        signer_address: Optional[str] = None,
        tx_hash: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> JoinResult:
        """
        Put a player into a compatible waiting tournament.

        Raises:
            ValidationError: Missing/invalid size, fee or currency
            WalletMismatchError: The payment signer is a different wallet
            AlreadyInTournamentError: The player is in an active tournament
            TournamentFullError: The chosen tournament filled under us
        """
        missing = [
            name for name, value in (
                ("playerAddress", player_address),
                ("tournamentSize", tournament_size),
                ("entryFee", entry_fee),
                ("currency", currency),
            )
            if value is None or value == ""
        ]
        if missing:
            raise ValidationError("Missing required fields", {"details": missing})

        if tournament_size not in settings.allowed_tournament_sizes:
            raise ValidationError(
                "Invalid tournament size",
                {"allowed": list(settings.allowed_tournament_sizes)},
            )
        fee = parse_entry_fee(entry_fee)
        currency = currency.strip()
        issuer = issuer or None

        if signer_address and signer_address != player_address:
            logger.warning(
                "Wallet mismatch on join: signer %s, player %s", signer_address, player_address
            )
            raise WalletMismatchError(
                "Payment wallet does not match logged-in wallet",
                {"expected": player_address, "actual": signer_address},
            )

        existing = self._active_membership(player_address)
        if existing is not None:
            raise AlreadyInTournamentError(existing.id, existing.status)

        now = now or utc_now()
        tournament = self._find_open_tournament(tournament_size, fee, currency, issuer, now)
        if tournament is None:
            tournament = self._create_tournament(tournament_size, fee, currency, issuer, now)

        return self._claim_slot(tournament, player_address, tx_hash, now)

    def _active_membership(self, player_address: str) -> Optional[Tournament]:
        return (
            self.db.query(Tournament)
            .join(TournamentPlayer, TournamentPlayer.tournament_id == Tournament.id)
            .filter(
                TournamentPlayer.player_address == player_address,
                Tournament.status.in_(get_status_group("active")),
            )
            .order_by(Tournament.created_at.desc())
            .first()
        )

    def _player_count(self, tournament_id: str) -> int:
        return (
            self.db.query(func.count(TournamentPlayer.id))
            .filter(TournamentPlayer.tournament_id == tournament_id)
            .scalar()
        ) or 0

    def _entry(self, tournament_id: str, player_address: str) -> Optional[TournamentPlayer]:
        return (
            self.db.query(TournamentPlayer)
            .filter(
                TournamentPlayer.tournament_id == tournament_id,
                TournamentPlayer.player_address == player_address,
            )
            .first()
        )

    def _running_game(self, tournament_id: str, player_address: str) -> Optional[TournamentGame]:
        return (
            self.db.query(TournamentGame)
            .filter(
                TournamentGame.tournament_id == tournament_id,
                TournamentGame.status == IN_PROGRESS,
                or_(
                    TournamentGame.player_white == player_address,
                    TournamentGame.player_black == player_address,
                ),
            )
            .first()
        )

    def _find_open_tournament(
        self,
        tournament_size: int,
        fee: Decimal,
        currency: str,
        issuer: Optional[str],
        now: datetime,
    ) -> Optional[Tournament]:
        query = self.db.query(Tournament).filter(
            Tournament.status == WAITING,
            Tournament.tournament_size == tournament_size,
            Tournament.entry_fee == fee,
            Tournament.currency == currency,
            or_(Tournament.expires_at.is_(None), Tournament.expires_at > now),
        )
        if issuer is None:
            query = query.filter(Tournament.issuer.is_(None))
        else:
            query = query.filter(Tournament.issuer == issuer)

        for candidate in query.order_by(Tournament.created_at.asc()).all():
            if self._player_count(candidate.id) < candidate.tournament_size:
                return candidate
        return None

    def _create_tournament(
        self,
        tournament_size: int,
        fee: Decimal,
        currency: str,
        issuer: Optional[str],
        now: datetime,
    ) -> Tournament:
        tournament = Tournament(
            tournament_size=tournament_size,
            entry_fee=fee,
            currency=currency,
            issuer=issuer,
            status=WAITING,
            prize_pool=fee * tournament_size,
            created_at=now,
            expires_at=now + timedelta(minutes=settings.tournament_waiting_ttl_minutes),
        )
        self.db.add(tournament)
        self.db.flush()
        logger.info(
            "Created tournament %s (size %d, %s %s)", tournament.id, tournament_size, fee, currency
        )
        return tournament

    def _claim_slot(
        self,
        tournament: Tournament,
        player_address: str,
        tx_hash: Optional[str],
        now: datetime,
    ) -> JoinResult:
        # Lock the row; concurrent joins to this tournament queue up here
        tournament = (
            self.db.query(Tournament)
            .filter(Tournament.id == tournament.id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        if tournament.status != WAITING:
            raise TournamentFullError(tournament.id)

        count = self._player_count(tournament.id)
        if count >= tournament.tournament_size:
            raise TournamentFullError(tournament.id)

        last_order = (
            self.db.query(func.max(TournamentPlayer.player_order))
            .filter(TournamentPlayer.tournament_id == tournament.id)
            .scalar()
        ) or 0
        player = TournamentPlayer(
            tournament_id=tournament.id,
            player_address=player_address,
            player_order=last_order + 1,
            status=PLAYER_WAITING,
            is_active=True,
            tx_hash=tx_hash,
            joined_at=now,
        )
        try:
            with self.db.begin_nested():
                self.db.add(player)
        except IntegrityError:
            logger.info("%s already joined tournament %s", player_address, tournament.id)
            return JoinResult(
                tournament_id=tournament.id,
                player_count=self._player_count(tournament.id),
                tournament_size=tournament.tournament_size,
                is_full=False,
                message="Already joined",
                already_joined=True,
            )

        count += 1
        logger.info(
            "%s joined tournament %s (%d/%d)",
            player_address, tournament.id, count, tournament.tournament_size,
        )

        game_id = None
        is_full = count >= tournament.tournament_size
        if is_full:
            game_id = self._start(tournament, now)

        return JoinResult(
            tournament_id=tournament.id,
            player_count=count,
            tournament_size=tournament.tournament_size,
            is_full=is_full,
            game_id=game_id,
            message="Tournament is full, game starting" if is_full else "Joined tournament",
        )

    def _start(self, tournament: Tournament, now: datetime) -> Optional[str]:
        """Flip a full tournament to in_progress; pair a game for size 2."""
        tournament.status = IN_PROGRESS
        tournament.started_at = now

        players = self._players(tournament.id)
        for player in players:
            player.status = PLAYER_JOINED
        self.db.flush()

        logger.info("Tournament %s started with %d players", tournament.id, len(players))

        if tournament.tournament_size == 2:
            return self.games.create_for_tournament(tournament, players, now).id
        return None

    def _players(self, tournament_id: str) -> list[TournamentPlayer]:
        return (
            self.db.query(TournamentPlayer)
            .filter(TournamentPlayer.tournament_id == tournament_id)
            .order_by(TournamentPlayer.player_order)
            .all()
        )

    # =========================================================================
    # Leave / cleanup
    # =========================================================================

    def leave(self, player_address: str, tournament_id: str, now: Optional[datetime] = None) -> int:
        """
        Remove a player from a waiting tournament.

        Leaving a tournament the player is not in is a no-op. The last player
        out cancels the tournament.

        Returns:
            Number of players still registered

        Raises:
            NotFoundError: Unknown tournament
            ConflictError: The tournament is no longer waiting
        """
        if not player_address or not tournament_id:
            raise ValidationError("Missing required fields")

        now = now or utc_now()
        tournament = (
            self.db.query(Tournament)
            .filter(Tournament.id == tournament_id)
            .with_for_update()
            .first()
        )
        if tournament is None:
            raise NotFoundError("Tournament not found", {"tournamentId": tournament_id})
        if normalize_status(tournament.status) != WAITING:
            raise ConflictError(
                "Cannot leave a tournament that has started",
                {"tournamentId": tournament_id, "status": tournament.status},
            )

        removed = self._entry(tournament_id, player_address)
        if removed is not None:
            self._refund(tournament, [removed], "Player left tournament")
            self.db.delete(removed)
            self.db.flush()

        remaining = self._player_count(tournament_id)
        if remaining == 0:
            self._cancel_empty(tournament, now)
        self.db.flush()

        if removed is not None:
            logger.info("%s left tournament %s (%d remaining)", player_address, tournament_id, remaining)
        return remaining

    def remove_player_everywhere(self, player_address: str, now: Optional[datetime] = None) -> list[str]:
        """
        Drop the player from every active tournament.

        A waiting slot is refunded and deleted; waiting tournaments left
        empty are cancelled. A player with a game in progress forfeits it,
        so the opponent wins the pool, and keeps the (forfeited) player row.
        Any other started slot is deleted without a refund.

        Returns:
            Ids of the tournaments the player was removed from
        """
        if not player_address:
            raise ValidationError("Player address required")

        now = now or utc_now()
        rows = (
            self.db.query(TournamentPlayer)
            .join(Tournament, Tournament.id == TournamentPlayer.tournament_id)
            .filter(
                TournamentPlayer.player_address == player_address,
                Tournament.status.in_(get_status_group("active")),
            )
            .all()
        )
        affected = [row.tournament_id for row in rows]
        emptied = []
        for row in rows:
            tournament = self.db.get(Tournament, row.tournament_id)
            status = normalize_status(tournament.status)
            if status == WAITING:
                self._refund(tournament, [row], "Player removed from tournament")
                self.db.delete(row)
                emptied.append(tournament)
            elif status == IN_PROGRESS and self._running_game(tournament.id, player_address):
                self.games.forfeit_tournament(
                    player_address, tournament.id, "Player removed from tournament", now=now
                )
            else:
                self.db.delete(row)
        self.db.flush()

        for tournament in emptied:
            if self._player_count(tournament.id) == 0:
                self._cancel_empty(tournament, now)
        self.db.flush()

        if affected:
            logger.info("Removed %s from %d tournament(s)", player_address, len(affected))
        return affected

    def _cancel_empty(self, tournament: Tournament, now: datetime) -> None:
        tournament.status = CANCELLED
        tournament.cancelled_at = now
        tournament.cancelled_reason = ALL_PLAYERS_LEFT
        logger.info("Tournament %s cancelled: %s", tournament.id, ALL_PLAYERS_LEFT)

    # =========================================================================
    # Refunds
    # =========================================================================

    def request_refund(
        self,
        player_address: str,
        tournament_id: str,
        reason: Optional[str] = None,
    ) -> PrizeDistribution:
        """
        Record (or return the already recorded) entry-fee refund for a player.

        Leaving and the sweeps record refunds themselves; this covers a
        client asking for a refund on a cancelled or expired tournament it
        is still registered in, and is idempotent per entry. A player whose
        slot is already gone gets back the refund recorded for their latest
        entry.

        Raises:
            NotFoundError: Unknown tournament
            ConflictError: The tournament is still running or completed
            ForbiddenError: The player holds no slot in the tournament
        """
        if not player_address or not tournament_id:
            raise ValidationError("Missing required fields")

        tournament = self.db.get(Tournament, tournament_id)
        if tournament is None:
            raise NotFoundError("Tournament not found", {"tournamentId": tournament_id})

        refunds = (
            self.db.query(PrizeDistribution)
            .filter(
                PrizeDistribution.tournament_id == tournament_id,
                PrizeDistribution.recipient_address == player_address,
                PrizeDistribution.distribution_type == "refund",
            )
        )
        entry = self._entry(tournament_id, player_address)
        if entry is None:
            latest = refunds.order_by(PrizeDistribution.id.desc()).first()
            if latest is not None:
                return latest
            raise ForbiddenError(
                "Player not registered in tournament", {"tournamentId": tournament_id}
            )

        existing = refunds.filter(PrizeDistribution.entry_id == entry.id).first()
        if existing is not None:
            return existing

        if normalize_status(tournament.status) not in (CANCELLED, EXPIRED):
            raise ConflictError(
                "Tournament is not refundable",
                {"tournamentId": tournament_id, "status": tournament.status},
            )

        rows = self._refund(tournament, [entry], reason or "Refund requested")
        return rows[0]

    def _refund(
        self, tournament: Tournament, entries: list[TournamentPlayer], reason: str
    ) -> list[PrizeDistribution]:
        rows = record_refunds(self.db, tournament, entries, reason=reason)
        self.games.pending_distributions.extend(rows)
        return rows

    # =========================================================================
    # Queries
    # =========================================================================

    def check_tournament(self, tournament_id: str) -> tuple[bool, Optional[str]]:
        """Returns (exists, status)."""
        if not tournament_id:
            raise ValidationError("Tournament ID required")
        tournament = self.db.get(Tournament, tournament_id)
        if tournament is None:
            return False, None
        return True, normalize_status(tournament.status)

    def verify_wallet_match(self, tournament_id: str, player_address: str) -> tuple[bool, str]:
        """Whether the address holds a slot in the tournament, with a message."""
        if not tournament_id or not player_address:
            raise ValidationError("Missing required fields")

        registered = (
            self.db.query(TournamentPlayer.id)
            .filter(
                TournamentPlayer.tournament_id == tournament_id,
                TournamentPlayer.player_address == player_address,
            )
            .first()
        ) is not None

        if registered:
            return True, "Wallet is registered in this tournament"
        return False, "Wallet is not registered in this tournament"
