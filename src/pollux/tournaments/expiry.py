"""
Expiry and cleanup sweeps.

Three independent sweeps, each idempotent and safe to run concurrently
with live traffic (a row that has already moved on no longer matches the
sweep's filter):

1. expire_waiting_tournaments: waiting longer than the TTL -> expired,
   entry fees refunded, player rows removed
2. cancel_first_move_timeouts: white never moved -> game and tournament
   cancelled, both entry fees refunded
3. abandon_stale_games: running past the stale cutoff -> clocks enforced
   first, anything still running is cancelled as abandoned and refunded

cleanup_all_expired runs all three. It is triggered by the expire route
and by scripts/expire_tournaments.py from cron.

Usage:
    with get_session() as session:
        summary = cleanup_all_expired(session)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from pollux.config import settings
from pollux.db.models import PrizeDistribution, Tournament, TournamentGame, TournamentPlayer, utc_now
from pollux.games.lifecycle import FIRST_MOVE_TIMEOUT, GameService
from pollux.games.prizes import record_refunds
from pollux.statuses import EXPIRED, IN_PROGRESS, WAITING

logger = logging.getLogger(__name__)


def expiry_reason() -> str:
    return f"Tournament expired after {settings.tournament_waiting_ttl_minutes} minutes"


@dataclass
class CleanupSummary:
    """What a cleanup run changed."""
    expired_tournaments: list[str] = field(default_factory=list)
    first_move_timeouts: list[str] = field(default_factory=list)
    abandoned_games: list[str] = field(default_factory=list)
    distributions: list[PrizeDistribution] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.expired_tournaments)
            + len(self.first_move_timeouts)
            + len(self.abandoned_games)
        )

    def to_dict(self) -> dict:
        return {
            "success": True,
            "message": "Expired old tournaments",
            "expired": len(self.expired_tournaments),
            "tournamentIds": self.expired_tournaments,
            "firstMoveTimeouts": len(self.first_move_timeouts),
            "abandonedGames": len(self.abandoned_games),
            "refunds": sum(1 for d in self.distributions if d.distribution_type == "refund"),
        }


def expire_waiting_tournaments(
    db: Session,
    now: Optional[datetime] = None,
    distributions: Optional[list[PrizeDistribution]] = None,
) -> list[str]:
    """
    Expire waiting tournaments older than the waiting TTL.

    Returns:
        Ids of the tournaments expired by this call
    """
    now = now or utc_now()
    cutoff = now - timedelta(minutes=settings.tournament_waiting_ttl_minutes)
    reason = expiry_reason()

    stale = (
        db.query(Tournament)
        .filter(Tournament.status == WAITING, Tournament.created_at < cutoff)
        .order_by(Tournament.created_at)
        .all()
    )

    expired_ids = []
    for tournament in stale:
        entries = (
            db.query(TournamentPlayer)
            .filter(TournamentPlayer.tournament_id == tournament.id)
            .order_by(TournamentPlayer.player_order)
            .all()
        )
        refunds = record_refunds(db, tournament, entries, reason=reason)
        if distributions is not None:
            distributions.extend(refunds)

        tournament.status = EXPIRED
        tournament.cancelled_at = now
        tournament.cancelled_reason = reason
        db.query(TournamentPlayer).filter(
            TournamentPlayer.tournament_id == tournament.id
        ).delete()
        expired_ids.append(tournament.id)

    db.flush()
    if expired_ids:
        logger.info("Expired %d waiting tournament(s)", len(expired_ids))
    return expired_ids


def cancel_first_move_timeouts(
    db: Session,
    now: Optional[datetime] = None,
    games: Optional[GameService] = None,
) -> list[str]:
    """
    Cancel running games where white has not moved within the limit.

    Returns:
        Ids of the games cancelled by this call
    """
    now = now or utc_now()
    games = games or GameService(db)
    cutoff = now - timedelta(seconds=settings.first_move_timeout_seconds)

    candidates = (
        db.query(TournamentGame)
        .filter(
            TournamentGame.status == IN_PROGRESS,
            TournamentGame.first_move_made.is_(False),
            TournamentGame.started_at < cutoff,
        )
        .all()
    )

    cancelled = [game.id for game in candidates if games.enforce_timeouts(game, now) == FIRST_MOVE_TIMEOUT]
    if cancelled:
        logger.info("Cancelled %d game(s) with no first move", len(cancelled))
    return cancelled


def abandon_stale_games(
    db: Session,
    now: Optional[datetime] = None,
    games: Optional[GameService] = None,
    stale_minutes: Optional[int] = None,
) -> list[str]:
    """
    Cancel games still running past the stale cutoff.

    Clocks are enforced first, so a game whose side to move has flagged is
    completed as a timeout rather than abandoned.

    Returns:
        Ids of the games abandoned by this call
    """
    now = now or utc_now()
    games = games or GameService(db)
    cutoff = now - timedelta(minutes=stale_minutes or settings.stale_game_minutes)

    candidates = (
        db.query(TournamentGame)
        .filter(TournamentGame.status == IN_PROGRESS, TournamentGame.created_at < cutoff)
        .all()
    )

    abandoned = []
    for game in candidates:
        if games.enforce_timeouts(game, now) is not None:
            continue
        games.abandon(game, now)
        abandoned.append(game.id)

    if abandoned:
        logger.info("Abandoned %d stale game(s)", len(abandoned))
    return abandoned


def cleanup_all_expired(
    db: Session,
    now: Optional[datetime] = None,
    games: Optional[GameService] = None,
) -> CleanupSummary:
    """Run every sweep once. Prize/refund rows are collected on the summary."""
    now = now or utc_now()
    games = games or GameService(db)
    summary = CleanupSummary()

    summary.expired_tournaments = expire_waiting_tournaments(db, now, summary.distributions)
    summary.first_move_timeouts = cancel_first_move_timeouts(db, now, games)
    summary.abandoned_games = abandon_stale_games(db, now, games)

    summary.distributions.extend(games.pending_distributions)
    games.pending_distributions = []

    logger.info(
        "Cleanup finished: %d expired, %d first-move timeouts, %d abandoned",
        len(summary.expired_tournaments),
        len(summary.first_move_timeouts),
        len(summary.abandoned_games),
    )
    return summary
