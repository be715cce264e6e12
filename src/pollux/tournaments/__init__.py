"""
Tournament matchmaking and the expiry/cleanup sweeps.

Usage:
    from pollux.tournaments import TournamentService, cleanup_all_expired
"""

from pollux.tournaments.expiry import (
    CleanupSummary,
    abandon_stale_games,
    cancel_first_move_timeouts,
    cleanup_all_expired,
    expire_waiting_tournaments,
)
from pollux.tournaments.matchmaking import JoinResult, TournamentService, parse_entry_fee

__all__ = [
    # Matchmaking
    "TournamentService",
    "JoinResult",
    "parse_entry_fee",
    # Expiry
    "CleanupSummary",
    "expire_waiting_tournaments",
    "cancel_first_move_timeouts",
    "abandon_stale_games",
    "cleanup_all_expired",
]
