"""Shared tournament/game status definitions and helpers.

This module is the single source of truth for status vocabularies that are
reused across web handlers, sweeps, and the game lifecycle.
"""

from __future__ import annotations


# Tournament statuses.
WAITING = "waiting"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"
EXPIRED = "expired"

ALL_TOURNAMENT_STATUSES: tuple[str, ...] = (
    WAITING,
    IN_PROGRESS,
    COMPLETED,
    CANCELLED,
    EXPIRED,
)

# Tournament player row statuses.
PLAYER_WAITING = "waiting"
PLAYER_JOINED = "joined"

TOURNAMENT_STATUS_GROUPS: dict[str, tuple[str, ...]] = {
    # A player with a row in one of these cannot queue again.
    "active": (WAITING, IN_PROGRESS),
    # No further transitions happen from these.
    "terminal": (COMPLETED, CANCELLED, EXPIRED),
    "all": ALL_TOURNAMENT_STATUSES,
}

# Older clients wrote the hyphenated spelling.
STATUS_ALIASES: dict[str, str] = {
    "in-progress": IN_PROGRESS,
}


def get_status_group(group_name: str) -> tuple[str, ...]:
    """Return a named status group, raising KeyError for unknown names."""
    return TOURNAMENT_STATUS_GROUPS[group_name]


def normalize_status(raw: str) -> str:
    """Lowercase a status and map legacy aliases onto the canonical value."""
    status = raw.strip().lower()
    return STATUS_ALIASES.get(status, status)


def is_terminal(status: str) -> bool:
    return normalize_status(status) in TOURNAMENT_STATUS_GROUPS["terminal"]
