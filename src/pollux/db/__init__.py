"""
Database module for Pollux.

Provides SQLAlchemy ORM models and session management.

Usage:
    from pollux.db import get_session, Tournament

    with get_session() as session:
        tournaments = session.query(Tournament).all()
"""

from pollux.db.models import (
    Base,
    PlayerProfile,
    PlayerSettings,
    PrizeDistribution,
    Tournament,
    TournamentGame,
    TournamentPlayer,
    utc_now,
)
from pollux.db.session import SessionLocal, get_db, get_engine, get_session

__all__ = [
    # Base
    "Base",
    # Models
    "Tournament",
    "TournamentPlayer",
    "TournamentGame",
    "PlayerProfile",
    "PlayerSettings",
    "PrizeDistribution",
    # Helpers
    "utc_now",
    # Session
    "get_session",
    "get_db",
    "get_engine",
    "SessionLocal",
]
