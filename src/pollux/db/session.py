"""
Database session management for Pollux.

Provides SQLAlchemy engine and session factory with proper
connection pooling configuration. Uses the settings from config.py.

Usage:
    # As a context manager (recommended for scripts)
    from pollux.db import get_session

    with get_session() as session:
        waiting = session.query(Tournament).filter_by(status="waiting").all()
        # Commits automatically on exit, rolls back on exception

    # As a dependency injection (for FastAPI)
    from pollux.db.session import get_db

    @app.get("/tournaments")
    def list_tournaments(db: Session = Depends(get_db)):
        ...
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from pollux.config import settings


def get_engine():
    """
    Create SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool for efficient reuse
    - Echo mode disabled (set LOG_LEVEL=DEBUG for SQL logging)
    - Pre-ping to verify connections before use (handles stale connections)
    """
    return create_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,  # Verify connection is alive before using
        echo=settings.log_level == "DEBUG",  # Log SQL only in debug mode
    )


# Created on first use so importing the package never opens a pool
_engine = None


def _get_engine():
    """Get or create the singleton engine instance."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


# Session factory - bound to the engine when a session is opened
SessionLocal = sessionmaker(
    autocommit=False,  # We'll handle commits explicitly
    autoflush=False,  # Don't auto-flush before queries (more control)
)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on successful exit, rolls back on exception.
    This is the recommended way to use sessions in scripts and tasks.

    Raises:
        Any exception from the database operation (after rollback)
    """
    session = SessionLocal(bind=_get_engine())
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency injection function for FastAPI.

    Use this with FastAPI's Depends() for request-scoped sessions.
    Handlers commit explicitly once an operation has succeeded.
    """
    db = SessionLocal(bind=_get_engine())
    try:
        yield db
    finally:
        db.close()
