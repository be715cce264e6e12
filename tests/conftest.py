"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from pollux.db.models import Base, TournamentGame
from pollux.tournaments.matchmaking import TournamentService

WHITE = "rWhitePlayerAddress1111111111111"
BLACK = "rBlackPlayerAddress2222222222222"
THIRD = "rThirdPlayerAddress3333333333333"


@pytest.fixture(scope="session")
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory for fast tests that don't need
    PostgreSQL-specific features. A single shared connection (StaticPool)
    lets the FastAPI TestClient's worker thread see the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture(scope="session")
def tables(test_engine):
    """
    Create all tables for testing.

    This fixture runs once per test session.
    """
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, tables):
    """
    Create a database session for a test.

    Each test runs inside an outer transaction that is rolled back at the
    end; commits made by the code under test only release a savepoint.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        autoflush=False,
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def started_game(db_session, now):
    """A 2-player tournament that has just filled, with its game in progress."""
    service = TournamentService(db_session)
    service.join(WHITE, 2, "10", "XAH", now=now)
    result = service.join(BLACK, 2, "10", "XAH", now=now)
    return db_session.get(TournamentGame, result.game_id)
