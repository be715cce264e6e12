"""
Unit tests for the expiry and cleanup sweeps.
"""

from datetime import timedelta

import pytest

from pollux.db.models import PrizeDistribution, Tournament, TournamentPlayer
from pollux.games.lifecycle import GameService
from pollux.tournaments.expiry import (
    abandon_stale_games,
    cancel_first_move_timeouts,
    cleanup_all_expired,
    expire_waiting_tournaments,
    expiry_reason,
)
from pollux.tournaments.matchmaking import TournamentService

from conftest import BLACK, THIRD, WHITE


@pytest.fixture
def service(db_session):
    return TournamentService(db_session)


def _refunds(db_session, tournament_id):
    return (
        db_session.query(PrizeDistribution)
        .filter_by(tournament_id=tournament_id, distribution_type="refund")
        .all()
    )


class TestExpireWaiting:

    def test_old_waiting_tournament_expired(self, service, db_session, now):
        old = service.join(WHITE, 4, "10", "XAH", now=now)
        service.join(BLACK, 4, "10", "XAH", now=now)
        collected = []

        expired = expire_waiting_tournaments(db_session, now + timedelta(minutes=11), collected)

        assert expired == [old.tournament_id]
        tournament = db_session.get(Tournament, old.tournament_id)
        assert tournament.status == "expired"
        assert tournament.cancelled_reason == expiry_reason()
        assert db_session.query(TournamentPlayer).filter_by(tournament_id=old.tournament_id).count() == 0

        refunds = _refunds(db_session, old.tournament_id)
        assert {r.recipient_address for r in refunds} == {WHITE, BLACK}
        assert {r.id for r in collected} == {r.id for r in refunds}

    def test_leave_and_rejoin_refunds_both_fees(self, service, db_session, now):
        old = service.join(WHITE, 4, "10", "XAH", now=now)
        service.join(BLACK, 4, "10", "XAH", now=now)
        service.leave(BLACK, old.tournament_id, now=now)
        rejoined = service.join(BLACK, 4, "10", "XAH", now=now + timedelta(minutes=1))
        assert rejoined.tournament_id == old.tournament_id

        expire_waiting_tournaments(db_session, now + timedelta(minutes=11))

        refunds = _refunds(db_session, old.tournament_id)
        black_refunds = [r for r in refunds if r.recipient_address == BLACK]
        assert len(black_refunds) == 2
        assert len({r.entry_id for r in black_refunds}) == 2
        assert [r.reason for r in black_refunds] == ["Player left tournament", expiry_reason()]
        assert len(refunds) == 3

    def test_fresh_tournament_untouched(self, service, db_session, now):
        fresh = service.join(WHITE, 2, "10", "XAH", now=now)

        assert expire_waiting_tournaments(db_session, now + timedelta(minutes=5)) == []
        assert db_session.get(Tournament, fresh.tournament_id).status == "waiting"

    def test_running_twice_is_harmless(self, service, db_session, now):
        old = service.join(WHITE, 2, "10", "XAH", now=now)
        later = now + timedelta(minutes=11)

        assert expire_waiting_tournaments(db_session, later) == [old.tournament_id]
        assert expire_waiting_tournaments(db_session, later) == []
        assert len(_refunds(db_session, old.tournament_id)) == 1

    def test_expired_player_can_queue_again(self, service, db_session, now):
        service.join(WHITE, 2, "10", "XAH", now=now)
        later = now + timedelta(minutes=11)
        expire_waiting_tournaments(db_session, later)

        result = service.join(WHITE, 2, "10", "XAH", now=later)
        assert result.player_count == 1

    def test_reason_uses_ttl(self):
        assert expiry_reason() == "Tournament expired after 10 minutes"


class TestGameSweeps:

    def test_first_move_timeouts(self, db_session, started_game, now):
        games = GameService(db_session)

        assert cancel_first_move_timeouts(db_session, now + timedelta(seconds=60), games) == []
        cancelled = cancel_first_move_timeouts(db_session, now + timedelta(seconds=121), games)

        assert cancelled == [started_game.id]
        assert started_game.status == "cancelled"
        assert started_game.result_reason == "first_move_timeout"
        assert len(games.pending_distributions) == 2

    def test_first_move_made_is_not_cancelled(self, db_session, started_game, now):
        games = GameService(db_session)
        games.submit_move(started_game.id, WHITE, "e2e4", now=now)

        assert cancel_first_move_timeouts(db_session, now + timedelta(seconds=300), games) == []

    def test_stale_game_abandoned(self, db_session, started_game, now):
        games = GameService(db_session)
        started_game.created_at = now - timedelta(minutes=40)
        db_session.flush()
        games.submit_move(started_game.id, WHITE, "e2e4", now=now)

        abandoned = abandon_stale_games(db_session, now + timedelta(seconds=5), games)

        assert abandoned == [started_game.id]
        assert started_game.status == "cancelled"
        assert started_game.result_reason == "abandoned"
        assert db_session.get(Tournament, started_game.tournament_id).status == "cancelled"
        assert {r.recipient_address for r in _refunds(db_session, started_game.tournament_id)} == {WHITE, BLACK}

    def test_flagged_stale_game_completes_as_timeout(self, db_session, started_game, now):
        games = GameService(db_session)
        games.submit_move(started_game.id, WHITE, "e2e4", now=now)

        abandoned = abandon_stale_games(db_session, now + timedelta(minutes=31), games)

        assert abandoned == []
        assert started_game.status == "completed"
        assert started_game.result_reason == "timeout"

    def test_custom_stale_window(self, db_session, started_game, now):
        games = GameService(db_session)
        games.submit_move(started_game.id, WHITE, "e2e4", now=now)

        assert abandon_stale_games(db_session, now + timedelta(minutes=5), games) == []
        assert abandon_stale_games(
            db_session, now + timedelta(minutes=5), games, stale_minutes=2
        ) == [started_game.id]


def test_cleanup_all_expired(service, db_session, started_game, now):
    waiting = service.join(THIRD, 4, "10", "XAH", now=now)

    summary = cleanup_all_expired(db_session, now + timedelta(minutes=11))

    assert summary.expired_tournaments == [waiting.tournament_id]
    assert summary.first_move_timeouts == [started_game.id]
    assert summary.abandoned_games == []
    assert summary.total == 2

    body = summary.to_dict()
    assert body["expired"] == 1
    assert body["tournamentIds"] == [waiting.tournament_id]
    assert body["firstMoveTimeouts"] == 1
    assert body["refunds"] == 3


def test_cleanup_with_nothing_to_do(db_session, now):
    summary = cleanup_all_expired(db_session, now)

    assert summary.total == 0
    assert summary.distributions == []
