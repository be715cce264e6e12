"""
Unit tests for PlayerProfileService.
"""

import random

import pytest

from pollux.db.models import PlayerProfile, PlayerSettings
from pollux.errors import NotFoundError, ValidationError
from pollux.players.profiles import PlayerProfileService, random_bot_rank

ADDRESS = "rProfileAddress99999999999999999"


@pytest.fixture
def service(db_session):
    return PlayerProfileService(db_session)


def test_profile_and_settings_created_on_first_login(service, db_session):
    profile = service.get_or_create_profile(ADDRESS)

    assert profile.bot_elo == 1
    assert profile.multiplayer_elo == 1200.0
    assert profile.total_games == 0

    player_settings = db_session.get(PlayerSettings, ADDRESS)
    assert player_settings is not None
    assert player_settings.confirm_moves is False
    assert player_settings.highlight_legal_moves is True
    assert player_settings.auto_queen_promotion is True


def test_get_or_create_is_idempotent(service, db_session):
    first = service.get_or_create_profile(ADDRESS)
    second = service.get_or_create_profile(ADDRESS)

    assert first is second
    assert db_session.query(PlayerProfile).filter_by(wallet_address=ADDRESS).count() == 1


def test_missing_profile_is_404(service):
    with pytest.raises(NotFoundError):
        service.get_player_stats("rNobody")


class TestBotStats:

    def test_win_raises_rank(self, service):
        service.get_or_create_profile(ADDRESS)
        profile = service.update_bot_stats(ADDRESS, "win")

        assert profile.bot_elo == 2
        assert profile.bot_wins == 1
        assert profile.total_games == 1

    def test_loss_never_drops_below_one(self, service):
        service.get_or_create_profile(ADDRESS)
        profile = service.update_bot_stats(ADDRESS, "loss")

        assert profile.bot_elo == 1
        assert profile.bot_losses == 1

    def test_loss_after_wins(self, service):
        service.get_or_create_profile(ADDRESS)
        for _ in range(3):
            service.update_bot_stats(ADDRESS, "win")
        profile = service.update_bot_stats(ADDRESS, "loss")

        assert profile.bot_elo == 3
        assert profile.total_games == 4

    def test_draw_keeps_rank(self, service):
        service.get_or_create_profile(ADDRESS)
        profile = service.update_bot_stats(ADDRESS, "draw")

        assert profile.bot_elo == 1
        assert profile.bot_draws == 1
        assert profile.total_games == 1

    def test_unknown_result_rejected(self, service):
        service.get_or_create_profile(ADDRESS)
        with pytest.raises(ValidationError):
            service.update_bot_stats(ADDRESS, "tie")


class TestRandomBotRank:

    def test_within_ten_of_player(self):
        rng = random.Random(7)
        ranks = {random_bot_rank(20, rng) for _ in range(500)}
        assert min(ranks) >= 10
        assert max(ranks) <= 30

    def test_clamped_at_bottom(self):
        rng = random.Random(7)
        ranks = {random_bot_rank(3, rng) for _ in range(500)}
        assert min(ranks) >= 1
        assert max(ranks) <= 13

    def test_clamped_at_top(self):
        rng = random.Random(7)
        ranks = {random_bot_rank(995, rng) for _ in range(500)}
        assert min(ranks) >= 985
        assert max(ranks) <= 1000


class TestSettings:

    def test_update_known_flags(self, service):
        service.get_or_create_profile(ADDRESS)
        updated = service.update_player_settings(ADDRESS, confirm_moves=True, auto_queen_promotion=False)

        assert updated.confirm_moves is True
        assert updated.auto_queen_promotion is False
        assert updated.highlight_legal_moves is True

    def test_unknown_flag_rejected(self, service):
        service.get_or_create_profile(ADDRESS)
        with pytest.raises(ValidationError):
            service.update_player_settings(ADDRESS, dark_mode=True)

    def test_settings_missing_is_404(self, service):
        with pytest.raises(NotFoundError):
            service.get_player_settings("rNobody")


def test_multiplayer_result_updates_both_players(service):
    update = service.record_multiplayer_result("rWhite", "rBlack", "black")

    white = service.get_player_stats("rWhite")
    black = service.get_player_stats("rBlack")

    assert black.multiplayer_elo > 1200
    assert white.multiplayer_elo < 1200
    assert black.multiplayer_wins == 1
    assert white.multiplayer_losses == 1
    assert white.total_games == black.total_games == 1
    assert update.result == "black"
