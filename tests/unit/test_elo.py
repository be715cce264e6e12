"""
Unit tests for the multiplayer ELO calculator.

Tests the core ELO calculation logic to ensure:
- Favorites winning gain less than underdogs winning
- Sum of rating changes is zero (zero-sum game)
- A draw between equal ratings changes nothing
- Edge cases are handled properly
"""

from decimal import Decimal

import pytest

from pollux.players.elo import EloCalculator


class TestEloCalculator:
    """Tests for EloCalculator class."""

    @pytest.fixture
    def calculator(self):
        """Fixed K/S so the tests don't depend on environment settings."""
        return EloCalculator(k_factor=32, s_factor=400)

    def test_favorite_wins(self, calculator):
        """Winning as the favorite gains fewer than half the K factor."""
        result = calculator.calculate(
            elo_white=Decimal("1400"),  # Favorite
            elo_black=Decimal("1200"),  # Underdog
            result="white",
        )

        assert result.white_after > result.white_before
        assert result.black_after < result.black_before
        assert result.white_change < 16

    def test_underdog_wins(self, calculator):
        """Beating a higher-rated player gains more than half the K factor."""
        result = calculator.calculate(
            elo_white=Decimal("1200"),
            elo_black=Decimal("1400"),
            result="white",
        )

        assert result.white_change > 16
        assert result.was_upset

    def test_zero_sum(self, calculator):
        result = calculator.calculate(
            elo_white=Decimal("1310"),
            elo_black=Decimal("1255"),
            result="black",
        )

        total_change = result.white_change + result.black_change
        assert abs(total_change) < Decimal("0.05")

    def test_equal_ratings_win(self, calculator):
        """Equal ratings: expected 0.5 each, winner takes K/2."""
        result = calculator.calculate(elo_white=1200, elo_black=1200, result="white")

        assert result.expected_white == Decimal("0.5000")
        assert result.expected_black == Decimal("0.5000")
        assert result.white_after == Decimal("1216.00")
        assert result.black_after == Decimal("1184.00")

    def test_draw_between_equals_changes_nothing(self, calculator):
        result = calculator.calculate(elo_white=1200, elo_black=1200, result="tie")

        assert result.white_change == 0
        assert result.black_change == 0
        assert not result.was_upset

    def test_draw_pulls_ratings_together(self, calculator):
        result = calculator.calculate(elo_white=1500, elo_black=1300, result="tie")

        assert result.white_after < result.white_before
        assert result.black_after > result.black_before

    def test_expected_score_favors_higher_rating(self, calculator):
        assert calculator.expected_score(2000, 1500) > Decimal("0.9")
        assert Decimal("0.49") < calculator.expected_score(1500, 1500) < Decimal("0.51")

    def test_invalid_result(self, calculator):
        with pytest.raises(ValueError):
            calculator.calculate(elo_white=1200, elo_black=1200, result="draw")

    def test_factors_default_from_settings(self):
        from pollux.config import settings

        calculator = EloCalculator()
        assert calculator.k_factor == settings.multiplayer_k_factor
        assert calculator.s_factor == settings.multiplayer_s_factor
