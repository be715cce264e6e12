"""
ELO rating calculator for head-to-head tournament games.

Implements the standard ELO formula with draws scored as half a win:

  Expected score: E_A = 1 / (1 + 10^((R_B - R_A) / S))
  New rating: R'_A = R_A + K * (actual - expected)

Where:
  R_A, R_B = Current ratings of white (A) and black (B)
  K = How much ratings change (volatility factor)
  S = Spread factor (how rating difference maps to win probability)
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pollux.config import settings

# Actual score for player A by game result
ACTUAL_SCORES: dict[str, Decimal] = {
    "white": Decimal("1"),
    "black": Decimal("0"),
    "tie": Decimal("0.5"),
}


@dataclass
class EloUpdate:
    """
    Result of an ELO calculation.

    Contains everything needed to update both profiles and to explain
    the change afterwards.
    """
    # Ratings before the game
    white_before: Decimal
    black_before: Decimal

    # Ratings after the game
    white_after: Decimal
    black_after: Decimal

    # Expected scores (before the game)
    expected_white: Decimal
    expected_black: Decimal

    # 'white', 'black' or 'tie'
    result: str

    k_factor: int
    s_factor: int

    @property
    def white_change(self) -> Decimal:
        return self.white_after - self.white_before

    @property
    def black_change(self) -> Decimal:
        return self.black_after - self.black_before

    @property
    def was_upset(self) -> bool:
        """Whether the lower-rated player won."""
        if self.result == "white":
            return self.white_before < self.black_before
        if self.result == "black":
            return self.black_before < self.white_before
        return False

    def __repr__(self) -> str:
        return (
            f"<EloUpdate(white: {self.white_before:.0f} -> {self.white_after:.0f}, "
            f"black: {self.black_before:.0f} -> {self.black_after:.0f}, "
            f"result={self.result})>"
        )


class EloCalculator:
    """
    ELO calculator for multiplayer games.

    Usage:
        calculator = EloCalculator()
        update = calculator.calculate(
            elo_white=Decimal("1250"),
            elo_black=Decimal("1200"),
            result="black",
        )
        print(f"White: {update.white_before} -> {update.white_after}")
    """

    def __init__(self, k_factor: Optional[int] = None, s_factor: Optional[int] = None):
        self.k_factor = k_factor or settings.multiplayer_k_factor
        self.s_factor = s_factor or settings.multiplayer_s_factor

    def calculate(self, elo_white, elo_black, result: str) -> EloUpdate:
        """
        Calculate new ratings after a game.

        Args:
            elo_white: White's rating before the game
            elo_black: Black's rating before the game
            result: 'white', 'black' or 'tie'

        Returns:
            EloUpdate with all calculation details

        Raises:
            ValueError: If result is not one of the known values
        """
        if result not in ACTUAL_SCORES:
            raise ValueError(f"result must be 'white', 'black' or 'tie', got '{result}'")

        elo_white = Decimal(str(elo_white))
        elo_black = Decimal(str(elo_black))
        k = Decimal(self.k_factor)
        s = Decimal(self.s_factor)

        exp_white = self.expected_score(elo_white, elo_black)
        exp_black = Decimal("1") - exp_white

        actual_white = ACTUAL_SCORES[result]
        actual_black = Decimal("1") - actual_white

        new_white = elo_white + k * (actual_white - exp_white)
        new_black = elo_black + k * (actual_black - exp_black)

        # Round to 2 decimal places for storage
        new_white = new_white.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        new_black = new_black.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        return EloUpdate(
            white_before=elo_white,
            black_before=elo_black,
            white_after=new_white,
            black_after=new_black,
            expected_white=exp_white.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            expected_black=exp_black.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            result=result,
            k_factor=int(k),
            s_factor=int(s),
        )

    def expected_score(self, elo_a, elo_b) -> Decimal:
        """Probability-like expected score of A against B."""
        elo_a = Decimal(str(elo_a))
        elo_b = Decimal(str(elo_b))
        rating_diff = (elo_b - elo_a) / Decimal(self.s_factor)
        try:
            return Decimal("1") / (1 + Decimal("10") ** rating_diff)
        except ArithmeticError:
            # Extreme rating differences
            return Decimal("0.001") if rating_diff > 0 else Decimal("0.999")
