"""
Player profiles, settings and ratings.

Key components:
- PlayerProfileService: Lazily created per-wallet profile and preferences
- EloCalculator: Standard ELO for tournament games (draw = 0.5)
- random_bot_rank: Pick a bot opponent near the player's ladder rank
"""

from pollux.players.elo import EloCalculator, EloUpdate
from pollux.players.profiles import PlayerProfileService, random_bot_rank

__all__ = [
    "PlayerProfileService",
    "random_bot_rank",
    "EloCalculator",
    "EloUpdate",
]
