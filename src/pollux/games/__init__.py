"""
Game lifecycle, draw tiebreak and prize bookkeeping.

Usage:
    from pollux.games import GameService, material_tiebreak

    service = GameService(session)
    outcome = service.submit_move(game_id, address, "e2e4")
"""

from pollux.games.lifecycle import (
    ActiveGame,
    ForfeitResult,
    GameService,
    MoveOutcome,
    TimeoutCheck,
    parse_move,
    side_to_move,
)
from pollux.games.material import MaterialCount, count_material, material_tiebreak
from pollux.games.prizes import PrizeNotifier, record_prize, record_refunds

__all__ = [
    # Lifecycle
    "GameService",
    "MoveOutcome",
    "TimeoutCheck",
    "ForfeitResult",
    "ActiveGame",
    "parse_move",
    "side_to_move",
    # Material
    "MaterialCount",
    "count_material",
    "material_tiebreak",
    # Prizes
    "PrizeNotifier",
    "record_prize",
    "record_refunds",
]
