"""Unit tests for the material count draw tiebreak."""

import chess

from pollux.db.models import STARTING_FEN
from pollux.games.material import MaterialCount, count_material, material_tiebreak


def test_queen_and_pawn_beat_rook_and_bishop():
    # White: K, Q, P = 10. Black: K, R, B = 8.
    fen = "4k3/8/8/3rb3/8/8/4P3/3QK3 w - - 0 1"

    counted = count_material(chess.Board(fen))
    assert counted == MaterialCount(white=10, black=8)
    assert material_tiebreak(fen) == "white"


def test_black_ahead():
    fen = "4k3/8/8/3q4/8/8/8/3RK3 w - - 0 1"
    assert material_tiebreak(fen) == "black"


def test_equal_material_is_tie():
    assert material_tiebreak(STARTING_FEN) == "tie"
    assert material_tiebreak("4k3/8/8/8/8/8/8/4K3 w - - 0 1") == "tie"


def test_kings_count_for_nothing():
    assert count_material(chess.Board("4k3/8/8/8/8/8/8/4K3 w - - 0 1")) == MaterialCount(0, 0)


def test_starting_position_total():
    counted = count_material(chess.Board(STARTING_FEN))
    # 8 pawns + 2 knights + 2 bishops + 2 rooks + queen
    assert counted.white == 8 + 6 + 6 + 10 + 9
    assert counted.result == "tie"
