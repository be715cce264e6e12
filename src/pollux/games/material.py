"""
Material counting and the draw tiebreak.

When a game ends drawn (stalemate, insufficient material, repetition,
move-rule), the side with more material on the board takes the result.
Equal material is a tie and the prize pool is split.

Piece values: pawn=1, knight=3, bishop=3, rook=5, queen=9 (king=0).
"""

from dataclasses import dataclass

import chess

PIECE_VALUES: dict[int, int] = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 0,
}


@dataclass(frozen=True)
class MaterialCount:
    white: int
    black: int

    @property
    def result(self) -> str:
        """'white', 'black' or 'tie'."""
        if self.white > self.black:
            return "white"
        if self.black > self.white:
            return "black"
        return "tie"


def side_material(board: chess.Board, color: chess.Color) -> int:
    return sum(
        value * len(board.pieces(piece_type, color))
        for piece_type, value in PIECE_VALUES.items()
    )


def count_material(board: chess.Board) -> MaterialCount:
    return MaterialCount(
        white=side_material(board, chess.WHITE),
        black=side_material(board, chess.BLACK),
    )


def material_tiebreak(fen: str) -> str:
    """Resolve a drawn position to 'white', 'black' or 'tie'."""
    return count_material(chess.Board(fen)).result
