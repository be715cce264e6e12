"""
Head-to-head game lifecycle.

State machine:

    pending -> in_progress -> completed | cancelled

A game is created in_progress the moment its 2-player tournament fills.
From there it ends in exactly one of these ways:

- checkmate: the mover wins
- draw (stalemate, insufficient material, 75-move rule, fivefold or
  claimable repetition): resolved by the material tiebreak
- timeout: the side to move ran out of clock, the other side wins
- resignation / forfeit: the opponent wins
- first_move_timeout: white never moved, game and tournament cancelled,
  both entry fees refunded
- abandoned: still running past the stale cutoff, cancelled and refunded

Clocks are stored as the seconds left at the start of the current turn.
The live value is the stored value minus the time since turn_started_at,
except before white's first move, when neither clock runs.

Every completion also completes the tournament, marks the winner row,
records prize rows and updates multiplayer ratings. Prize rows are
collected in ``pending_distributions`` so the caller can notify the payout
endpoint once the transaction has committed.

Usage:
    service = GameService(db)
    outcome = service.submit_move(game_id, "rWhite...", "e2e4")
    db.commit()
    service.dispatch_notifications()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import chess
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pollux.config import settings
from pollux.db.models import (
    STARTING_FEN,
    PrizeDistribution,
    Tournament,
    TournamentGame,
    TournamentPlayer,
    utc_now,
)
from pollux.errors import (
    ForbiddenError,
    GameNotActiveError,
    NotFoundError,
    NotYourTurnError,
    ValidationError,
)
from pollux.games.material import count_material
from pollux.games.prizes import PrizeNotifier, record_prize, record_refunds
from pollux.players.profiles import PlayerProfileService
from pollux.statuses import CANCELLED, COMPLETED, IN_PROGRESS, is_terminal, normalize_status

logger = logging.getLogger(__name__)

# result_reason values
CHECKMATE = "checkmate"
DRAW = "draw"
TIMEOUT = "timeout"
RESIGNATION = "resignation"
FORFEIT = "forfeit"
FIRST_MOVE_TIMEOUT = "first_move_timeout"
ABANDONED = "abandoned"

WHITE = "white"
BLACK = "black"


def opposite(side: str) -> str:
    return BLACK if side == WHITE else WHITE


def side_to_move(game: TournamentGame) -> str:
    return WHITE if chess.Board(game.fen).turn == chess.WHITE else BLACK


def parse_move(board: chess.Board, text: str) -> chess.Move:
    """
    Parse a move in UCI ("e2e4", "e7e8q") or SAN ("e4", "Nf3", "O-O").

    Raises:
        ValidationError: If the move is empty, unparsable or illegal here
    """
    text = (text or "").strip()
    if not text:
        raise ValidationError("Move required")

    try:
        move = board.parse_uci(text)
    except ValueError:
        try:
            move = board.parse_san(text)
        except ValueError:
            raise ValidationError("Illegal move", {"move": text}) from None

    # Both parsers hand back a null move for "0000"/"--"
    if not move or not board.is_legal(move):
        raise ValidationError("Illegal move", {"move": text})
    return move


@dataclass
class MoveOutcome:
    """
    Result of submit_move.

    applied is False when a timeout was enforced instead of the move;
    reason then says which. When the move was applied, reason is set only
    if it ended the game.
    """
    game: TournamentGame
    applied: bool
    reason: Optional[str] = None


@dataclass
class TimeoutCheck:
    game: TournamentGame
    changed: bool
    reason: Optional[str] = None


@dataclass
class ForfeitResult:
    tournament_id: str
    winner: str
    loser: str
    prize_pool: Decimal
    currency: str

    def to_dict(self) -> dict:
        return {
            "success": True,
            "tournamentId": self.tournament_id,
            "winner": self.winner,
            "loser": self.loser,
            "prizePool": str(self.prize_pool),
            "currency": self.currency,
        }


@dataclass
class ActiveGame:
    has_active_game: bool
    game_id: Optional[str] = None
    tournament_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "hasActiveGame": self.has_active_game,
            "gameId": self.game_id,
            "tournamentId": self.tournament_id,
        }


class GameService:
    """Creates, advances and ends tournament games."""

    def __init__(self, db: Session, notifier: Optional[PrizeNotifier] = None):
        self.db = db
        self.notifier = notifier
        self.pending_distributions: list[PrizeDistribution] = []

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_game(self, game_id: str, lock: bool = False) -> TournamentGame:
        query = self.db.query(TournamentGame).filter(TournamentGame.id == game_id)
        if lock:
            query = query.with_for_update()
        game = query.first()
        if game is None:
            raise NotFoundError("Game not found", {"gameId": game_id})
        return game

    def remaining_time(self, game: TournamentGame, side: str, now: Optional[datetime] = None) -> float:
        """Live clock for one side, in seconds, never negative."""
        now = now or utc_now()
        stored = game.white_time_remaining if side == WHITE else game.black_time_remaining

        running = (
            game.status == IN_PROGRESS
            and game.first_move_made
            and game.turn_started_at is not None
            and side == side_to_move(game)
        )
        if not running:
            return max(0.0, stored)

        elapsed = (now - game.turn_started_at).total_seconds()
        return max(0.0, stored - elapsed)

    def snapshot(self, game: TournamentGame, now: Optional[datetime] = None) -> dict:
        """Client view of a game with live clocks."""
        now = now or utc_now()
        return {
            "id": game.id,
            "tournamentId": game.tournament_id,
            "playerWhite": game.player_white,
            "playerBlack": game.player_black,
            "fen": game.fen,
            "moves": list(game.moves or []),
            "turn": side_to_move(game),
            "whiteTimeRemaining": self.remaining_time(game, WHITE, now),
            "blackTimeRemaining": self.remaining_time(game, BLACK, now),
            "firstMoveMade": game.first_move_made,
            "status": game.status,
            "result": game.result,
            "resultReason": game.result_reason,
            "winner": game.winner,
            "startedAt": game.started_at.isoformat() if game.started_at else None,
            "completedAt": game.completed_at.isoformat() if game.completed_at else None,
        }

    # =========================================================================
    # Creation
    # =========================================================================

    def create_for_tournament(
        self,
        tournament: Tournament,
        players: list[TournamentPlayer],
        now: Optional[datetime] = None,
    ) -> TournamentGame:
        """
        Pair the first two players (by join order) into a fresh game.

        Order 1 plays white, order 2 plays black.
        """
        now = now or utc_now()
        white, black = sorted(players, key=lambda p: p.player_order)[:2]

        game = TournamentGame(
            tournament_id=tournament.id,
            player_white=white.player_address,
            player_black=black.player_address,
            fen=STARTING_FEN,
            moves=[],
            white_time_remaining=settings.initial_clock_seconds,
            black_time_remaining=settings.initial_clock_seconds,
            turn_started_at=now,
            first_move_made=False,
            status=IN_PROGRESS,
            created_at=now,
            started_at=now,
        )
        self.db.add(game)
        self.db.flush()

        logger.info(
            "Game %s created for tournament %s: %s (white) vs %s (black)",
            game.id, tournament.id, game.player_white, game.player_black,
        )
        return game

    # =========================================================================
    # Play
    # =========================================================================

    def submit_move(
        self,
        game_id: str,
        player_address: str,
        move: str,
        now: Optional[datetime] = None,
    ) -> MoveOutcome:
        """
        Validate and apply a move.

        Timeouts are enforced before anything else touches the board, so a
        move sent after the flag fell is never applied.

        Raises:
            NotFoundError: Unknown game
            GameNotActiveError: Game already ended
            ForbiddenError: Caller is not one of the two players
            NotYourTurnError: It is the opponent's move
            ValidationError: Unparsable or illegal move
        """
        now = now or utc_now()
        game = self.get_game(game_id, lock=True)

        if game.status != IN_PROGRESS:
            raise GameNotActiveError(game.id, game.status)
        if player_address not in (game.player_white, game.player_black):
            raise ForbiddenError("Not a player in this game", {"gameId": game.id})

        reason = self.enforce_timeouts(game, now)
        if reason:
            return MoveOutcome(game=game, applied=False, reason=reason)

        board = chess.Board(game.fen)
        mover = WHITE if board.turn == chess.WHITE else BLACK
        if player_address != self._address_for(game, mover):
            raise NotYourTurnError(game.id)

        parsed = parse_move(board, move)

        if game.first_move_made:
            left = self.remaining_time(game, mover, now)
            if mover == WHITE:
                game.white_time_remaining = left
            else:
                game.black_time_remaining = left

        board.push(parsed)
        game.fen = board.fen()
        game.moves = [*(game.moves or []), parsed.uci()]
        game.turn_started_at = now
        game.first_move_made = True
        self.db.flush()

        logger.debug("Game %s: %s played %s", game.id, mover, parsed.uci())

        reason = self._detect_game_end(game, board, mover, now)
        return MoveOutcome(game=game, applied=True, reason=reason)

    def check_timeout(self, game_id: str, now: Optional[datetime] = None) -> TimeoutCheck:
        """Enforce the first-move timeout and the flag. Safe to call repeatedly."""
        now = now or utc_now()
        game = self.get_game(game_id, lock=True)
        if game.status != IN_PROGRESS:
            return TimeoutCheck(game=game, changed=False)

        reason = self.enforce_timeouts(game, now)
        return TimeoutCheck(game=game, changed=reason is not None, reason=reason)

    def resign(self, game_id: str, player_address: str, now: Optional[datetime] = None) -> TournamentGame:
        now = now or utc_now()
        game = self.get_game(game_id, lock=True)
        if game.status != IN_PROGRESS:
            raise GameNotActiveError(game.id, game.status)

        side = self._side_of(game, player_address)
        if side is None:
            raise ForbiddenError("Not a player in this game", {"gameId": game.id})

        self._finish(game, opposite(side), RESIGNATION, now)
        return game

    def enforce_timeouts(self, game: TournamentGame, now: datetime) -> Optional[str]:
        """
        End the game if a deadline has passed.

        Returns:
            FIRST_MOVE_TIMEOUT or TIMEOUT when the game was ended, else None
        """
        if not game.first_move_made:
            started = game.started_at or game.created_at
            waited = (now - started).total_seconds()
            if waited > settings.first_move_timeout_seconds:
                self._cancel(game, FIRST_MOVE_TIMEOUT, "No first move within time limit", now)
                return FIRST_MOVE_TIMEOUT
            return None

        side = side_to_move(game)
        if self.remaining_time(game, side, now) <= 0:
            if side == WHITE:
                game.white_time_remaining = 0.0
            else:
                game.black_time_remaining = 0.0
            self._finish(game, opposite(side), TIMEOUT, now)
            return TIMEOUT

        return None

    # =========================================================================
    # Tournament-level endings
    # =========================================================================

    def forfeit_tournament(
        self,
        player_address: str,
        tournament_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ForfeitResult:
        """
        Concede a running tournament to the opponent.

        Raises:
            ValidationError: Missing fields, or the tournament is not in progress
            NotFoundError: Unknown tournament or no opponent
            ForbiddenError: The player is not registered in the tournament
        """
        if not player_address or not tournament_id:
            raise ValidationError("Missing required fields")

        now = now or utc_now()
        reason = reason or "Player forfeited"

        tournament = (
            self.db.query(Tournament)
            .filter(Tournament.id == tournament_id)
            .with_for_update()
            .first()
        )
        if tournament is None:
            raise NotFoundError("Tournament not found", {"tournamentId": tournament_id})
        if normalize_status(tournament.status) != IN_PROGRESS:
            raise ValidationError(
                "Tournament not in progress",
                {"tournamentId": tournament_id, "status": tournament.status},
            )

        players = (
            self.db.query(TournamentPlayer)
            .filter(TournamentPlayer.tournament_id == tournament_id)
            .order_by(TournamentPlayer.player_order)
            .all()
        )
        loser_row = next((p for p in players if p.player_address == player_address), None)
        if loser_row is None:
            raise ForbiddenError("Player not registered in tournament", {"tournamentId": tournament_id})
        winner_row = next(
            (p for p in players if p.player_address != player_address and p.is_active), None
        )
        if winner_row is None:
            raise NotFoundError("Opponent not found", {"tournamentId": tournament_id})

        game = (
            self.db.query(TournamentGame)
            .filter(
                TournamentGame.tournament_id == tournament_id,
                TournamentGame.status == IN_PROGRESS,
            )
            .first()
        )
        if game is not None and self._side_of(game, player_address) is not None:
            self._finish(game, opposite(self._side_of(game, player_address)), FORFEIT, now,
                         distribution_type="forfeit")
        else:
            self._complete_tournament(tournament, winner_row.player_address, now)
            rows = record_prize(
                self.db, tournament, [winner_row.player_address], "forfeit", reason=FORFEIT
            )
            self.pending_distributions.extend(rows)

        tournament.forfeit_reason = reason
        loser_row.is_active = False
        loser_row.is_winner = False
        loser_row.forfeited = True
        loser_row.forfeited_at = now
        self.db.flush()

        logger.info(
            "Tournament %s forfeited by %s, %s wins %s %s",
            tournament_id, player_address, winner_row.player_address,
            tournament.prize_pool, tournament.currency,
        )
        return ForfeitResult(
            tournament_id=tournament_id,
            winner=winner_row.player_address,
            loser=player_address,
            prize_pool=tournament.prize_pool,
            currency=tournament.currency,
        )

    def abandon(self, game: TournamentGame, now: Optional[datetime] = None) -> None:
        """Cancel a game nobody finished; its tournament is cancelled too."""
        self._cancel(game, ABANDONED, "Game abandoned", now or utc_now())

    def check_player(self, player_address: str, now: Optional[datetime] = None) -> ActiveGame:
        """
        Report the player's running game, if any.

        Deadlines are enforced on the way, and a game still running past the
        stale cutoff is abandoned and reported as absent.
        """
        if not player_address:
            raise ValidationError("Address required")

        now = now or utc_now()
        game = (
            self.db.query(TournamentGame)
            .filter(
                TournamentGame.status == IN_PROGRESS,
                or_(
                    TournamentGame.player_white == player_address,
                    TournamentGame.player_black == player_address,
                ),
            )
            .order_by(TournamentGame.created_at.desc())
            .first()
        )
        if game is None:
            return ActiveGame(has_active_game=False)

        reason = self.enforce_timeouts(game, now)
        stale_cutoff = now - timedelta(minutes=settings.stale_game_minutes)
        if reason is None and game.created_at < stale_cutoff:
            logger.info("Game %s for %s is stale, abandoning", game.id, player_address)
            self.abandon(game, now)

        if game.status != IN_PROGRESS:
            return ActiveGame(has_active_game=False)
        return ActiveGame(has_active_game=True, game_id=game.id, tournament_id=game.tournament_id)

    # =========================================================================
    # Notifications
    # =========================================================================

    def dispatch_notifications(self) -> bool:
        """Send collected prize rows to the payout endpoint. Call after commit."""
        rows, self.pending_distributions = self.pending_distributions, []
        if not rows:
            return False
        notifier = self.notifier or PrizeNotifier()
        return notifier.notify(rows)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _address_for(game: TournamentGame, side: str) -> str:
        return game.player_white if side == WHITE else game.player_black

    @staticmethod
    def _side_of(game: TournamentGame, player_address: str) -> Optional[str]:
        if player_address == game.player_white:
            return WHITE
        if player_address == game.player_black:
            return BLACK
        return None

    def _detect_game_end(
        self,
        game: TournamentGame,
        board: chess.Board,
        mover: str,
        now: datetime,
    ) -> Optional[str]:
        if board.is_checkmate():
            self._finish(game, mover, CHECKMATE, now)
            return CHECKMATE

        if board.is_game_over(claim_draw=True):
            self._finish(game, count_material(board).result, DRAW, now)
            return DRAW

        return None

    def _complete_tournament(self, tournament: Tournament, winner: Optional[str], now: datetime) -> None:
        tournament.status = COMPLETED
        tournament.winner = winner
        tournament.completed_at = now

        if winner:
            row = (
                self.db.query(TournamentPlayer)
                .filter(
                    TournamentPlayer.tournament_id == tournament.id,
                    TournamentPlayer.player_address == winner,
                )
                .first()
            )
            if row is not None:
                row.is_winner = True
                row.won_at = now
        self.db.flush()

    def _finish(
        self,
        game: TournamentGame,
        result: str,
        reason: str,
        now: datetime,
        distribution_type: Optional[str] = None,
    ) -> None:
        """Complete the game and apply every completion side effect."""
        winner = self._address_for(game, result) if result in (WHITE, BLACK) else None

        game.status = COMPLETED
        game.result = result
        game.result_reason = reason
        game.winner = winner
        game.completed_at = now

        tournament = self.db.get(Tournament, game.tournament_id)
        self._complete_tournament(tournament, winner, now)

        if winner:
            recipients = [winner]
            distribution_type = distribution_type or "win"
        else:
            recipients = [game.player_white, game.player_black]
            distribution_type = distribution_type or "split"
        rows = record_prize(self.db, tournament, recipients, distribution_type, reason=reason)
        self.pending_distributions.extend(rows)

        logger.info(
            "Game %s completed: result=%s reason=%s winner=%s",
            game.id, result, reason, winner,
        )
        self._update_ratings(game, result)

    def _update_ratings(self, game: TournamentGame, result: str) -> None:
        try:
            with self.db.begin_nested():
                PlayerProfileService(self.db).record_multiplayer_result(
                    game.player_white, game.player_black, result
                )
        except SQLAlchemyError as exc:
            logger.warning("Rating update failed for game %s: %s", game.id, exc)

    def _cancel(self, game: TournamentGame, reason: str, tournament_reason: str, now: datetime) -> None:
        """Cancel the game and its tournament, and refund both entry fees."""
        game.status = CANCELLED
        game.result_reason = reason
        game.completed_at = now

        tournament = self.db.get(Tournament, game.tournament_id)
        if not is_terminal(tournament.status):
            tournament.status = CANCELLED
            tournament.cancelled_at = now
            tournament.cancelled_reason = tournament_reason

        entries = (
            self.db.query(TournamentPlayer)
            .filter(
                TournamentPlayer.tournament_id == tournament.id,
                TournamentPlayer.player_address.in_([game.player_white, game.player_black]),
            )
            .order_by(TournamentPlayer.player_order)
            .all()
        )
        rows = record_refunds(self.db, tournament, entries, reason=tournament_reason)
        self.pending_distributions.extend(rows)
        self.db.flush()

        logger.info("Game %s cancelled (%s), tournament %s cancelled", game.id, reason, tournament.id)
