"""
Domain exceptions for Pollux.

Services raise these; the web layer turns them into JSON error envelopes
of the form ``{"error": message, **payload}`` with the class's status code.
"""

from typing import Any, Optional


class PolluxError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str, payload: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update(self.payload)
        return body


class ValidationError(PolluxError):
    """Missing or invalid request fields."""

    status_code = 400


class UnauthorizedError(PolluxError):
    status_code = 401


class ForbiddenError(PolluxError):
    """Caller is not allowed to act on this resource."""

    status_code = 403


class WalletMismatchError(ForbiddenError):
    """The wallet that signed the payment is not the logged-in wallet."""


class NotFoundError(PolluxError):
    status_code = 404


class ConflictError(PolluxError):
    """Request conflicts with the current state of a tournament or game."""

    status_code = 409


class TournamentFullError(ConflictError):
    def __init__(self, tournament_id: str):
        super().__init__(
            "Tournament is full, please retry",
            {"tournamentId": tournament_id, "retry": True},
        )


class AlreadyInTournamentError(ConflictError):
    def __init__(self, tournament_id: str, status: str):
        super().__init__(
            "Already in active tournament",
            {"success": False, "tournamentId": tournament_id, "status": status},
        )


class GameNotActiveError(ConflictError):
    def __init__(self, game_id: str, status: str):
        super().__init__(
            "Game is not in progress",
            {"gameId": game_id, "status": status},
        )


class NotYourTurnError(ConflictError):
    def __init__(self, game_id: str):
        super().__init__("Not your turn", {"gameId": game_id})


class UpstreamError(PolluxError):
    """The wallet provider (or another upstream) failed."""

    status_code = 502


class ConfigurationError(PolluxError):
    """Server is missing required configuration."""

    status_code = 500
