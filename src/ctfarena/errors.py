"""Domain error taxonomy.

Every error carries the user-facing message and the HTTP status it maps to.
The global handler in ``ctfarena.middleware.error_handler`` renders them as
the standard ``{success, message}`` envelope.
"""

from __future__ import annotations


class ArenaError(Exception):
    """Base class for expected, user-facing failures."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidToken(ArenaError):
    """Bearer token is malformed, badly signed, expired or of the wrong type."""

    status_code = 401
    default_message = "Not authorized, token failed"


class SessionExpired(ArenaError):
    """The challenge window is not active (never started, timed out, or terminated)."""

    status_code = 403
    default_message = "Challenge session expired"


class AlreadyCompleted(ArenaError):
    status_code = 400
    default_message = "Challenge already completed"


class ChallengeNotFound(ArenaError):
    status_code = 404
    default_message = "Challenge not found"


class IncorrectSolution(ArenaError):
    status_code = 400
    default_message = "Incorrect solution"


class UserNotFound(ArenaError):
    status_code = 404
    default_message = "User not found"


class TeamNotFound(ArenaError):
    status_code = 404
    default_message = "Team not found"


class HintNotFound(ArenaError):
    status_code = 404
    default_message = "Hint not found"


class AdminRequired(ArenaError):
    status_code = 403
    default_message = "Access denied: Admins only"


class StoreTransient(ArenaError):
    """Retryable storage failure (timeout, dropped connection, lock contention)."""

    status_code = 500
    default_message = "Server error"


class StoreInvariantViolation(ArenaError):
    """Persisted state contradicts itself, e.g. a dangling team reference mid-transaction."""

    status_code = 500
    default_message = "Server error"
