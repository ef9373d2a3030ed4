# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions for the pair-matching domain.

Session-start and per-attempt errors are local and recoverable: the caller
retries the single operation or aborts the session cleanly. Unlock
propagation errors are degraded-but-safe: the player's completion stands
and the unlock is retried later.
"""

from typing import Any


class PairMatchingError(Exception):
    """Base exception for pair-matching errors.

    Attributes:
        message: Error description.
        details: Additional error details.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NoContentError(PairMatchingError):
    """Raised when a game has no pairs to play.

    The session must not be started and the error is not retried.
    """

    def __init__(self, game_id: str) -> None:
        super().__init__(
            f"No content available for game {game_id}",
            details={"game_id": game_id},
        )
        self.game_id = game_id


class AttemptPersistenceError(PairMatchingError):
    """Raised when recording a match attempt failed.

    Session counters never advance past what is durably recorded, so the
    caller can retry the single attempt without restarting the session.
    """

    pass


class SessionPersistenceError(PairMatchingError):
    """Raised when a session row could not be created or finalized."""

    pass


class UnlockPropagationError(PairMatchingError):
    """Raised when unlocking the next game failed after completion was recorded."""

    pass


class ConcurrentProgressConflict(PairMatchingError):
    """Raised by a progress store when two writers raced on the same row.

    Resolved by the store through a keep-max merge, never surfaced to players.
    """

    pass


class GameNotFoundError(PairMatchingError):
    """Raised when a game is not in the catalog."""

    pass


class GameLockedError(PairMatchingError):
    """Raised when a player tries to start a game that is not unlocked yet."""

    pass


class SessionNotFoundError(PairMatchingError):
    """Raised when a match session is not found."""

    pass


class SessionNotActiveError(PairMatchingError):
    """Raised when trying to operate on a session that left the active state."""

    pass


class UnknownItemError(PairMatchingError):
    """Raised when an attempt references an item that is not on the board."""

    pass


class SessionDataVersionError(PairMatchingError):
    """Raised when stored session data has an unsupported schema version."""

    pass
