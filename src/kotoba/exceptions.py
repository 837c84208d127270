"""Errors raised by the practice engine."""
from typing import Optional


class KotobaError(Exception):
    """Base class for practice engine errors."""


class NotFoundError(KotobaError, ValueError):
    """A referenced deck, video, section or item does not exist."""


class InvalidInputError(KotobaError, ValueError):
    """A submission was rejected before any scoring ran."""


class ConcurrentUpdateConflict(KotobaError):
    """A deck progress write lost the optimistic version check."""

    def __init__(self, user_id: str, deck_id: str, expected_version: int):
        super().__init__(
            f"Progress for user {user_id} on deck {deck_id} changed "
            f"(expected version {expected_version})"
        )
        self.user_id = user_id
        self.deck_id = deck_id
        self.expected_version = expected_version


class ProgressUpdateFailed(KotobaError):
    """A progress update kept conflicting and was abandoned."""

    def __init__(self, user_id: str, deck_id: str, attempts: int,
                 last_conflict: Optional[ConcurrentUpdateConflict] = None):
        super().__init__(
            f"Could not update progress for user {user_id} on deck {deck_id} "
            f"after {attempts} attempts"
        )
        self.user_id = user_id
        self.deck_id = deck_id
        self.attempts = attempts
        self.last_conflict = last_conflict
