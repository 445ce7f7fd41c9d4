"""Error kinds raised by the HabitFocus engines and stores."""

from __future__ import annotations


class HabitFocusError(Exception):
    """Base class for HabitFocus errors."""


class InvalidInputError(HabitFocusError, ValueError):
    """Rejected before any state change (missing habit id, bad settings)."""


class SessionNotFoundError(HabitFocusError, LookupError):
    """A session id the store no longer has."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class PersistenceError(HabitFocusError):
    """The record store rejected a read or write."""
