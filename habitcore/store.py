"""Session persistence for HabitFocus.

The timer engine only needs the SessionRepository protocol. Two
implementations ship here: a JSON file store under the workspace and an
in-memory store for embedding and tests.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import string
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from habitcore.errors import InvalidInputError, PersistenceError, SessionNotFoundError
from habitcore.fileio import read_document, write_document
from habitcore.models import Session
from habitcore.workspace import sessions_path

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
_SESSION_FIELDS = {f.name for f in dataclasses.fields(Session)}


def generate_id() -> str:
    """Return '<epoch ms>-<9 base36 chars>'."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


class SessionRepository(Protocol):
    """Record store the engines read and write sessions through."""

    def create(self, session: Session) -> Session:
        """Persist a new session, assigning an id if it has none."""
        ...

    def update(self, session_id: str, changes: dict[str, Any]) -> Session | None:
        """Apply partial field changes; None when the id is unknown."""
        ...

    def get(self, session_id: str) -> Session | None:
        ...

    def list_all(self) -> list[Session]:
        ...

    def list_by_habit(self, habit_id: str) -> list[Session]:
        ...

    def list_by_date_range(self, start: datetime, end: datetime) -> list[Session]:
        """Sessions whose start time falls in [start, end]; bounds must be tz-aware."""
        ...

    def delete_by_habit(self, habit_id: str) -> int:
        ...


def _check_bounds(start: datetime, end: datetime) -> None:
    if start.tzinfo is None or end.tzinfo is None:
        raise InvalidInputError("Date range bounds must be timezone-aware")


def _in_range(session: Session, start: datetime, end: datetime) -> bool:
    st = session.start_time
    if st is None:
        return False
    # Naive timestamps are local wall time in the bound's zone.
    if st.tzinfo is None:
        st = st.replace(tzinfo=start.tzinfo)
    return start <= st <= end


def _apply_changes(session: Session, changes: dict[str, Any]) -> Session:
    unknown = set(changes) - _SESSION_FIELDS
    if unknown:
        raise InvalidInputError(f"Unknown session fields: {', '.join(sorted(unknown))}")
    return dataclasses.replace(session, **changes)


# ── In-memory ─────────────────────────────────────────────────


class MemorySessionStore:
    """Process-local session store."""

    def __init__(self, sessions: list[Session] | None = None) -> None:
        self._sessions: dict[str, Session] = {}
        for s in sessions or []:
            self.create(s)

    def create(self, session: Session) -> Session:
        if not session.id:
            session = dataclasses.replace(session, id=generate_id())
        self._sessions[session.id] = session
        return session

    def update(self, session_id: str, changes: dict[str, Any]) -> Session | None:
        current = self._sessions.get(session_id)
        if current is None:
            return None
        updated = _apply_changes(current, changes)
        self._sessions[session_id] = updated
        return updated

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list_all(self) -> list[Session]:
        return list(self._sessions.values())

    def list_by_habit(self, habit_id: str) -> list[Session]:
        return [s for s in self._sessions.values() if s.habit_id == habit_id]

    def list_by_date_range(self, start: datetime, end: datetime) -> list[Session]:
        _check_bounds(start, end)
        return [s for s in self._sessions.values() if _in_range(s, start, end)]

    def delete_by_habit(self, habit_id: str) -> int:
        doomed = [sid for sid, s in self._sessions.items() if s.habit_id == habit_id]
        for sid in doomed:
            del self._sessions[sid]
        return len(doomed)


# ── JSON file ─────────────────────────────────────────────────


class JsonSessionStore:
    """Sessions kept in <root>/data/sessions.json, rewritten atomically."""

    def __init__(self, root: Path | None = None) -> None:
        self.path = sessions_path(root)

    def _load(self) -> list[Session]:
        data = read_document(self.path)
        try:
            return [Session.from_dict(s) for s in (data.get("sessions") or [])]
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Bad session record in {self.path}: {e}") from e

    def _save(self, sessions: list[Session]) -> None:
        write_document(self.path, {"sessions": [s.to_dict() for s in sessions]})

    def create(self, session: Session) -> Session:
        if not session.id:
            session = dataclasses.replace(session, id=generate_id())
        sessions = self._load()
        sessions.append(session)
        self._save(sessions)
        logger.debug("Created %s session %s", session.type, session.id)
        return session

    def update(self, session_id: str, changes: dict[str, Any]) -> Session | None:
        sessions = self._load()
        for i, s in enumerate(sessions):
            if s.id == session_id:
                sessions[i] = _apply_changes(s, changes)
                self._save(sessions)
                logger.debug("Updated session %s: %s", session_id, sorted(changes))
                return sessions[i]
        return None

    def get(self, session_id: str) -> Session | None:
        for s in self._load():
            if s.id == session_id:
                return s
        return None

    def list_all(self) -> list[Session]:
        return self._load()

    def list_by_habit(self, habit_id: str) -> list[Session]:
        return [s for s in self._load() if s.habit_id == habit_id]

    def list_by_date_range(self, start: datetime, end: datetime) -> list[Session]:
        _check_bounds(start, end)
        return [s for s in self._load() if _in_range(s, start, end)]

    def delete_by_habit(self, habit_id: str) -> int:
        sessions = self._load()
        kept = [s for s in sessions if s.habit_id != habit_id]
        removed = len(sessions) - len(kept)
        if removed:
            self._save(kept)
        return removed

    def replace_all(self, sessions: list[Session]) -> None:
        self._save(sessions)


# ── Export / import ───────────────────────────────────────────


def export_data(root: Path | None = None) -> dict[str, Any]:
    """Snapshot habits, sessions and settings as one JSON-able dict."""
    from habitcore.habits import load_habits
    from habitcore.settings import load_settings

    return {
        "habits": [h.to_dict() for h in load_habits(root)],
        "sessions": [s.to_dict() for s in JsonSessionStore(root).list_all()],
        "settings": load_settings(root).to_dict(),
        "exportDate": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }


def import_data(data: dict[str, Any], root: Path | None = None) -> dict[str, int]:
    """Replace whichever of habits/sessions/settings *data* carries."""
    from habitcore.habits import save_habits
    from habitcore.models import AppSettings, Habit
    from habitcore.settings import save_settings

    counts = {"habits": 0, "sessions": 0, "settings": 0}
    if data.get("habits"):
        habits = [Habit.from_dict(h) for h in data["habits"]]
        save_habits(habits, root)
        counts["habits"] = len(habits)
    if data.get("sessions"):
        sessions = [Session.from_dict(s) for s in data["sessions"]]
        JsonSessionStore(root).replace_all(sessions)
        counts["sessions"] = len(sessions)
    if data.get("settings"):
        save_settings(AppSettings.from_dict(data["settings"]), root)
        counts["settings"] = 1
    logger.info("Imported %s", counts)
    return counts


def update_session(store: SessionRepository, session_id: str, changes: dict[str, Any]) -> Session:
    """Like store.update, but a missing id raises SessionNotFoundError."""
    updated = store.update(session_id, changes)
    if updated is None:
        raise SessionNotFoundError(session_id)
    return updated
