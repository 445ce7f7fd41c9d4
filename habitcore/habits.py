"""Habit CRUD and validation for HabitFocus."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from habitcore.errors import InvalidInputError
from habitcore.fileio import read_document, write_document
from habitcore.models import HABIT_CATEGORIES, Habit
from habitcore.store import JsonSessionStore, generate_id
from habitcore.workspace import habits_path


# ── Validation ────────────────────────────────────────────────


def validate_habit(habit: dict[str, Any]) -> list[str]:
    """Validate habit schema and return list of errors (empty if valid)."""
    errors = []
    if not str(habit.get("name", "")).strip():
        errors.append("Missing required field: name")
    target = habit.get("targetSessions", 1)
    if not isinstance(target, int) or isinstance(target, bool) or target < 1:
        errors.append("targetSessions must be an integer >= 1")
    if "category" in habit and habit["category"] not in HABIT_CATEGORIES:
        errors.append(f"Invalid category: {habit['category']}")
    return errors


# ── CRUD ──────────────────────────────────────────────────────


def load_habits(root: Path | None = None) -> list[Habit]:
    """Load habits.yaml into Habit models."""
    data = read_document(habits_path(root))
    return [Habit.from_dict(h) for h in (data.get("habits") or [])]


def save_habits(habits: list[Habit], root: Path | None = None) -> None:
    """Save habits back to habits.yaml atomically."""
    write_document(habits_path(root), {"habits": [h.to_dict() for h in habits]})


def find_habit(habits: list[Habit], habit_id: str) -> Habit | None:
    for h in habits:
        if h.id == habit_id:
            return h
    return None


def get_habit(habit_id: str, root: Path | None = None) -> Habit | None:
    return find_habit(load_habits(root), habit_id)


def list_habits(
    root: Path | None = None,
    active_only: bool = False,
    category: str | None = None,
) -> list[Habit]:
    habits = load_habits(root)
    if active_only:
        habits = [h for h in habits if h.is_active]
    if category is not None:
        habits = [h for h in habits if h.category == category]
    return habits


def add_habit(data: dict[str, Any], root: Path | None = None) -> Habit:
    """Create a habit from camelCase fields. Raises InvalidInputError."""
    errors = validate_habit(data)
    if errors:
        raise InvalidInputError("; ".join(errors))

    now = datetime.now(timezone.utc)
    habit = Habit.from_dict({**data, "id": data.get("id") or generate_id()})
    habit.created_at = now
    habit.updated_at = now

    habits = load_habits(root)
    if find_habit(habits, habit.id):
        raise InvalidInputError(f"Habit {habit.id!r} already exists")
    habits.append(habit)
    save_habits(habits, root)
    return habit


def update_habit(habit_id: str, changes: dict[str, Any], root: Path | None = None) -> Habit | None:
    """Apply camelCase field changes. Returns None when the habit is unknown."""
    habits = load_habits(root)
    habit = find_habit(habits, habit_id)
    if habit is None:
        return None

    merged = {**habit.to_dict(), **changes, "id": habit.id}
    errors = validate_habit(merged)
    if errors:
        raise InvalidInputError("; ".join(errors))

    updated = Habit.from_dict(merged)
    updated.created_at = habit.created_at
    updated.updated_at = datetime.now(timezone.utc)
    habits[habits.index(habit)] = updated
    save_habits(habits, root)
    return updated


def delete_habit(habit_id: str, root: Path | None = None) -> bool:
    """Delete a habit and its sessions. Returns False if it did not exist."""
    habits = load_habits(root)
    kept = [h for h in habits if h.id != habit_id]
    if len(kept) == len(habits):
        return False
    save_habits(kept, root)
    JsonSessionStore(root).delete_by_habit(habit_id)
    return True


def habit_targets(root: Path | None = None) -> dict[str, int]:
    """Map habit id to daily target sessions."""
    return {h.id: h.target_sessions for h in load_habits(root)}
