"""Settings loading, validation and timezone lookup for HabitFocus.

Settings live in settings.yaml at the workspace root. They are read fresh
on every call so that edits take effect at the next timer operation.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habitcore.errors import InvalidInputError, PersistenceError
from habitcore.fileio import read_document, write_document
from habitcore.models import THEMES, AppSettings, PomodoroSettings
from habitcore.workspace import settings_path

logger = logging.getLogger(__name__)


def validate_pomodoro(settings: PomodoroSettings) -> list[str]:
    """Validate timer settings and return list of errors (empty if valid)."""
    errors = []
    for name in ("work_duration", "short_break_duration", "long_break_duration"):
        value = getattr(settings, name)
        if not isinstance(value, int) or value <= 0:
            errors.append(f"{name} must be a positive integer")
    if not isinstance(settings.long_break_interval, int) or settings.long_break_interval < 2:
        errors.append("long_break_interval must be an integer >= 2")
    if not 0 <= settings.sound_volume <= 1:
        errors.append("sound_volume must be between 0 and 1")
    return errors


def ensure_valid_pomodoro(settings: PomodoroSettings) -> PomodoroSettings:
    """Raise InvalidInputError listing every problem with *settings*."""
    errors = validate_pomodoro(settings)
    if errors:
        raise InvalidInputError("Invalid timer settings: " + "; ".join(errors))
    return settings


def load_settings(root: Path | None = None) -> AppSettings:
    """Load settings.yaml into an AppSettings model (defaults if missing)."""
    path = settings_path(root)
    data = read_document(path)
    try:
        return AppSettings.from_dict(data)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Bad value in {path}: {e}") from e


def save_settings(settings: AppSettings, root: Path | None = None) -> None:
    """Validate and save settings atomically."""
    ensure_valid_pomodoro(settings.pomodoro)
    if settings.theme not in THEMES:
        raise InvalidInputError(f"Invalid theme: {settings.theme}")
    write_document(settings_path(root), settings.to_dict())


def update_pomodoro(changes: dict[str, Any], root: Path | None = None) -> AppSettings:
    """Merge camelCase timer setting changes into settings.yaml."""
    settings = load_settings(root)
    merged = {**settings.pomodoro.to_dict(), **changes}
    settings.pomodoro = PomodoroSettings.from_dict(merged)
    save_settings(settings, root)
    return settings


def settings_provider(root: Path | None = None) -> Callable[[], PomodoroSettings]:
    """Return a callable the timer engine polls for current timer settings."""

    def _provide() -> PomodoroSettings:
        return load_settings(root).pomodoro

    return _provide


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Get user's timezone from settings.yaml, defaulting to UTC."""
    name = load_settings(root).timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r in settings, using UTC", name)
        return ZoneInfo("UTC")
