"""Workspace layout for HabitFocus.

    <root>/settings.yaml       AppSettings
    <root>/hooks.yaml          notification hooks (optional)
    <root>/data/habits.yaml    habits
    <root>/data/sessions.json  session history
"""

from __future__ import annotations

import os
from pathlib import Path

ROOT_ENV = "HABITFOCUS_ROOT"
DEFAULT_ROOT = Path.home() / "habitfocus"


def workspace_root() -> Path:
    """Workspace directory from $HABITFOCUS_ROOT, else ~/habitfocus."""
    return Path(os.environ.get(ROOT_ENV, str(DEFAULT_ROOT))).expanduser().resolve()


def _resolve(root: Path | None) -> Path:
    return workspace_root() if root is None else Path(root)


def data_dir(root: Path | None = None) -> Path:
    return _resolve(root) / "data"


def settings_path(root: Path | None = None) -> Path:
    return _resolve(root) / "settings.yaml"


def hooks_config_path(root: Path | None = None) -> Path:
    return _resolve(root) / "hooks.yaml"


def habits_path(root: Path | None = None) -> Path:
    return data_dir(root) / "habits.yaml"


def sessions_path(root: Path | None = None) -> Path:
    return data_dir(root) / "sessions.json"
