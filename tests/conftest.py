"""Shared test fixtures for HabitFocus tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml

from habitcore.models import PomodoroSettings
from habitcore.store import MemorySessionStore
from habitcore.timer import TimerEngine


class FakeClock:
    """Monotonic seconds plus a matching wall clock, advanced by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.seconds = 1000.0
        self.start = start or datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
        self._base = self.seconds

    def monotonic(self) -> float:
        return self.seconds

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.seconds - self._base)

    def advance(self, seconds: float) -> None:
        self.seconds += seconds


class RecordingNotifier:
    def __init__(self) -> None:
        self.played: list[str] = []

    def play(self, kind, context=None) -> None:
        self.played.append(kind)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> PomodoroSettings:
    return PomodoroSettings()


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(store, settings, clock, notifier) -> TimerEngine:
    """Engine over an in-memory store; mutate `settings` to reconfigure."""
    return TimerEngine(
        store,
        lambda: settings,
        notifier=notifier,
        clock=clock.monotonic,
        now=clock.now,
        auto_start_delay=1.0,
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with settings and two habits."""
    root = tmp_path / "workspace"
    (root / "data").mkdir(parents=True)

    settings = {
        "timezone": "UTC",
        "theme": "system",
        "pomodoro": {
            "workDuration": 25,
            "shortBreakDuration": 5,
            "longBreakDuration": 15,
            "longBreakInterval": 4,
            "autoStartBreaks": False,
            "autoStartWorkSessions": False,
            "soundEnabled": True,
            "soundVolume": 0.7,
        },
    }
    (root / "settings.yaml").write_text(
        yaml.dump(settings, default_flow_style=False), encoding="utf-8"
    )

    habits = {
        "habits": [
            {
                "id": "reading",
                "name": "Reading",
                "category": "learning",
                "targetSessions": 2,
                "isActive": True,
                "createdAt": "2026-01-01T08:00:00+00:00",
                "updatedAt": "2026-01-01T08:00:00+00:00",
            },
            {
                "id": "guitar",
                "name": "Guitar practice",
                "category": "creative",
                "targetSessions": 1,
                "isActive": True,
                "createdAt": "2026-01-01T08:00:00+00:00",
                "updatedAt": "2026-01-01T08:00:00+00:00",
            },
        ]
    }
    (root / "data" / "habits.yaml").write_text(
        yaml.dump(habits, default_flow_style=False), encoding="utf-8"
    )

    os.environ["HABITFOCUS_ROOT"] = str(root)
    yield root
    if "HABITFOCUS_ROOT" in os.environ:
        del os.environ["HABITFOCUS_ROOT"]
