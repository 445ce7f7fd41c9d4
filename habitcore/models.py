"""Typed dataclasses for the HabitFocus data model.

All models use from_dict/to_dict for JSON/YAML serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
Timestamps are datetimes in Python and ISO-8601 strings on disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


SESSION_WORK = "work"
SESSION_BREAK = "break"
SESSION_TYPES = {SESSION_WORK, SESSION_BREAK}

PHASE_IDLE = "idle"
PHASE_WORK = "work"
PHASE_SHORT_BREAK = "shortBreak"
PHASE_LONG_BREAK = "longBreak"
BREAK_PHASES = {PHASE_SHORT_BREAK, PHASE_LONG_BREAK}

HABIT_CATEGORIES = {"health", "learning", "productivity", "personal", "fitness", "creative"}
THEMES = {"light", "dark", "system"}


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp (a trailing 'Z' is accepted); None stays None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    s = str(value)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="seconds")


# ── Habits ────────────────────────────────────────────────────


@dataclass
class Habit:
    id: str = ""
    name: str = ""
    description: str = ""
    color: str = "#3b82f6"
    category: str = "personal"
    target_sessions: int = 1  # per day
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Habit:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            description=str(d.get("description", "") or ""),
            color=str(d.get("color", "#3b82f6")),
            category=str(d.get("category", "personal")),
            target_sessions=int(d.get("targetSessions", d.get("target_sessions", 1))),
            is_active=bool(d.get("isActive", d.get("is_active", True))),
            created_at=parse_datetime(d.get("createdAt")),
            updated_at=parse_datetime(d.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "category": self.category,
            "targetSessions": self.target_sessions,
            "isActive": self.is_active,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        }
        if self.description:
            d["description"] = self.description
        return d


# ── Sessions ──────────────────────────────────────────────────


@dataclass
class Session:
    id: str = ""
    habit_id: str = ""  # empty for a break not tied to a habit
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: int = 0  # minutes: planned at creation, actual once closed
    completed: bool = False
    type: str = SESSION_WORK  # work, break
    notes: str = ""

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def is_completed_work(self) -> bool:
        return self.completed and self.type == SESSION_WORK

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Session:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            id=str(d.get("id", "")),
            habit_id=str(d.get("habitId", d.get("habit_id", "")) or ""),
            start_time=parse_datetime(d.get("startTime", d.get("start_time"))),
            end_time=parse_datetime(d.get("endTime", d.get("end_time"))),
            duration=int(d.get("duration", 0) or 0),
            completed=bool(d.get("completed", False)),
            type=str(d.get("type", SESSION_WORK)),
            notes=str(d.get("notes", "") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "habitId": self.habit_id,
            "startTime": format_datetime(self.start_time),
            "endTime": format_datetime(self.end_time),
            "duration": self.duration,
            "completed": self.completed,
            "type": self.type,
        }
        if self.notes:
            d["notes"] = self.notes
        return d


# ── Settings ──────────────────────────────────────────────────


@dataclass
class PomodoroSettings:
    work_duration: int = 25  # minutes
    short_break_duration: int = 5
    long_break_duration: int = 15
    long_break_interval: int = 4  # work sessions per long break
    auto_start_breaks: bool = False
    auto_start_work_sessions: bool = False
    sound_enabled: bool = True
    sound_volume: float = 0.7  # 0-1

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PomodoroSettings:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            work_duration=int(d.get("workDuration", 25)),
            short_break_duration=int(d.get("shortBreakDuration", 5)),
            long_break_duration=int(d.get("longBreakDuration", 15)),
            long_break_interval=int(d.get("longBreakInterval", 4)),
            auto_start_breaks=bool(d.get("autoStartBreaks", False)),
            auto_start_work_sessions=bool(d.get("autoStartWorkSessions", False)),
            sound_enabled=bool(d.get("soundEnabled", True)),
            sound_volume=float(d.get("soundVolume", 0.7)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "workDuration": self.work_duration,
            "shortBreakDuration": self.short_break_duration,
            "longBreakDuration": self.long_break_duration,
            "longBreakInterval": self.long_break_interval,
            "autoStartBreaks": self.auto_start_breaks,
            "autoStartWorkSessions": self.auto_start_work_sessions,
            "soundEnabled": self.sound_enabled,
            "soundVolume": self.sound_volume,
        }

    def duration_for(self, phase: str) -> int:
        """Configured minutes for a running phase."""
        if phase == PHASE_WORK:
            return self.work_duration
        if phase == PHASE_SHORT_BREAK:
            return self.short_break_duration
        if phase == PHASE_LONG_BREAK:
            return self.long_break_duration
        raise ValueError(f"No duration for phase: {phase!r}")


@dataclass
class NotificationSettings:
    enabled: bool = True
    session_complete: bool = True
    break_time: bool = True
    daily_goal_achieved: bool = True

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> NotificationSettings:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            enabled=bool(d.get("enabled", True)),
            session_complete=bool(d.get("sessionComplete", True)),
            break_time=bool(d.get("breakTime", True)),
            daily_goal_achieved=bool(d.get("dailyGoalAchieved", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "sessionComplete": self.session_complete,
            "breakTime": self.break_time,
            "dailyGoalAchieved": self.daily_goal_achieved,
        }


@dataclass
class AppSettings:
    timezone: str = "UTC"
    theme: str = "system"
    pomodoro: PomodoroSettings = field(default_factory=PomodoroSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AppSettings:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            timezone=str(d.get("timezone", "UTC")),
            theme=str(d.get("theme", "system")),
            pomodoro=PomodoroSettings.from_dict(d.get("pomodoro") or {}),
            notifications=NotificationSettings.from_dict(d.get("notifications") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "theme": self.theme,
            "pomodoro": self.pomodoro.to_dict(),
            "notifications": self.notifications.to_dict(),
        }


# ── Timer ─────────────────────────────────────────────────────


@dataclass
class TimerState:
    is_running: bool = False
    is_paused: bool = False
    current_session: Session | None = None
    time_remaining: int = 0  # whole seconds
    session_count: int = 0  # work sessions completed in the current window
    current_habit_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "isPaused": self.is_paused,
            "currentSession": self.current_session.to_dict() if self.current_session else None,
            "timeRemaining": self.time_remaining,
            "sessionCount": self.session_count,
            "currentHabitId": self.current_habit_id,
        }


# ── Aggregates ────────────────────────────────────────────────


@dataclass
class StreakResult:
    current: int = 0
    longest: int = 0
    habit_id: str = ""
    last_completed_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "habitId": self.habit_id,
            "currentStreak": self.current,
            "longestStreak": self.longest,
            "lastCompletedDate": self.last_completed_date.isoformat() if self.last_completed_date else None,
        }


@dataclass
class DailyStats:
    date: date
    habit_id: str = ""
    sessions_completed: int = 0
    total_minutes: int = 0
    target_reached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "habitId": self.habit_id,
            "sessionsCompleted": self.sessions_completed,
            "totalMinutes": self.total_minutes,
            "targetReached": self.target_reached,
        }


@dataclass
class CalendarHabitDay:
    habit_id: str = ""
    sessions_completed: int = 0
    target_sessions: int = 0
    completion_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "habitId": self.habit_id,
            "sessionsCompleted": self.sessions_completed,
            "targetSessions": self.target_sessions,
            "completionRate": round(self.completion_rate, 3),
        }


@dataclass
class CalendarDay:
    date: date
    habits: list[CalendarHabitDay] = field(default_factory=list)
    total_sessions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "habits": [h.to_dict() for h in self.habits],
            "totalSessions": self.total_sessions,
        }
