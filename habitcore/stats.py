"""Streak and calendar statistics over session history.

Every function here is a pure read of the sessions it is given. Only
completed work sessions count toward goals. A session belongs to the local
date of its start time in the user's timezone (see timeutil).
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Iterable

from habitcore.models import CalendarDay, CalendarHabitDay, DailyStats, Session, StreakResult
from habitcore.store import SessionRepository
from habitcore.timeutil import day_bounds, local_date, month_days

STREAK_WINDOW_DAYS = 365


# ── Grouping ──────────────────────────────────────────────────


def sessions_by_date(sessions: Iterable[Session], tz: tzinfo) -> dict[date, list[Session]]:
    """Group sessions by local start date."""
    grouped: dict[date, list[Session]] = defaultdict(list)
    for s in sessions:
        if s.start_time is not None:
            grouped[local_date(s.start_time, tz)].append(s)
    return dict(grouped)


def sessions_in_range(sessions: Iterable[Session], start: date, end: date, tz: tzinfo) -> list[Session]:
    """Sessions whose local start date falls in [start, end]."""
    return [
        s for s in sessions
        if s.start_time is not None and start <= local_date(s.start_time, tz) <= end
    ]


def completed_sessions_on(
    sessions: Iterable[Session],
    day: date,
    tz: tzinfo,
    habit_id: str | None = None,
) -> list[Session]:
    """Completed work sessions started on *day*, optionally for one habit."""
    return [
        s for s in sessions_in_range(sessions, day, day, tz)
        if s.is_completed_work and (habit_id is None or s.habit_id == habit_id)
    ]


def total_minutes_on(
    sessions: Iterable[Session],
    day: date,
    tz: tzinfo,
    habit_id: str | None = None,
) -> int:
    return sum(s.duration for s in completed_sessions_on(sessions, day, tz, habit_id))


# ── Streaks ───────────────────────────────────────────────────


def streak_from_sessions(
    sessions: Iterable[Session],
    target: int,
    today: date,
    tz: tzinfo,
    habit_id: str = "",
) -> StreakResult:
    """Current and longest goal-met runs within the 365 days ending today.

    current is the run ending exactly at today (0 when today's goal is not
    met yet); longest is the longest run anywhere in the window, including
    one still open at the window's far edge.
    """
    target = max(1, int(target))
    counts = Counter(
        local_date(s.start_time, tz)
        for s in sessions
        if s.is_completed_work and s.start_time is not None
    )

    current = 0
    longest = 0
    run = 0
    still_current = True
    last_met: date | None = None

    for offset in range(STREAK_WINDOW_DAYS):
        day = today - timedelta(days=offset)
        if counts.get(day, 0) >= target:
            run += 1
            if last_met is None:
                last_met = day
            if still_current:
                current = run
        else:
            still_current = False
            longest = max(longest, run)
            run = 0

    longest = max(longest, run, current)
    return StreakResult(current=current, longest=longest, habit_id=habit_id, last_completed_date=last_met)


# ── Daily stats ───────────────────────────────────────────────


def daily_stats(
    sessions: Iterable[Session],
    day: date,
    tz: tzinfo,
    habit_id: str | None = None,
    targets: dict[str, int] | None = None,
) -> list[DailyStats]:
    """Per-habit totals of completed work sessions on *day*.

    Without *habit_id*, only habits with at least one session appear.
    With it, exactly one (possibly zero) entry is returned.
    """
    targets = targets or {}
    done = completed_sessions_on(sessions, day, tz, habit_id)

    groups: dict[str, list[Session]] = defaultdict(list)
    if habit_id is not None:
        groups[habit_id] = []
    for s in done:
        groups[s.habit_id].append(s)

    out = []
    for hid, group in groups.items():
        out.append(DailyStats(
            date=day,
            habit_id=hid,
            sessions_completed=len(group),
            total_minutes=sum(s.duration for s in group),
            target_reached=len(group) >= max(1, targets.get(hid, 1)),
        ))
    return out


# ── Calendar ──────────────────────────────────────────────────


def calendar_days(
    sessions: Iterable[Session],
    month: date,
    habit_targets: list[tuple[str, int]],
    tz: tzinfo,
) -> list[CalendarDay]:
    """One CalendarDay per date of *month*, ascending, no gaps."""
    days = month_days(month)
    in_month = [
        s for s in sessions_in_range(sessions, days[0], days[-1], tz)
        if s.is_completed_work
    ]
    by_day = sessions_by_date(in_month, tz)

    out = []
    for day in days:
        day_sessions = by_day.get(day, [])
        per_habit = Counter(s.habit_id for s in day_sessions)
        habits = []
        for hid, target in habit_targets:
            completed = per_habit.get(hid, 0)
            rate = min(completed / target, 1.0) if target > 0 else 0.0
            habits.append(CalendarHabitDay(
                habit_id=hid,
                sessions_completed=completed,
                target_sessions=target,
                completion_rate=rate,
            ))
        out.append(CalendarDay(date=day, habits=habits, total_sessions=len(day_sessions)))
    return out


# ── Store-backed front ────────────────────────────────────────


class SessionAggregator:
    """Reads the session store on every call; nothing is cached."""

    def __init__(
        self,
        sessions: SessionRepository,
        tz: tzinfo,
        targets: dict[str, int] | None = None,
    ) -> None:
        self.sessions = sessions
        self.tz = tz
        self.targets = targets or {}

    @classmethod
    def for_workspace(cls, root: Path | None = None) -> SessionAggregator:
        from habitcore.habits import habit_targets
        from habitcore.settings import get_user_timezone
        from habitcore.store import JsonSessionStore

        return cls(JsonSessionStore(root), get_user_timezone(root), habit_targets(root))

    def today(self) -> date:
        return datetime.now(self.tz).date()

    def compute_streak(self, habit_id: str, target: int, today: date | None = None) -> StreakResult:
        return streak_from_sessions(
            self.sessions.list_by_habit(habit_id),
            target,
            today or self.today(),
            self.tz,
            habit_id=habit_id,
        )

    def compute_daily_stats(self, day: date, habit_id: str | None = None) -> list[DailyStats]:
        start, end = day_bounds(day, self.tz)
        return daily_stats(
            self.sessions.list_by_date_range(start, end),
            day,
            self.tz,
            habit_id=habit_id,
            targets=self.targets,
        )

    def compute_calendar(self, month: date, habit_targets: list[tuple[str, int]]) -> list[CalendarDay]:
        days = month_days(month)
        start, _ = day_bounds(days[0], self.tz)
        _, end = day_bounds(days[-1], self.tz)
        return calendar_days(self.sessions.list_by_date_range(start, end), month, habit_targets, self.tz)
