"""Time formatting and calendar-day helpers shared by the engines.

Day boundaries: a timestamp belongs to the calendar date it has in the
user's timezone. Naive timestamps are taken as already local.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, tzinfo


def format_time(seconds: int) -> str:
    """Seconds to MM:SS; the minutes field grows past 99."""
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    return f"{mins:02d}:{secs:02d}"


def to_local(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def local_date(value: datetime, tz: tzinfo) -> date:
    return to_local(value, tz).date()


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Inclusive [start, end] of *day* in *tz*."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time.max, tzinfo=tz)
    return start, end


def month_days(month: date) -> list[date]:
    """Every date of the month containing *month*, ascending."""
    n = calendar.monthrange(month.year, month.month)[1]
    first = month.replace(day=1)
    return [first + timedelta(days=i) for i in range(n)]


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two timestamps, rounded half-up, never negative."""
    if start.tzinfo is None and end.tzinfo is not None:
        start = start.replace(tzinfo=end.tzinfo)
    elif start.tzinfo is not None and end.tzinfo is None:
        end = end.replace(tzinfo=start.tzinfo)
    seconds = max(0.0, (end - start).total_seconds())
    return int(seconds / 60 + 0.5)
