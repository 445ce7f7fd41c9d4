"""Pomodoro timer engine for HabitFocus.

One engine instance owns at most one open session. States are Idle and
Running(phase, paused) with phase in work / shortBreak / longBreak.

The countdown is recomputed from a monotonic clock on every tick(), so the
caller may tick at any cadence (once a second from a UI loop, once per
HTTP request, after a laptop wakes up) without losing or double-counting
seconds. Paused time is not counted. A completion noticed late is recorded
as ending when the countdown actually reached zero.

Auto-chained starts (break after work, work after break) are queued as a
ScheduledStart handle and fired by a later tick() once their delay has
passed. stop() and any manual start cancel the handle.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable

from habitcore.errors import HabitFocusError, InvalidInputError, PersistenceError
from habitcore.hooks import NullNotifier, Notifier
from habitcore.models import (
    PHASE_IDLE,
    PHASE_LONG_BREAK,
    PHASE_SHORT_BREAK,
    PHASE_WORK,
    SESSION_BREAK,
    SESSION_WORK,
    PomodoroSettings,
    Session,
    TimerState,
)
from habitcore.settings import ensure_valid_pomodoro
from habitcore.store import SessionRepository
from habitcore.timeutil import elapsed_minutes, format_time, local_date

logger = logging.getLogger(__name__)

AUTO_START_DELAY = 1.0  # seconds

_BREAK_ALIASES = {
    "short": PHASE_SHORT_BREAK,
    "long": PHASE_LONG_BREAK,
    PHASE_SHORT_BREAK: PHASE_SHORT_BREAK,
    PHASE_LONG_BREAK: PHASE_LONG_BREAK,
}


def next_break_type(completed_work_sessions: int, long_break_interval: int) -> str:
    """Break that follows the n-th completed work session."""
    if long_break_interval < 2:
        raise InvalidInputError("long_break_interval must be an integer >= 2")
    if completed_work_sessions % long_break_interval == 0:
        return PHASE_LONG_BREAK
    return PHASE_SHORT_BREAK


@dataclass
class EngineWarning:
    kind: str  # not_found, persistence, auto_start, settings
    message: str
    session_id: str = ""


@dataclass
class ScheduledStart:
    """Pending auto-chained start; inert once cancelled."""

    action: str  # start_work, start_break
    argument: str
    due_at: float
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class TimerEngine:
    def __init__(
        self,
        sessions: SessionRepository,
        settings_provider: Callable[[], PomodoroSettings],
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
        auto_start_delay: float = AUTO_START_DELAY,
        on_warning: Callable[[EngineWarning], None] | None = None,
    ) -> None:
        self.sessions = sessions
        self.settings_provider = settings_provider
        self.notifier = notifier or NullNotifier()
        self.tz = tz or timezone.utc
        self.auto_start_delay = auto_start_delay
        self.on_warning = on_warning
        self._clock = clock
        self._now = now or (lambda: datetime.now(self.tz))

        self.state = TimerState()
        self.warnings: list[EngineWarning] = []

        self._active_phase: str | None = None
        self._last_finished: str | None = None
        self._next_break: str | None = None
        self._planned_seconds = 0
        self._elapsed_before_pause = 0.0
        self._resumed_at: float | None = None
        self._pending: ScheduledStart | None = None
        self._count_day: date | None = None
        self._last_settings = PomodoroSettings()

    # ── Commands ──────────────────────────────────────────────

    def start_work(self, habit_id: str | None) -> Session:
        """Open a work session for *habit_id*."""
        if not habit_id or not str(habit_id).strip():
            raise InvalidInputError("A habit id is required to start a work session")
        settings = self._settings()
        session = Session(
            habit_id=str(habit_id),
            duration=settings.work_duration,
            type=SESSION_WORK,
        )
        return self._begin(PHASE_WORK, session, settings)

    def start_break(self, kind: str) -> Session:
        """Open a short or long break ('short'/'long' or the phase names)."""
        phase = _BREAK_ALIASES.get(kind)
        if phase is None:
            raise InvalidInputError(f"Unknown break kind: {kind!r}")
        settings = self._settings()
        session = Session(
            habit_id=self.state.current_habit_id or "",
            duration=settings.duration_for(phase),
            type=SESSION_BREAK,
        )
        return self._begin(phase, session, settings)

    def pause(self) -> bool:
        """Toggle pause on the open session. Returns the new paused flag."""
        self.tick()
        if self.state.current_session is None or not self.state.is_running:
            return False
        if self.state.is_paused:
            self._resumed_at = self._clock()
            self.state.is_paused = False
        else:
            self._elapsed_before_pause = self._elapsed()
            self._resumed_at = None
            self.state.is_paused = True
        logger.debug("Timer %s", "paused" if self.state.is_paused else "resumed")
        return self.state.is_paused

    def stop(self) -> Session | None:
        """Abandon any open session and reset to idle.

        Returns the closed session, or None when nothing was open or the
        close could not be persisted (see warnings).
        """
        self._cancel_pending()
        closed = None
        session = self.state.current_session
        if session is not None and not session.completed:
            end = self._now()
            closed = self._close(session, completed=False, end=end)
        self.state = TimerState()
        self._active_phase = None
        self._last_finished = None
        self._next_break = None
        self._reset_countdown()
        logger.debug("Timer stopped")
        return closed

    def reset_session_count(self) -> None:
        self.state.session_count = 0

    def tick(self) -> bool:
        """Advance the countdown. Returns True if a phase completed now."""
        completed = False
        session = self.state.current_session
        if session is not None and self.state.is_running:
            remaining = max(0, self._planned_seconds - int(self._elapsed()))
            self.state.time_remaining = remaining
            if remaining == 0:
                self._complete(session)
                completed = True
        self._fire_due_start()
        return completed

    # ── Queries ───────────────────────────────────────────────

    def get_phase(self) -> str:
        if self.state.current_session is not None and self._active_phase:
            return self._active_phase
        if self._last_finished == SESSION_WORK and self._next_break:
            return self._next_break
        if self._last_finished == SESSION_BREAK:
            return PHASE_WORK
        return PHASE_IDLE

    def get_remaining_seconds(self) -> int:
        self._sync_remaining()
        return self.state.time_remaining

    def get_progress_percent(self) -> float:
        if self.state.current_session is None or not self._active_phase:
            return 0.0
        self._sync_remaining()
        try:
            settings = self._settings()
        except HabitFocusError:
            settings = self._last_settings
        total = settings.duration_for(self._active_phase) * 60
        if total <= 0:
            return 0.0
        pct = (total - self.state.time_remaining) / total * 100
        return max(0.0, min(100.0, pct))

    @property
    def session_count(self) -> int:
        return self.state.session_count

    @property
    def pending_auto_start(self) -> ScheduledStart | None:
        return self._pending

    def drain_warnings(self) -> list[EngineWarning]:
        out, self.warnings = self.warnings, []
        return out

    def snapshot(self) -> dict[str, Any]:
        remaining = self.get_remaining_seconds()
        return {
            "phase": self.get_phase(),
            "isRunning": self.state.is_running,
            "isPaused": self.state.is_paused,
            "timeRemaining": remaining,
            "display": format_time(remaining),
            "progress": round(self.get_progress_percent(), 1),
            "sessionCount": self.state.session_count,
            "currentHabitId": self.state.current_habit_id,
            "currentSession": self.state.current_session.to_dict() if self.state.current_session else None,
            "pendingAutoStart": self._pending.action if self._pending else None,
        }

    # ── Internals ─────────────────────────────────────────────

    def _settings(self) -> PomodoroSettings:
        try:
            provided = self.settings_provider()
        except HabitFocusError:
            raise
        except (OSError, TypeError, ValueError) as e:
            raise InvalidInputError(f"Cannot load timer settings: {e}") from e
        settings = ensure_valid_pomodoro(provided)
        self._last_settings = settings
        return settings

    def _begin(self, phase: str, session: Session, settings: PomodoroSettings) -> Session:
        session.start_time = self._now()
        try:
            created = self.sessions.create(session)
        except OSError as e:
            raise PersistenceError(f"Could not create session: {e}") from e

        # Only after the new record exists: close whatever was still open.
        self._cancel_pending()
        previous = self.state.current_session
        if previous is not None and not previous.completed:
            logger.info("Superseding open session %s", previous.id)
            self._close(previous, completed=False, end=session.start_time)

        planned = settings.duration_for(phase) * 60
        self.state.is_running = True
        self.state.is_paused = False
        self.state.current_session = created
        self.state.time_remaining = planned
        if phase == PHASE_WORK:
            self.state.current_habit_id = created.habit_id
        self._active_phase = phase
        self._planned_seconds = planned
        self._elapsed_before_pause = 0.0
        self._resumed_at = self._clock()
        logger.debug("Started %s session %s (%ss)", phase, created.id, planned)
        return created

    def _complete(self, session: Session) -> None:
        try:
            settings = self._settings()
        except HabitFocusError as e:
            self._warn("settings", f"Using last valid settings: {e}")
            settings = self._last_settings

        # The countdown may have hit zero well before this tick arrived.
        overshoot = max(0.0, self._elapsed() - self._planned_seconds)
        finished_at = self._clock() - overshoot
        end = self._now() - timedelta(seconds=overshoot)

        finished = self._active_phase
        self._close(session, completed=True, end=end)

        self.state.is_running = False
        self.state.is_paused = False
        self.state.current_session = None
        self.state.time_remaining = 0
        self._active_phase = None
        self._reset_countdown()

        if finished == PHASE_WORK:
            self._roll_count_window(end)
            self.state.session_count += 1
            self._next_break = next_break_type(self.state.session_count, settings.long_break_interval)
            self._last_finished = SESSION_WORK
            logger.info("Work session %s complete (#%d), next: %s",
                        session.id, self.state.session_count, self._next_break)
            self._notify("work_complete", settings, session)
            if settings.auto_start_breaks:
                self._schedule("start_break", self._next_break, finished_at)
        else:
            self._last_finished = SESSION_BREAK
            logger.info("Break session %s complete", session.id)
            self._notify("break_complete", settings, session)
            if settings.auto_start_work_sessions and self.state.current_habit_id:
                self._schedule("start_work", self.state.current_habit_id, finished_at)

    def _close(self, session: Session, completed: bool, end: datetime) -> Session | None:
        start = session.start_time or end
        changes = {
            "end_time": end,
            "completed": completed,
            "duration": elapsed_minutes(start, end),
        }
        try:
            updated = self.sessions.update(session.id, changes)
        except (HabitFocusError, OSError) as e:
            self._warn("persistence", f"Could not save session {session.id}: {e}", session.id)
            return None
        if updated is None:
            self._warn("not_found", f"Session {session.id} no longer exists in the store", session.id)
            return None
        return updated

    def _notify(self, kind: str, settings: PomodoroSettings, session: Session) -> None:
        if not settings.sound_enabled:
            return
        try:
            self.notifier.play(kind, {"sessionId": session.id, "habitId": session.habit_id,
                                      "volume": settings.sound_volume})
        except Exception as e:
            logger.warning("Notification %s failed: %s", kind, e)

    def _schedule(self, action: str, argument: str, since: float) -> None:
        self._cancel_pending()
        self._pending = ScheduledStart(action, argument, since + self.auto_start_delay)
        logger.debug("Scheduled %s(%s) in %ss", action, argument, self.auto_start_delay)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire_due_start(self) -> None:
        pending = self._pending
        if pending is None or pending.cancelled or self._clock() < pending.due_at:
            return
        self._pending = None
        try:
            if pending.action == "start_work":
                self.start_work(pending.argument)
            else:
                self.start_break(pending.argument)
        except Exception as e:
            self._warn("auto_start", f"Auto-start {pending.action} failed: {e}")

    def _warn(self, kind: str, message: str, session_id: str = "") -> None:
        warning = EngineWarning(kind, message, session_id)
        self.warnings.append(warning)
        logger.warning(message)
        if self.on_warning is not None:
            self.on_warning(warning)

    def _roll_count_window(self, when: datetime) -> None:
        today = local_date(when, self.tz)
        if self._count_day is not None and today != self._count_day:
            logger.info("New day %s, resetting session count", today)
            self.state.session_count = 0
        self._count_day = today

    def _elapsed(self) -> float:
        elapsed = self._elapsed_before_pause
        if self._resumed_at is not None:
            elapsed += max(0.0, self._clock() - self._resumed_at)
        return elapsed

    def _sync_remaining(self) -> None:
        if self.state.current_session is not None and self.state.is_running:
            self.state.time_remaining = max(0, self._planned_seconds - int(self._elapsed()))

    def _reset_countdown(self) -> None:
        self._planned_seconds = 0
        self._elapsed_before_pause = 0.0
        self._resumed_at = None
