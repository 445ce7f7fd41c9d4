"""Tests for habitcore/timer.py — timer state machine and countdown."""

from datetime import timedelta

import pytest

from habitcore.errors import InvalidInputError, PersistenceError
from habitcore.store import JsonSessionStore, MemorySessionStore
from habitcore.settings import settings_provider
from habitcore.timer import TimerEngine, next_break_type
from habitcore.timeutil import format_time


class CountingStore(MemorySessionStore):
    def __init__(self):
        super().__init__()
        self.update_calls = 0

    def update(self, session_id, changes):
        self.update_calls += 1
        return super().update(session_id, changes)


class BrokenCreateStore(MemorySessionStore):
    def create(self, session):
        raise PersistenceError("disk full")


class BrokenUpdateStore(MemorySessionStore):
    def update(self, session_id, changes):
        raise PersistenceError("disk full")


def _engine(store, settings, clock, notifier=None):
    return TimerEngine(store, lambda: settings, notifier=notifier,
                       clock=clock.monotonic, now=clock.now)


def _finish_work(engine, clock, settings, habit_id="reading"):
    engine.start_work(habit_id)
    clock.advance(settings.work_duration * 60)
    assert engine.tick() is True


# ── Starting and stopping ────────────────────────────────────


def test_start_work_opens_session(engine, store):
    session = engine.start_work("reading")
    assert store.get(session.id).is_open
    assert session.type == "work"
    assert session.duration == 25
    assert engine.get_phase() == "work"
    assert engine.get_remaining_seconds() == 25 * 60
    assert engine.state.is_running is True
    assert engine.state.current_habit_id == "reading"


@pytest.mark.parametrize("habit_id", ["", None, "   "])
def test_start_work_requires_habit(engine, store, habit_id):
    with pytest.raises(InvalidInputError):
        engine.start_work(habit_id)
    assert store.list_all() == []
    assert engine.get_phase() == "idle"
    assert engine.state.is_running is False


def test_start_then_stop_records_incomplete_session(engine, store):
    engine.start_work("reading")
    closed = engine.stop()

    sessions = store.list_by_habit("reading")
    assert len(sessions) == 1
    assert sessions[0].completed is False
    assert sessions[0].duration == 0
    assert sessions[0].end_time is not None
    assert closed.id == sessions[0].id
    assert engine.get_phase() == "idle"


def test_stop_resets_count_and_habit(engine, clock, settings):
    _finish_work(engine, clock, settings)
    assert engine.session_count == 1
    engine.stop()
    assert engine.session_count == 0
    assert engine.state.current_habit_id is None
    assert engine.get_phase() == "idle"


def test_pause_and_stop_on_idle_are_noops(engine, store):
    assert engine.pause() is False
    assert engine.stop() is None
    assert store.list_all() == []
    assert engine.warnings == []


def test_start_work_supersedes_open_session(engine, store, clock):
    first = engine.start_work("reading")
    clock.advance(60)
    second = engine.start_work("guitar")

    old = store.get(first.id)
    assert old.completed is False
    assert old.end_time is not None
    assert old.duration == 1
    assert store.get(second.id).is_open
    assert engine.state.current_session.id == second.id


# ── Countdown ────────────────────────────────────────────────


def test_countdown_follows_clock(engine, clock):
    engine.start_work("reading")
    clock.advance(10)
    engine.tick()
    assert engine.get_remaining_seconds() == 1490
    clock.advance(0.5)
    engine.tick()
    assert engine.get_remaining_seconds() == 1490


def test_coarse_ticks_do_not_lose_seconds(engine, clock):
    engine.start_work("reading")
    clock.advance(600)
    engine.tick()
    assert engine.get_remaining_seconds() == 900


def test_pause_freezes_countdown(engine, clock):
    engine.start_work("reading")
    clock.advance(100)
    assert engine.pause() is True
    clock.advance(500)
    engine.tick()
    assert engine.get_remaining_seconds() == 1400
    assert engine.state.is_running is True

    assert engine.pause() is False
    clock.advance(100)
    assert engine.get_remaining_seconds() == 1300


def test_progress_percent(engine, clock, settings):
    assert engine.get_progress_percent() == 0.0
    engine.start_work("reading")
    clock.advance(750)
    assert engine.get_progress_percent() == pytest.approx(50.0)

    # Measured against the currently configured work duration
    settings.work_duration = 50
    assert engine.get_progress_percent() == pytest.approx(75.0)


@pytest.mark.parametrize("seconds,expected", [
    (0, "00:00"),
    (65, "01:05"),
    (1500, "25:00"),
    (6000, "100:00"),
])
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


# ── Completion ───────────────────────────────────────────────


def test_work_completion(engine, store, clock, notifier):
    session = engine.start_work("reading")
    clock.advance(1500)
    assert engine.tick() is True

    saved = store.get(session.id)
    assert saved.completed is True
    assert saved.duration == 25
    assert saved.end_time == saved.start_time + timedelta(minutes=25)
    assert engine.state.is_running is False
    assert engine.state.current_session is None
    assert engine.session_count == 1
    assert engine.get_phase() == "shortBreak"
    assert notifier.played == ["work_complete"]


def test_completion_fires_once(settings, clock):
    store = CountingStore()
    engine = _engine(store, settings, clock)
    engine.start_work("reading")
    clock.advance(1500)
    assert engine.tick() is True
    assert engine.tick() is False
    clock.advance(30)
    assert engine.tick() is False

    assert store.update_calls == 1
    assert engine.session_count == 1


def test_break_sequence_with_interval_four(engine, clock, settings):
    phases = []
    for _ in range(4):
        _finish_work(engine, clock, settings)
        phases.append(engine.get_phase())
    assert phases == ["shortBreak", "shortBreak", "shortBreak", "longBreak"]


@pytest.mark.parametrize("n,k,expected", [
    (1, 2, "shortBreak"),
    (2, 2, "longBreak"),
    (3, 4, "shortBreak"),
    (4, 4, "longBreak"),
    (8, 4, "longBreak"),
    (9, 3, "longBreak"),
    (10, 3, "shortBreak"),
])
def test_next_break_type(n, k, expected):
    assert next_break_type(n, k) == expected


@pytest.mark.parametrize("k", [1, 0, -4])
def test_next_break_type_rejects_bad_interval(k):
    with pytest.raises(InvalidInputError):
        next_break_type(3, k)


def test_break_session_follows_last_habit(engine, store, clock, settings, notifier):
    _finish_work(engine, clock, settings)
    brk = engine.start_break("short")
    assert brk.habit_id == "reading"
    assert brk.type == "break"
    assert brk.duration == 5
    assert engine.get_phase() == "shortBreak"
    assert engine.get_remaining_seconds() == 300

    clock.advance(300)
    assert engine.tick() is True
    assert store.get(brk.id).completed is True
    assert engine.get_phase() == "work"
    assert notifier.played == ["work_complete", "break_complete"]


def test_long_break_accepts_phase_name(engine):
    session = engine.start_break("longBreak")
    assert session.habit_id == ""
    assert engine.get_phase() == "longBreak"
    assert engine.get_remaining_seconds() == 15 * 60


def test_start_break_rejects_unknown_kind(engine, store):
    with pytest.raises(InvalidInputError):
        engine.start_break("nap")
    assert store.list_all() == []


def test_invalid_settings_rejected_before_mutation(engine, store, settings):
    settings.long_break_interval = 0
    with pytest.raises(InvalidInputError):
        engine.start_work("reading")
    assert store.list_all() == []
    assert engine.get_phase() == "idle"


def test_sound_disabled_skips_notification(engine, clock, settings, notifier):
    settings.sound_enabled = False
    _finish_work(engine, clock, settings)
    assert notifier.played == []


def test_notifier_failure_does_not_propagate(store, settings, clock):
    class Exploding:
        def play(self, kind, context=None):
            raise RuntimeError("no audio device")

    engine = _engine(store, settings, clock, notifier=Exploding())
    _finish_work(engine, clock, settings)
    assert engine.get_phase() == "shortBreak"


# ── Session-count window ─────────────────────────────────────


def test_session_count_rolls_over_at_midnight(engine, clock, settings):
    _finish_work(engine, clock, settings)
    _finish_work(engine, clock, settings)
    assert engine.session_count == 2

    clock.advance(24 * 3600)
    _finish_work(engine, clock, settings)
    assert engine.session_count == 1


def test_reset_session_count(engine, clock, settings):
    _finish_work(engine, clock, settings)
    engine.reset_session_count()
    assert engine.session_count == 0


# ── Auto-chaining ────────────────────────────────────────────


def test_auto_start_break_after_delay(engine, clock, settings):
    settings.auto_start_breaks = True
    _finish_work(engine, clock, settings)
    assert engine.pending_auto_start is not None
    assert engine.state.is_running is False

    clock.advance(0.5)
    engine.tick()
    assert engine.state.is_running is False

    clock.advance(0.5)
    engine.tick()
    assert engine.state.is_running is True
    assert engine.get_phase() == "shortBreak"
    assert engine.state.current_session.type == "break"
    assert engine.pending_auto_start is None


def test_stop_cancels_pending_auto_start(engine, store, clock, settings):
    settings.auto_start_breaks = True
    _finish_work(engine, clock, settings)
    handle = engine.pending_auto_start

    engine.stop()
    assert handle.cancelled is True
    clock.advance(5)
    engine.tick()
    assert engine.state.is_running is False
    assert engine.get_phase() == "idle"
    assert len(store.list_all()) == 1


def test_manual_start_cancels_pending_auto_start(engine, clock, settings):
    settings.auto_start_breaks = True
    _finish_work(engine, clock, settings)
    handle = engine.pending_auto_start

    engine.start_work("guitar")
    assert handle.cancelled is True
    clock.advance(5)
    engine.tick()
    assert engine.get_phase() == "work"


def test_auto_start_work_after_break(engine, store, clock, settings):
    settings.auto_start_work_sessions = True
    _finish_work(engine, clock, settings)
    engine.start_break("short")
    clock.advance(300)
    engine.tick()
    clock.advance(1)
    engine.tick()

    assert engine.get_phase() == "work"
    assert engine.state.current_session.habit_id == "reading"
    assert len(store.list_all()) == 3


def test_auto_start_failure_becomes_warning(engine, clock, settings):
    settings.auto_start_breaks = True
    _finish_work(engine, clock, settings)
    settings.long_break_interval = 0

    clock.advance(1)
    engine.tick()
    assert engine.state.is_running is False
    kinds = [w.kind for w in engine.drain_warnings()]
    assert kinds == ["auto_start"]
    assert engine.warnings == []


# ── Persistence failures ─────────────────────────────────────


def test_create_failure_keeps_engine_idle(settings, clock):
    engine = _engine(BrokenCreateStore(), settings, clock)
    with pytest.raises(PersistenceError):
        engine.start_work("reading")
    assert engine.state.is_running is False
    assert engine.state.current_session is None
    assert engine.get_phase() == "idle"


def test_close_failure_still_completes_transition(settings, clock):
    store = BrokenUpdateStore()
    engine = _engine(store, settings, clock)
    engine.start_work("reading")
    clock.advance(1500)
    assert engine.tick() is True

    assert engine.get_phase() == "shortBreak"
    assert engine.state.current_session is None
    assert [w.kind for w in engine.warnings] == ["persistence"]


def test_stop_with_missing_record_warns(engine, store):
    session = engine.start_work("reading")
    store.delete_by_habit("reading")

    assert engine.stop() is None
    assert engine.get_phase() == "idle"
    warnings = engine.drain_warnings()
    assert len(warnings) == 1
    assert warnings[0].kind == "not_found"
    assert warnings[0].session_id == session.id


def test_on_warning_callback(store, settings, clock):
    seen = []
    engine = TimerEngine(store, lambda: settings, clock=clock.monotonic,
                         now=clock.now, on_warning=seen.append)
    engine.start_work("reading")
    store.delete_by_habit("reading")
    engine.stop()
    assert [w.kind for w in seen] == ["not_found"]


# ── File-backed ──────────────────────────────────────────────


def test_engine_with_json_store(workspace, settings, clock):
    store = JsonSessionStore(workspace)
    engine = _engine(store, settings, clock)
    engine.start_work("guitar")
    clock.advance(1500)
    engine.tick()

    reloaded = JsonSessionStore(workspace).list_by_habit("guitar")
    assert len(reloaded) == 1
    assert reloaded[0].completed is True
    assert reloaded[0].duration == 25


# ── Late ticks ───────────────────────────────────────────────


def test_late_tick_records_countdown_end(engine, store, clock):
    session = engine.start_work("reading")
    clock.advance(3 * 3600)
    assert engine.tick() is True

    saved = store.get(session.id)
    assert saved.duration == 25
    assert saved.end_time == saved.start_time + timedelta(minutes=25)


def test_late_tick_keeps_paused_time_in_duration(engine, store, clock):
    session = engine.start_work("reading")
    clock.advance(600)
    engine.pause()
    clock.advance(300)
    engine.pause()
    clock.advance(3 * 3600)
    engine.tick()

    saved = store.get(session.id)
    assert saved.duration == 30
    assert saved.end_time == saved.start_time + timedelta(minutes=30)


def test_late_tick_auto_start_counts_from_countdown_end(engine, clock, settings):
    settings.auto_start_breaks = True
    engine.start_work("reading")
    clock.advance(1500 + 10)
    assert engine.tick() is True
    assert engine.state.is_running is True
    assert engine.get_phase() == "shortBreak"
    assert engine.get_remaining_seconds() == 300


# ── Unreadable settings ──────────────────────────────────────


@pytest.mark.parametrize("content", [
    "pomodoro: [unclosed\n",
    "pomodoro:\n  soundVolume: loud\n",
])
def test_unreadable_settings_do_not_block_completion(workspace, clock, content):
    store = JsonSessionStore(workspace)
    engine = TimerEngine(store, settings_provider(workspace), clock=clock.monotonic, now=clock.now)
    session = engine.start_work("reading")
    clock.advance(750)

    (workspace / "settings.yaml").write_text(content, encoding="utf-8")
    assert engine.get_progress_percent() == pytest.approx(50.0)

    clock.advance(750)
    assert engine.tick() is True
    assert store.get(session.id).completed is True
    assert engine.state.is_running is False
    assert engine.get_phase() == "shortBreak"
    assert [w.kind for w in engine.warnings] == ["settings"]
    assert engine.tick() is False


def test_failing_settings_provider_rejected_as_invalid_input(store, clock):
    def broken():
        raise ValueError("invalid literal for int()")

    engine = TimerEngine(store, broken, clock=clock.monotonic, now=clock.now)
    with pytest.raises(InvalidInputError):
        engine.start_work("reading")
    assert store.list_all() == []


def test_unexpected_auto_start_error_becomes_warning(engine, store, clock, settings):
    settings.auto_start_breaks = True
    _finish_work(engine, clock, settings)

    def boom(session):
        raise RuntimeError("store exploded")

    store.create = boom
    clock.advance(1)
    engine.tick()
    assert engine.state.is_running is False
    assert [w.kind for w in engine.drain_warnings()] == ["auto_start"]
