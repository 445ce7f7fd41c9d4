#!/usr/bin/env python3
"""HabitFocus TUI — Pomodoro timer for habits, powered by Textual."""

from __future__ import annotations

import logging
import sys

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, Label, ProgressBar, Static

from habitcore import (
    Habit,
    HabitFocusError,
    HookNotifier,
    JsonSessionStore,
    SessionAggregator,
    TimerEngine,
    format_time,
    get_user_timezone,
    list_habits,
    settings_provider,
    workspace_root,
)

PHASE_LABELS = {
    "idle": "Ready",
    "work": "Focus",
    "shortBreak": "Short break",
    "longBreak": "Long break",
}


# ── Stylesheet ─────────────────────────────────────────────────

CSS = """
Screen {
    background: $surface;
    align: center middle;
}

#timer-pane {
    width: 60;
    height: auto;
    border: tall $primary-background-darken-2;
    padding: 1 2;
}

#phase {
    text-style: bold;
    content-align: center middle;
    width: 100%;
}

#clock {
    text-style: bold;
    color: $warning;
    content-align: center middle;
    width: 100%;
    height: 3;
}

#progress {
    width: 100%;
    margin: 0 0 1 0;
}

#habit-info {
    color: $text-muted;
    width: 100%;
}

#today-table {
    height: auto;
    max-height: 12;
    margin: 1 0 0 0;
}
"""


class HabitFocusApp(App):
    """HabitFocus — focus timer with streaks."""

    TITLE = "HabitFocus"
    CSS = CSS

    BINDINGS = [
        Binding("w", "start_work", "Work"),
        Binding("b", "short_break", "Short break"),
        Binding("l", "long_break", "Long break"),
        Binding("space", "pause", "Pause"),
        Binding("s", "stop", "Stop"),
        Binding("h", "next_habit", "Habit"),
        Binding("q", "quit", "Quit"),
    ]

    habit_index: reactive[int] = reactive(0)

    def __init__(self, habit_id: str | None = None) -> None:
        super().__init__()
        self.root = workspace_root()
        self.tz = get_user_timezone(self.root)
        self.engine = TimerEngine(
            JsonSessionStore(self.root),
            settings_provider(self.root),
            notifier=HookNotifier(self.root),
            tz=self.tz,
            on_warning=lambda w: self.notify(w.message, title="Warning", severity="warning"),
        )
        self.habits: list[Habit] = list_habits(self.root, active_only=True)
        for i, h in enumerate(self.habits):
            if h.id == habit_id:
                self.habit_index = i

    @property
    def habit(self) -> Habit | None:
        if not self.habits:
            return None
        return self.habits[self.habit_index % len(self.habits)]

    def compose(self) -> ComposeResult:
        yield Header()
        yield Vertical(
            Label(id="phase"),
            Static(id="clock"),
            ProgressBar(total=100, show_eta=False, id="progress"),
            Static(id="habit-info"),
            DataTable(id="today-table"),
            id="timer-pane",
        )
        yield Footer()

    def on_mount(self) -> None:
        table: DataTable = self.query_one("#today-table", DataTable)
        table.add_columns("Habit", "Today", "Minutes", "Goal")
        self._refresh_stats()
        self._render_timer()
        self.set_interval(1.0, self._on_tick)

    # ── Loop ───────────────────────────────────────────────────

    def _on_tick(self) -> None:
        if self.engine.tick():
            phase = self.engine.get_phase()
            self.notify(f"Up next: {PHASE_LABELS.get(phase, phase)}", title="Session complete")
            self._refresh_stats()
        self._render_timer()

    def _render_timer(self) -> None:
        phase = self.engine.get_phase()
        label = PHASE_LABELS.get(phase, phase)
        if self.engine.state.is_paused:
            label += " (paused)"
        if not self.engine.state.is_running and phase != "idle":
            label = f"Up next: {label}"
        self.query_one("#phase", Label).update(label)
        self.query_one("#clock", Static).update(format_time(self.engine.get_remaining_seconds()))
        self.query_one("#progress", ProgressBar).update(progress=self.engine.get_progress_percent())
        self.sub_title = f"#{self.engine.session_count} today"

    def _refresh_stats(self) -> None:
        aggregator = SessionAggregator.for_workspace(self.root)
        today = aggregator.today()
        info = self.query_one("#habit-info", Static)
        habit = self.habit
        if habit is None:
            info.update("No active habits. Add some to habits.yaml first.")
        else:
            streak = aggregator.compute_streak(habit.id, habit.target_sessions, today)
            info.update(
                f"Habit: {habit.name}  ·  🔥 {streak.current} day streak (best {streak.longest})"
            )

        table: DataTable = self.query_one("#today-table", DataTable)
        table.clear()
        stats = {s.habit_id: s for s in aggregator.compute_daily_stats(today)}
        for h in self.habits:
            s = stats.get(h.id)
            done = s.sessions_completed if s else 0
            minutes = s.total_minutes if s else 0
            table.add_row(h.name, f"{done}/{h.target_sessions}", str(minutes),
                          "✓" if done >= h.target_sessions else "")

    # ── Actions ────────────────────────────────────────────────

    def _run(self, command) -> None:
        try:
            command()
        except HabitFocusError as e:
            self.notify(str(e), title="Cannot do that", severity="error")
        self._render_timer()

    def action_start_work(self) -> None:
        habit = self.habit
        self._run(lambda: self.engine.start_work(habit.id if habit else ""))

    def action_short_break(self) -> None:
        self._run(lambda: self.engine.start_break("short"))

    def action_long_break(self) -> None:
        self._run(lambda: self.engine.start_break("long"))

    def action_pause(self) -> None:
        self._run(self.engine.pause)

    def action_stop(self) -> None:
        self._run(self.engine.stop)
        self._refresh_stats()

    def action_next_habit(self) -> None:
        if self.habits:
            self.habit_index = (self.habit_index + 1) % len(self.habits)
            self._refresh_stats()

    def action_quit(self) -> None:
        if self.engine.state.current_session is not None:
            self.engine.stop()
        self.exit()


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    root = workspace_root()
    if not root.exists():
        print(f"Workspace not found: {root}")
        print("Set HABITFOCUS_ROOT to a directory with settings.yaml and data/habits.yaml.")
        sys.exit(1)

    app = HabitFocusApp(habit_id=sys.argv[1] if len(sys.argv) > 1 else None)
    app.run()


if __name__ == "__main__":
    main()
