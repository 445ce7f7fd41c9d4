"""HabitFocus core library: timer engine, session history and statistics.

Public API re-exports for convenient imports:
    from habitcore import TimerEngine, SessionAggregator, load_settings, ...
"""

# Workspace & paths
from habitcore.workspace import (
    workspace_root,
    settings_path,
    habits_path,
    sessions_path,
    hooks_config_path,
)

# Errors
from habitcore.errors import (
    HabitFocusError,
    InvalidInputError,
    SessionNotFoundError,
    PersistenceError,
)

# Settings
from habitcore.settings import (
    load_settings,
    save_settings,
    update_pomodoro,
    validate_pomodoro,
    settings_provider,
    get_user_timezone,
)

# Habits
from habitcore.habits import (
    validate_habit,
    load_habits,
    save_habits,
    get_habit,
    list_habits,
    add_habit,
    update_habit,
    delete_habit,
    habit_targets,
)

# Sessions
from habitcore.store import (
    SessionRepository,
    MemorySessionStore,
    JsonSessionStore,
    generate_id,
    update_session,
    export_data,
    import_data,
)

# Hooks
from habitcore.hooks import HookNotifier, HookResult, NullNotifier, run_hooks

# Timer
from habitcore.timer import (
    TimerEngine,
    EngineWarning,
    ScheduledStart,
    next_break_type,
)
from habitcore.timeutil import format_time

# Statistics
from habitcore.stats import (
    SessionAggregator,
    streak_from_sessions,
    daily_stats,
    calendar_days,
)

# Models
from habitcore.models import (
    Habit,
    Session,
    PomodoroSettings,
    NotificationSettings,
    AppSettings,
    TimerState,
    StreakResult,
    DailyStats,
    CalendarDay,
    CalendarHabitDay,
)
