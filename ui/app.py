from __future__ import annotations

import logging
import os
import secrets
from datetime import date
from pathlib import Path
from typing import Any, Callable

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from habitcore import (
    HookNotifier,
    InvalidInputError,
    JsonSessionStore,
    PersistenceError,
    SessionAggregator,
    SessionNotFoundError,
    TimerEngine,
    add_habit,
    delete_habit,
    export_data,
    get_habit,
    get_user_timezone,
    import_data,
    list_habits,
    load_settings,
    settings_provider,
    update_habit,
    update_pomodoro,
    update_session,
    workspace_root,
)

logger = logging.getLogger(__name__)


# ── Auth ──────────────────────────────────────────────────────

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("HABITFOCUS_USERNAME", "")
    expected_password = os.environ.get("HABITFOCUS_PASSWORD", "")

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


# ── Dependencies ──────────────────────────────────────────────


def get_root(request: Request) -> Path:
    return request.app.state.root


def get_engine(request: Request, username: str = Depends(get_current_user)) -> TimerEngine:
    """The app's timer, advanced to the current time once the caller is authenticated."""
    engine: TimerEngine = request.app.state.engine
    engine.tick()
    return engine


def get_aggregator(root: Path = Depends(get_root)) -> SessionAggregator:
    return SessionAggregator.for_workspace(root)


def _timer_response(engine: TimerEngine, **extra: Any) -> dict[str, Any]:
    return {
        "ok": True,
        "timer": engine.snapshot(),
        "warnings": [w.message for w in engine.drain_warnings()],
        **extra,
    }


def _parse_month(value: str | None) -> date:
    if not value:
        return date.today().replace(day=1)
    try:
        year, month = value.split("-")[:2]
        return date(int(year), int(month), 1)
    except ValueError as e:
        raise InvalidInputError(f"Invalid month {value!r}, expected YYYY-MM") from e


# ── App factory ───────────────────────────────────────────────


def create_app(
    root: Path | None = None,
    clock: Callable[[], float] | None = None,
    auto_start_delay: float = 1.0,
) -> FastAPI:
    if root is None:
        root = workspace_root()

    app = FastAPI(title="HabitFocus", version="0.1.0")
    app.state.root = root
    engine_kwargs: dict[str, Any] = {}
    if clock is not None:
        engine_kwargs["clock"] = clock
    app.state.engine = TimerEngine(
        JsonSessionStore(root),
        settings_provider(root),
        notifier=HookNotifier(root),
        tz=get_user_timezone(root),
        auto_start_delay=auto_start_delay,
        **engine_kwargs,
    )

    @app.exception_handler(InvalidInputError)
    def _invalid(request: Request, exc: InvalidInputError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"ok": False, "detail": str(exc)})

    @app.exception_handler(SessionNotFoundError)
    def _not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"ok": False, "detail": str(exc)})

    @app.exception_handler(PersistenceError)
    def _persistence(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Storage failure: %s", exc)
        return JSONResponse(status_code=503, content={"ok": False, "detail": str(exc)})

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    # ── Timer ─────────────────────────────────────────────────

    @app.get("/api/timer")
    def api_timer(engine: TimerEngine = Depends(get_engine), username: str = Depends(get_current_user)) -> dict[str, Any]:
        return _timer_response(engine)

    @app.post("/api/timer/work")
    def api_start_work(
        payload: dict[str, Any] = Body(...),
        engine: TimerEngine = Depends(get_engine),
        root: Path = Depends(get_root),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        """Start a work session for a habit."""
        habit_id = str(payload.get("habit_id", "") or "")
        if habit_id and get_habit(habit_id, root) is None:
            raise HTTPException(status_code=404, detail=f"Habit not found: {habit_id}")
        engine.start_work(habit_id)
        return _timer_response(engine)

    @app.post("/api/timer/break")
    def api_start_break(
        payload: dict[str, Any] = Body(default={}),
        engine: TimerEngine = Depends(get_engine),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        """Start a break; kind defaults to the phase the timer suggests."""
        kind = payload.get("kind") or engine.get_phase()
        engine.start_break(str(kind))
        return _timer_response(engine)

    @app.post("/api/timer/pause")
    def api_pause(engine: TimerEngine = Depends(get_engine), username: str = Depends(get_current_user)) -> dict[str, Any]:
        engine.pause()
        return _timer_response(engine)

    @app.post("/api/timer/stop")
    def api_stop(engine: TimerEngine = Depends(get_engine), username: str = Depends(get_current_user)) -> dict[str, Any]:
        closed = engine.stop()
        return _timer_response(engine, session=closed.to_dict() if closed else None)

    # ── Habits ────────────────────────────────────────────────

    @app.get("/api/habits")
    def api_list_habits(
        active: bool = False,
        category: str | None = None,
        root: Path = Depends(get_root),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        habits = list_habits(root, active_only=active, category=category)
        return {"habits": [h.to_dict() for h in habits], "count": len(habits)}

    @app.post("/api/habits")
    def api_create_habit(
        payload: dict[str, Any] = Body(...),
        root: Path = Depends(get_root),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        habit = add_habit(payload, root)
        return {"ok": True, "habit": habit.to_dict()}

    @app.put("/api/habits/{habit_id}")
    def api_update_habit(
        habit_id: str,
        payload: dict[str, Any] = Body(...),
        root: Path = Depends(get_root),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        habit = update_habit(habit_id, payload, root)
        if habit is None:
            raise HTTPException(status_code=404, detail=f"Habit not found: {habit_id}")
        return {"ok": True, "habit": habit.to_dict()}

    @app.delete("/api/habits/{habit_id}")
    def api_delete_habit(habit_id: str, root: Path = Depends(get_root), username: str = Depends(get_current_user)) -> dict[str, Any]:
        if not delete_habit(habit_id, root):
            raise HTTPException(status_code=404, detail=f"Habit not found: {habit_id}")
        return {"ok": True}

    @app.post("/api/sessions/{session_id}/notes")
    def api_session_notes(
        session_id: str,
        payload: dict[str, Any] = Body(...),
        root: Path = Depends(get_root),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        session = update_session(JsonSessionStore(root), session_id, {"notes": str(payload.get("notes", ""))})
        return {"ok": True, "session": session.to_dict()}

    # ── Statistics ────────────────────────────────────────────

    @app.get("/api/habits/{habit_id}/streak")
    def api_streak(
        habit_id: str,
        today: date | None = None,
        root: Path = Depends(get_root),
        aggregator: SessionAggregator = Depends(get_aggregator),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        habit = get_habit(habit_id, root)
        if habit is None:
            raise HTTPException(status_code=404, detail=f"Habit not found: {habit_id}")
        return aggregator.compute_streak(habit_id, habit.target_sessions, today).to_dict()

    @app.get("/api/stats/daily")
    def api_daily_stats(
        day: date | None = None,
        habit_id: str | None = None,
        aggregator: SessionAggregator = Depends(get_aggregator),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        day = day or aggregator.today()
        stats = aggregator.compute_daily_stats(day, habit_id)
        return {"date": day.isoformat(), "stats": [s.to_dict() for s in stats]}

    @app.get("/api/stats/calendar")
    def api_calendar(
        month: str | None = None,
        root: Path = Depends(get_root),
        aggregator: SessionAggregator = Depends(get_aggregator),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        first = _parse_month(month)
        targets = [(h.id, h.target_sessions) for h in list_habits(root, active_only=True)]
        days = aggregator.compute_calendar(first, targets)
        return {"month": first.strftime("%Y-%m"), "days": [d.to_dict() for d in days]}

    # ── Settings & data ───────────────────────────────────────

    @app.get("/api/settings")
    def api_get_settings(root: Path = Depends(get_root), username: str = Depends(get_current_user)) -> dict[str, Any]:
        return load_settings(root).to_dict()

    @app.put("/api/settings/pomodoro")
    def api_update_pomodoro(
        payload: dict[str, Any] = Body(...),
        root: Path = Depends(get_root),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        try:
            settings = update_pomodoro(payload, root)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(str(e)) from e
        return {"ok": True, "settings": settings.to_dict()}

    @app.get("/api/export")
    def api_export(root: Path = Depends(get_root), username: str = Depends(get_current_user)) -> dict[str, Any]:
        return export_data(root)

    @app.post("/api/import")
    def api_import(
        payload: dict[str, Any] = Body(...),
        root: Path = Depends(get_root),
        username: str = Depends(get_current_user),
    ) -> dict[str, Any]:
        return {"ok": True, "imported": import_data(payload, root)}


app = create_app()
