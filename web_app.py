"""HTTP API for streakkeeper: tasks, daily-task toggles and statistics, habits, milestones, todos, config."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from zoneinfo import ZoneInfo

from config import load as load_config
from date_utils import resolve_day
from errors import NotFound, TaskError
from models import (
    LongTermTask,
    MilestoneCreate,
    MilestoneOrder,
    MilestoneUpdate,
    TaskCreate,
    TaskType,
    TaskUpdate,
    ToggleRequest,
    task_to_dict,
)
from scheduler import RefreshCooldown

app = FastAPI(title="streakkeeper", version="1.0")
logger = logging.getLogger("streakkeeper.api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """When config.debug is True, log API request method, path and status."""
    debug = load_config().debug
    if debug:
        qs = request.url.query
        logger.warning("[API] %s %s%s", request.method, request.url.path, "?" + qs if qs else "")
    response = await call_next(request)
    if debug:
        logger.warning("[API] %s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(TaskError)
async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
    """NotScheduled, WrongTaskType and other request mistakes."""
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": type(exc).__name__})


def _require_api_key(x_api_key: str | None = Header(None, alias="X-API-Key")) -> None:
    """Dependency: when an API key is configured, require the X-API-Key header to match it (401 otherwise)."""
    key = (load_config().api_key or "").strip()
    if not key:
        return
    if not x_api_key or x_api_key.strip() != key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key. Use X-API-Key header.")


def _refresh_cooldown(request: Request) -> RefreshCooldown:
    cooldown = getattr(request.app.state, "refresh_cooldown", None)
    if cooldown is None:
        cooldown = RefreshCooldown(load_config().refresh_cooldown_minutes)
        request.app.state.refresh_cooldown = cooldown
    return cooldown


def _task_out(task: Any) -> dict[str, Any]:
    """Task with its statistics block, plus milestones for long-term tasks."""
    from milestone_service import list_milestones
    from task_service import get_task_statistics

    out = task_to_dict(task)
    out["stat"] = get_task_statistics(task)
    out["milestones"] = list_milestones(task.id) if isinstance(task, LongTermTask) else []
    return out


def _with_task(result: dict[str, Any]) -> dict[str, Any]:
    out = dict(result)
    if "task" in out:
        out["task"] = task_to_dict(out["task"])
    return out


# --- Config ---


class ConfigUpdate(BaseModel):
    debug: bool = False
    web_ui_port: int = Field(8081, ge=1, le=65535)
    api_key: str = ""
    database_path: str = ""
    user_timezone: str = "UTC"
    rollover_cron: str = "5 0 * * *"
    refresh_cooldown_minutes: int = Field(10, ge=0)
    streak_window_days: int = Field(365, ge=1)
    statistics_window_days: int = Field(30, ge=1)


@app.get("/api/config", response_model=ConfigUpdate, dependencies=[Depends(_require_api_key)])
def get_config() -> ConfigUpdate:
    return ConfigUpdate(**load_config().model_dump())


@app.put("/api/config", dependencies=[Depends(_require_api_key)])
def put_config(body: ConfigUpdate, request: Request) -> dict[str, str]:
    try:
        ZoneInfo(body.user_timezone.strip() or "UTC")
    except (KeyError, ValueError):
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {body.user_timezone}")
    c = load_config()
    for key, value in body.model_dump().items():
        setattr(c, key, value)
    c.save()
    cooldown = _refresh_cooldown(request)
    cooldown.minutes = c.refresh_cooldown_minutes
    cooldown.reset()
    return {"status": "saved"}


# --- Tasks ---


@app.get("/api/tasks", dependencies=[Depends(_require_api_key)])
def api_list_tasks(request: Request, task_type: TaskType | None = None, limit: int = 500, offset: int = 0):
    """List tasks with statistics. Triggers the daily rollover at most once per cooldown window."""
    from daily_task_service import process_daily_rollover
    from task_service import list_tasks

    if _refresh_cooldown(request).should_run(datetime.now()):
        process_daily_rollover()
    return [_task_out(t) for t in list_tasks(task_type=task_type, limit=min(limit, 1000), offset=offset)]


@app.post("/api/tasks", status_code=201, dependencies=[Depends(_require_api_key)])
def api_create_task(body: TaskCreate):
    from task_service import create_task

    return _task_out(create_task(body))


@app.get("/api/tasks/{task_id}", dependencies=[Depends(_require_api_key)])
def api_get_task(task_id: str):
    from task_service import get_task

    return _task_out(get_task(task_id))


@app.put("/api/tasks/{task_id}", dependencies=[Depends(_require_api_key)])
def api_update_task(task_id: str, body: TaskUpdate):
    from task_service import update_task

    return _task_out(update_task(task_id, body))


@app.delete("/api/tasks/{task_id}", dependencies=[Depends(_require_api_key)])
def api_delete_task(task_id: str):
    from task_service import delete_task

    delete_task(task_id)
    return {"status": "deleted"}


@app.post("/api/tasks/{task_id}/toggle", dependencies=[Depends(_require_api_key)])
def api_toggle_task(task_id: str, body: ToggleRequest | None = None):
    """Toggle completion. Daily tasks accept a day (ISO date, today, yesterday, today-N); default today."""
    from task_service import toggle_task_completion

    target = None
    if body is not None and body.date:
        target = resolve_day(body.date, load_config().user_timezone)
        if target is None:
            raise HTTPException(status_code=400, detail=f"Unrecognized date: {body.date}")
    return _with_task(toggle_task_completion(task_id, target))


@app.get("/api/tasks/{task_id}/statistics", dependencies=[Depends(_require_api_key)])
def api_task_statistics(task_id: str):
    from task_service import get_task, get_task_statistics

    return get_task_statistics(get_task(task_id))


@app.get("/api/tasks/{task_id}/habit-completions", dependencies=[Depends(_require_api_key)])
def api_habit_completions(task_id: str, limit: int = 50):
    from habit_service import get_completion_history

    return get_completion_history(task_id, limit=min(limit, 500))


# --- Milestones ---


@app.get("/api/tasks/{task_id}/milestones", dependencies=[Depends(_require_api_key)])
def api_list_milestones(task_id: str):
    from milestone_service import list_milestones

    return list_milestones(task_id)


@app.post("/api/tasks/{task_id}/milestones", status_code=201, dependencies=[Depends(_require_api_key)])
def api_create_milestone(task_id: str, body: MilestoneCreate):
    from milestone_service import create_milestone

    return create_milestone(task_id, body)


@app.put("/api/tasks/{task_id}/milestones/order", dependencies=[Depends(_require_api_key)])
def api_reorder_milestones(task_id: str, body: list[MilestoneOrder]):
    from milestone_service import reorder_milestones

    return reorder_milestones(task_id, body)


@app.put("/api/milestones/{milestone_id}", dependencies=[Depends(_require_api_key)])
def api_update_milestone(milestone_id: str, body: MilestoneUpdate):
    from milestone_service import update_milestone

    return update_milestone(milestone_id, body)


@app.post("/api/milestones/{milestone_id}/toggle", dependencies=[Depends(_require_api_key)])
def api_toggle_milestone(milestone_id: str):
    from milestone_service import toggle_milestone

    return toggle_milestone(milestone_id)


@app.delete("/api/milestones/{milestone_id}", dependencies=[Depends(_require_api_key)])
def api_delete_milestone(milestone_id: str):
    from milestone_service import delete_milestone

    delete_milestone(milestone_id)
    return {"status": "deleted"}


# --- Todos ---


@app.get("/api/todos/overdue", dependencies=[Depends(_require_api_key)])
def api_overdue_todos():
    from todo_service import get_overdue_tasks

    return [task_to_dict(t) for t in get_overdue_tasks()]


@app.get("/api/todos/upcoming", dependencies=[Depends(_require_api_key)])
def api_upcoming_todos(days: int = 7):
    from todo_service import get_upcoming_tasks

    return [task_to_dict(t) for t in get_upcoming_tasks(days=days)]


# --- Maintenance ---


@app.post("/api/maintenance/daily-rollover", dependencies=[Depends(_require_api_key)])
def api_daily_rollover(day: str | None = None):
    """Run the daily rollover now (normally the scheduler does this). day: optional ISO date or today/yesterday."""
    from daily_task_service import process_daily_rollover

    today = None
    if day:
        today = resolve_day(day, load_config().user_timezone)
        if today is None:
            raise HTTPException(status_code=400, detail=f"Unrecognized date: {day}")
    return process_daily_rollover(today=today)


@app.post("/api/maintenance/update-overdue", dependencies=[Depends(_require_api_key)])
def api_update_overdue():
    """Flag todos whose due time has passed (normally the scheduler does this)."""
    from todo_service import update_overdue_tasks

    return update_overdue_tasks()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=load_config().web_ui_port, reload=False)
