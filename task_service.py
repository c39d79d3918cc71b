"""
Task Service layer: generic task CRUD and the completion toggle dispatch.
All task mutations go through here or through the per-type services it delegates to.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from ulid import ULID

from database import get_connection, init_database
from date_utils import now_iso, to_iso
from errors import NotFound
from models import (
    DailyTask,
    HabitTask,
    HabitType,
    LongTermTask,
    Task,
    TaskCreate,
    TaskType,
    TaskUpdate,
    TimeRangeType,
    TodoTask,
    task_from_row,
)
from streaks import StreakCounters

logger = logging.getLogger("task_service")

# Gap between consecutive order_index values so tasks can be reordered in between
ORDER_INDEX_STEP = 1000

_COMMON_COLUMNS = ("title", "description", "importance")

# Columns each variant may set; anything else in a payload is ignored for that variant
_TYPE_COLUMNS: dict[TaskType, tuple[str, ...]] = {
    TaskType.HABIT: ("habit_type", "threshold_count", "time_range_value", "time_range_type"),
    TaskType.DAILY_TASK: (
        "started_on",
        "is_recurring",
        "recurrence_type",
        "recurrence_interval",
        "recurrence_days_of_week",
        "recurrence_days_of_month",
        "recurrence_weeks_of_month",
    ),
    TaskType.TODO: ("due_at",),
    TaskType.LONG_TERM: ("show_progress", "target_completion_on"),
}

_RECURRENCE_COLUMNS = frozenset(_TYPE_COLUMNS[TaskType.DAILY_TASK])

# Columns that cannot be cleared; an explicit null in an update is ignored
_NOT_NULL_COLUMNS = frozenset(
    {"title", "importance", "is_recurring", "show_progress", "habit_type", "threshold_count", "time_range_value", "time_range_type"}
)


def new_id() -> str:
    return str(ULID())


def _column_value(value: Any) -> Any:
    """Python value -> sqlite value (enums by value, lists as JSON, dates as ISO)."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (list, tuple, set, frozenset)):
        return json.dumps(sorted(value))
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def record_event(conn: sqlite3.Connection, task_id: str, event: str, payload: Any = None) -> None:
    conn.execute(
        "INSERT INTO task_events (task_id, timestamp, event, payload) VALUES (?, ?, ?, ?)",
        (task_id, now_iso(), event, json.dumps(payload) if payload is not None else None),
    )


def fetch_task(conn: sqlite3.Connection, task_id: str) -> Task:
    """Load a task on an open connection; raises NotFound."""
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    if not row:
        raise NotFound("Task", task_id)
    return task_from_row(row)


def ensure_db() -> None:
    """Bootstrap database on first run."""
    init_database()


def create_task(payload: TaskCreate, *, now: datetime | None = None) -> Task:
    """Create a task of any type. Uses ULID for id; order_index continues after the current maximum."""
    created = to_iso(now) if now is not None else now_iso()
    values: dict[str, Any] = {
        "id": new_id(),
        "task_type": payload.task_type.value,
        "created_at": created,
        "updated_at": created,
    }
    for key in _COMMON_COLUMNS:
        values[key] = _column_value(getattr(payload, key))
    for key in _TYPE_COLUMNS[payload.task_type]:
        value = getattr(payload, key)
        if value is not None:
            values[key] = _column_value(value)
    if payload.task_type == TaskType.HABIT:
        values.setdefault("habit_type", HabitType.GOOD.value)
        values.setdefault("time_range_type", TimeRangeType.DAYS.value)
    conn = get_connection()
    try:
        values["order_index"] = conn.execute(
            "SELECT COALESCE(MAX(order_index), 0) + ? FROM tasks", (ORDER_INDEX_STEP,)
        ).fetchone()[0]
        cols = list(values)
        conn.execute(
            f"INSERT INTO tasks ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
            [values[c] for c in cols],
        )
        record_event(conn, values["id"], "created", {"title": payload.title, "task_type": payload.task_type.value})
        conn.commit()
        logger.info("[task_service] created %s task %s", payload.task_type.value, values["id"])
        return fetch_task(conn, values["id"])
    finally:
        conn.close()


def get_task(task_id: str) -> Task:
    """Return one task by id; raises NotFound."""
    conn = get_connection()
    try:
        return fetch_task(conn, task_id)
    finally:
        conn.close()


def list_tasks(task_type: TaskType | str | None = None, limit: int = 500, offset: int = 0) -> list[Task]:
    """Tasks ordered newest first, optionally of one type."""
    sql = "SELECT * FROM tasks"
    params: list[Any] = []
    if task_type:
        sql += " WHERE task_type = ?"
        params.append(_column_value(task_type))
    sql += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])
    conn = get_connection()
    try:
        return [task_from_row(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def update_task(task_id: str, payload: TaskUpdate) -> Task:
    """
    Update the fields present in payload that belong to the task's type.
    Changing a daily task's recurrence re-derives its streak counters.
    """
    changes = payload.model_dump(exclude_unset=True)
    conn = get_connection()
    try:
        task = fetch_task(conn, task_id)
        allowed = set(_COMMON_COLUMNS) | set(_TYPE_COLUMNS[TaskType(task.task_type)])
        updates = {
            k: _column_value(getattr(payload, k))
            for k in changes
            if k in allowed and not (changes[k] is None and k in _NOT_NULL_COLUMNS)
        }
        if updates:
            updates["updated_at"] = now_iso()
            assignments = ", ".join(f"{k} = ?" for k in updates)
            conn.execute(f"UPDATE tasks SET {assignments} WHERE id = ?", [*updates.values(), task_id])
            record_event(conn, task_id, "updated", {k: v for k, v in updates.items() if k != "updated_at"})
            conn.commit()
            logger.info("[task_service] update_task %s fields: %s", task_id, ", ".join(sorted(updates)))
    finally:
        conn.close()
    if isinstance(task, DailyTask) and _RECURRENCE_COLUMNS & set(changes):
        from daily_task_service import refresh_streaks

        refresh_streaks(task_id)
    return get_task(task_id)


def delete_task(task_id: str) -> None:
    """Delete a task with its completion history, habit completions, milestones and events."""
    conn = get_connection()
    try:
        fetch_task(conn, task_id)
        conn.execute("DELETE FROM completion_history WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM habit_completions WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM milestones WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM task_events WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        logger.info("[task_service] deleted task %s", task_id)
    finally:
        conn.close()


def update_streak_counters(conn: sqlite3.Connection, task_id: str, counters: StreakCounters) -> None:
    """Persist derived streak counters (caller commits)."""
    now = now_iso()
    conn.execute(
        """UPDATE tasks SET current_consecutive_completed = ?, current_consecutive_missed = ?,
               max_consecutive_completed = ?, last_recalculated_at = ?, updated_at = ?
           WHERE id = ?""",
        (counters.completed, counters.missed, counters.max_completed, now, now, task_id),
    )


def mark_completion_flag(conn: sqlite3.Connection, task_id: str, is_completed: bool) -> None:
    """Set the task's 'done' flag shown by clients (caller commits)."""
    conn.execute(
        "UPDATE tasks SET is_completed = ?, updated_at = ? WHERE id = ?",
        (1 if is_completed else 0, now_iso(), task_id),
    )


def _toggle_flag(task: TodoTask | LongTermTask) -> dict[str, Any]:
    new_status = not task.is_completed
    conn = get_connection()
    try:
        mark_completion_flag(conn, task.id, new_status)
        if isinstance(task, TodoTask) and new_status:
            conn.execute("UPDATE tasks SET is_overdue = 0 WHERE id = ?", (task.id,))
        record_event(conn, task.id, "completed" if new_status else "reopened")
        conn.commit()
        return {"task": fetch_task(conn, task.id), "was_completed": task.is_completed, "is_completed": new_status}
    finally:
        conn.close()


def toggle_task_completion(
    task_id: str,
    target_date: date | None = None,
    *,
    today: date | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Complete or un-complete a task according to its type.
    Habits record one more completion (never undone), daily tasks toggle the day's
    record and recompute streaks, todos and long-term tasks flip their flag.
    """
    task = get_task(task_id)
    if isinstance(task, HabitTask):
        from habit_service import record_completion

        return record_completion(task_id, now=now or datetime.now(timezone.utc))
    if isinstance(task, DailyTask):
        from daily_task_service import toggle_completion

        return toggle_completion(task_id, target_date, today=today)
    if isinstance(task, (TodoTask, LongTermTask)):
        return _toggle_flag(task)
    raise TypeError(f"unhandled task variant {type(task).__name__}")


def get_task_statistics(task: Task, *, today: date | None = None) -> dict[str, Any]:
    """Statistics block attached to a task in API responses."""
    if isinstance(task, DailyTask):
        from daily_task_service import get_statistics

        return get_statistics(task.id, today=today)
    if isinstance(task, HabitTask):
        from habit_service import get_statistics

        return get_statistics(task.id)
    if isinstance(task, LongTermTask):
        from milestone_service import get_statistics

        return get_statistics(task.id, today=today)
    if isinstance(task, TodoTask):
        from todo_service import get_statistics

        return get_statistics(task, today=today)
    raise TypeError(f"unhandled task variant {type(task).__name__}")
