"""Todo tasks: due-date tracking and the overdue flag."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from config import load as load_config
from database import get_connection
from date_utils import to_iso, today_in_tz
from models import TaskType, TodoTask, task_from_row

logger = logging.getLogger("todo_service")


def update_overdue_tasks(*, now: datetime | None = None) -> dict[str, Any]:
    """Flag open todos whose due time has passed. Returns newly flagged count and all overdue ids."""
    stamp = to_iso(now or datetime.now(timezone.utc))
    conn = get_connection()
    try:
        cur = conn.execute(
            """UPDATE tasks SET is_overdue = 1, updated_at = ?
               WHERE task_type = ? AND due_at IS NOT NULL AND due_at < ? AND is_completed = 0 AND is_overdue = 0""",
            (stamp, TaskType.TODO.value, stamp),
        )
        updated = cur.rowcount
        conn.commit()
        ids = [
            r["id"]
            for r in conn.execute(
                """SELECT id FROM tasks
                   WHERE task_type = ? AND due_at < ? AND is_completed = 0 AND is_overdue = 1
                   ORDER BY due_at""",
                (TaskType.TODO.value, stamp),
            ).fetchall()
        ]
    finally:
        conn.close()
    if updated:
        logger.info("[todo_service] %d todo(s) became overdue", updated)
    return {"updated_count": updated, "overdue_task_ids": ids}


def get_overdue_tasks() -> list[TodoTask]:
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE task_type = ? AND is_completed = 0 AND is_overdue = 1 ORDER BY due_at",
            (TaskType.TODO.value,),
        ).fetchall()
        return [task_from_row(r) for r in rows]
    finally:
        conn.close()


def get_upcoming_tasks(days: int = 7, *, now: datetime | None = None) -> list[TodoTask]:
    """Open todos due between now and now + days."""
    now = now or datetime.now(timezone.utc)
    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT * FROM tasks
               WHERE task_type = ? AND is_completed = 0 AND due_at >= ? AND due_at <= ?
               ORDER BY due_at""",
            (TaskType.TODO.value, to_iso(now), to_iso(now + timedelta(days=days))),
        ).fetchall()
        return [task_from_row(r) for r in rows]
    finally:
        conn.close()


def get_statistics(task: TodoTask, *, today: date | None = None) -> dict[str, Any]:
    today = today or today_in_tz(load_config().user_timezone)
    days_until_due = (task.due_at.date() - today).days if task.due_at else None
    return {"is_overdue": task.is_overdue, "days_until_due": days_until_due}
