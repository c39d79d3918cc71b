"""
Habit tasks: count completions inside a rolling time range and compare with a threshold.
GOOD habits succeed at or above the threshold, BAD habits at or below it.
Completions are append-only; there is no undo.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any

from database import get_connection
from date_utils import add_months, parse_timestamp, to_iso
from errors import WrongTaskType
from models import HabitTask, HabitType, TaskType, TimeRangeType
from task_service import fetch_task, new_id, record_event

logger = logging.getLogger("habit_service")

# Habit completion history shown with statistics covers this many days
HISTORY_DAYS = 30


def _require_habit(task: Any) -> HabitTask:
    if not isinstance(task, HabitTask):
        raise WrongTaskType(task.id, TaskType.HABIT.value, task.task_type)
    return task


def time_range_start(value: int, range_type: TimeRangeType | str, now: datetime) -> datetime:
    """Start of the rolling window that ends at now."""
    range_type = TimeRangeType(range_type)
    if range_type == TimeRangeType.DAYS:
        return now - timedelta(days=value)
    if range_type == TimeRangeType.WEEKS:
        return now - timedelta(days=value * 7)
    shifted = add_months(now.date(), -value)
    return now.replace(year=shifted.year, month=shifted.month, day=shifted.day)


def is_successful(count: int, threshold: int, habit_type: HabitType | str) -> bool:
    habit_type = HabitType(habit_type)
    if habit_type == HabitType.GOOD:
        return count >= threshold
    return count <= threshold


def _count_since(conn: sqlite3.Connection, task_id: str, since: datetime) -> int:
    return conn.execute(
        "SELECT COUNT(*) FROM habit_completions WHERE task_id = ? AND completed_at >= ?",
        (task_id, to_iso(since)),
    ).fetchone()[0]


def _days_since_last(conn: sqlite3.Connection, task_id: str, now: datetime) -> int:
    """Whole days since the latest completion, or -1 if the habit was never completed."""
    row = conn.execute(
        "SELECT MAX(completed_at) FROM habit_completions WHERE task_id = ?", (task_id,)
    ).fetchone()
    if not row or row[0] is None:
        return -1
    return (now.date() - parse_timestamp(row[0]).date()).days


def _delete_before(conn: sqlite3.Connection, task_id: str, cutoff: datetime) -> int:
    cur = conn.execute(
        "DELETE FROM habit_completions WHERE task_id = ? AND completed_at < ?",
        (task_id, to_iso(cutoff)),
    )
    return cur.rowcount


def record_completion(task_id: str, *, now: datetime | None = None) -> dict[str, Any]:
    """Record one completion, drop completions that fell out of the range, and evaluate the habit."""
    now = now or datetime.now(timezone.utc)
    conn = get_connection()
    try:
        task = _require_habit(fetch_task(conn, task_id))
        stamp = to_iso(now)
        conn.execute(
            "INSERT INTO habit_completions (id, task_id, completed_at) VALUES (?, ?, ?)",
            (new_id(), task_id, stamp),
        )
        conn.execute(
            "UPDATE tasks SET last_completion_at = ?, updated_at = ? WHERE id = ?",
            (stamp, stamp, task_id),
        )
        start = time_range_start(task.time_range_value, task.time_range_type, now)
        _delete_before(conn, task_id, start)
        count = _count_since(conn, task_id, start)
        record_event(conn, task_id, "habit_completed", {"completed_at": stamp, "count": count})
        conn.commit()
        return {
            "task": fetch_task(conn, task_id),
            "completion_count": count,
            "is_successful": is_successful(count, task.threshold_count, task.habit_type),
            "days_since_last_completion": _days_since_last(conn, task_id, now),
        }
    finally:
        conn.close()


def get_statistics(task_id: str, *, now: datetime | None = None) -> dict[str, Any]:
    """Count in range, rate against the threshold, success, days since last completion, 30-day history."""
    now = now or datetime.now(timezone.utc)
    conn = get_connection()
    try:
        task = _require_habit(fetch_task(conn, task_id))
        count = _count_since(conn, task_id, time_range_start(task.time_range_value, task.time_range_type, now))
        rows = conn.execute(
            """SELECT substr(completed_at, 1, 10) AS day, COUNT(*) AS count FROM habit_completions
               WHERE task_id = ? AND completed_at >= ? GROUP BY day ORDER BY day DESC""",
            (task_id, to_iso(now - timedelta(days=HISTORY_DAYS))),
        ).fetchall()
        days_since = _days_since_last(conn, task_id, now)
    finally:
        conn.close()
    rate = count / task.threshold_count * 100 if task.threshold_count > 0 else 0
    return {
        "completion_count": count,
        "completion_rate": round(rate, 2),
        "is_successful": is_successful(count, task.threshold_count, task.habit_type),
        "days_since_last_completion": days_since,
        "completion_history": [{"date": r["day"], "count": r["count"]} for r in rows],
    }


def get_completion_history(task_id: str, limit: int = 50) -> list[dict[str, Any]]:
    """Most recent completions of a habit."""
    conn = get_connection()
    try:
        _require_habit(fetch_task(conn, task_id))
        rows = conn.execute(
            "SELECT id, completed_at FROM habit_completions WHERE task_id = ? ORDER BY completed_at DESC LIMIT ?",
            (task_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def clean_old_completions(*, now: datetime | None = None) -> int:
    """Delete completions older than each habit's range. Returns the number removed."""
    now = now or datetime.now(timezone.utc)
    total = 0
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT id, time_range_value, time_range_type FROM tasks WHERE task_type = ?",
            (TaskType.HABIT.value,),
        ).fetchall()
        for r in rows:
            start = time_range_start(r["time_range_value"] or 0, r["time_range_type"] or TimeRangeType.DAYS, now)
            total += _delete_before(conn, r["id"], start)
        conn.commit()
    finally:
        conn.close()
    if total:
        logger.info("[habit_service] removed %d expired habit completions", total)
    return total
