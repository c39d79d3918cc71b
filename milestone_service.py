"""
Milestones of long-term tasks. Every change recomputes the parent task's progress
(completed / total, 0..1); the task is complete exactly when all milestones are.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Any

from config import load as load_config
from database import get_connection, transaction
from date_utils import now_iso, today_in_tz
from errors import NotFound, WrongTaskType
from models import LongTermTask, MilestoneCreate, MilestoneOrder, MilestoneUpdate, TaskType
from task_service import fetch_task, new_id, record_event

logger = logging.getLogger("milestone_service")


def _milestone_dict(row: sqlite3.Row) -> dict[str, Any]:
    d = dict(row)
    d["is_completed"] = bool(d["is_completed"])
    return d


def _require_long_term(conn: sqlite3.Connection, task_id: str) -> LongTermTask:
    task = fetch_task(conn, task_id)
    if not isinstance(task, LongTermTask):
        raise WrongTaskType(task_id, TaskType.LONG_TERM.value, task.task_type)
    return task


def _fetch_milestone(conn: sqlite3.Connection, milestone_id: str) -> sqlite3.Row:
    row = conn.execute("SELECT * FROM milestones WHERE id = ?", (milestone_id,)).fetchone()
    if not row:
        raise NotFound("Milestone", milestone_id)
    return row


def _ordered(conn: sqlite3.Connection, task_id: str) -> list[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM milestones WHERE task_id = ? ORDER BY order_index, created_at",
        (task_id,),
    ).fetchall()


def recalculate_progress(conn: sqlite3.Connection, task_id: str) -> tuple[float, bool]:
    """Store progress and completion on the parent task (caller commits)."""
    total, done = conn.execute(
        "SELECT COUNT(*), COALESCE(SUM(is_completed), 0) FROM milestones WHERE task_id = ?",
        (task_id,),
    ).fetchone()
    progress = done / total if total else 0.0
    is_completed = total > 0 and done == total
    conn.execute(
        "UPDATE tasks SET progress = ?, is_completed = ?, updated_at = ? WHERE id = ?",
        (progress, 1 if is_completed else 0, now_iso(), task_id),
    )
    return progress, is_completed


def create_milestone(task_id: str, payload: MilestoneCreate) -> dict[str, Any]:
    conn = get_connection()
    try:
        with transaction(conn):
            _require_long_term(conn, task_id)
            milestone_id = new_id()
            conn.execute(
                """INSERT INTO milestones (id, task_id, title, description, is_completed, order_index, created_at)
                   VALUES (?, ?, ?, ?, 0, ?, ?)""",
                (milestone_id, task_id, payload.title, payload.description, payload.order_index, now_iso()),
            )
            recalculate_progress(conn, task_id)
            record_event(conn, task_id, "milestone_created", {"milestone_id": milestone_id})
        return _milestone_dict(_fetch_milestone(conn, milestone_id))
    finally:
        conn.close()


def list_milestones(task_id: str) -> list[dict[str, Any]]:
    conn = get_connection()
    try:
        fetch_task(conn, task_id)
        return [_milestone_dict(r) for r in _ordered(conn, task_id)]
    finally:
        conn.close()


def update_milestone(milestone_id: str, payload: MilestoneUpdate) -> dict[str, Any]:
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("title") is None:
        changes.pop("title", None)
    if changes.get("order_index") is None:
        changes.pop("order_index", None)
    conn = get_connection()
    try:
        _fetch_milestone(conn, milestone_id)
        if changes:
            assignments = ", ".join(f"{k} = ?" for k in changes)
            conn.execute(f"UPDATE milestones SET {assignments} WHERE id = ?", [*changes.values(), milestone_id])
            conn.commit()
        return _milestone_dict(_fetch_milestone(conn, milestone_id))
    finally:
        conn.close()


def toggle_milestone(milestone_id: str) -> dict[str, Any]:
    """Flip a milestone; returns it with the parent's new progress and completion."""
    conn = get_connection()
    try:
        with transaction(conn):
            row = _fetch_milestone(conn, milestone_id)
            new_status = not bool(row["is_completed"])
            conn.execute(
                "UPDATE milestones SET is_completed = ?, completed_at = ? WHERE id = ?",
                (1 if new_status else 0, now_iso() if new_status else None, milestone_id),
            )
            progress, task_completed = recalculate_progress(conn, row["task_id"])
        return {
            "milestone": _milestone_dict(_fetch_milestone(conn, milestone_id)),
            "task_progress": progress,
            "task_completed": task_completed,
        }
    finally:
        conn.close()


def delete_milestone(milestone_id: str) -> None:
    conn = get_connection()
    try:
        with transaction(conn):
            row = _fetch_milestone(conn, milestone_id)
            conn.execute("DELETE FROM milestones WHERE id = ?", (milestone_id,))
            recalculate_progress(conn, row["task_id"])
            record_event(conn, row["task_id"], "milestone_deleted", {"milestone_id": milestone_id})
    finally:
        conn.close()


def reorder_milestones(task_id: str, orders: list[MilestoneOrder]) -> list[dict[str, Any]]:
    """Apply new order_index values; ids belonging to other tasks are ignored."""
    conn = get_connection()
    try:
        with transaction(conn):
            _require_long_term(conn, task_id)
            for item in orders:
                conn.execute(
                    "UPDATE milestones SET order_index = ? WHERE id = ? AND task_id = ?",
                    (item.order_index, item.id, task_id),
                )
            recalculate_progress(conn, task_id)
        return [_milestone_dict(r) for r in _ordered(conn, task_id)]
    finally:
        conn.close()


def get_statistics(task_id: str, *, today: date | None = None) -> dict[str, Any]:
    """Milestone counts, progress percent, and distance to the target completion day."""
    today = today or today_in_tz(load_config().user_timezone)
    conn = get_connection()
    try:
        task = _require_long_term(conn, task_id)
        milestones = [_milestone_dict(r) for r in _ordered(conn, task_id)]
    finally:
        conn.close()
    total = len(milestones)
    done = [m for m in milestones if m["is_completed"]]
    days_to_target = 0
    is_overdue = False
    if task.target_completion_on:
        days_to_target = (task.target_completion_on - today).days
        is_overdue = days_to_target < 0 and not task.is_completed
    return {
        "total_milestones": total,
        "completed_milestones": len(done),
        "progress": round(len(done) / total * 100, 2) if total else 0.0,
        "is_overdue": is_overdue,
        "days_to_target": days_to_target,
        "milestones_by_status": {
            "completed": done,
            "pending": [m for m in milestones if not m["is_completed"]],
        },
    }
