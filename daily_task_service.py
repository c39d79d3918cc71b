"""
Daily (recurring) task operations: toggling a day's completion, streak upkeep,
statistics, and the once-a-day rollover that seeds "not done" records.

"today" is always the calendar day in config.user_timezone unless a caller passes
one explicitly (the scheduler and tests do).
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import date, timedelta
from typing import Any

from config import load as load_config
from database import get_connection, transaction
from date_utils import now_iso, to_date, today_in_tz
from errors import NotScheduled, WrongTaskType
from models import DailyTask, TaskType
from recurrence import expected_dates, is_due_on, next_occurrence
from streaks import (
    StreakCounters,
    build_recent_history,
    completion_map,
    completion_rate,
    recalculate_streaks,
)
from task_service import (
    fetch_task,
    mark_completion_flag,
    new_id,
    record_event,
    update_streak_counters,
)

logger = logging.getLogger("daily_task_service")


def _today(today: date | None) -> date:
    return today or today_in_tz(load_config().user_timezone)


def _require_daily(task: Any) -> DailyTask:
    if not isinstance(task, DailyTask):
        raise WrongTaskType(task.id, TaskType.DAILY_TASK.value, task.task_type)
    return task


# --- Completion-history store ---


def find_history(conn: sqlite3.Connection, task_id: str, since: date) -> list[sqlite3.Row]:
    """History records of a task on or after since, most recent first."""
    return conn.execute(
        """SELECT id, task_id, completed_on, is_completed, recorded_at FROM completion_history
           WHERE task_id = ? AND completed_on >= ? ORDER BY completed_on DESC""",
        (task_id, since.isoformat()),
    ).fetchall()


def find_record_for_day(conn: sqlite3.Connection, task_id: str, day: date) -> sqlite3.Row | None:
    return conn.execute(
        "SELECT id, task_id, completed_on, is_completed, recorded_at FROM completion_history WHERE task_id = ? AND completed_on = ?",
        (task_id, day.isoformat()),
    ).fetchone()


def upsert_record(conn: sqlite3.Connection, task_id: str, day: date, is_completed: bool) -> None:
    """Create the day's record or overwrite its state; (task_id, completed_on) is unique."""
    conn.execute(
        """INSERT INTO completion_history (id, task_id, completed_on, is_completed, recorded_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT (task_id, completed_on)
           DO UPDATE SET is_completed = excluded.is_completed, recorded_at = excluded.recorded_at""",
        (new_id(), task_id, day.isoformat(), 1 if is_completed else 0, now_iso()),
    )


# --- Streaks ---


def recalculate(conn: sqlite3.Connection, task: DailyTask, today: date, window_days: int) -> StreakCounters:
    """Derive streak counters from the trailing window of history (does not persist)."""
    expected = expected_dates(task.recurrence, today, window_days, not_before=task.effective_start)
    since = today - timedelta(days=window_days - 1)
    history = completion_map(find_history(conn, task.id, since))
    return recalculate_streaks(expected, history, today, previous_max=task.max_consecutive_completed)


def refresh_streaks(task_id: str, *, today: date | None = None) -> StreakCounters:
    """Recompute and store a daily task's streak counters."""
    config = load_config()
    today = _today(today)
    conn = get_connection()
    try:
        with transaction(conn):
            task = _require_daily(fetch_task(conn, task_id))
            counters = recalculate(conn, task, today, config.streak_window_days)
            update_streak_counters(conn, task_id, counters)
        return counters
    finally:
        conn.close()


# --- Caller-facing operations ---


def toggle_completion(
    task_id: str,
    target_date: date | str | None = None,
    *,
    today: date | None = None,
) -> dict[str, Any]:
    """
    Flip the completion state of a daily task for target_date (default today) and
    recompute its streaks, all inside one immediate transaction.
    Raises NotFound, WrongTaskType, or NotScheduled when the rule does not produce target_date.
    """
    config = load_config()
    today = _today(today)
    day = to_date(target_date) or today
    conn = get_connection()
    try:
        with transaction(conn):
            task = _require_daily(fetch_task(conn, task_id))
            if not is_due_on(task.recurrence, day):
                raise NotScheduled(task_id, day.isoformat())
            record = find_record_for_day(conn, task_id, day)
            was_completed = bool(record["is_completed"]) if record else False
            is_completed = not was_completed
            upsert_record(conn, task_id, day, is_completed)
            if day == today:
                mark_completion_flag(conn, task_id, is_completed)
            counters = recalculate(conn, task, today, config.streak_window_days)
            update_streak_counters(conn, task_id, counters)
            record_event(conn, task_id, "toggled", {"day": day.isoformat(), "is_completed": is_completed})
        logger.info(
            "[daily_task_service] toggle %s %s -> %s (streak %d/%d, max %d)",
            task_id, day.isoformat(), is_completed, counters.completed, counters.missed, counters.max_completed,
        )
        return {
            "task": fetch_task(conn, task_id),
            "was_completed": was_completed,
            "is_completed": is_completed,
            "streaks": counters.to_dict(),
        }
    finally:
        conn.close()


def get_statistics(task_id: str, *, today: date | None = None) -> dict[str, Any]:
    """Completion rate and per-day history over the display window, stored streaks, next due day."""
    config = load_config()
    today = _today(today)
    window = config.statistics_window_days
    conn = get_connection()
    try:
        task = _require_daily(fetch_task(conn, task_id))
        expected = expected_dates(task.recurrence, today, window, not_before=task.effective_start)
        history = completion_map(find_history(conn, task_id, today - timedelta(days=window - 1)))
    finally:
        conn.close()
    completed = sum(1 for day in expected if history.get(day, False))
    return {
        "completion_rate": completion_rate(completed, len(expected)),
        "expected_count": len(expected),
        "completed_count": completed,
        "current_streak": task.current_consecutive_completed,
        "longest_streak": task.max_consecutive_completed,
        "missed_streak": task.current_consecutive_missed,
        "recent_history": build_recent_history(expected, history),
        "next_occurrence": next_occurrence(task.recurrence, today).isoformat(),
    }


def process_daily_rollover(*, today: date | None = None) -> dict[str, int]:
    """
    For every recurring daily task: if it is due today and has no record for today,
    seed an incomplete record and clear its completion flag. Streak counters of every
    recurring task are refreshed so misses from earlier days show up.
    Safe to run several times a day; later runs reset nothing.
    """
    config = load_config()
    today = _today(today)
    processed = 0
    reset = 0
    conn = get_connection()
    try:
        ids = [
            r["id"]
            for r in conn.execute(
                "SELECT id FROM tasks WHERE task_type = ? AND is_recurring = 1 ORDER BY order_index",
                (TaskType.DAILY_TASK.value,),
            ).fetchall()
        ]
        for task_id in ids:
            with transaction(conn):
                task = _require_daily(fetch_task(conn, task_id))
                processed += 1
                if is_due_on(task.recurrence, today) and find_record_for_day(conn, task_id, today) is None:
                    upsert_record(conn, task_id, today, False)
                    mark_completion_flag(conn, task_id, False)
                    record_event(conn, task_id, "rollover", {"day": today.isoformat()})
                    reset += 1
                update_streak_counters(conn, task_id, recalculate(conn, task, today, config.streak_window_days))
    finally:
        conn.close()
    logger.info("[daily_task_service] rollover %s: processed %d, reset %d", today.isoformat(), processed, reset)
    return {"tasks_processed": processed, "tasks_reset": reset}
