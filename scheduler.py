"""
Scheduled maintenance: daily rollover of recurring tasks, overdue todos, expired habit completions.
Uses cron notation (5-field: min hour day month weekday) in user_timezone.
Start the scheduler from the main process (run.py).
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from croniter import croniter
from zoneinfo import ZoneInfo

from config import AppConfig, load as load_config

logger = logging.getLogger(__name__)

_scheduler_thread: threading.Thread | None = None
_stop_event: threading.Event | None = None


def run_maintenance(now: datetime) -> dict[str, Any]:
    """Run every maintenance job once for the calendar day of now (an aware datetime in the user's tz)."""
    from daily_task_service import process_daily_rollover
    from habit_service import clean_old_completions
    from todo_service import update_overdue_tasks

    rollover = process_daily_rollover(today=now.date())
    overdue = update_overdue_tasks(now=now)
    cleaned = clean_old_completions(now=now)
    return {"rollover": rollover, "overdue": overdue, "habit_completions_removed": cleaned}


def _local_now(config: AppConfig) -> datetime:
    tz_name = (config.user_timezone or "UTC").strip() or "UTC"
    return datetime.now(ZoneInfo(tz_name))


def run_due_jobs(now: datetime | None = None) -> dict[str, Any] | None:
    """Run maintenance if rollover_cron matches now (minute resolution). Returns the job results or None."""
    config = load_config()
    cron_expr = (config.rollover_cron or "").strip()
    if not cron_expr:
        return None
    if not croniter.is_valid(cron_expr):
        logger.warning("Invalid rollover cron expression: %s", cron_expr)
        return None
    now = now or _local_now(config)
    if not croniter.match(cron_expr, now):
        return None
    result = run_maintenance(now)
    logger.info("Scheduled maintenance ran at %s: %s", now.isoformat(timespec="minutes"), result["rollover"])
    return result


class RefreshCooldown:
    """
    Rate limit for rollovers triggered by API reads: at most one per cooldown window.
    One instance lives on the web application's state.
    """

    def __init__(self, minutes: int) -> None:
        self.minutes = minutes
        self._last_run: datetime | None = None
        self._lock = threading.Lock()

    def should_run(self, now: datetime) -> bool:
        """True (and the window restarts) if the previous run is older than the cooldown."""
        with self._lock:
            if self._last_run is not None and (now - self._last_run).total_seconds() < self.minutes * 60:
                return False
            self._last_run = now
            return True

    def reset(self) -> None:
        with self._lock:
            self._last_run = None


def _scheduler_loop() -> None:
    """Run every minute and execute maintenance when the cron expression matches."""
    while _stop_event and not _stop_event.is_set():
        try:
            run_due_jobs()
        except Exception as e:
            logger.warning("Maintenance tick failed: %s", e)
        if _stop_event:
            _stop_event.wait(timeout=60)


def start_scheduler() -> None:
    """Start the background maintenance thread. Idempotent."""
    global _scheduler_thread, _stop_event
    if _scheduler_thread is not None and _scheduler_thread.is_alive():
        return
    _stop_event = threading.Event()
    _scheduler_thread = threading.Thread(target=_scheduler_loop, daemon=True, name="maintenance-cron")
    _scheduler_thread.start()
    logger.info("Maintenance scheduler started")


def stop_scheduler() -> None:
    """Signal the scheduler thread to stop."""
    global _stop_event
    if _stop_event:
        _stop_event.set()
