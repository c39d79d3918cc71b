"""
Streak recalculation and statistics for daily tasks.

Pure functions over an expected-day list (recurrence.expected_dates) and a sparse
per-day completion map. Persistence is the caller's job (daily_task_service).
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any, NamedTuple


class StreakCounters(NamedTuple):
    completed: int
    missed: int
    max_completed: int

    def to_dict(self) -> dict[str, int]:
        return {"completed": self.completed, "missed": self.missed, "max_completed": self.max_completed}


def completion_map(records: Iterable[Mapping[str, Any]]) -> dict[date, bool]:
    """Map completed_on -> is_completed for history rows (dicts or sqlite Rows)."""
    out: dict[date, bool] = {}
    for r in records:
        day = r["completed_on"]
        if isinstance(day, str):
            day = date.fromisoformat(day[:10])
        out[day] = bool(r["is_completed"])
    return out


def recalculate_streaks(
    expected: Iterable[date],
    history: Mapping[date, bool],
    today: date,
    previous_max: int = 0,
) -> StreakCounters:
    """
    Walk expected days from most recent to oldest.

    A day without a completed record counts as missed only once it is over
    (strictly before today). An open today is skipped: it neither seeds nor breaks
    a streak. The current streak is the run of equal outcomes ending at the most
    recent settled day; older days only feed the longest completed run.
    max_completed never drops below previous_max.
    """
    current_completed = 0
    current_missed = 0
    current_open = True
    run = 0
    longest = 0

    for day in sorted(expected, reverse=True):
        done = history.get(day, False)
        if done:
            run += 1
            longest = max(longest, run)
        elif day < today:
            run = 0
        else:
            continue

        if not current_open:
            continue
        # A completion today ends a miss run at once, without waiting for the day to settle
        if done and current_missed == 0:
            current_completed += 1
        elif not done and current_completed == 0:
            current_missed += 1
        else:
            current_open = False

    return StreakCounters(current_completed, current_missed, max(longest, previous_max))


def completion_rate(completed: int, expected: int) -> float:
    """Percent of expected days completed, two decimals; 0 when nothing was expected."""
    if expected <= 0:
        return 0.0
    return round(completed / expected * 100, 2)


def build_recent_history(expected: Iterable[date], history: Mapping[date, bool]) -> list[dict[str, Any]]:
    """{date, completed, expected} per expected day, oldest first."""
    return [
        {"date": day.isoformat(), "completed": history.get(day, False), "expected": True}
        for day in sorted(expected)
    ]
