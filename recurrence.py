"""
Recurrence rules for daily tasks: whether a task is due on a given day, the next day
it is due, and the list of due days in a trailing window.

Everything here is pure: no I/O, no clock reads. Callers pass date-only values that
are already normalized to the user's timezone (date_utils.to_date / today_in_tz).
"""
from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from date_utils import (
    add_years,
    days_between,
    is_last_weekday_of_month,
    last_day_of_month,
    months_between,
    week_of_month,
    weekday_index,
    weeks_between,
)

# Forward scan bound for next_occurrence; also the guarantee of termination for
# rules that can never match (e.g. WEEKLY_ON_DAYS with no days).
MAX_LOOKAHEAD_DAYS = 365

LAST_DAY_OF_MONTH = -1
LAST_WEEK_OF_MONTH = 0


class RecurrenceType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    EVERY_X_DAYS = "EVERY_X_DAYS"
    EVERY_X_WEEKS = "EVERY_X_WEEKS"
    EVERY_X_MONTHS = "EVERY_X_MONTHS"
    WEEKLY_ON_DAYS = "WEEKLY_ON_DAYS"
    MONTHLY_ON_DAYS = "MONTHLY_ON_DAYS"
    WEEK_OF_MONTH_ON_DAYS = "WEEK_OF_MONTH_ON_DAYS"


class RecurrenceConfig(BaseModel):
    """
    Recurrence fields of a daily task.

    recurrence_type is kept as a plain string so a corrupted value loads fine and
    simply never matches. Missing interval means 1; missing day sets mean empty.
    """

    anchor_date: date
    is_recurring: bool = True
    recurrence_type: str | None = RecurrenceType.DAILY.value
    interval: int = 1
    days_of_week: frozenset[int] = Field(default_factory=frozenset)
    days_of_month: frozenset[int] = Field(default_factory=frozenset)
    weeks_of_month: frozenset[int] = Field(default_factory=frozenset)

    @field_validator("recurrence_type", mode="before")
    @classmethod
    def _type_value(cls, v: Any) -> Any:
        if isinstance(v, RecurrenceType):
            return v.value
        return v

    @field_validator("interval", mode="before")
    @classmethod
    def _interval_default(cls, v: Any) -> int:
        try:
            n = int(v)
        except (TypeError, ValueError):
            return 1
        return n if n > 0 else 1

    @field_validator("days_of_week", "days_of_month", "weeks_of_month", mode="before")
    @classmethod
    def _empty_set(cls, v: Any) -> Any:
        return v if v is not None else frozenset()


def is_due_on(config: RecurrenceConfig, target: date) -> bool:
    """True if the task is scheduled on target."""
    anchor = config.anchor_date
    if not config.is_recurring and target > anchor:
        return False

    rtype = config.recurrence_type
    interval = config.interval

    if rtype == RecurrenceType.DAILY:
        return True
    if rtype == RecurrenceType.WEEKLY:
        return weekday_index(target) == weekday_index(anchor)
    if rtype == RecurrenceType.MONTHLY:
        return target.day == anchor.day
    if rtype == RecurrenceType.YEARLY:
        return target.month == anchor.month and target.day == anchor.day
    if rtype == RecurrenceType.EVERY_X_DAYS:
        d = days_between(anchor, target)
        return d >= 0 and d % interval == 0
    if rtype == RecurrenceType.EVERY_X_WEEKS:
        w = weeks_between(anchor, target)
        return w >= 0 and w % interval == 0 and weekday_index(target) == weekday_index(anchor)
    if rtype == RecurrenceType.EVERY_X_MONTHS:
        m = months_between(anchor, target)
        return m >= 0 and m % interval == 0 and target.day == anchor.day
    if rtype == RecurrenceType.WEEKLY_ON_DAYS:
        return weekday_index(target) in config.days_of_week
    if rtype == RecurrenceType.MONTHLY_ON_DAYS:
        if LAST_DAY_OF_MONTH in config.days_of_month:
            return target.day == last_day_of_month(target)
        return target.day in config.days_of_month
    if rtype == RecurrenceType.WEEK_OF_MONTH_ON_DAYS:
        if weekday_index(target) not in config.days_of_week:
            return False
        if week_of_month(target) in config.weeks_of_month:
            return True
        return LAST_WEEK_OF_MONTH in config.weeks_of_month and is_last_weekday_of_month(target)
    # Unknown or missing type: never due
    return False


def next_occurrence(config: RecurrenceConfig, from_date: date) -> date:
    """
    First day strictly after from_date on which the task is due, scanning at most
    MAX_LOOKAHEAD_DAYS days. Falls back to from_date + 1 year when nothing matches.
    """
    candidate = from_date
    for _ in range(MAX_LOOKAHEAD_DAYS):
        candidate += timedelta(days=1)
        if is_due_on(config, candidate):
            return candidate
    return add_years(from_date, 1)


def expected_dates(
    config: RecurrenceConfig,
    today: date,
    days: int,
    not_before: date | None = None,
) -> list[date]:
    """
    Due days in the trailing window [today - (days - 1), today], oldest first.
    Days before not_before (the task's effective start) are left out so a task is
    never expected before it existed.
    """
    out: list[date] = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        if not_before is not None and day < not_before:
            continue
        if is_due_on(config, day):
            out.append(day)
    return out
