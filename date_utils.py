"""
Calendar math shared by the recurrence engine and the services.

All comparisons happen on date-only values in the user's timezone; weekdays are
indexed 0=Sunday..6=Saturday (Python's date.weekday() is Monday=0).
"""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone

from zoneinfo import ZoneInfo

# Already ISO date
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today_in_tz(tz_name: str | None = "UTC") -> date:
    """Current calendar day in the given IANA timezone (UTC when empty)."""
    name = (tz_name or "").strip() or "UTC"
    return datetime.now(ZoneInfo(name)).date()


def to_iso(dt: datetime) -> str:
    """UTC timestamp string as stored in the database; naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def parse_timestamp(value: str) -> datetime:
    """Inverse of to_iso; always returns an aware UTC datetime."""
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_date(value: date | datetime | str | None) -> date | None:
    """
    Normalize to a date-only value, discarding any time of day.
    Accepts date, datetime, "YYYY-MM-DD" or an ISO datetime string; returns None if empty/invalid.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    part = str(value).strip()[:10]
    if not _ISO_DATE.match(part):
        return None
    try:
        return date.fromisoformat(part)
    except ValueError:
        return None


def resolve_day(value: str | None, tz_name: str = "UTC") -> date | None:
    """
    Resolve a day expression to a date in the user's timezone.
    Supports ISO dates plus "today", "yesterday", "tomorrow" and "today-N" / "today+N".
    Returns None for anything else.
    """
    if not value or not str(value).strip():
        return None
    raw = str(value).strip().lower()
    if _ISO_DATE.match(raw):
        return to_date(raw)
    today = today_in_tz(tz_name)
    if raw == "today":
        return today
    if raw == "yesterday":
        return today - timedelta(days=1)
    if raw == "tomorrow":
        return today + timedelta(days=1)
    m = re.match(r"^today([+-])(\d+)$", raw)
    if m:
        n = int(m.group(2))
        return today + timedelta(days=n if m.group(1) == "+" else -n)
    return None


def weekday_index(d: date) -> int:
    """0=Sunday..6=Saturday."""
    return (d.weekday() + 1) % 7


def days_between(start: date, end: date) -> int:
    return (end - start).days


def weeks_between(start: date, end: date) -> int:
    """Whole weeks from start to end (floor of the day difference / 7)."""
    return (end - start).days // 7


def months_between(start: date, end: date) -> int:
    """Calendar month difference, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def last_day_of_month(d: date) -> int:
    return calendar.monthrange(d.year, d.month)[1]


def add_months(d: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_years(d: date, years: int) -> date:
    """Shift by whole years; Feb 29 becomes Feb 28 in non-leap years."""
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return d.replace(year=d.year + years, day=28)


def week_of_month(d: date) -> int:
    """
    Calendar-week row of d within its month (1-6), rows starting on Sunday and the
    partial first row counting as week 1: (day - 1 + weekday of the 1st) // 7 + 1.
    """
    first_weekday = weekday_index(d.replace(day=1))
    return (d.day - 1 + first_weekday) // 7 + 1


def is_last_weekday_of_month(d: date) -> bool:
    """True if no later day in the same month shares d's weekday."""
    return d.day + 7 > last_day_of_month(d)
