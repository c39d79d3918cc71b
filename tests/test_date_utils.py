from datetime import date, datetime, timedelta, timezone

from date_utils import (
    add_months,
    add_years,
    days_between,
    is_last_weekday_of_month,
    last_day_of_month,
    months_between,
    parse_timestamp,
    resolve_day,
    to_date,
    to_iso,
    today_in_tz,
    week_of_month,
    weekday_index,
    weeks_between,
)


def test_weekday_index_starts_on_sunday():
    assert weekday_index(date(2024, 1, 7)) == 0  # Sunday
    assert weekday_index(date(2024, 1, 1)) == 1  # Monday
    assert weekday_index(date(2024, 1, 6)) == 6  # Saturday


def test_to_date_discards_time_of_day():
    assert to_date("2024-03-05T23:59:59Z") == date(2024, 3, 5)
    assert to_date(datetime(2024, 3, 5, 18, 30)) == date(2024, 3, 5)
    assert to_date(date(2024, 3, 5)) == date(2024, 3, 5)
    assert to_date("2024-02-30") is None
    assert to_date("not a date") is None
    assert to_date(None) is None


def test_day_differences():
    assert days_between(date(2024, 1, 1), date(2024, 1, 31)) == 30
    assert days_between(date(2024, 1, 31), date(2024, 1, 1)) == -30
    assert weeks_between(date(2024, 1, 1), date(2024, 1, 14)) == 1
    assert weeks_between(date(2024, 1, 1), date(2024, 1, 15)) == 2
    assert weeks_between(date(2024, 1, 8), date(2024, 1, 1)) == -1
    assert weeks_between(date(2024, 1, 8), date(2024, 1, 5)) == -1


def test_months_between_ignores_day_of_month():
    assert months_between(date(2024, 1, 31), date(2024, 3, 1)) == 2
    assert months_between(date(2023, 12, 15), date(2024, 1, 1)) == 1
    assert months_between(date(2024, 5, 1), date(2024, 2, 28)) == -3


def test_last_day_of_month_handles_leap_years():
    assert last_day_of_month(date(2024, 2, 10)) == 29
    assert last_day_of_month(date(2023, 2, 1)) == 28
    assert last_day_of_month(date(2024, 4, 1)) == 30


def test_add_months_and_years_clamp():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
    assert add_months(date(2024, 1, 15), -2) == date(2023, 11, 15)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
    assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
    assert add_years(date(2024, 3, 1), 1) == date(2025, 3, 1)


def test_week_of_month_rows_start_on_sunday():
    # February 2024 starts on a Thursday
    assert week_of_month(date(2024, 2, 1)) == 1
    assert week_of_month(date(2024, 2, 3)) == 1
    assert week_of_month(date(2024, 2, 4)) == 2
    assert week_of_month(date(2024, 2, 5)) == 2
    assert week_of_month(date(2024, 2, 29)) == 5
    # September 2024 starts on a Sunday
    assert week_of_month(date(2024, 9, 1)) == 1
    assert week_of_month(date(2024, 9, 7)) == 1
    assert week_of_month(date(2024, 9, 8)) == 2
    assert week_of_month(date(2024, 9, 30)) == 5


def test_each_weekday_appears_once_per_week_row():
    for month in range(1, 13):
        seen = set()
        d = date(2024, month, 1)
        while d.month == month:
            key = (weekday_index(d), week_of_month(d))
            assert key not in seen, d
            seen.add(key)
            d += timedelta(days=1)


def test_is_last_weekday_of_month():
    assert is_last_weekday_of_month(date(2024, 2, 23))
    assert not is_last_weekday_of_month(date(2024, 2, 16))
    assert is_last_weekday_of_month(date(2024, 2, 29))


def test_timestamps_round_trip_in_utc():
    stamp = to_iso(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=2))))
    assert stamp == "2024-01-02T01:04:05Z"
    assert parse_timestamp(stamp) == datetime(2024, 1, 2, 1, 4, 5, tzinfo=timezone.utc)
    assert to_iso(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05Z"


def test_resolve_day_expressions():
    today = today_in_tz("UTC")
    assert resolve_day("2024-01-03") == date(2024, 1, 3)
    assert resolve_day("today") == today
    assert resolve_day("Yesterday") == today - timedelta(days=1)
    assert resolve_day("today-3") == today - timedelta(days=3)
    assert resolve_day("today+2") == today + timedelta(days=2)
    assert resolve_day("next fortnight") is None
    assert resolve_day("") is None
