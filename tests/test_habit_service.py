from datetime import datetime, timedelta, timezone

import pytest

from errors import WrongTaskType
from habit_service import (
    clean_old_completions,
    get_completion_history,
    get_statistics,
    is_successful,
    record_completion,
    time_range_start,
)
from models import HabitType, TaskType, TimeRangeType

NOW = datetime(2024, 3, 31, 12, tzinfo=timezone.utc)


def test_time_range_start():
    assert time_range_start(3, TimeRangeType.DAYS, NOW) == NOW - timedelta(days=3)
    assert time_range_start(2, "WEEKS", NOW) == NOW - timedelta(days=14)
    assert time_range_start(1, TimeRangeType.MONTHS, NOW) == datetime(2024, 2, 29, 12, tzinfo=timezone.utc)


def test_is_successful_by_habit_type():
    assert is_successful(3, 3, HabitType.GOOD)
    assert not is_successful(2, 3, "GOOD")
    assert is_successful(0, 1, HabitType.BAD)
    assert not is_successful(2, 1, HabitType.BAD)


def test_good_habit_reaches_threshold(make_task):
    habit = make_task(TaskType.HABIT, threshold_count=2, time_range_value=7)
    first = record_completion(habit.id, now=NOW)
    assert first["completion_count"] == 1
    assert first["is_successful"] is False
    assert first["days_since_last_completion"] == 0
    second = record_completion(habit.id, now=NOW + timedelta(hours=1))
    assert second["completion_count"] == 2
    assert second["is_successful"] is True
    assert second["task"].last_completion_at == NOW + timedelta(hours=1)


def test_bad_habit_fails_above_threshold(make_task):
    habit = make_task(TaskType.HABIT, habit_type=HabitType.BAD, threshold_count=1, time_range_value=1)
    assert record_completion(habit.id, now=NOW)["is_successful"] is True
    assert record_completion(habit.id, now=NOW + timedelta(minutes=5))["is_successful"] is False


def test_completions_outside_range_are_dropped(make_task):
    habit = make_task(TaskType.HABIT, threshold_count=2, time_range_value=7)
    record_completion(habit.id, now=NOW - timedelta(days=10))
    result = record_completion(habit.id, now=NOW)
    assert result["completion_count"] == 1
    assert len(get_completion_history(habit.id)) == 1


def test_statistics(make_task):
    habit = make_task(TaskType.HABIT, threshold_count=2, time_range_type=TimeRangeType.WEEKS, time_range_value=1)
    empty = get_statistics(habit.id, now=NOW)
    assert empty["completion_count"] == 0
    assert empty["completion_rate"] == 0.0
    assert empty["days_since_last_completion"] == -1
    assert empty["completion_history"] == []

    record_completion(habit.id, now=NOW - timedelta(days=2))
    stats = get_statistics(habit.id, now=NOW)
    assert stats["completion_count"] == 1
    assert stats["completion_rate"] == 50.0
    assert stats["is_successful"] is False
    assert stats["days_since_last_completion"] == 2
    assert stats["completion_history"] == [{"date": "2024-03-29", "count": 1}]


def test_clean_old_completions(make_task):
    habit = make_task(TaskType.HABIT, threshold_count=1, time_range_value=7)
    record_completion(habit.id, now=NOW - timedelta(days=20))
    assert clean_old_completions(now=NOW) == 1
    assert get_completion_history(habit.id) == []
    assert clean_old_completions(now=NOW) == 0


def test_habit_operations_reject_other_types(make_task):
    todo = make_task(TaskType.TODO)
    with pytest.raises(WrongTaskType):
        record_completion(todo.id, now=NOW)
    with pytest.raises(WrongTaskType):
        get_completion_history(todo.id)
