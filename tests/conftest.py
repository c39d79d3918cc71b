from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

import config
from models import TaskCreate, TaskType
from recurrence import RecurrenceType
from task_service import create_task


@pytest.fixture(autouse=True)
def app_config(tmp_path, monkeypatch):
    """Point config.json and the SQLite file at a per-test temporary directory."""
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.json")
    cfg = config.AppConfig(database_path=str(tmp_path / "test.db"), user_timezone="UTC")
    cfg.save()
    return cfg


def utc(y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> datetime:
    return datetime(y, m, d, hh, mm, tzinfo=timezone.utc)


@pytest.fixture
def make_daily():
    """Create a daily task anchored (and created) on started_on."""

    def _make(started_on: date, recurrence_type=RecurrenceType.DAILY, **fields):
        payload = TaskCreate(
            title=fields.pop("title", "Daily"),
            task_type=TaskType.DAILY_TASK,
            recurrence_type=recurrence_type,
            started_on=started_on,
            **fields,
        )
        return create_task(payload, now=utc(started_on.year, started_on.month, started_on.day))

    return _make


@pytest.fixture
def make_task():
    """Create a task of any type from keyword fields."""

    def _make(task_type: TaskType, now: datetime | None = None, **fields):
        fields.setdefault("title", task_type.value.lower())
        return create_task(TaskCreate(task_type=task_type, **fields), now=now)

    return _make
