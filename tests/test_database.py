import sqlite3

import pytest

import config
from database import get_connection, get_db_path, init_database, migrate, transaction
from models import TaskType


def test_config_round_trip(app_config, tmp_path):
    loaded = config.load()
    assert loaded.database_path == str(tmp_path / "test.db")
    assert loaded.rollover_cron == "5 0 * * *"
    assert loaded.refresh_cooldown_minutes == 10
    assert loaded.streak_window_days == 365
    assert loaded.statistics_window_days == 30


def test_missing_config_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "absent.json")
    assert config.load().user_timezone == "UTC"


def test_schema_bootstrap_is_repeatable(tmp_path):
    path = init_database()
    assert path == (tmp_path / "test.db").resolve()
    assert migrate() == path
    assert get_db_path() == tmp_path / "test.db"
    conn = get_connection()
    try:
        tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()
    assert {"tasks", "completion_history", "habit_completions", "milestones", "task_events"} <= tables


def test_one_history_record_per_day(make_task):
    task = make_task(TaskType.DAILY_TASK, recurrence_type="DAILY")
    conn = get_connection()
    try:
        conn.execute(
            "INSERT INTO completion_history (id, task_id, completed_on, is_completed, recorded_at) VALUES ('a', ?, '2024-01-01', 1, 'x')",
            (task.id,),
        )
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO completion_history (id, task_id, completed_on, is_completed, recorded_at) VALUES ('b', ?, '2024-01-01', 0, 'x')",
                (task.id,),
            )
    finally:
        conn.close()


def test_transaction_rolls_back_on_error():
    conn = get_connection()
    try:
        with pytest.raises(RuntimeError):
            with transaction(conn):
                conn.execute(
                    "INSERT INTO task_events (task_id, timestamp, event) VALUES ('t', '2024-01-01T00:00:00Z', 'x')"
                )
                raise RuntimeError("boom")
        assert conn.execute("SELECT COUNT(*) FROM task_events").fetchone()[0] == 0
        with transaction(conn):
            conn.execute(
                "INSERT INTO task_events (task_id, timestamp, event) VALUES ('t', '2024-01-01T00:00:00Z', 'x')"
            )
        assert conn.execute("SELECT COUNT(*) FROM task_events").fetchone()[0] == 1
    finally:
        conn.close()
