"""
SQLite database initialization and connection for streakkeeper.
Self-bootstrapping: creates DB file, tables, indexes, and constraints on first run.
"""
from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

# Default DB path: project directory
_DEFAULT_DB_PATH = Path(__file__).resolve().parent / "streakkeeper.db"

# Wait up to this many seconds for locks (web + scheduler thread share the DB)
_CONNECT_TIMEOUT = 30.0

_SCHEMA = """
-- Primary table: tasks. One row per task; task_type decides which columns are meaningful.
-- HABIT: habit_type, threshold_count, time_range_value, time_range_type, last_completion_at
-- DAILY_TASK: started_on, is_recurring, recurrence_*, streak counters
-- TODO: due_at, is_overdue
-- LONG_TERM: progress, show_progress, target_completion_on
-- recurrence_days_of_week / _days_of_month / _weeks_of_month: JSON arrays of integers
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    task_type TEXT NOT NULL CHECK (task_type IN ('HABIT', 'DAILY_TASK', 'TODO', 'LONG_TERM')),
    title TEXT NOT NULL,
    description TEXT,
    importance INTEGER NOT NULL DEFAULT 1 CHECK (importance >= 1 AND importance <= 5),
    is_completed INTEGER NOT NULL DEFAULT 0,
    order_index INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    habit_type TEXT,
    threshold_count INTEGER,
    time_range_value INTEGER,
    time_range_type TEXT,
    last_completion_at TEXT,
    started_on TEXT,
    is_recurring INTEGER NOT NULL DEFAULT 1,
    recurrence_type TEXT,
    recurrence_interval INTEGER,
    recurrence_days_of_week TEXT,
    recurrence_days_of_month TEXT,
    recurrence_weeks_of_month TEXT,
    current_consecutive_completed INTEGER NOT NULL DEFAULT 0,
    current_consecutive_missed INTEGER NOT NULL DEFAULT 0,
    max_consecutive_completed INTEGER NOT NULL DEFAULT 0,
    last_recalculated_at TEXT,
    due_at TEXT,
    is_overdue INTEGER NOT NULL DEFAULT 0,
    progress REAL NOT NULL DEFAULT 0,
    show_progress INTEGER NOT NULL DEFAULT 1,
    target_completion_on TEXT
);

CREATE INDEX IF NOT EXISTS idx_tasks_task_type ON tasks(task_type);
CREATE INDEX IF NOT EXISTS idx_tasks_order_index ON tasks(order_index);
CREATE INDEX IF NOT EXISTS idx_tasks_due_at ON tasks(due_at);

-- Per-day completion state of daily tasks: at most one row per task per calendar day
CREATE TABLE IF NOT EXISTS completion_history (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    completed_on TEXT NOT NULL,
    is_completed INTEGER NOT NULL DEFAULT 0,
    recorded_at TEXT NOT NULL,
    UNIQUE (task_id, completed_on),
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_completion_history_day ON completion_history(completed_on);

-- Habit completions: one row per recorded completion (several per day allowed)
CREATE TABLE IF NOT EXISTS habit_completions (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    completed_at TEXT NOT NULL,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_habit_completions_task ON habit_completions(task_id, completed_at);

-- Milestones of long-term tasks
CREATE TABLE IF NOT EXISTS milestones (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    is_completed INTEGER NOT NULL DEFAULT 0,
    completed_at TEXT,
    order_index INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_milestones_task ON milestones(task_id, order_index);

-- Event log for task mutations (audit / analytics)
CREATE TABLE IF NOT EXISTS task_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    event TEXT NOT NULL,
    payload TEXT
);

CREATE INDEX IF NOT EXISTS idx_task_events_task ON task_events(task_id);
CREATE INDEX IF NOT EXISTS idx_task_events_timestamp ON task_events(timestamp);
"""


def get_db_path() -> Path:
    """Return the database file path (from config if set)."""
    from config import load as load_config

    path = load_config().database_path
    if path:
        return Path(path)
    return _DEFAULT_DB_PATH


def init_database(path: Path | None = None) -> Path:
    """
    Ensure the database exists and is initialized. Creates file and all tables/indexes.
    Returns the path to the database file.
    """
    db_path = path or get_db_path()
    db_path = db_path.resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=_CONNECT_TIMEOUT)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(_SCHEMA)
        # Migration: last_recalculated_at was added after the first release
        _add_column_if_missing(conn, "tasks", "last_recalculated_at TEXT")
        conn.commit()
    finally:
        conn.close()
    return db_path


def _add_column_if_missing(conn: sqlite3.Connection, table: str, column_def: str) -> None:
    try:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column_def}")
    except sqlite3.OperationalError as e:
        if "duplicate column" not in str(e).lower():
            raise


def get_connection(path: Path | None = None) -> sqlite3.Connection:
    """Return a connection to the database, bootstrapping the schema if needed."""
    db_path = path or get_db_path()
    init_database(db_path)
    conn = sqlite3.connect(str(db_path), timeout=_CONNECT_TIMEOUT)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run a read-modify-write sequence under BEGIN IMMEDIATE: the write lock is taken
    before the first read, so two togglers of the same task serialize instead of
    losing an update. Commits on success, rolls back on any exception.
    """
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


def migrate() -> Path:
    """Run database init + migrations. Use this to migrate manually: python -m database"""
    return init_database()


if __name__ == "__main__":
    p = migrate()
    print("Database migrated:", p)
