"""Configuration load/save for streakkeeper."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

CONFIG_PATH = Path(__file__).resolve().parent / "config.json"


class AppConfig(BaseModel):
    """Persisted application configuration."""

    debug: bool = Field(default=False, description="Log every API request line at WARNING level")
    web_ui_port: int = Field(default=8081, ge=1, le=65535)
    api_key: str = Field(default="", description="When set, API requests must send it in the X-API-Key header")
    database_path: str = Field(default="", description="Path to SQLite database file; empty = project dir / streakkeeper.db")
    user_timezone: str = Field(default="UTC", description="IANA timezone that decides what 'today' is (e.g. America/New_York)")
    rollover_cron: str = Field(default="5 0 * * *", description="5-field cron (in user_timezone) for the daily rollover job")
    refresh_cooldown_minutes: int = Field(default=10, ge=0, description="Minimum minutes between rollovers triggered by listing tasks")
    streak_window_days: int = Field(default=365, ge=1, description="Trailing days of history used to recompute streaks")
    statistics_window_days: int = Field(default=30, ge=1, description="Trailing days shown in task statistics")

    def to_save_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def load(cls) -> "AppConfig":
        if not CONFIG_PATH.exists():
            return cls()
        raw = json.loads(CONFIG_PATH.read_text())
        return cls.model_validate(raw)

    def save(self) -> None:
        CONFIG_PATH.write_text(json.dumps(self.to_save_dict(), indent=2))


def load() -> AppConfig:
    """Load config from disk. Convenience alias for AppConfig.load()."""
    return AppConfig.load()
