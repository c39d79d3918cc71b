#!/usr/bin/env python3
"""
Main entrypoint: start the maintenance scheduler and the HTTP API.
Run with: python run.py
Or run the API only (no scheduled rollover): python -m web_app
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure app loggers (streakkeeper.api, task_service, ...) emit to the same stream as uvicorn
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)

# Project root
ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT))

from config import load as load_config
from scheduler import start_scheduler, stop_scheduler
from task_service import ensure_db


def main() -> None:
    # Bootstrap SQLite database before the first request
    ensure_db()
    start_scheduler()

    # Run web app (blocking)
    import uvicorn

    config = load_config()
    try:
        uvicorn.run(
            "web_app:app",
            host="0.0.0.0",
            port=config.web_ui_port,
            reload=False,
        )
    finally:
        stop_scheduler()


if __name__ == "__main__":
    main()
