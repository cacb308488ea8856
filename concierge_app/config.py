from __future__ import annotations

import logging
import os
import sys
from pathlib import Path


APP_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.environ.get("CONCIERGE_DATA_DIR") or APP_DIR / "data")
DATABASE_URL = os.environ.get("CONCIERGE_DATABASE_URL") or f"sqlite:///{(DATA_DIR / 'concierge.db').as_posix()}"
API_KEY = os.environ.get("CONCIERGE_API_KEY", "")
LOG_LEVEL = os.environ.get("CONCIERGE_LOG_LEVEL", "INFO").upper()

MIN_YEAR = 2020
MAX_YEAR = 2100
MAX_NOTES_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 500
MAX_NAME_LENGTH = 100
DATE_WINDOW_YEARS = 10
SNAPSHOT_VERSION = 1


def ensure_data_dir() -> Path:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR


def configure_logging(level: str | None = None) -> logging.Logger:
    """Install a stream handler on the root logger for the API process."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    return logging.getLogger("concierge")
