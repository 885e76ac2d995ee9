from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Optional

from settings import DATA_DIR, settings


LOG_DIR = DATA_DIR / "logs"


def setup_logging(level: Optional[str] = None, log_dir: Optional[Path] = None) -> None:
    """Configure console and rotating file logging for the roster app."""
    level = (level or settings.LOG_LEVEL).upper()
    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "detailed": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s:%(lineno)d - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
                "app_file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "level": level,
                    "formatter": "detailed",
                    "filename": str(log_dir / "roster.log"),
                    "maxBytes": 5 * 1024 * 1024,
                    "backupCount": 5,
                    "encoding": "utf-8",
                },
            },
            "root": {"level": level, "handlers": ["console", "app_file"]},
            "loggers": {
                "httpx": {"level": "WARNING"},
                "uvicorn.access": {"level": "WARNING"},
            },
        }
    )
