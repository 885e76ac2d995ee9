from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_DIR = Path(__file__).resolve().parent
DATA_DIR = APP_DIR / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
STATIC_DIR = APP_DIR / "static"

DEFAULT_SUPABASE_URL = "http://localhost:54321"
_SUPABASE_PROJECT_RE = re.compile(r"//([^.]+)\.supabase\.co")


class Settings(BaseSettings):
    """Runtime settings loaded from the environment or a local .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Remote store ===
    DATABASE_URL: Optional[str] = None
    SUPABASE_URL: str = DEFAULT_SUPABASE_URL
    SUPABASE_ANON_KEY: str = ""
    REMOTE_ENABLED: bool = True
    REMOTE_TIMEOUT_SECONDS: float = 10.0
    CHANGE_POLL_SECONDS: float = 5.0

    # === Application ===
    LOCATION_ID: str = "main"
    COMPANY_NAME: str = "Staff Roster"
    SYSTEM_TITLE: str = "Staff Roster Management System"
    TIMEZONE: str = "Australia/Melbourne"
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "changeme"

    # === Server ===
    HOST: str = "127.0.0.1"
    PORT: int = 5000
    LOG_LEVEL: str = "INFO"

    @field_validator("REMOTE_TIMEOUT_SECONDS", "CHANGE_POLL_SECONDS")
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()


settings = Settings()


def resolve_supabase_url(database_url: Optional[str], default: str) -> str:
    """Return the project URL embedded in a Supabase connection string, else ``default``."""
    if database_url and "supabase" in database_url:
        match = _SUPABASE_PROJECT_RE.search(database_url)
        if match:
            return f"https://{match.group(1)}.supabase.co"
    return default


def remote_config(config: Settings | None = None) -> Dict[str, Any]:
    config = config or settings
    return {
        "supabase": {
            "url": resolve_supabase_url(config.DATABASE_URL, config.SUPABASE_URL),
            "key": config.SUPABASE_ANON_KEY,
            "enabled": bool(config.REMOTE_ENABLED),
        }
    }
