"""Application configuration (env-driven settings)."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

_DATA_DIR = Path(__file__).resolve().parents[2] / "data"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


class Settings(BaseModel):
    """Defaults for the reminder service; every field can be overridden via env."""
    db_path: str = Field(default_factory=lambda: os.getenv("HABIT_DB_PATH", str(_DATA_DIR / "habits.db")))
    # Empty string keeps scheduler jobs in memory (tests, throwaway runs).
    scheduler_db_url: str = Field(
        default_factory=lambda: os.getenv("SCHEDULER_DB_URL", f"sqlite:///{_DATA_DIR / 'jobs.db'}")
    )
    default_timezone: str = Field(default_factory=lambda: os.getenv("DEFAULT_TIMEZONE", "UTC"))
    lookahead_days: int = Field(default_factory=lambda: _env_int("REMINDER_LOOKAHEAD_DAYS", 120))
    drift_tolerance_seconds: int = Field(default_factory=lambda: _env_int("REMINDER_DRIFT_TOLERANCE_SECONDS", 120))
    plan_max_day: int = Field(default_factory=lambda: _env_int("REMINDER_PLAN_MAX_DAY", 30))
    details_max_length: int = 800
    webhook_timeout_seconds: float = Field(default_factory=lambda: _env_float("WEBHOOK_TIMEOUT_SECONDS", 10.0))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

settings = Settings()
