"""
Remiaq — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_ENVIRONMENTS = ("development", "production", "testing")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Worker polling
    WORKER_INTERVAL_SECONDS: int = 10

    # Firebase service-account JSON (falls back to ADC when missing)
    FCM_CREDENTIALS_PATH: str = "firebase-credentials.json"

    # SQLite
    DATABASE_PATH: str = "data/reminders.db"

    # Lunar calendar evaluated at this fixed UTC offset (hours)
    LUNAR_TIMEZONE_OFFSET: float = 7.0

    ENVIRONMENT: str = "development"

    @field_validator("WORKER_INTERVAL_SECONDS", mode="before")
    @classmethod
    def parse_interval(cls, v: str | int) -> int:
        interval = int(v)
        if interval <= 0:
            raise ValueError("must be positive")
        if interval > 3600:
            raise ValueError("cannot exceed 3600 seconds (1 hour)")
        return interval

    @field_validator("LUNAR_TIMEZONE_OFFSET", mode="before")
    @classmethod
    def parse_offset(cls, v: str | float) -> float:
        offset = float(v)
        if not -12 <= offset <= 14:
            raise ValueError("must be between -12 and 14 hours")
        return offset

    @field_validator("ENVIRONMENT")
    @classmethod
    def check_environment(cls, v: str) -> str:
        if v not in _ENVIRONMENTS:
            raise ValueError(f"must be one of: {', '.join(_ENVIRONMENTS)}")
        return v

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            WORKER_INTERVAL_SECONDS=os.getenv("WORKER_INTERVAL_SECONDS", "10"),
            FCM_CREDENTIALS_PATH=os.getenv("FCM_CREDENTIALS_PATH", "firebase-credentials.json"),
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/reminders.db"),
            LUNAR_TIMEZONE_OFFSET=os.getenv("LUNAR_TIMEZONE_OFFSET", "7.0"),
            ENVIRONMENT=os.getenv("ENVIRONMENT", "development"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
