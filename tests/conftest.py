"""Shared test fixtures and configuration.

Sets up environment variables before any src imports so src.config loads
predictable values, and provides temp-file SQLite stores and a schedule
calculator.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("WORKER_INTERVAL_SECONDS", "10")
os.environ.setdefault("LUNAR_TIMEZONE_OFFSET", "7.0")

import pytest


@pytest.fixture
def calculator():
    from src.core.lunar_calendar import LunarCalendar
    from src.core.schedule_calculator import ScheduleCalculator
    return ScheduleCalculator(LunarCalendar())


@pytest.fixture
def reminder_db(tmp_path):
    """Return a ReminderDB instance backed by a temp file."""
    from src.data.db import ReminderDB
    return ReminderDB(db_path=str(tmp_path / "test_reminders.db"))


@pytest.fixture
def user_db(tmp_path):
    """Return a UserDB instance backed by a temp file."""
    from src.data.db import UserDB
    return UserDB(db_path=str(tmp_path / "test_users.db"))


@pytest.fixture
def status_db(tmp_path):
    """Return a SystemStatusDB instance backed by a temp file."""
    from src.data.db import SystemStatusDB
    return SystemStatusDB(db_path=str(tmp_path / "test_status.db"))
