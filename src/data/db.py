"""
Remiaq — SQLite stores.

Concrete ReminderStore, UserStore and SystemStatusStore implementations.
Timestamps are stored as UTC ISO-8601 strings with a fixed layout so that
string comparison orders them correctly in SQL.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from src.data.models import (
    CalendarType,
    RecurrencePattern,
    Reminder,
    ReminderStatus,
    ReminderType,
    RepeatStrategy,
    SystemStatus,
    User,
)
from src.ports.store_port import NotFoundError

logger = logging.getLogger(__name__)


def _to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class _SQLiteStore:
    """Shared connection handling for the stores below."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


class ReminderDB(_SQLiteStore):
    """SQLite-backed storage for reminders."""

    _COLUMNS = (
        "user_id", "title", "description", "type", "calendar_type", "status",
        "recurrence_pattern", "repeat_strategy", "next_recurring", "next_crp",
        "crp_interval_sec", "max_crp", "crp_count", "next_action_at",
        "snooze_until", "last_sent_at", "last_crp_completed_at",
        "last_completed_at", "created_at",
    )

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id                    TEXT    PRIMARY KEY,
                    user_id               TEXT    NOT NULL,
                    title                 TEXT    NOT NULL,
                    description           TEXT    NOT NULL DEFAULT '',
                    type                  TEXT    NOT NULL,
                    calendar_type         TEXT    NOT NULL DEFAULT 'solar',
                    status                TEXT    NOT NULL DEFAULT 'active',
                    recurrence_pattern    TEXT,
                    repeat_strategy       TEXT    NOT NULL DEFAULT 'none',
                    next_recurring        TEXT,
                    next_crp              TEXT,
                    crp_interval_sec      INTEGER NOT NULL DEFAULT 0,
                    max_crp               INTEGER NOT NULL DEFAULT 0,
                    crp_count             INTEGER NOT NULL DEFAULT 0,
                    next_action_at        TEXT,
                    snooze_until          TEXT,
                    last_sent_at          TEXT,
                    last_crp_completed_at TEXT,
                    last_completed_at     TEXT,
                    created_at            TEXT
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reminders_due "
                "ON reminders (status, next_action_at)"
            )
        logger.debug("Reminders table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        pattern = row["recurrence_pattern"]
        return Reminder(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            type=ReminderType(row["type"]),
            calendar_type=CalendarType(row["calendar_type"]),
            status=ReminderStatus(row["status"]),
            recurrence_pattern=RecurrencePattern.from_dict(json.loads(pattern)) if pattern else None,
            repeat_strategy=RepeatStrategy(row["repeat_strategy"]),
            next_recurring=_from_db(row["next_recurring"]),
            next_crp=_from_db(row["next_crp"]),
            crp_interval_sec=row["crp_interval_sec"],
            max_crp=row["max_crp"],
            crp_count=row["crp_count"],
            next_action_at=_from_db(row["next_action_at"]),
            snooze_until=_from_db(row["snooze_until"]),
            last_sent_at=_from_db(row["last_sent_at"]),
            last_crp_completed_at=_from_db(row["last_crp_completed_at"]),
            last_completed_at=_from_db(row["last_completed_at"]),
            created_at=_from_db(row["created_at"]),
        )

    @staticmethod
    def _reminder_values(reminder: Reminder) -> tuple:
        pattern = reminder.recurrence_pattern
        return (
            reminder.user_id,
            reminder.title,
            reminder.description,
            reminder.type.value,
            reminder.calendar_type.value,
            reminder.status.value,
            json.dumps(pattern.to_dict()) if pattern else None,
            reminder.repeat_strategy.value,
            _to_db(reminder.next_recurring),
            _to_db(reminder.next_crp),
            reminder.crp_interval_sec,
            reminder.max_crp,
            reminder.crp_count,
            _to_db(reminder.next_action_at),
            _to_db(reminder.snooze_until),
            _to_db(reminder.last_sent_at),
            _to_db(reminder.last_crp_completed_at),
            _to_db(reminder.last_completed_at),
            _to_db(reminder.created_at),
        )

    def add_reminder(self, reminder: Reminder) -> Reminder:
        """Insert a reminder, generating a 15-character id when none is set."""
        if not reminder.id:
            reminder.id = uuid.uuid4().hex[:15]

        placeholders = ", ".join("?" for _ in range(len(self._COLUMNS) + 1))
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO reminders (id, {', '.join(self._COLUMNS)}) "
                f"VALUES ({placeholders})",
                (reminder.id, *self._reminder_values(reminder)),
            )
        logger.info("Reminder added: %s '%s'", reminder.id, reminder.title)
        return reminder

    def get_by_id(self, reminder_id: str) -> Reminder:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reminders WHERE id = ?", (reminder_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"reminder {reminder_id} not found")
        return self._row_to_reminder(row)

    def get_due_reminders(self, now: datetime) -> list[Reminder]:
        """Return active reminders whose next_action_at <= now, earliest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reminders
                WHERE status = ?
                  AND next_action_at IS NOT NULL
                  AND next_action_at <= ?
                ORDER BY next_action_at
                """,
                (ReminderStatus.ACTIVE.value, _to_db(now)),
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def update(self, reminder: Reminder) -> None:
        """Write every field of the reminder in one statement."""
        assignments = ", ".join(f"{col} = ?" for col in self._COLUMNS)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE reminders SET {assignments} WHERE id = ?",
                (*self._reminder_values(reminder), reminder.id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"reminder {reminder.id} not found")
        logger.debug("Reminder %s updated", reminder.id)

    def update_next_action_at(
        self, reminder_id: str, next_action_at: datetime | None,
    ) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE reminders SET next_action_at = ? WHERE id = ?",
                (_to_db(next_action_at), reminder_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"reminder {reminder_id} not found")


class UserDB(_SQLiteStore):
    """SQLite-backed storage for push recipients."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id            TEXT    PRIMARY KEY,
                    email         TEXT    NOT NULL DEFAULT '',
                    fcm_token     TEXT    NOT NULL DEFAULT '',
                    is_fcm_active INTEGER NOT NULL DEFAULT 0,
                    created_at    TEXT    NOT NULL
                )
            """)
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            fcm_token=row["fcm_token"],
            is_fcm_active=bool(row["is_fcm_active"]),
        )

    def add_user(self, user_id: str, fcm_token: str = "", email: str = "") -> User:
        """Register a user; FCM is active as soon as a token is known."""
        active = bool(fcm_token)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, fcm_token, is_fcm_active, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, email, fcm_token, int(active), _to_db(datetime.now(timezone.utc))),
            )
        logger.info("User registered: %s", user_id)
        return User(id=user_id, email=email, fcm_token=fcm_token, is_fcm_active=active)

    def get_by_id(self, user_id: str) -> User:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"user {user_id} not found")
        return self._row_to_user(row)

    def disable_fcm(self, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET is_fcm_active = 0 WHERE id = ?", (user_id,)
            )
        logger.info("FCM disabled for user %s", user_id)


class SystemStatusDB(_SQLiteStore):
    """Singleton row (mid = 1) controlling the worker."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_status (
                    mid            INTEGER PRIMARY KEY CHECK (mid = 1),
                    worker_enabled INTEGER NOT NULL DEFAULT 1,
                    last_error     TEXT    NOT NULL DEFAULT '',
                    updated        TEXT
                )
            """)
            conn.execute(
                "INSERT OR IGNORE INTO system_status (mid, worker_enabled, last_error, updated) "
                "VALUES (1, 1, '', ?)",
                (_to_db(datetime.now(timezone.utc)),),
            )
        logger.debug("System status table initialized at %s", self._db_path)

    def _set(self, worker_enabled: bool | None, last_error: str) -> None:
        now = _to_db(datetime.now(timezone.utc))
        with self._connect() as conn:
            if worker_enabled is None:
                conn.execute(
                    "UPDATE system_status SET last_error = ?, updated = ? WHERE mid = 1",
                    (last_error, now),
                )
            else:
                conn.execute(
                    "UPDATE system_status SET worker_enabled = ?, last_error = ?, updated = ? "
                    "WHERE mid = 1",
                    (int(worker_enabled), last_error, now),
                )

    def get(self) -> SystemStatus:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT worker_enabled, last_error FROM system_status WHERE mid = 1"
            ).fetchone()
        return SystemStatus(
            worker_enabled=bool(row["worker_enabled"]),
            last_error=row["last_error"],
        )

    def is_worker_enabled(self) -> bool:
        return self.get().worker_enabled

    def enable_worker(self) -> None:
        self._set(True, "")
        logger.info("Worker enabled")

    def disable_worker(self, reason: str) -> None:
        self._set(False, reason)
        logger.warning("Worker disabled: %s", reason)

    def clear_error(self) -> None:
        self._set(None, "")
