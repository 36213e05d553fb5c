"""Store ports — abstract persistence interfaces used by the worker.

Each call is treated as one atomic row-level operation; the worker does no
concurrency control of its own.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.data.models import Reminder, User


class NotFoundError(Exception):
    """Raised when a reminder or user does not exist."""


class ReminderStore(Protocol):
    def get_due_reminders(self, now: datetime) -> list[Reminder]: ...

    def get_by_id(self, reminder_id: str) -> Reminder: ...

    def update(self, reminder: Reminder) -> None: ...

    def update_next_action_at(
        self, reminder_id: str, next_action_at: datetime | None
    ) -> None: ...


class UserStore(Protocol):
    def get_by_id(self, user_id: str) -> User: ...

    def disable_fcm(self, user_id: str) -> None: ...


class SystemStatusStore(Protocol):
    def is_worker_enabled(self) -> bool: ...

    def disable_worker(self, reason: str) -> None: ...

    def clear_error(self) -> None: ...
