"""Notification port — abstract interface for pushing reminders to devices.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationError(Exception):
    """Raised when a push could not be delivered for infrastructure reasons."""


class TokenInvalidError(NotificationError):
    """Raised when the device token is permanently undeliverable."""


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_notification(self, token: str, title: str, body: str) -> None: ...
