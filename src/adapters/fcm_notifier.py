"""Firebase Cloud Messaging adapter — implements NotificationPort.

Translates firebase-admin exceptions into the port's error types so the
worker can tell dead device tokens apart from infrastructure failures.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

from src.ports.notification_port import NotificationError, TokenInvalidError

logger = logging.getLogger(__name__)

_TOKEN_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
    firebase_exceptions.InvalidArgumentError,
    firebase_exceptions.NotFoundError,
)


def initialize_firebase_app(credentials_path: str | None = None) -> firebase_admin.App:
    """Initialize the default Firebase app once.

    Uses the service-account file when it exists, otherwise Application
    Default Credentials.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass  # not initialized yet

    try:
        if credentials_path and Path(credentials_path).is_file():
            app = firebase_admin.initialize_app(credentials.Certificate(credentials_path))
        else:
            app = firebase_admin.initialize_app()
    except Exception as exc:
        logger.error("Failed to initialize Firebase Admin SDK: %s", exc, exc_info=True)
        raise RuntimeError(f"Firebase Admin SDK initialization failed: {exc}") from exc

    logger.info("Firebase Admin SDK initialized successfully.")
    return app


def _build_message(token: str, title: str, body: str) -> messaging.Message:
    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=title, body=body),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(sound="default"),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default")),
        ),
    )


class FCMNotifier:
    """FCM implementation of NotificationPort."""

    def __init__(self, app: firebase_admin.App | None = None) -> None:
        self._app = app

    async def send_notification(self, token: str, title: str, body: str) -> None:
        if not token:
            raise TokenInvalidError("token is empty")

        message = _build_message(token, title, body)
        try:
            # firebase-admin is blocking; keep the event loop free
            message_id = await asyncio.to_thread(messaging.send, message, app=self._app)
        except _TOKEN_ERRORS as exc:
            raise TokenInvalidError(f"FCM rejected token: {exc}") from exc
        except firebase_exceptions.FirebaseError as exc:
            raise NotificationError(f"FCM send failed ({exc.code}): {exc}") from exc

        logger.debug("FCM message sent: %s", message_id)
