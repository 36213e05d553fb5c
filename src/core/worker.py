"""
Remiaq — Reminder Worker.

Polls the reminder store on a fixed interval. Each cycle walks the due
reminders, decides between an FRP fire (new cycle), a CRP pulse, or a plain
``next_action_at`` refresh, pushes the notification and writes the advanced
reminder back in a single update.

Failure policy:
- missing user / calculation problem: log, skip that reminder;
- token rejected by the push provider: disable that user's FCM, keep going;
- anything else from the sender or the stores: disable the worker, record
  the reason and stop the cycle.

This module is provider-agnostic: it depends on the store and notification
protocols, not on SQLite or Firebase.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from src.core.schedule_calculator import CalculationError
from src.data.models import ReminderStatus, RepeatStrategy
from src.ports.notification_port import TokenInvalidError
from src.ports.store_port import NotFoundError

if TYPE_CHECKING:
    from src.core.schedule_calculator import ScheduleCalculator
    from src.data.models import Reminder, User
    from src.ports.notification_port import NotificationPort
    from src.ports.store_port import ReminderStore, SystemStatusStore, UserStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60

# Error codes FCM uses for tokens that will never be deliverable again
_TOKEN_ERROR_CODES = frozenset({"UNREGISTERED", "INVALID_ARGUMENT", "NOT_FOUND"})


class FailureKind(Enum):
    TOKEN_INVALID = "token_invalid"
    SYSTEM = "system"


class TriggerKind(Enum):
    FRP = "frp"
    CRP = "crp"


def classify_failure(exc: BaseException) -> FailureKind:
    """Map a delivery exception onto the two-level escalation policy."""
    if isinstance(exc, TokenInvalidError):
        return FailureKind.TOKEN_INVALID
    if str(exc).strip() in _TOKEN_ERROR_CODES:
        return FailureKind.TOKEN_INVALID
    return FailureKind.SYSTEM


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReminderWorker:
    """Processes due reminders using the FRP + CRP model."""

    def __init__(
        self,
        reminder_store: ReminderStore,
        user_store: UserStore,
        status_store: SystemStatusStore,
        sender: NotificationPort,
        calculator: ScheduleCalculator,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._reminders = reminder_store
        self._users = user_store
        self._status = status_store
        self._sender = sender
        self._calc = calculator
        self._interval = interval_seconds if interval_seconds > 0 else DEFAULT_INTERVAL_SECONDS
        self._clock = clock

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def start(self, stop_event: asyncio.Event) -> None:
        """Run cycles every interval until ``stop_event`` is set.

        The event is only observed between cycles, so an in-flight cycle
        always finishes.
        """
        logger.info("Worker started (interval=%ss)", self._interval)
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                try:
                    await self.run_once(self._clock())
                except Exception:
                    logger.exception("Worker cycle crashed")
        logger.info("Worker stopped")

    async def run_once(self, now: datetime) -> None:
        """Process a single polling cycle at reference time ``now``."""
        try:
            enabled = self._status.is_worker_enabled()
        except Exception as exc:
            logger.error("Failed to check system status: %s", exc)
            return
        if not enabled:
            logger.debug("Worker disabled, skipping cycle")
            return

        try:
            reminders = self._reminders.get_due_reminders(now)
        except Exception as exc:
            logger.error("Failed to get due reminders: %s", exc)
            return

        if reminders:
            logger.info("Processing %d due reminders", len(reminders))

        for reminder in reminders:
            try:
                await self._process_reminder(reminder, now)
            except NotFoundError as exc:
                logger.error("Reminder %s skipped, not found: %s", reminder.id, exc)
            except CalculationError as exc:
                logger.error("Reminder %s skipped, schedule error: %s", reminder.id, exc)
            except Exception as exc:
                logger.error("SYSTEM ERROR for reminder %s: %s", reminder.id, exc)
                self._status.disable_worker(str(exc) or type(exc).__name__)
                return

        self._status.clear_error()

    # ------------------------------------------------------------------
    # Per-reminder state machine
    # ------------------------------------------------------------------

    async def _process_reminder(self, reminder: Reminder, now: datetime) -> None:
        if reminder.is_snoozed(now):
            logger.debug("Reminder %s snoozed until %s", reminder.id, reminder.snooze_until)
            self._refresh_next_action_at(reminder, now)
            return

        kind = self._trigger_kind(reminder, now)
        if kind is None:
            if self._is_frp_blocked(reminder, now):
                self._skip_missed_cycle(reminder, now)
            else:
                self._refresh_next_action_at(reminder, now)
            return

        # Computed before sending so a schedule error never causes a send
        # that can't be recorded.
        updated = self._advance(reminder, kind, now)

        user = self._users.get_by_id(reminder.user_id)
        if user.has_active_token:
            if not await self._deliver(reminder, user):
                return
        else:
            logger.info(
                "User %s has no active FCM token, advancing reminder %s without sending",
                user.id, reminder.id,
            )
            updated.last_sent_at = reminder.last_sent_at

        self._reminders.update(updated)
        logger.info(
            "%s processed for reminder %s (crp=%d/%d, next_action_at=%s)",
            kind.name, reminder.id, updated.crp_count, updated.max_crp,
            updated.next_action_at,
        )

    def _trigger_kind(self, reminder: Reminder, now: datetime) -> TriggerKind | None:
        if reminder.is_frp_due(now) and not self._is_frp_blocked(reminder, now):
            return TriggerKind.FRP
        if self._calc.can_send_crp(reminder, now):
            return TriggerKind.CRP
        return None

    @staticmethod
    def _is_frp_blocked(reminder: Reminder, now: datetime) -> bool:
        """FRP is due but the user has not completed the current cycle."""
        return (
            reminder.is_frp_due(now)
            and reminder.repeat_strategy is RepeatStrategy.CRP_UNTIL_COMPLETE
            and not reminder.is_cycle_completed()
        )

    def _advance(self, reminder: Reminder, kind: TriggerKind, now: datetime) -> Reminder:
        """Return a copy of the reminder with bookkeeping for a send at ``now``."""
        updated = replace(reminder)
        updated.last_sent_at = now
        updated.crp_count += 1

        if kind is TriggerKind.FRP:
            updated.crp_count = 0
            updated.next_recurring = self._calc.calculate_next_recurring(reminder, now)
            updated.next_crp = now + reminder.crp_interval if reminder.max_crp > 0 else None
            updated.next_action_at = self._calc.calculate_next_action_at(updated, now)
            return updated

        updated.next_crp = now + reminder.crp_interval
        if updated.has_crp_quota():
            updated.next_action_at = self._calc.calculate_next_action_at(updated, now)
        elif updated.is_one_time:
            logger.info("One-time reminder %s reached its quota, completing", reminder.id)
            updated.status = ReminderStatus.COMPLETED
            updated.next_crp = None
            updated.next_action_at = None
        else:
            # Only the next FRP can reopen the cycle
            updated.next_action_at = updated.next_recurring
        return updated

    def _skip_missed_cycle(self, reminder: Reminder, now: datetime) -> None:
        """Move a blocked FRP to its next occurrence without sending."""
        updated = replace(reminder)
        updated.next_recurring = self._calc.calculate_next_recurring(reminder, now)
        updated.next_action_at = self._calc.calculate_next_action_at(updated, now)
        self._reminders.update(updated)
        logger.info(
            "Reminder %s cycle not completed, FRP moved to %s",
            reminder.id, updated.next_recurring,
        )

    def _refresh_next_action_at(self, reminder: Reminder, now: datetime) -> None:
        next_action = self._calc.calculate_next_action_at(reminder, now)
        if next_action != reminder.next_action_at:
            self._reminders.update_next_action_at(reminder.id, next_action)

    async def _deliver(self, reminder: Reminder, user: User) -> bool:
        """Push the reminder. Returns False if the user's token was rejected.

        System-level failures propagate to ``run_once``.
        """
        try:
            await self._sender.send_notification(
                user.fcm_token, reminder.title, reminder.description,
            )
        except Exception as exc:
            if classify_failure(exc) is not FailureKind.TOKEN_INVALID:
                raise
            logger.warning(
                "Token rejected for user %s (reminder %s): %s, disabling FCM",
                user.id, reminder.id, exc,
            )
            self._users.disable_fcm(user.id)
            return False
        return True
