"""
Remiaq — Reminder lifecycle actions.

The user-facing transitions that feed the scheduling engine: preparing a
freshly created reminder, completing the current cycle, and snoozing.
HTTP handlers call these; the worker never does.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from src.data.models import BaseOn, RecurrenceType, ReminderStatus, ValidationError

if TYPE_CHECKING:
    from src.core.schedule_calculator import ScheduleCalculator
    from src.data.models import Reminder
    from src.ports.store_port import ReminderStore

logger = logging.getLogger(__name__)


def prepare_new_reminder(
    reminder: Reminder, calculator: ScheduleCalculator, now: datetime,
) -> Reminder:
    """Validate a new reminder and fill in its initial trigger state.

    Raises:
        ValidationError: the reminder breaks a domain rule.
        CalculationError: the first FRP cannot be computed.
    """
    reminder.validate()

    prepared = replace(reminder, status=ReminderStatus.ACTIVE, crp_count=0)
    if prepared.created_at is None:
        prepared.created_at = now

    if prepared.is_recurring:
        if prepared.next_recurring is None:
            prepared.next_recurring = calculator.calculate_next_recurring(prepared, now)
    elif prepared.next_crp is None:
        prepared.next_crp = now

    prepared.next_action_at = calculator.calculate_next_action_at(prepared, now)
    return prepared


def complete_reminder(
    store: ReminderStore,
    calculator: ScheduleCalculator,
    reminder_id: str,
    now: datetime,
) -> Reminder:
    """Mark the current cycle as done by the user.

    One-time reminders are finished for good. Recurring reminders stop
    pulsing until the next FRP opens a new cycle.
    """
    reminder = store.get_by_id(reminder_id)
    if reminder.status is ReminderStatus.COMPLETED:
        raise ValidationError("status", "Reminder is already completed")

    updated = replace(reminder, last_completed_at=now, snooze_until=None)

    if updated.is_one_time:
        updated.status = ReminderStatus.COMPLETED
        updated.next_crp = None
        updated.next_action_at = None
    else:
        updated.last_crp_completed_at = now
        updated.next_crp = None
        pattern = updated.recurrence_pattern
        if (
            pattern is not None
            and pattern.type is RecurrenceType.INTERVAL_SECONDS
            and pattern.base_on is BaseOn.COMPLETION
        ):
            updated.next_recurring = calculator.calculate_next_recurring(updated, now)
        updated.next_action_at = calculator.calculate_next_action_at(updated, now)

    store.update(updated)
    logger.info("Reminder %s completed, next action at %s", reminder_id, updated.next_action_at)
    return updated


def snooze_reminder(
    store: ReminderStore,
    calculator: ScheduleCalculator,
    reminder_id: str,
    until: datetime,
    now: datetime,
) -> Reminder:
    """Suppress every trigger of the reminder until ``until``."""
    if until <= now:
        raise ValidationError("snooze_until", "must be in the future")

    reminder = store.get_by_id(reminder_id)
    updated = replace(reminder, snooze_until=until)
    updated.next_action_at = calculator.calculate_next_action_at(updated, now)
    store.update(updated)
    logger.info("Reminder %s snoozed until %s", reminder_id, until)
    return updated
