"""Tests for src.core.reminder_service — create, complete and snooze flows."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.core.reminder_service import (
    complete_reminder,
    prepare_new_reminder,
    snooze_reminder,
)
from src.core.schedule_calculator import CalculationError
from src.data.models import (
    BaseOn,
    RecurrencePattern,
    RecurrenceType,
    Reminder,
    ReminderStatus,
    ReminderType,
    ValidationError,
)
from src.ports.store_port import NotFoundError

NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def _one_time(**overrides) -> Reminder:
    fields = dict(
        id="r1", user_id="u1", title="Dentist",
        type=ReminderType.ONE_TIME, max_crp=3, crp_interval_sec=60,
    )
    fields.update(overrides)
    return Reminder(**fields)


def _daily(**overrides) -> Reminder:
    fields = dict(
        id="r1", user_id="u1", title="Stretch",
        type=ReminderType.RECURRING,
        recurrence_pattern=RecurrencePattern(
            type=RecurrenceType.DAILY, trigger_time_of_day="09:00",
        ),
        max_crp=2, crp_interval_sec=300,
    )
    fields.update(overrides)
    return Reminder(**fields)


class TestPrepareNewReminder:
    def test_one_time_fires_immediately(self, calculator):
        prepared = prepare_new_reminder(_one_time(crp_count=5), calculator, NOW)
        assert prepared.status is ReminderStatus.ACTIVE
        assert prepared.crp_count == 0
        assert prepared.created_at == NOW
        assert prepared.next_crp == NOW
        assert prepared.next_action_at == NOW

    def test_one_time_keeps_scheduled_time(self, calculator):
        later = NOW + timedelta(days=2)
        prepared = prepare_new_reminder(_one_time(next_crp=later), calculator, NOW)
        assert prepared.next_action_at == later

    def test_recurring_computes_first_frp(self, calculator):
        prepared = prepare_new_reminder(_daily(), calculator, NOW)
        assert prepared.next_recurring == datetime(2024, 1, 16, 9, 0, tzinfo=timezone.utc)
        assert prepared.next_crp is None
        assert prepared.next_action_at == prepared.next_recurring

    def test_invalid_reminder(self, calculator):
        with pytest.raises(ValidationError):
            prepare_new_reminder(_one_time(title=""), calculator, NOW)

    def test_bad_time_of_day_surfaces_as_calculation_error(self, calculator):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, trigger_time_of_day="24:00")
        with pytest.raises(CalculationError):
            prepare_new_reminder(_daily(recurrence_pattern=pattern), calculator, NOW)


class TestCompleteReminder:
    def test_one_time_is_finished(self, reminder_db, calculator):
        reminder_db.add_reminder(_one_time(next_crp=NOW, next_action_at=NOW, crp_count=1))

        result = complete_reminder(reminder_db, calculator, "r1", NOW)

        stored = reminder_db.get_by_id("r1")
        assert stored == result
        assert stored.status is ReminderStatus.COMPLETED
        assert stored.last_completed_at == NOW
        assert stored.next_crp is None
        assert stored.next_action_at is None

    def test_already_completed(self, reminder_db, calculator):
        reminder_db.add_reminder(_one_time(status=ReminderStatus.COMPLETED))
        with pytest.raises(ValidationError):
            complete_reminder(reminder_db, calculator, "r1", NOW)

    def test_missing(self, reminder_db, calculator):
        with pytest.raises(NotFoundError):
            complete_reminder(reminder_db, calculator, "ghost", NOW)

    def test_recurring_stops_pulses_until_next_frp(self, reminder_db, calculator):
        tomorrow = datetime(2024, 1, 16, 9, 0, tzinfo=timezone.utc)
        reminder_db.add_reminder(_daily(
            next_recurring=tomorrow,
            next_crp=NOW + timedelta(minutes=5),
            next_action_at=NOW + timedelta(minutes=5),
            last_sent_at=NOW - timedelta(minutes=1),
            crp_count=1,
            snooze_until=NOW + timedelta(hours=1),
        ))

        result = complete_reminder(reminder_db, calculator, "r1", NOW)

        assert result.status is ReminderStatus.ACTIVE
        assert result.last_crp_completed_at == NOW
        assert result.is_cycle_completed() is True
        assert result.snooze_until is None
        assert result.next_crp is None
        assert result.next_action_at == tomorrow

    def test_completion_based_interval_restarts_from_now(self, reminder_db, calculator):
        pattern = RecurrencePattern(
            type=RecurrenceType.INTERVAL_SECONDS, interval_seconds=3600,
            base_on=BaseOn.COMPLETION,
        )
        reminder_db.add_reminder(_daily(
            recurrence_pattern=pattern,
            next_recurring=NOW + timedelta(minutes=10),
            created_at=NOW - timedelta(minutes=50),
        ))

        result = complete_reminder(reminder_db, calculator, "r1", NOW)

        assert result.next_recurring == NOW + timedelta(hours=1)
        assert result.next_action_at == NOW + timedelta(hours=1)


class TestSnoozeReminder:
    def test_snooze_moves_next_action(self, reminder_db, calculator):
        reminder_db.add_reminder(_one_time(next_crp=NOW, next_action_at=NOW))
        until = NOW + timedelta(minutes=15)

        snooze_reminder(reminder_db, calculator, "r1", until, NOW)

        stored = reminder_db.get_by_id("r1")
        assert stored.snooze_until == until
        assert stored.next_action_at == until

    def test_snooze_in_the_past(self, reminder_db, calculator):
        reminder_db.add_reminder(_one_time())
        with pytest.raises(ValidationError):
            snooze_reminder(reminder_db, calculator, "r1", NOW, NOW)
