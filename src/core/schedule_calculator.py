"""Schedule calculator — FRP/CRP trigger math.

Derives, for a reminder at a reference time ``now``:

- ``next_recurring``: when the main recurrence (FRP) fires next,
- whether a child repeat pulse (CRP) may be sent,
- ``next_action_at``: the single timestamp the worker polls on.

``now`` is always passed in; nothing here reads the system clock.
No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from src.core.lunar_calendar import LunarCalendar, LunarMonth
from src.data.models import (
    BaseOn,
    CalendarType,
    RecurrencePattern,
    RecurrenceType,
    Reminder,
    ReminderStatus,
)

logger = logging.getLogger(__name__)

# A lunar year has at most 13 months (12 + leap)
_MAX_LUNAR_SCAN = 13
# Day 31 is missing from 5 months a year; two years is plenty
_MAX_SOLAR_MONTH_SCAN = 24


class CalculationError(Exception):
    """Raised when a trigger time cannot be derived from a reminder."""


def parse_time_of_day(raw: str) -> time:
    """Parse "HH:MM" (one- or two-digit hour) into a time.

    Raises CalculationError on malformed or out-of-range input.
    """
    if not raw or ":" not in raw:
        raise CalculationError(f"invalid time format {raw!r}, expected HH:MM")
    hour_part, _, minute_part = raw.partition(":")
    if not (hour_part.isdigit() and minute_part.isdigit()) or len(minute_part) != 2:
        raise CalculationError(f"invalid time format {raw!r}, expected HH:MM")

    hour, minute = int(hour_part), int(minute_part)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise CalculationError(f"Hour/minute out of range: {hour}:{minute}")
    return time(hour, minute)


def _at(day: date, tod: time) -> datetime:
    return datetime.combine(day, tod, tzinfo=timezone.utc)


def _earliest(*candidates: datetime | None) -> datetime | None:
    present = [c for c in candidates if c is not None]
    return min(present) if present else None


class ScheduleCalculator:
    """Calculates next trigger times for reminders (FRP & CRP)."""

    def __init__(self, lunar_calendar: LunarCalendar | None = None) -> None:
        self._lunar = lunar_calendar or LunarCalendar()

    # ------------------------------------------------------------------
    # Polling timestamp
    # ------------------------------------------------------------------

    def calculate_next_action_at(
        self, reminder: Reminder, now: datetime,
    ) -> datetime | None:
        """Return the earliest moment the worker has to look at the reminder.

        Priority: active snooze, then one-time CRP, then the earlier of FRP
        and (quota permitting) CRP for recurring reminders. When FRP and CRP
        coincide the FRP wins, which is what the worker checks first.
        """
        if reminder.is_snoozed(now):
            return reminder.snooze_until

        if reminder.is_one_time:
            if reminder.status is ReminderStatus.COMPLETED:
                return None
            return reminder.pending_crp(now)

        pending_crp = reminder.pending_crp(now) if reminder.has_crp_quota() else None
        return _earliest(reminder.next_recurring, pending_crp)

    def can_send_crp(self, reminder: Reminder, now: datetime) -> bool:
        """True if the CRP quota is not exhausted and the pulse is due."""
        if not reminder.has_crp_quota():
            logger.debug(
                "CRP quota reached for reminder %s (%d/%d)",
                reminder.id, reminder.crp_count, reminder.max_crp,
            )
            return False

        due = reminder.pending_crp(now)
        if due is None:
            return False
        return now >= due

    # ------------------------------------------------------------------
    # FRP
    # ------------------------------------------------------------------

    def calculate_next_recurring(self, reminder: Reminder, now: datetime) -> datetime:
        """Return the next FRP trigger time for a recurring reminder.

        Raises:
            CalculationError: missing pattern, unsupported type, bad time of
                day, or no matching lunar date within the scan window.
        """
        pattern = reminder.recurrence_pattern
        if pattern is None:
            raise CalculationError("recurrence_pattern required for recurring reminder")
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)

        kind = pattern.type
        if kind is RecurrenceType.INTERVAL_SECONDS:
            return self._next_interval(reminder, pattern, now)
        if kind is RecurrenceType.DAILY:
            return self._next_daily(pattern, now)
        if kind is RecurrenceType.WEEKLY:
            return self._next_weekly(pattern, now)
        if kind is RecurrenceType.MONTHLY:
            if reminder.calendar_type is CalendarType.LUNAR:
                return self._next_lunar_monthly(pattern, now)
            return self._next_solar_monthly(pattern, now)
        if kind is RecurrenceType.LUNAR_LAST_DAY_OF_MONTH:
            return self._next_lunar_last_day(pattern, now)
        raise CalculationError(f"unsupported recurrence type: {kind!r}")

    def _next_interval(
        self, reminder: Reminder, pattern: RecurrencePattern, now: datetime,
    ) -> datetime:
        if pattern.interval_seconds <= 0:
            raise CalculationError("interval_seconds must be > 0")

        if pattern.base_on is BaseOn.COMPLETION:
            base = reminder.last_completed_at or reminder.created_at
            if base is None:
                raise CalculationError(
                    "completion-based interval needs created_at or last_completed_at"
                )
        else:
            base = now

        step = timedelta(seconds=pattern.interval_seconds)
        candidate = base + step
        if candidate <= now:
            # Keep the base's phase, land on the first step after now
            candidate += ((now - candidate) // step + 1) * step
        return candidate

    @staticmethod
    def _required_time_of_day(pattern: RecurrencePattern) -> time:
        if not pattern.trigger_time_of_day:
            raise CalculationError(
                f"trigger_time_of_day is required for {pattern.type.value} recurrence"
            )
        return parse_time_of_day(pattern.trigger_time_of_day)

    def _next_daily(self, pattern: RecurrencePattern, now: datetime) -> datetime:
        tod = self._required_time_of_day(pattern)
        candidate = _at(now.date(), tod)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def _next_weekly(self, pattern: RecurrencePattern, now: datetime) -> datetime:
        tod = self._required_time_of_day(pattern)
        if not 0 <= pattern.day_of_week <= 6:
            raise CalculationError(f"day_of_week out of range: {pattern.day_of_week}")

        # Python counts Monday = 0; patterns count Sunday = 0
        today = (now.weekday() + 1) % 7
        days_ahead = (pattern.day_of_week - today) % 7
        candidate = _at(now.date() + timedelta(days=days_ahead), tod)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    def _next_solar_monthly(self, pattern: RecurrencePattern, now: datetime) -> datetime:
        tod = self._required_time_of_day(pattern)
        day = pattern.day_of_month
        if not 1 <= day <= 31:
            raise CalculationError(f"day_of_month out of range: {day}")

        year, month = now.year, now.month
        for _ in range(_MAX_SOLAR_MONTH_SCAN):
            try:
                candidate = _at(date(year, month, day), tod)
            except ValueError:
                candidate = None  # day missing from this month
            if candidate is not None and candidate > now:
                return candidate
            month += 1
            if month > 12:
                month = 1
                year += 1
        raise CalculationError(f"no month with day {day} found")

    def _optional_time_of_day(self, pattern: RecurrencePattern) -> time:
        if not pattern.trigger_time_of_day:
            return time(0, 0)
        return parse_time_of_day(pattern.trigger_time_of_day)

    def _scan_lunar(self, now: datetime, target_day, tod: time) -> datetime:
        """Walk lunations from the one containing ``now``.

        ``target_day`` maps a LunarMonth to the solar date to try, or None
        when the month has no such day.
        """
        lunar_month: LunarMonth = self._lunar.month_containing(now)
        for _ in range(_MAX_LUNAR_SCAN):
            day = target_day(lunar_month)
            if day is not None:
                candidate = _at(day, tod)
                if candidate > now:
                    return candidate
            lunar_month = self._lunar.next_month(lunar_month)
        raise CalculationError("failed to calculate next lunar trigger")

    def _next_lunar_monthly(self, pattern: RecurrencePattern, now: datetime) -> datetime:
        tod = self._optional_time_of_day(pattern)
        day_of_month = pattern.day_of_month
        if not 1 <= day_of_month <= 30:
            raise CalculationError(f"lunar day_of_month out of range: {day_of_month}")

        def target(m: LunarMonth) -> date | None:
            if day_of_month > m.days:
                return None
            return m.start + timedelta(days=day_of_month - 1)

        return self._scan_lunar(now, target, tod)

    def _next_lunar_last_day(self, pattern: RecurrencePattern, now: datetime) -> datetime:
        tod = self._optional_time_of_day(pattern)
        return self._scan_lunar(now, lambda m: m.last_day, tod)
