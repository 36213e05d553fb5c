"""
Remiaq — Data Models.

Reminders follow a two-tier trigger model: the FRP (main recurrence) opens a
new cycle, CRPs re-notify inside the cycle until the user acts or the
``max_crp`` quota runs out. All timestamps are timezone-aware UTC datetimes;
``None`` means "not set".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

_TIME_OF_DAY_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class ValidationError(Exception):
    """Raised when reminder fields fail domain rules."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ReminderType(Enum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class CalendarType(Enum):
    SOLAR = "solar"
    LUNAR = "lunar"


class ReminderStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class RepeatStrategy(Enum):
    NONE = "none"
    CRP_UNTIL_COMPLETE = "crp_until_complete"


class RecurrenceType(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    INTERVAL_SECONDS = "interval_seconds"
    LUNAR_LAST_DAY_OF_MONTH = "lunar_last_day_of_month"


class BaseOn(Enum):
    CREATION = "creation"
    COMPLETION = "completion"


def _parse_enum(enum_cls: type[Enum], value: object, field: str) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, f"must be one of: {allowed}") from None


@dataclass
class RecurrencePattern:
    """How a recurring reminder repeats.

    JSON example (as stored in the ``recurrence_pattern`` column):
    {
        "type": "weekly",
        "day_of_week": 1,
        "trigger_time_of_day": "09:00"
    }
    """

    type: RecurrenceType
    day_of_week: int = 0              # 0 = Sunday ... 6 = Saturday
    day_of_month: int = 0
    interval_seconds: int = 0
    trigger_time_of_day: str = ""     # HH:MM, UTC
    base_on: BaseOn = BaseOn.CREATION

    @classmethod
    def from_dict(cls, data: dict) -> RecurrencePattern:
        return cls(
            type=_parse_enum(RecurrenceType, data.get("type"), "recurrence_pattern.type"),
            day_of_week=int(data.get("day_of_week") or 0),
            day_of_month=int(data.get("day_of_month") or 0),
            interval_seconds=int(data.get("interval_seconds") or 0),
            trigger_time_of_day=data.get("trigger_time_of_day") or "",
            base_on=_parse_enum(
                BaseOn, data.get("base_on") or BaseOn.CREATION.value,
                "recurrence_pattern.base_on",
            ),
        )

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "day_of_week": self.day_of_week,
            "day_of_month": self.day_of_month,
            "interval_seconds": self.interval_seconds,
            "trigger_time_of_day": self.trigger_time_of_day,
            "base_on": self.base_on.value,
        }


@dataclass
class Reminder:
    """The scheduling unit walked by the worker."""

    id: str
    user_id: str
    title: str
    description: str = ""
    type: ReminderType = ReminderType.ONE_TIME
    calendar_type: CalendarType = CalendarType.SOLAR
    status: ReminderStatus = ReminderStatus.ACTIVE
    recurrence_pattern: RecurrencePattern | None = None
    repeat_strategy: RepeatStrategy = RepeatStrategy.NONE

    # FRP
    next_recurring: datetime | None = None
    # CRP
    next_crp: datetime | None = None
    crp_interval_sec: int = 0
    max_crp: int = 0                  # 0 = send once, no pulses
    crp_count: int = 0

    next_action_at: datetime | None = None
    snooze_until: datetime | None = None

    last_sent_at: datetime | None = None
    last_crp_completed_at: datetime | None = None
    last_completed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_one_time(self) -> bool:
        return self.type is ReminderType.ONE_TIME

    @property
    def is_recurring(self) -> bool:
        return self.type is ReminderType.RECURRING

    @property
    def crp_interval(self) -> timedelta:
        return timedelta(seconds=self.crp_interval_sec)

    def is_snoozed(self, now: datetime) -> bool:
        """True while ``snooze_until`` lies in the future."""
        return self.snooze_until is not None and now < self.snooze_until

    def has_crp_quota(self) -> bool:
        """True while the current cycle may still send a pulse.

        ``max_crp == 0`` allows exactly one send per cycle.
        """
        if self.max_crp == 0:
            return self.crp_count == 0
        return self.crp_count < self.max_crp

    def is_frp_due(self, now: datetime) -> bool:
        return (
            self.is_recurring
            and self.next_recurring is not None
            and now >= self.next_recurring
        )

    def is_cycle_completed(self) -> bool:
        """Whether the user acknowledged the cycle opened by the last send."""
        if self.last_sent_at is None:
            return True
        done = self.last_crp_completed_at
        return done is not None and done >= self.last_sent_at

    def pending_crp(self, now: datetime) -> datetime | None:
        """When the next pulse is due, or None if no pulse is pending.

        A one-time reminder that was never scheduled explicitly pulses
        immediately, or one interval after its last send.
        """
        if self.next_crp is not None:
            return self.next_crp
        if not self.is_one_time:
            return None
        if self.last_sent_at is not None:
            return self.last_sent_at + self.crp_interval
        return now

    def validate(self) -> None:
        """Raise ValidationError if the reminder breaks a domain rule."""
        if not self.title:
            raise ValidationError("title", "Title is required")
        if not self.user_id:
            raise ValidationError("user_id", "User is required")
        if self.max_crp < 0:
            raise ValidationError("max_crp", "must not be negative")
        if self.crp_count < 0:
            raise ValidationError("crp_count", "must not be negative")
        if self.crp_interval_sec < 0:
            raise ValidationError("crp_interval_sec", "must not be negative")
        if self.max_crp > 0 and self.crp_interval_sec == 0:
            raise ValidationError(
                "crp_interval_sec", "is required when max_crp is greater than 0",
            )

        if not self.is_recurring:
            return

        pattern = self.recurrence_pattern
        if pattern is None:
            raise ValidationError(
                "recurrence_pattern", "is required for recurring reminders",
            )
        if pattern.trigger_time_of_day and not _TIME_OF_DAY_RE.match(
            pattern.trigger_time_of_day
        ):
            raise ValidationError(
                "recurrence_pattern.trigger_time_of_day", "expected HH:MM",
            )
        if pattern.type is RecurrenceType.WEEKLY and not 0 <= pattern.day_of_week <= 6:
            raise ValidationError("recurrence_pattern.day_of_week", "must be 0-6")
        if pattern.type is RecurrenceType.MONTHLY and not 1 <= pattern.day_of_month <= 31:
            raise ValidationError("recurrence_pattern.day_of_month", "must be 1-31")
        if pattern.type is RecurrenceType.INTERVAL_SECONDS and pattern.interval_seconds <= 0:
            raise ValidationError(
                "recurrence_pattern.interval_seconds", "must be greater than 0",
            )


@dataclass
class User:
    """A push-notification recipient."""

    id: str
    fcm_token: str = ""
    is_fcm_active: bool = False
    email: str = ""

    @property
    def has_active_token(self) -> bool:
        return self.is_fcm_active and bool(self.fcm_token)


@dataclass
class SystemStatus:
    """Singleton row controlling the worker."""

    worker_enabled: bool = True
    last_error: str = ""
