"""Plain value types used by the scheduling core.

Availability windows and breaks are tagged records of the same shape; there is
no class hierarchy between them. Times are naive clinic-local ``time`` values
and dates are calendar ``date`` values.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum

from booking_engine.core.errors import InvalidParameters


# 0 = Sunday ... 6 = Saturday throughout.
DAY_NAMES = {
    0: 'Sunday',
    1: 'Monday',
    2: 'Tuesday',
    3: 'Wednesday',
    4: 'Thursday',
    5: 'Friday',
    6: 'Saturday',
}


class AppointmentStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class Horizon(str, Enum):
    NEXT_WEEK = 'next_week'
    TWO_WEEKS = 'two_weeks'
    MONTH = 'month'


def day_of_week(value: date) -> int:
    # date.weekday() is Monday-first.
    return (value.weekday() + 1) % 7


def minutes_of(value: time) -> int:
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    if not 0 <= minutes < 24 * 60:
        raise InvalidParameters(f'Minute offset {minutes} is outside a single day.')
    return time(minutes // 60, minutes % 60)


def format_hhmm(value: time) -> str:
    return value.strftime('%H:%M')


def _check_weekly_shape(record) -> None:
    if not isinstance(record.day_of_week, int) or not 0 <= record.day_of_week <= 6:
        raise InvalidParameters(f'day_of_week must be in 0..6, got {record.day_of_week!r}.')
    if not isinstance(record.start_time, time) or not isinstance(record.end_time, time):
        raise InvalidParameters('start_time and end_time must be time values.')


@dataclass(frozen=True)
class AvailabilityWindow:
    """Recurring weekly working hours. Several windows per day form split shifts."""

    tenant_id: str
    provider_id: str
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool = True

    def __post_init__(self):
        _check_weekly_shape(self)


@dataclass(frozen=True)
class Break:
    """Recurring weekly time off; subtracts from the windows of the same day."""

    tenant_id: str
    provider_id: str
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool = True

    def __post_init__(self):
        _check_weekly_shape(self)


@dataclass(frozen=True)
class BusyInterval:
    """An already-booked interval on one date."""

    start_time: time
    end_time: time
    status: AppointmentStatus = AppointmentStatus.PENDING

    @property
    def is_blocking(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED


@dataclass(frozen=True, order=True)
class Slot:
    date: date
    start_time: time
    end_time: time

    @property
    def day_of_week(self) -> int:
        return day_of_week(self.date)

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)


@dataclass(frozen=True)
class DaySlots:
    date: date
    slots: list[Slot]

    @property
    def day_of_week(self) -> int:
        return day_of_week(self.date)

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    @property
    def slot_count(self) -> int:
        return len(self.slots)


@dataclass(frozen=True)
class HorizonResult:
    start_date: date
    end_date: date
    duration_minutes: int
    days: list[DaySlots] = field(default_factory=list)
    next_available: list[Slot] = field(default_factory=list)

    @property
    def total_slots(self) -> int:
        return sum(day.slot_count for day in self.days)


@dataclass
class Appointment:
    id: str
    tenant_id: str
    provider_id: str
    patient_id: str
    service_id: str
    date: date
    start_time: time
    end_time: time
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: str | None = None
    rescheduled_from_id: str | None = None

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def slot_key(self) -> tuple[str, str, date, time]:
        return (self.tenant_id, self.provider_id, self.date, self.start_time)


@dataclass(frozen=True)
class StatusChange:
    appointment_id: str
    from_status: AppointmentStatus | None
    to_status: AppointmentStatus
    changed_by: str | None
    changed_at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class NotificationEvent:
    kind: str
    tenant_id: str
    appointment_id: str
    recipient_id: str
    subject: str
    content: str
