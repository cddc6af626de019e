"""
Domain models for schedule rules, services, bookings and derived windows.

Rows read from a store are turned into these types at the boundary.
Construction validates the invariants; a violation is a ConsistencyError
because it means the store handed back data the engine cannot trust.
"""

from dataclasses import dataclass, field, replace
from datetime import date, time
from enum import Enum
from typing import Dict, Optional

import pendulum
from pendulum import DateTime

from .exceptions import ConsistencyError
from .intervals import Interval, from_minutes

# 0=Sunday ... 6=Saturday, the numbering used by the schedule rule store
WEEKDAY_NAMES = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}


def weekday_number(day: date) -> int:
    """Return the store's day-of-week number for a date (Sunday is 0)."""
    return day.isoweekday() % 7


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConsistencyError(message)


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class TimeOffType(str, Enum):
    VACATION = "vacation"
    SICK = "sick"
    PERSONAL = "personal"
    CONFERENCE = "conference"
    TRAINING = "training"
    HOLIDAY = "holiday"


@dataclass(frozen=True)
class Service:
    """
    A bookable consulting service. Read-only for the engine.
    """
    id: str
    duration_minutes: int
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    name: str = ""
    minimum_advance_hours: int = 0
    auto_confirm: bool = True
    is_active: bool = True

    def __post_init__(self):
        _require(self.duration_minutes > 0, f"Service {self.id} has non-positive duration {self.duration_minutes}")
        _require(self.buffer_before_minutes >= 0, f"Service {self.id} has negative buffer_before_minutes")
        _require(self.buffer_after_minutes >= 0, f"Service {self.id} has negative buffer_after_minutes")
        _require(self.minimum_advance_hours >= 0, f"Service {self.id} has negative minimum_advance_hours")

    def total_minutes(self) -> int:
        """Duration plus both buffers."""
        return self.buffer_before_minutes + self.duration_minutes + self.buffer_after_minutes

    def with_preference(self, preference: Optional["BufferPreference"]) -> "Service":
        """Return the service with a consultant's buffer override applied."""
        if preference is None or not preference.is_active:
            return self
        return replace(
            self,
            buffer_before_minutes=preference.buffer_before_minutes,
            buffer_after_minutes=preference.buffer_after_minutes,
        )


@dataclass(frozen=True)
class BufferPreference:
    """Consultant-specific buffer override for one service."""
    consultant_id: str
    service_id: str
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    is_active: bool = True

    def __post_init__(self):
        _require(
            self.buffer_before_minutes >= 0 and self.buffer_after_minutes >= 0,
            f"Buffer preference for {self.consultant_id}/{self.service_id} has a negative buffer",
        )


@dataclass(frozen=True)
class AvailabilityTemplate:
    """
    Recurring weekly open window for a consultant.

    Invariant: start_time < end_time on the same day.
    """
    consultant_id: str
    day_of_week: int  # 0=Sunday, 6=Saturday
    start_time: time
    end_time: time
    max_bookings: int = 1
    timezone: str = "UTC"
    is_active: bool = True
    id: str = ""

    def __post_init__(self):
        _require(self.day_of_week in range(7), f"Template day_of_week must be 0..6, got {self.day_of_week}")
        _require(self.start_time < self.end_time, f"Template {self.start_time}-{self.end_time} must open before it closes")
        _require(self.max_bookings >= 1, f"Template max_bookings must be at least 1, got {self.max_bookings}")
        try:
            pendulum.timezone(self.timezone)
        except Exception as exc:
            raise ConsistencyError(f"Template has unknown timezone {self.timezone!r}") from exc

    def interval(self) -> Interval:
        return Interval.from_times(self.start_time, self.end_time)

    def applies_to(self, day: date) -> bool:
        return self.is_active and self.day_of_week == weekday_number(day)


@dataclass(frozen=True)
class Break:
    """
    A sub-interval removed from template windows, either every week on
    ``day_of_week`` or once on ``specific_date``.
    """
    consultant_id: str
    start_time: time
    end_time: time
    day_of_week: Optional[int] = None
    specific_date: Optional[date] = None
    is_active: bool = True
    id: str = ""

    def __post_init__(self):
        _require(self.start_time < self.end_time, f"Break {self.start_time}-{self.end_time} must start before it ends")
        _require(
            (self.day_of_week is None) != (self.specific_date is None),
            "Break needs exactly one of day_of_week or specific_date",
        )
        if self.day_of_week is not None:
            _require(self.day_of_week in range(7), f"Break day_of_week must be 0..6, got {self.day_of_week}")

    def interval(self) -> Interval:
        return Interval.from_times(self.start_time, self.end_time)

    def applies_to(self, day: date) -> bool:
        if not self.is_active:
            return False
        if self.specific_date is not None:
            return self.specific_date == day
        return self.day_of_week == weekday_number(day)


@dataclass(frozen=True)
class TimeOff:
    """
    Consultant time off over an inclusive date range.

    Without times it blocks whole days; with both times set it blocks the
    same partial-day interval on every date in the range.
    """
    consultant_id: str
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    timeoff_type: TimeOffType = TimeOffType.VACATION
    title: str = ""
    is_approved: bool = True
    id: str = ""

    def __post_init__(self):
        _require(self.start_date <= self.end_date, f"Time off {self.start_date}..{self.end_date} ends before it starts")
        _require(
            (self.start_time is None) == (self.end_time is None),
            "Partial-day time off needs both start_time and end_time",
        )
        if self.start_time is not None:
            _require(self.start_time < self.end_time, f"Time off {self.start_time}-{self.end_time} must start before it ends")

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None

    def covers(self, day: date) -> bool:
        return self.is_approved and self.start_date <= day <= self.end_date

    def interval(self) -> Optional[Interval]:
        if self.is_full_day:
            return None
        return Interval.from_times(self.start_time, self.end_time)


@dataclass
class Booking:
    """
    A booking on a consultant's calendar. Never deleted; cancellation only
    changes its status.
    """
    consultant_id: str
    service_id: str
    scheduled_date: date
    scheduled_time: time
    status: BookingStatus = BookingStatus.PENDING
    id: str = ""
    booking_reference: str = ""
    hold_expires_at: Optional[DateTime] = None
    created_at: Optional[DateTime] = None

    def __post_init__(self):
        if not isinstance(self.status, BookingStatus):
            try:
                self.status = BookingStatus(self.status)
            except ValueError as exc:
                raise ConsistencyError(f"Unknown booking status: {self.status!r}") from exc

    def holds_capacity(self, now: DateTime) -> bool:
        """
        Whether the booking counts toward capacity at ``now``.

        Confirmed bookings always do; pending ones do until their hold expires.
        """
        if self.status is BookingStatus.CONFIRMED:
            return True
        if self.status is BookingStatus.PENDING:
            return self.hold_expires_at is None or self.hold_expires_at > now
        return False


@dataclass(frozen=True)
class BookedService:
    """An existing booking paired with the effective service it was made for."""
    booking: Booking
    service: Service


@dataclass(frozen=True)
class DailyWindow:
    """
    One open, capacity-tagged interval for a consultant on a date.

    Derived on every query, never persisted.
    """
    consultant_id: str
    date: date
    interval: Interval
    max_bookings: int
    timezone: str = "UTC"
    template_id: str = ""

    def __str__(self) -> str:
        return f"{self.consultant_id} {self.date.isoformat()} {self.interval} (max {self.max_bookings})"


def format_time_display(value: time) -> str:
    """Format a time as ``9:30 AM``."""
    period = "PM" if value.hour >= 12 else "AM"
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {period}"


@dataclass
class TimeSlot:
    """
    A bookable start time on one date with the capacity left at it.
    """
    start_minute: int
    available_slots: int
    consultants: Dict[str, int] = field(default_factory=dict)

    @property
    def start_time(self) -> time:
        return from_minutes(self.start_minute)

    @property
    def value(self) -> str:
        return self.start_time.strftime("%H:%M")

    def format_display(self) -> str:
        return format_time_display(self.start_time)


@dataclass
class DateAvailability:
    """
    A date with at least one bookable start for the requested service.
    """
    date: date
    total_available_slots: int

    @property
    def value(self) -> str:
        return self.date.isoformat()

    @property
    def day_of_week(self) -> int:
        return weekday_number(self.date)

    def format_display(self) -> str:
        """Short label, e.g. ``Mon, Jun 23``."""
        return f"{WEEKDAY_NAMES[self.day_of_week][:3]}, {self.date.strftime('%b')} {self.date.day}"

    def format_full(self) -> str:
        """Long label, e.g. ``Monday, June 23, 2025``."""
        return f"{WEEKDAY_NAMES[self.day_of_week]}, {self.date.strftime('%B')} {self.date.day}, {self.date.year}"
