"""
Conversion between store rows (plain mappings) and domain models.

Both adapters read the same row shapes. A row missing a required key or
holding an unparseable value raises ConsistencyError.
"""

from datetime import date, time
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ConsistencyError
from ..domain.models import (
    AvailabilityTemplate,
    Booking,
    Break,
    BufferPreference,
    Service,
    TimeOff,
    TimeOffType,
)

T = TypeVar("T")

Row = Mapping[str, Any]


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    parsed = pendulum.parse(str(value), exact=True)
    if not isinstance(parsed, date) or isinstance(parsed, DateTime):
        raise ValueError(f"Not a date: {value}")
    return parsed


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    # Postgres returns HH:MM:SS, fixtures usually HH:MM
    parsed = pendulum.parse(str(value), exact=True)
    if not isinstance(parsed, time):
        raise ValueError(f"Not a time of day: {value}")
    return parsed


def _parse_datetime(value: Any) -> Optional[DateTime]:
    if value is None:
        return None
    if isinstance(value, DateTime):
        return value
    parsed = pendulum.parse(str(value))
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Not a timestamp: {value}")
    return parsed


def _optional(parser: Callable[[Any], T], value: Any) -> Optional[T]:
    return None if value is None else parser(value)


def _convert(kind: str, row: Row, build: Callable[[Row], T]) -> T:
    try:
        return build(row)
    except ConsistencyError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise ConsistencyError(f"Malformed {kind} row {dict(row)!r}: {exc}") from exc


def service_from_row(row: Row, default_minimum_advance_hours: int = 0) -> Service:
    return _convert("service", row, lambda r: Service(
        id=str(r["id"]),
        name=r.get("name") or "",
        duration_minutes=int(r["duration_minutes"]),
        buffer_before_minutes=int(r.get("buffer_before_minutes") or 0),
        buffer_after_minutes=int(r.get("buffer_after_minutes") or 0),
        minimum_advance_hours=int(
            r["minimum_advance_hours"] if r.get("minimum_advance_hours") is not None
            else default_minimum_advance_hours
        ),
        auto_confirm=bool(r.get("auto_confirm", True)),
        is_active=bool(r.get("is_active", True)),
    ))


def buffer_preference_from_row(row: Row) -> BufferPreference:
    return _convert("buffer preference", row, lambda r: BufferPreference(
        consultant_id=str(r["consultant_id"]),
        service_id=str(r["service_id"]),
        buffer_before_minutes=int(r.get("buffer_before_minutes") or 0),
        buffer_after_minutes=int(r.get("buffer_after_minutes") or 0),
        is_active=bool(r.get("is_active", True)),
    ))


def template_from_row(row: Row) -> AvailabilityTemplate:
    return _convert("template", row, lambda r: AvailabilityTemplate(
        id=str(r.get("id", "")),
        consultant_id=str(r["consultant_id"]),
        day_of_week=int(r["day_of_week"]),
        start_time=_parse_time(r["start_time"]),
        end_time=_parse_time(r["end_time"]),
        max_bookings=int(r.get("max_bookings") or 1),
        timezone=r.get("timezone") or "UTC",
        is_active=bool(r.get("is_active", True)),
    ))


def break_from_row(row: Row) -> Break:
    return _convert("break", row, lambda r: Break(
        id=str(r.get("id", "")),
        consultant_id=str(r["consultant_id"]),
        start_time=_parse_time(r["start_time"]),
        end_time=_parse_time(r["end_time"]),
        day_of_week=_optional(int, r.get("day_of_week")),
        specific_date=_optional(_parse_date, r.get("specific_date")),
        is_active=bool(r.get("is_active", True)),
    ))


def time_off_from_row(row: Row) -> TimeOff:
    return _convert("time off", row, lambda r: TimeOff(
        id=str(r.get("id", "")),
        consultant_id=str(r["consultant_id"]),
        start_date=_parse_date(r["start_date"]),
        end_date=_parse_date(r["end_date"]),
        start_time=_optional(_parse_time, r.get("start_time")),
        end_time=_optional(_parse_time, r.get("end_time")),
        timeoff_type=TimeOffType(r.get("timeoff_type") or "vacation"),
        title=r.get("title") or "",
        is_approved=bool(r.get("is_approved", True)),
    ))


def booking_from_row(row: Row) -> Booking:
    return _convert("booking", row, lambda r: Booking(
        id=str(r.get("id", "")),
        consultant_id=str(r["consultant_id"]),
        service_id=str(r["service_id"]),
        scheduled_date=_parse_date(r["scheduled_date"]),
        scheduled_time=_parse_time(r["scheduled_time"]),
        status=r.get("status") or "pending",
        booking_reference=r.get("booking_reference") or "",
        hold_expires_at=_parse_datetime(r.get("hold_expires_at")),
        created_at=_parse_datetime(r.get("created_at")),
    ))


def booking_to_row(booking: Booking) -> Dict[str, Any]:
    """Serialize a booking for insertion."""
    row: Dict[str, Any] = {
        "consultant_id": booking.consultant_id,
        "service_id": booking.service_id,
        "scheduled_date": booking.scheduled_date.isoformat(),
        "scheduled_time": booking.scheduled_time.strftime("%H:%M:%S"),
        "status": booking.status.value,
        "hold_expires_at": booking.hold_expires_at.isoformat() if booking.hold_expires_at else None,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
    }
    if booking.id:
        row["id"] = booking.id
    if booking.booking_reference:
        row["booking_reference"] = booking.booking_reference
    return row
