"""
In-memory store implementing the rule reader, booking ledger and service
catalog, for tests and local runs without the managed backend.

Fixture files (YAML or JSON) use the same row shapes as the REST store:

    consultants: [alice]
    services: [{id: intro, duration_minutes: 30, buffer_after_minutes: 15}]
    templates: [{consultant_id: alice, day_of_week: 1, start_time: "09:00", end_time: "17:00"}]
    breaks: []
    timeoff: []
    buffer_preferences: []
    bookings: []

Quote times in YAML: unquoted ``17:00`` is read as a base-60 integer.
"""

import asyncio
import itertools
import json
import threading
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import pendulum
import yaml
from pendulum import DateTime

from ..domain.exceptions import ConsistencyError, NotFoundError, ValidationError
from ..domain.models import (
    AvailabilityTemplate,
    BookedService,
    Booking,
    BookingStatus,
    Break,
    BufferPreference,
    Service,
    TimeOff,
)
from . import rows


class InMemoryStore:
    """
    Fixture-backed store.

    Each async method yields to the event loop before touching state, so
    concurrent callers interleave the way they would against a real store.
    Mutations happen under a lock and are atomic.
    """

    def __init__(
        self,
        consultants: Iterable[str] = (),
        services: Iterable[Service] = (),
        templates: Iterable[AvailabilityTemplate] = (),
        breaks: Iterable[Break] = (),
        time_off: Iterable[TimeOff] = (),
        buffer_preferences: Iterable[BufferPreference] = (),
        bookings: Iterable[Booking] = (),
        clock: Optional[Callable[[], DateTime]] = None,
    ):
        self.consultants = set(consultants)
        self.services: Dict[str, Service] = {s.id: s for s in services}
        self.templates: List[AvailabilityTemplate] = list(templates)
        self.breaks: List[Break] = list(breaks)
        self.time_off: List[TimeOff] = list(time_off)
        self.buffer_preferences: List[BufferPreference] = list(buffer_preferences)
        self.bookings: List[Booking] = []
        self._clock = clock or pendulum.now
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._reference_seq = itertools.count(1)

        # Consultants referenced by rules are known even if not listed
        self.consultants.update(t.consultant_id for t in self.templates)

        for booking in bookings:
            self._store(booking)

    @classmethod
    def from_file(cls, path: Path, default_minimum_advance_hours: int = 0) -> "InMemoryStore":
        """
        Load a fixture file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not a mapping or cannot be parsed
        """
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid data file {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Data file must contain a mapping at the root level.")

        return cls.from_rows(data, default_minimum_advance_hours=default_minimum_advance_hours)

    @classmethod
    def from_rows(cls, data: Mapping[str, Any], default_minimum_advance_hours: int = 0) -> "InMemoryStore":
        return cls(
            consultants=[str(c) for c in data.get("consultants", [])],
            services=[
                rows.service_from_row(r, default_minimum_advance_hours)
                for r in data.get("services", [])
            ],
            templates=[rows.template_from_row(r) for r in data.get("templates", [])],
            breaks=[rows.break_from_row(r) for r in data.get("breaks", [])],
            time_off=[rows.time_off_from_row(r) for r in data.get("timeoff", [])],
            buffer_preferences=[rows.buffer_preference_from_row(r) for r in data.get("buffer_preferences", [])],
            bookings=[rows.booking_from_row(r) for r in data.get("bookings", [])],
        )

    # Schedule rule reader

    async def consultant_exists(self, consultant_id: str) -> bool:
        await asyncio.sleep(0)
        return consultant_id in self.consultants

    async def get_templates(self, consultant_id: str) -> List[AvailabilityTemplate]:
        await asyncio.sleep(0)
        return [t for t in self.templates if t.consultant_id == consultant_id]

    async def get_breaks(self, consultant_id: str, day: date) -> List[Break]:
        await asyncio.sleep(0)
        return [b for b in self.breaks if b.consultant_id == consultant_id and b.applies_to(day)]

    async def get_time_off(self, consultant_id: str, day: date) -> List[TimeOff]:
        await asyncio.sleep(0)
        return [t for t in self.time_off if t.consultant_id == consultant_id and t.covers(day)]

    # Service catalog

    async def get_service(self, service_id: str) -> Optional[Service]:
        await asyncio.sleep(0)
        return self.services.get(service_id)

    async def get_buffer_preference(self, consultant_id: str, service_id: str) -> Optional[BufferPreference]:
        await asyncio.sleep(0)
        return self._buffer_preference(consultant_id, service_id)

    def _buffer_preference(self, consultant_id: str, service_id: str) -> Optional[BufferPreference]:
        for preference in self.buffer_preferences:
            if (
                preference.consultant_id == consultant_id
                and preference.service_id == service_id
                and preference.is_active
            ):
                return preference
        return None

    # Booking ledger

    async def get_bookings_on(self, consultant_id: str, day: date) -> List[BookedService]:
        await asyncio.sleep(0)
        entries: List[BookedService] = []
        with self._lock:
            for booking in self.bookings:
                if booking.consultant_id != consultant_id or booking.scheduled_date != day:
                    continue
                service = self.services.get(booking.service_id)
                if service is None:
                    raise ConsistencyError(f"Booking {booking.id} references unknown service {booking.service_id}")
                effective = service.with_preference(self._buffer_preference(consultant_id, service.id))
                entries.append(BookedService(booking=booking, service=effective))
        return entries

    async def insert_booking(self, booking: Booking) -> Booking:
        await asyncio.sleep(0)
        with self._lock:
            return self._store(booking)

    async def cancel_booking(self, booking_id: str) -> Booking:
        await asyncio.sleep(0)
        with self._lock:
            booking = self.get_booking(booking_id)
            if booking.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
                raise ValidationError(f"Booking {booking_id} is already {booking.status.value}")
            booking.status = BookingStatus.CANCELLED
            return booking

    def get_booking(self, booking_id: str) -> Booking:
        for booking in self.bookings:
            if booking.id == booking_id:
                return booking
        raise NotFoundError(f"Booking not found: {booking_id}")

    def _store(self, booking: Booking) -> Booking:
        if not booking.id:
            used = {b.id for b in self.bookings}
            booking.id = next(str(n) for n in self._ids if str(n) not in used)
        if not booking.booking_reference:
            created = booking.created_at or self._clock()
            booking.booking_reference = f"INT-{created.format('YYYYMMDD')}-{next(self._reference_seq):04d}"
        self.bookings.append(booking)
        return booking
