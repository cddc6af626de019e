"""
Protocols describing the collaborators the engine consumes.

Stores own all rows. The engine borrows read snapshots per request and
keeps no state across requests.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Protocol

from ..domain.models import (
    AvailabilityTemplate,
    BookedService,
    Booking,
    Break,
    BufferPreference,
    Service,
    TimeOff,
)


class ScheduleRuleReader(Protocol):
    """Read-only access to templates, breaks and time off."""

    async def consultant_exists(self, consultant_id: str) -> bool:
        """Return whether the consultant is known."""

    async def get_templates(self, consultant_id: str) -> List[AvailabilityTemplate]:
        """Return every weekly template of the consultant."""

    async def get_breaks(self, consultant_id: str, day: date) -> List[Break]:
        """Return breaks recurring on the weekday of ``day`` or set for ``day``."""

    async def get_time_off(self, consultant_id: str, day: date) -> List[TimeOff]:
        """Return time off ranges covering ``day``."""


class BookingLedger(Protocol):
    """The shared mutable booking ledger."""

    async def get_bookings_on(self, consultant_id: str, day: date) -> List[BookedService]:
        """Return bookings on ``day`` paired with their effective service."""

    async def insert_booking(self, booking: Booking) -> Booking:
        """
        Atomically persist a booking and return the stored row.

        Must finish or fail on its own in bounded time: the guard holds the
        day lock until it does.
        """

    async def cancel_booking(self, booking_id: str) -> Booking:
        """Mark a booking cancelled and return it."""


class ServiceCatalog(Protocol):
    """Read-only service lookup."""

    async def get_service(self, service_id: str) -> Optional[Service]:
        """Return the service, or None if it does not exist."""

    async def get_buffer_preference(
        self,
        consultant_id: str,
        service_id: str,
    ) -> Optional[BufferPreference]:
        """Return the consultant's buffer override for the service, if any."""
