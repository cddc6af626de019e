"""
Schedule rule store access and bounded collaborator calls.

``ScheduleRuleAccess`` is created per request. It may cache templates for
the lifetime of that request; it must never be shared across requests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Dict, List, Optional, TypeVar

from ..domain.exceptions import (
    ConsistencyError,
    StaleService,
    TransientError,
    UnknownConsultant,
)
from ..domain.models import (
    AvailabilityTemplate,
    BookedService,
    Break,
    DailyWindow,
    Service,
    TimeOff,
)
from ..domain.window_calculator import DailyWindowCalculator
from .protocols import BookingLedger, ScheduleRuleReader, ServiceCatalog

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float, what: str) -> T:
    """
    Await a collaborator call with a deadline.

    Timeouts and connection failures surface as TransientError.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise TransientError(f"{what} timed out after {timeout:g}s") from exc
    except ConnectionError as exc:
        raise TransientError(f"{what} failed: {exc}") from exc


@dataclass
class ConsultantDay:
    """Everything needed to evaluate one consultant on one date."""
    consultant_id: str
    date: date
    windows: List[DailyWindow]
    bookings: List[BookedService] = field(default_factory=list)


class ScheduleRuleAccess:
    """
    Read-only accessors over templates, breaks and time off, keyed by
    consultant and date, plus the service and ledger reads that go with them.
    """

    def __init__(
        self,
        rules: ScheduleRuleReader,
        ledger: BookingLedger,
        catalog: ServiceCatalog,
        timeout: float,
        calculator: Optional[DailyWindowCalculator] = None,
    ) -> None:
        self._rules = rules
        self._ledger = ledger
        self._catalog = catalog
        self._timeout = timeout
        self._calculator = calculator or DailyWindowCalculator()
        self._templates: Dict[str, List[AvailabilityTemplate]] = {}

    async def require_consultant(self, consultant_id: str) -> None:
        exists = await bounded(
            self._rules.consultant_exists(consultant_id),
            self._timeout,
            f"consultant lookup for {consultant_id}",
        )
        if not exists:
            raise UnknownConsultant(f"Unknown consultant: {consultant_id}")

    async def require_service(self, service_id: str) -> Service:
        """Fetch an active service or raise StaleService."""
        service = await bounded(
            self._catalog.get_service(service_id),
            self._timeout,
            f"service lookup for {service_id}",
        )
        if service is None:
            raise StaleService(f"Service not found: {service_id}")
        if not service.is_active:
            raise StaleService(f"Service is no longer active: {service_id}")
        return service

    async def effective_service(self, consultant_id: str, service: Service) -> Service:
        """Apply the consultant's buffer preference to the service."""
        preference = await bounded(
            self._catalog.get_buffer_preference(consultant_id, service.id),
            self._timeout,
            f"buffer preference lookup for {consultant_id}",
        )
        if preference is not None and (
            preference.consultant_id != consultant_id or preference.service_id != service.id
        ):
            raise ConsistencyError(
                f"Buffer preference for {preference.consultant_id}/{preference.service_id} "
                f"returned for {consultant_id}/{service.id}"
            )
        return service.with_preference(preference)

    async def templates(self, consultant_id: str) -> List[AvailabilityTemplate]:
        if consultant_id not in self._templates:
            self._templates[consultant_id] = list(
                await bounded(
                    self._rules.get_templates(consultant_id),
                    self._timeout,
                    f"template read for {consultant_id}",
                )
            )
        return self._templates[consultant_id]

    async def breaks(self, consultant_id: str, day: date) -> List[Break]:
        return list(
            await bounded(
                self._rules.get_breaks(consultant_id, day),
                self._timeout,
                f"break read for {consultant_id} on {day}",
            )
        )

    async def time_off(self, consultant_id: str, day: date) -> List[TimeOff]:
        return list(
            await bounded(
                self._rules.get_time_off(consultant_id, day),
                self._timeout,
                f"time off read for {consultant_id} on {day}",
            )
        )

    async def bookings(self, consultant_id: str, day: date) -> List[BookedService]:
        entries = list(
            await bounded(
                self._ledger.get_bookings_on(consultant_id, day),
                self._timeout,
                f"booking read for {consultant_id} on {day}",
            )
        )
        for entry in entries:
            if entry.booking.consultant_id != consultant_id or entry.booking.scheduled_date != day:
                raise ConsistencyError(
                    f"Ledger returned booking {entry.booking.id} outside {consultant_id} on {day}"
                )
        return entries

    async def daily_windows(self, consultant_id: str, day: date) -> List[DailyWindow]:
        """Fetch the rules for one consultant and date and compute the open windows."""
        templates = await self.templates(consultant_id)
        if not any(t.applies_to(day) for t in templates):
            return []

        breaks = await self.breaks(consultant_id, day)
        time_off = await self.time_off(consultant_id, day)

        return self._calculator.compute(consultant_id, day, templates, breaks, time_off)

    async def consultant_day(self, consultant_id: str, day: date) -> ConsultantDay:
        """Windows plus committed bookings; bookings are skipped on closed days."""
        windows = await self.daily_windows(consultant_id, day)
        if not windows:
            return ConsultantDay(consultant_id=consultant_id, date=day, windows=[])

        bookings = await self.bookings(consultant_id, day)
        return ConsultantDay(consultant_id=consultant_id, date=day, windows=windows, bookings=bookings)
