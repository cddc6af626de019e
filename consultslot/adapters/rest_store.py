"""
Store adapter for the managed relational backend's REST interface.

Tables are read and written through PostgREST-style endpoints. Blocking
``requests`` calls run in a worker thread so the engine's event loop stays
free.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from ..config import StoreSettings
from ..domain.exceptions import (
    CapacityExceeded,
    ConsistencyError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from ..domain.models import (
    AvailabilityTemplate,
    BookedService,
    Booking,
    BookingStatus,
    Break,
    BufferPreference,
    Service,
    TimeOff,
    weekday_number,
)
from . import rows

logger = logging.getLogger(__name__)


class RestStore:
    """
    Client for the backend tables behind the booking engine.

    Implements the rule reader, booking ledger and service catalog.
    """

    def __init__(
        self,
        settings: StoreSettings,
        session: Optional[requests.Session] = None,
        default_minimum_advance_hours: int = 24,
    ):
        """
        Initialize the client.
        
        Args:
            settings: Store URL, key, schema and timeouts
            session: Optional preconfigured requests session
            default_minimum_advance_hours: Advance notice for services without one
        """
        if not settings.url:
            raise ValueError("Store URL is not configured (store.url)")

        self.base_url = settings.rest_url()
        self.timeout = settings.timeout_seconds
        self.default_minimum_advance_hours = default_minimum_advance_hours
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": settings.api_key,
            "Authorization": f"Bearer {settings.api_key}",
            "Content-Type": "application/json",
            "Accept-Profile": settings.schema_name,
            "Content-Profile": settings.schema_name,
        })

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Perform one REST call and return the decoded row list.

        Raises:
            TransientError: On timeouts, connection failures and 5xx responses
            CapacityExceeded: On 409, the store's own conflict check
            ConsistencyError: On other rejected requests or undecodable bodies
        """
        url = f"{self.base_url}/{table}"
        headers = {"Prefer": prefer} if prefer else None

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            raise TransientError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 500:
            raise TransientError(f"{method} {table} returned {response.status_code}")
        if response.status_code == 409:
            raise CapacityExceeded(f"Store rejected {method} {table}: {response.text}")
        if response.status_code >= 400:
            raise ConsistencyError(f"Store rejected {method} {table} with {response.status_code}: {response.text}")

        if not response.content:
            return []

        try:
            data = response.json()
        except ValueError as exc:
            raise ConsistencyError(f"Undecodable response from {table}: {exc}") from exc

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ConsistencyError(f"Expected a row list from {table}, got {type(data).__name__}")
        return data

    async def _call(self, method: str, table: str, **kwargs: Any) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._request, method, table, **kwargs)

    # Schedule rule reader

    async def consultant_exists(self, consultant_id: str) -> bool:
        found = await self._call(
            "GET", "profiles",
            params={"id": f"eq.{consultant_id}", "is_staff": "eq.true", "select": "id"},
        )
        return bool(found)

    async def get_templates(self, consultant_id: str) -> List[AvailabilityTemplate]:
        found = await self._call(
            "GET", "availability_templates",
            params={"consultant_id": f"eq.{consultant_id}", "order": "day_of_week,start_time"},
        )
        return [rows.template_from_row(r) for r in found]

    async def get_breaks(self, consultant_id: str, day: date) -> List[Break]:
        found = await self._call(
            "GET", "availability_breaks",
            params={
                "consultant_id": f"eq.{consultant_id}",
                "is_active": "eq.true",
                "or": f"(day_of_week.eq.{weekday_number(day)},specific_date.eq.{day.isoformat()})",
            },
        )
        return [rows.break_from_row(r) for r in found]

    async def get_time_off(self, consultant_id: str, day: date) -> List[TimeOff]:
        found = await self._call(
            "GET", "availability_timeoff",
            params={
                "consultant_id": f"eq.{consultant_id}",
                "start_date": f"lte.{day.isoformat()}",
                "end_date": f"gte.{day.isoformat()}",
                "is_approved": "eq.true",
            },
        )
        return [rows.time_off_from_row(r) for r in found]

    # Service catalog

    async def get_service(self, service_id: str) -> Optional[Service]:
        found = await self._call("GET", "services", params={"id": f"eq.{service_id}"})
        if not found:
            return None
        return rows.service_from_row(found[0], self.default_minimum_advance_hours)

    async def get_buffer_preference(self, consultant_id: str, service_id: str) -> Optional[BufferPreference]:
        found = await self._call(
            "GET", "consultant_buffer_preferences",
            params={
                "consultant_id": f"eq.{consultant_id}",
                "service_id": f"eq.{service_id}",
                "is_active": "eq.true",
            },
        )
        if not found:
            return None
        return rows.buffer_preference_from_row(found[0])

    # Booking ledger

    async def get_bookings_on(self, consultant_id: str, day: date) -> List[BookedService]:
        found = await self._call(
            "GET", "bookings",
            params={
                "consultant_id": f"eq.{consultant_id}",
                "scheduled_date": f"eq.{day.isoformat()}",
                "status": "in.(pending,confirmed)",
                "select": "*,service:services(*)",
            },
        )
        preferences = await self._call(
            "GET", "consultant_buffer_preferences",
            params={"consultant_id": f"eq.{consultant_id}", "is_active": "eq.true"},
        )
        by_service = {
            p.service_id: p for p in (rows.buffer_preference_from_row(r) for r in preferences)
        }

        entries: List[BookedService] = []
        for row in found:
            service_row = row.get("service")
            if not isinstance(service_row, dict):
                raise ConsistencyError(f"Booking {row.get('id')} has no embedded service")
            booking = rows.booking_from_row(row)
            service = rows.service_from_row(service_row, self.default_minimum_advance_hours)
            entries.append(BookedService(
                booking=booking,
                service=service.with_preference(by_service.get(service.id)),
            ))
        return entries

    async def insert_booking(self, booking: Booking) -> Booking:
        stored = await self._call(
            "POST", "bookings",
            payload=rows.booking_to_row(booking),
            prefer="return=representation",
        )
        if not stored:
            raise ConsistencyError("Booking insert returned no row")
        return rows.booking_from_row(stored[0])

    async def cancel_booking(self, booking_id: str) -> Booking:
        found = await self._call("GET", "bookings", params={"id": f"eq.{booking_id}"})
        if not found:
            raise NotFoundError(f"Booking not found: {booking_id}")

        current = rows.booking_from_row(found[0])
        if current.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            raise ValidationError(f"Booking {booking_id} is already {current.status.value}")

        updated = await self._call(
            "PATCH", "bookings",
            params={"id": f"eq.{booking_id}"},
            payload={"status": BookingStatus.CANCELLED.value},
            prefer="return=representation",
        )
        if not updated:
            raise NotFoundError(f"Booking not found: {booking_id}")
        return rows.booking_from_row(updated[0])
