"""
Booking commit guard.

A booking attempt moves Requested -> Validated -> Committed, or
Requested -> Rejected. Validation and insert run while holding a lock for
the consultant's calendar day, so two concurrent attempts can never both
see the same free capacity. The lock is per process; deployments with
several workers also need the store's own transactional insert.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, time
from typing import AsyncIterator, Callable, List, Optional, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..config import AssignmentStrategy, EngineSettings
from ..domain.conflict_detector import ConflictDetector, occupied_span
from ..domain.exceptions import (
    BookingRejected,
    CapacityExceeded,
    OutsideAvailability,
    TransientError,
)
from ..domain.intervals import to_minutes
from ..domain.models import Booking, BookingStatus, Service
from .enumerator import containing_window, earliest_start, slot_datetime
from .protocols import BookingLedger, ScheduleRuleReader, ServiceCatalog
from .requests import BookingRequest, CancelRequest, PoolBookingRequest, parse_request
from .rule_access import ConsultantDay, ScheduleRuleAccess, bounded

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]


@dataclass
class BookingOutcome:
    """Explicit result of a booking attempt: a committed booking or a rejection."""
    booking: Optional[Booking] = None
    rejection: Optional[BookingRejected] = None

    @property
    def ok(self) -> bool:
        return self.booking is not None

    def unwrap(self) -> Booking:
        """Return the booking or raise the rejection."""
        if self.booking is None:
            raise self.rejection or BookingRejected("booking was not committed")
        return self.booking


@dataclass
class _Candidate:
    consultant_id: str
    remaining: int
    current_bookings: int


class BookingCommitGuard:
    """
    Re-validates a requested slot against current committed state and
    inserts the booking, as one serialized step per consultant and date.
    """

    def __init__(
        self,
        rules: ScheduleRuleReader,
        ledger: BookingLedger,
        catalog: ServiceCatalog,
        settings: Optional[EngineSettings] = None,
        timezone: str = "UTC",
        store_timeout: float = 10.0,
        lock_timeout: float = 5.0,
        clock: Optional[Clock] = None,
    ) -> None:
        self._rules = rules
        self._ledger = ledger
        self._catalog = catalog
        self._settings = settings or EngineSettings()
        self._timezone = timezone
        self._store_timeout = store_timeout
        self._lock_timeout = lock_timeout
        self._clock = clock or (lambda: pendulum.now(timezone))
        self._locks: "weakref.WeakValueDictionary[Tuple[str, date], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _access(self) -> ScheduleRuleAccess:
        return ScheduleRuleAccess(self._rules, self._ledger, self._catalog, timeout=self._store_timeout)

    @asynccontextmanager
    async def _locked(self, consultant_id: str, day: date) -> AsyncIterator[None]:
        """Hold the mutual-exclusion lock for one consultant's calendar day."""
        key = (consultant_id, day)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock

        try:
            await asyncio.wait_for(lock.acquire(), timeout=self._lock_timeout)
        except asyncio.TimeoutError as exc:
            raise TransientError(
                f"Timed out waiting for the booking lock on {consultant_id} {day}"
            ) from exc

        try:
            yield
        finally:
            lock.release()

    async def try_book(
        self,
        *,
        service_id: str,
        consultant_id: str,
        date: date,
        time: time,
    ) -> BookingOutcome:
        """
        Book ``consultant_id`` for ``service_id`` at ``date`` ``time``.

        Returns:
            BookingOutcome with the committed booking, or with an
            OutsideAvailability / CapacityExceeded rejection

        Raises:
            ValidationError: If the request is malformed
            StaleService: If the service is unknown or inactive
            UnknownConsultant: If the consultant is unknown
            TransientError: If a read or the lock times out, or the insert
                failed without committing
            ConsistencyError: If the store returns invalid data
        """
        request = parse_request(
            BookingRequest,
            {"service_id": service_id, "consultant_id": consultant_id, "date": date, "time": time},
        )

        access = self._access()
        service = await access.require_service(request.service_id)
        await access.require_consultant(request.consultant_id)

        return await self._book(access, service, request.consultant_id, request.date, request.time)

    async def try_book_any(
        self,
        *,
        service_id: str,
        consultant_ids: Sequence[str],
        date: date,
        time: time,
    ) -> BookingOutcome:
        """
        Book whichever pool consultant the assignment strategy prefers.

        Candidates are ranked from a snapshot, then each is tried through
        the locked path until one commits.
        """
        request = parse_request(
            PoolBookingRequest,
            {"service_id": service_id, "consultant_ids": list(consultant_ids), "date": date, "time": time},
        )

        access = self._access()
        service = await access.require_service(request.service_id)
        for consultant_id in request.consultant_ids:
            await access.require_consultant(consultant_id)

        candidates, any_window = await self._rank_candidates(
            access, service, request.consultant_ids, request.date, request.time
        )
        if not candidates:
            if any_window:
                rejection: BookingRejected = CapacityExceeded(
                    f"No consultant has capacity on {request.date} at {request.time:%H:%M}"
                )
            else:
                rejection = OutsideAvailability(
                    f"No consultant is available on {request.date} at {request.time:%H:%M}"
                )
            logger.info("Pool booking rejected: %s", rejection)
            return BookingOutcome(rejection=rejection)

        outcome = BookingOutcome()
        for candidate in candidates:
            outcome = await self._book(access, service, candidate.consultant_id, request.date, request.time)
            if outcome.ok:
                return outcome
        return outcome

    async def cancel_booking(self, booking_id: str) -> Booking:
        """Cancel a booking, freeing its capacity for later reads."""
        request = parse_request(CancelRequest, {"booking_id": booking_id})
        booking = await bounded(
            self._ledger.cancel_booking(request.booking_id),
            self._store_timeout,
            f"cancel of booking {request.booking_id}",
        )
        logger.info("Cancelled booking %s (%s)", booking.id, booking.booking_reference)
        return booking

    async def _rank_candidates(
        self,
        access: ScheduleRuleAccess,
        service: Service,
        consultant_ids: Sequence[str],
        day: date,
        start_time: time,
    ) -> Tuple[List[_Candidate], bool]:
        detector = ConflictDetector(now=self._clock())
        start = to_minutes(start_time)
        candidates: List[_Candidate] = []
        any_window = False

        for consultant_id in consultant_ids:
            consultant_day = await access.consultant_day(consultant_id, day)
            effective = await access.effective_service(consultant_id, service)
            if not ConflictDetector.fits_any_window(consultant_day.windows, start, effective):
                continue

            any_window = True
            remaining = detector.capacity_for_start(
                consultant_day.windows, start, effective, consultant_day.bookings
            )
            if remaining > 0:
                candidates.append(
                    _Candidate(
                        consultant_id=consultant_id,
                        remaining=remaining,
                        current_bookings=detector.peak_occupancy(
                            occupied_span(start, effective), consultant_day.bookings
                        ),
                    )
                )

        strategy = self._settings.assignment_strategy
        if strategy is AssignmentStrategy.OPTIMAL:
            candidates.sort(key=lambda c: (-c.remaining, c.consultant_id))
        elif strategy is AssignmentStrategy.BALANCED:
            candidates.sort(key=lambda c: (c.current_bookings, c.consultant_id))
        else:
            candidates.sort(key=lambda c: c.consultant_id)

        return candidates, any_window

    async def _book(
        self,
        access: ScheduleRuleAccess,
        service: Service,
        consultant_id: str,
        day: date,
        start_time: time,
    ) -> BookingOutcome:
        async with self._locked(consultant_id, day):
            now = self._clock()
            effective = await access.effective_service(consultant_id, service)
            consultant_day = await access.consultant_day(consultant_id, day)

            try:
                self._validate(consultant_day, effective, start_time, now)
            except BookingRejected as rejection:
                logger.info("Rejected %s for %s: %s", consultant_id, service.id, rejection)
                return BookingOutcome(rejection=rejection)

            booking = self._new_booking(service, consultant_id, day, start_time, now)
            try:
                stored = await self._insert(access, booking)
            except BookingRejected as rejection:
                logger.info("Store rejected %s for %s: %s", consultant_id, service.id, rejection)
                return BookingOutcome(rejection=rejection)

        logger.info(
            "Committed %s: %s %s %s at %s (%s)",
            stored.booking_reference or stored.id,
            consultant_id,
            service.id,
            day,
            start_time.strftime("%H:%M"),
            stored.status.value,
        )
        return BookingOutcome(booking=stored)

    async def _insert(self, access: ScheduleRuleAccess, booking: Booking) -> Booking:
        """
        Insert a booking and wait until the store has settled on it.

        Must be called with the day lock held. The insert is never abandoned
        at the deadline: a store running it in a worker thread keeps going
        after a cancel, so releasing the lock early would let a second
        attempt commit over it. Past the deadline the guard keeps waiting;
        stores bound their own calls (the REST store through its session
        timeout). A failed insert may still have committed, so the ledger
        is re-read before reporting a transient failure.
        """
        label = f"{booking.consultant_id} on {booking.scheduled_date}"
        insert = asyncio.ensure_future(self._ledger.insert_booking(booking))

        done, _ = await asyncio.wait({insert}, timeout=self._store_timeout)
        if not done:
            logger.warning(
                "Booking insert for %s still running after %gs, holding the lock until it settles",
                label,
                self._store_timeout,
            )
            await asyncio.wait({insert})

        try:
            return insert.result()
        except (TransientError, ConnectionError) as exc:
            logger.warning("Booking insert for %s failed (%s), checking whether it committed", label, exc)
            committed = await self._find_committed(access, booking)
            if committed is None:
                raise TransientError(f"Booking insert for {label} failed: {exc}") from exc
            return committed

    @staticmethod
    async def _find_committed(access: ScheduleRuleAccess, booking: Booking) -> Optional[Booking]:
        for entry in await access.bookings(booking.consultant_id, booking.scheduled_date):
            stored = entry.booking
            if (
                stored.service_id == booking.service_id
                and stored.scheduled_time == booking.scheduled_time
                and stored.created_at == booking.created_at
                and stored.status is not BookingStatus.CANCELLED
            ):
                return stored
        return None

    def _validate(
        self,
        consultant_day: ConsultantDay,
        service: Service,
        start_time: time,
        now: DateTime,
    ) -> None:
        start = to_minutes(start_time)
        day = consultant_day.date
        label = f"{day} at {start_time:%H:%M}"

        if not ConflictDetector.fits_any_window(consultant_day.windows, start, service):
            raise OutsideAvailability(f"{consultant_day.consultant_id} has no open window for {label}")

        window = containing_window(consultant_day.windows, start, service)
        if slot_datetime(day, start, window.timezone) < earliest_start(now, service):
            raise OutsideAvailability(
                f"{label} is within the {service.minimum_advance_hours}h minimum advance window"
            )

        detector = ConflictDetector(now=now)
        if detector.capacity_for_start(consultant_day.windows, start, service, consultant_day.bookings) <= 0:
            raise CapacityExceeded(f"{consultant_day.consultant_id} has no capacity left for {label}")

    def _new_booking(
        self,
        service: Service,
        consultant_id: str,
        day: date,
        start_time: time,
        now: DateTime,
    ) -> Booking:
        if service.auto_confirm:
            status, hold_expires_at = BookingStatus.CONFIRMED, None
        else:
            status = BookingStatus.PENDING
            hold = self._settings.pending_hold_minutes
            hold_expires_at = now.add(minutes=hold) if hold else None

        return Booking(
            consultant_id=consultant_id,
            service_id=service.id,
            scheduled_date=day,
            scheduled_time=start_time,
            status=status,
            hold_expires_at=hold_expires_at,
            created_at=now,
        )
