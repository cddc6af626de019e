"""
Slot and date enumeration over a consultant pool.

Listing is read-only and takes no locks. The view it returns is a point in
time: a listed slot can be taken before it is booked, so the commit guard
always re-validates.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

import pendulum
from pendulum import DateTime

from ..config import EngineSettings
from ..domain.conflict_detector import ConflictDetector, occupied_span
from ..domain.exceptions import ConsistencyError, TransientError
from ..domain.intervals import MINUTES_PER_DAY, to_minutes
from ..domain.models import DailyWindow, DateAvailability, Service, TimeSlot
from .protocols import BookingLedger, ScheduleRuleReader, ServiceCatalog
from .requests import AvailableDatesRequest, AvailableTimesRequest, parse_request
from .rule_access import ScheduleRuleAccess

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]

# start minute -> consultant id -> remaining capacity
StartCapacity = Dict[int, Dict[str, int]]


def slot_datetime(day: date, start_minute: int, timezone: str) -> DateTime:
    """Absolute start of a slot given as minutes-of-day in ``timezone``."""
    return pendulum.datetime(
        day.year, day.month, day.day,
        start_minute // 60, start_minute % 60,
        tz=timezone,
    )


def earliest_start(now: DateTime, service: Service) -> DateTime:
    """First instant a booking of ``service`` may start, given ``now``."""
    return now.add(hours=service.minimum_advance_hours)


class SlotEnumerator:
    """
    Walks forward over dates and expands open windows into bookable starts.

    Algorithm per date:
    1. For each consultant compute the daily windows
    2. Pull that day's committed bookings
    3. For every candidate start, ask the conflict detector for the capacity
       left once the buffered span is placed
    4. Sum capacity across the pool at each start
    """

    def __init__(
        self,
        rules: ScheduleRuleReader,
        ledger: BookingLedger,
        catalog: ServiceCatalog,
        settings: Optional[EngineSettings] = None,
        timezone: str = "UTC",
        store_timeout: float = 10.0,
        clock: Optional[Clock] = None,
    ) -> None:
        self._rules = rules
        self._ledger = ledger
        self._catalog = catalog
        self._settings = settings or EngineSettings()
        self._timezone = timezone
        self._store_timeout = store_timeout
        self._clock = clock or (lambda: pendulum.now(timezone))

    def _access(self) -> ScheduleRuleAccess:
        return ScheduleRuleAccess(self._rules, self._ledger, self._catalog, timeout=self._store_timeout)

    async def iter_available_dates(
        self,
        *,
        service_id: str,
        consultant_ids: Sequence[str],
        days_ahead: Optional[int] = None,
        max_results: Optional[int] = None,
        from_date: Optional[date] = None,
    ) -> AsyncIterator[DateAvailability]:
        """
        Yield dates with capacity for the service, ascending, starting the
        day after ``from_date``.

        ``from_date`` defaults to the request's local calendar date, read once
        per call, and is never earlier than it. Dates are stepped on that
        local calendar, never through UTC. A date whose reads fail is logged
        and skipped. Stops after ``max_results`` dates or ``days_ahead`` days,
        whichever comes first.
        """
        request = parse_request(
            AvailableDatesRequest,
            {
                "service_id": service_id,
                "consultant_ids": list(consultant_ids),
                "days_ahead": self._settings.days_ahead if days_ahead is None else days_ahead,
                "max_results": self._settings.max_results if max_results is None else max_results,
                "from_date": from_date,
            },
        )

        access = self._access()
        service = await access.require_service(request.service_id)
        for consultant_id in request.consultant_ids:
            await access.require_consultant(consultant_id)

        now = self._clock().in_timezone(self._timezone)
        today = now.date()
        if request.from_date is not None and request.from_date > today:
            start = request.from_date
            today = pendulum.date(start.year, start.month, start.day)
        found = 0

        for offset in range(1, request.days_ahead + 1):
            day = today.add(days=offset)

            try:
                capacity = await self._evaluate_pool(
                    access, service, request.consultant_ids, day, now, use_samples=True
                )
            except TransientError as exc:
                logger.warning("Skipping %s: %s", day, exc)
                continue
            except ConsistencyError as exc:
                logger.error("Skipping %s, store returned inconsistent data: %s", day, exc)
                continue

            if not capacity:
                logger.debug("No availability on %s", day)
                continue

            total = max(sum(per_consultant.values()) for per_consultant in capacity.values())
            found += 1
            yield DateAvailability(date=day, total_available_slots=total)

            if found >= request.max_results:
                logger.debug("Collected %d dates, stopping at %s", found, day)
                return

    async def list_available_dates(
        self,
        *,
        service_id: str,
        consultant_ids: Sequence[str],
        days_ahead: Optional[int] = None,
        max_results: Optional[int] = None,
        from_date: Optional[date] = None,
    ) -> List[DateAvailability]:
        """Collect ``iter_available_dates`` into a list."""
        return [
            availability
            async for availability in self.iter_available_dates(
                service_id=service_id,
                consultant_ids=consultant_ids,
                days_ahead=days_ahead,
                max_results=max_results,
                from_date=from_date,
            )
        ]

    async def list_available_times(
        self,
        *,
        service_id: str,
        consultant_id: str,
        date: date,
    ) -> List[TimeSlot]:
        """
        Expand one consultant's windows on ``date`` into bookable start times.

        Starts are on the configured granularity grid, their whole buffered
        span fits inside a window, and capacity is left once existing
        bookings are accounted for. Unlike date listing, read errors here
        propagate to the caller.
        """
        request = parse_request(
            AvailableTimesRequest,
            {"service_id": service_id, "consultant_id": consultant_id, "date": date},
        )

        access = self._access()
        service = await access.require_service(request.service_id)
        await access.require_consultant(request.consultant_id)

        now = self._clock().in_timezone(self._timezone)
        capacity = await self._evaluate_pool(
            access, service, [request.consultant_id], request.date, now, use_samples=False
        )

        return [
            TimeSlot(
                start_minute=start,
                available_slots=sum(per_consultant.values()),
                consultants=dict(per_consultant),
            )
            for start, per_consultant in sorted(capacity.items())
        ]

    async def _evaluate_pool(
        self,
        access: ScheduleRuleAccess,
        service: Service,
        consultant_ids: Sequence[str],
        day: date,
        now: DateTime,
        use_samples: bool,
    ) -> StartCapacity:
        detector = ConflictDetector(now=now)
        capacity: StartCapacity = {}
        not_before = earliest_start(now, service)

        for consultant_id in consultant_ids:
            consultant_day = await access.consultant_day(consultant_id, day)
            if not consultant_day.windows:
                continue

            effective = await access.effective_service(consultant_id, service)
            starts = self.candidate_starts(consultant_day.windows, effective, use_samples=use_samples)

            for start in starts:
                window = containing_window(consultant_day.windows, start, effective)
                if slot_datetime(day, start, window.timezone) < not_before:
                    continue

                remaining = detector.capacity_for_start(
                    consultant_day.windows, start, effective, consultant_day.bookings
                )
                logger.debug("%s %s %02d:%02d -> %d", consultant_id, day, start // 60, start % 60, remaining)
                if remaining > 0:
                    capacity.setdefault(start, {})[consultant_id] = remaining

        return capacity

    def candidate_starts(
        self,
        windows: Sequence[DailyWindow],
        service: Service,
        use_samples: bool = False,
    ) -> List[int]:
        """
        Grid-aligned starts whose occupied span fits inside some window.

        With sample times configured and ``use_samples`` set, only the sample times
        are considered.
        """
        if use_samples and self._settings.sample_times:
            samples = (to_minutes(sample) for sample in self._settings.sample_times)
            return [p for p in samples if ConflictDetector.fits_any_window(windows, p, service)]

        step = self._settings.slot_granularity_minutes
        starts = set()

        for window in windows:
            first = window.interval.start + service.buffer_before_minutes
            first += -first % step
            last = window.interval.end - service.duration_minutes - service.buffer_after_minutes

            for start in range(first, min(last, MINUTES_PER_DAY - 1) + 1, step):
                starts.add(start)

        return sorted(starts)


def containing_window(windows: Sequence[DailyWindow], start: int, service: Service) -> DailyWindow:
    """First window that fully contains the occupied span starting at ``start``."""
    span = occupied_span(start, service)
    for window in windows:
        if window.interval.contains(span):
            return window
    raise LookupError(f"No window contains {span}")
