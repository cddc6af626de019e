"""
Buffered conflict and capacity checks.

A booking occupies ``[start - buffer_before, start + duration + buffer_after)``.
Spans are compared with half-open semantics, so a span ending at 10:00 and
another starting at 10:00 do not conflict.
"""

from typing import Iterable, List, Optional

from pendulum import DateTime

from .intervals import Interval, to_minutes
from .models import BookedService, Booking, BookingStatus, DailyWindow, Service


def occupied_span(start_minute: int, service: Service) -> Interval:
    """Return the buffer-padded span of a booking starting at ``start_minute``."""
    return Interval(
        start=start_minute - service.buffer_before_minutes,
        end=start_minute + service.duration_minutes + service.buffer_after_minutes,
    )


class ConflictDetector:
    """
    Evaluates a candidate booking against already committed bookings.

    Only bookings that hold capacity at ``now`` take part: confirmed ones,
    and pending ones whose hold has not expired. Without a clock every
    confirmed or pending booking counts.
    """

    def __init__(self, now: Optional[DateTime] = None):
        self.now = now

    def active_spans(self, existing: Iterable[BookedService]) -> List[Interval]:
        """Occupied spans of the existing bookings that hold capacity."""
        spans = []
        for entry in existing:
            if not self._holds_capacity(entry.booking):
                continue
            spans.append(occupied_span(to_minutes(entry.booking.scheduled_time), entry.service))
        return spans

    def _holds_capacity(self, booking: Booking) -> bool:
        if self.now is None:
            return booking.status in (BookingStatus.CONFIRMED, BookingStatus.PENDING)
        return booking.holds_capacity(self.now)

    def has_conflict(
        self,
        candidate_start: int,
        service: Service,
        existing: Iterable[BookedService],
    ) -> bool:
        """Check whether the candidate's span overlaps any existing span."""
        candidate = occupied_span(candidate_start, service)
        return any(candidate.overlaps(span) for span in self.active_spans(existing))

    def peak_occupancy(self, span: Interval, existing: Iterable[BookedService]) -> int:
        """
        Highest number of existing spans covering any instant inside ``span``.

        The count can only rise where some span starts, so checking the
        candidate's own start plus every span start inside it is enough.
        """
        overlapping = [s for s in self.active_spans(existing) if s.overlaps(span)]
        if not overlapping:
            return 0

        check_points = {span.start}
        check_points.update(s.start for s in overlapping if span.covers(s.start))

        return max(
            sum(1 for s in overlapping if s.covers(point))
            for point in check_points
        )

    def capacity_remaining(
        self,
        window: DailyWindow,
        existing: Iterable[BookedService],
        span: Optional[Interval] = None,
    ) -> int:
        """
        Capacity left in ``window`` over ``span`` (the whole window by default).

        Equals ``max_bookings`` minus the peak number of existing bookings
        whose occupied span covers an instant of the span. Never negative.
        """
        target = span or window.interval
        return max(0, window.max_bookings - self.peak_occupancy(target, existing))

    def capacity_for_start(
        self,
        windows: Iterable[DailyWindow],
        candidate_start: int,
        service: Service,
        existing: Iterable[BookedService],
    ) -> int:
        """
        Capacity available to a booking of ``service`` at ``candidate_start``.

        The whole occupied span must fit inside one window. When several
        windows contain it, the most generous one is used. Returns 0 when
        no window contains the span.
        """
        candidate = occupied_span(candidate_start, service)
        existing = list(existing)
        best: Optional[int] = None

        for window in windows:
            if not window.interval.contains(candidate):
                continue
            remaining = self.capacity_remaining(window, existing, span=candidate)
            best = remaining if best is None else max(best, remaining)

        return best or 0

    @staticmethod
    def fits_any_window(windows: Iterable[DailyWindow], candidate_start: int, service: Service) -> bool:
        """Check whether the candidate's occupied span lies inside some window."""
        candidate = occupied_span(candidate_start, service)
        return any(w.interval.contains(candidate) for w in windows)
