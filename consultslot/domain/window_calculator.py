"""
Daily window calculation for one consultant on one calendar date.

Pure domain logic: the rule rows are passed in, nothing is fetched here.
"""

import logging
from datetime import date
from typing import Iterable, List

from .intervals import Interval, subtract
from .models import AvailabilityTemplate, Break, DailyWindow, TimeOff

logger = logging.getLogger(__name__)


class DailyWindowCalculator:
    """
    Turns weekly templates, breaks and time off into open windows.

    Algorithm:
    1. Keep active templates whose day of week matches the date
    2. Return nothing if an approved full-day time off covers the date
    3. Collect breaks for the weekday or the exact date, plus partial-day
       time off covering the date
    4. Subtract those removals from every template window
    5. Tag each remaining piece with its template's capacity and timezone

    Overlapping templates are not merged: capacity is evaluated per
    originating window.
    """

    def compute(
        self,
        consultant_id: str,
        day: date,
        templates: Iterable[AvailabilityTemplate],
        breaks: Iterable[Break] = (),
        time_off: Iterable[TimeOff] = (),
    ) -> List[DailyWindow]:
        """
        Compute the ordered open windows for ``consultant_id`` on ``day``.

        A date with no matching template yields an empty list; that means
        the consultant is not working, it is not an error.
        """
        day_templates = sorted(
            (t for t in templates if t.consultant_id == consultant_id and t.applies_to(day)),
            key=lambda t: (t.start_time, t.end_time),
        )
        if not day_templates:
            return []

        day_time_off = [t for t in time_off if t.consultant_id == consultant_id and t.covers(day)]
        if any(t.is_full_day for t in day_time_off):
            logger.debug("Full-day time off for %s on %s", consultant_id, day)
            return []

        removals = self._collect_removals(consultant_id, day, breaks, day_time_off)

        windows: List[DailyWindow] = []
        for template in day_templates:
            for piece in subtract(template.interval(), removals):
                windows.append(
                    DailyWindow(
                        consultant_id=consultant_id,
                        date=day,
                        interval=piece,
                        max_bookings=template.max_bookings,
                        timezone=template.timezone,
                        template_id=template.id,
                    )
                )

        windows.sort(key=lambda w: (w.interval, w.max_bookings))
        return windows

    @staticmethod
    def _collect_removals(
        consultant_id: str,
        day: date,
        breaks: Iterable[Break],
        day_time_off: List[TimeOff],
    ) -> List[Interval]:
        removals = [
            b.interval() for b in breaks
            if b.consultant_id == consultant_id and b.applies_to(day)
        ]
        removals.extend(t.interval() for t in day_time_off if not t.is_full_day)
        return removals
