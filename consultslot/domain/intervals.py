"""
Half-open interval primitives used by every other component.

Intervals are expressed in minutes from local midnight of the day they
belong to. ``[start, end)`` excludes the end instant, so two ranges that
merely touch do not overlap.
"""

from dataclasses import dataclass
from datetime import time
from typing import Iterable, List

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True, order=True)
class Interval:
    """
    Immutable half-open interval ``[start, end)`` in minutes-of-day.

    Invariant: start must be before end.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Interval start {self.start} must be before end {self.end}")

    @classmethod
    def from_times(cls, start: time, end: time) -> "Interval":
        """Build an interval from two wall-clock times on the same day."""
        return cls(start=to_minutes(start), end=to_minutes(end))

    def duration_minutes(self) -> int:
        """Return the length in minutes."""
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        """Check if this interval overlaps another (touching is not overlap)."""
        return overlaps(self, other)

    def contains(self, other: "Interval") -> bool:
        """Check if ``other`` lies entirely inside this interval."""
        return self.start <= other.start and other.end <= self.end

    def covers(self, minute: int) -> bool:
        """Check if the instant ``minute`` falls inside the interval."""
        return self.start <= minute < self.end

    def intersect(self, other: "Interval") -> "Interval | None":
        """
        Calculate the intersection of two intervals.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None
        return Interval(start=max(self.start, other.start), end=min(self.end, other.end))

    def __str__(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"


def to_minutes(value: time) -> int:
    """Convert a wall-clock time to minutes after midnight."""
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    """Convert minutes after midnight back to a wall-clock time."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minute of day out of range: {minutes}")
    return time(hour=minutes // 60, minute=minutes % 60)


def format_minutes(minutes: int) -> str:
    """Render minutes-of-day as HH:MM (24:00 allowed for end of day)."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(a: Interval, b: Interval) -> bool:
    """Half-open overlap test: ``a.start < b.end and b.start < a.end``."""
    return a.start < b.end and b.start < a.end


def merge(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Merge overlapping or adjacent intervals.

    Intervals carry no capacity, so any touching ranges are joined. Only
    removal sets go through here; capacity-tagged daily windows are never
    merged.

    Example: [09:00-10:00, 10:00-11:00, 10:30-12:00] -> [09:00-12:00]
    """
    sorted_intervals = sorted(intervals)
    if not sorted_intervals:
        return []

    merged: List[Interval] = [sorted_intervals[0]]

    for current in sorted_intervals[1:]:
        last = merged[-1]
        if current.start <= last.end:
            merged[-1] = Interval(start=last.start, end=max(last.end, current.end))
        else:
            merged.append(current)

    return merged


def subtract(window: Interval, removals: Iterable[Interval]) -> List[Interval]:
    """
    Remove every removal from ``window`` and return what is left, in order.

    Removals may be unsorted and overlapping; they are coalesced first.

    Example:
    Window: 09:00 - 17:00
    Removals: [14:00-15:00, 10:00-11:00, 10:30-11:30]
    Result: [09:00-10:00, 11:30-14:00, 15:00-17:00]
    """
    remaining: List[Interval] = []
    current_start = window.start

    for removal in merge(removals):
        if removal.end <= window.start:
            continue
        if removal.start >= window.end:
            break

        if current_start < removal.start:
            remaining.append(Interval(start=current_start, end=removal.start))

        current_start = max(current_start, removal.end)

    if current_start < window.end:
        remaining.append(Interval(start=current_start, end=window.end))

    return remaining
