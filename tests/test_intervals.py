"""
Tests for half-open interval primitives.
"""

from datetime import time

import pytest

from consultslot.domain.intervals import Interval, from_minutes, merge, overlaps, subtract, to_minutes


def hm(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def iv(start: str, end: str) -> Interval:
    return Interval(start=hm(start), end=hm(end))


class TestInterval:
    """Tests for the Interval value type."""

    def test_invalid_interval_raises_error(self):
        """An interval must start before it ends."""
        with pytest.raises(ValueError, match="must be before end"):
            Interval(start=600, end=600)

    def test_from_times_and_str(self):
        interval = Interval.from_times(time(9, 0), time(17, 30))

        assert interval == Interval(540, 1050)
        assert interval.duration_minutes() == 510
        assert str(interval) == "09:00-17:30"

    def test_covers_excludes_end_instant(self):
        interval = iv("09:00", "10:00")

        assert interval.covers(hm("09:00"))
        assert interval.covers(hm("09:59"))
        assert not interval.covers(hm("10:00"))

    def test_intersect(self):
        assert iv("09:00", "12:00").intersect(iv("11:00", "14:00")) == iv("11:00", "12:00")
        assert iv("09:00", "12:00").intersect(iv("12:00", "14:00")) is None

    def test_minute_conversions(self):
        assert to_minutes(time(13, 45)) == 825
        assert from_minutes(825) == time(13, 45)
        with pytest.raises(ValueError):
            from_minutes(24 * 60)


class TestOverlaps:
    """Tests for half-open overlap detection."""

    def test_overlapping(self):
        assert overlaps(iv("09:00", "12:00"), iv("11:00", "14:00"))
        assert overlaps(iv("11:00", "14:00"), iv("09:00", "12:00"))

    def test_contained(self):
        assert overlaps(iv("09:00", "17:00"), iv("10:00", "10:15"))

    def test_touching_is_not_overlap(self):
        """A range ending at 10:00 and one starting at 10:00 do not overlap."""
        assert not overlaps(iv("09:00", "10:00"), iv("10:00", "11:00"))
        assert not overlaps(iv("10:00", "11:00"), iv("09:00", "10:00"))


class TestMerge:
    """Tests for coalescing intervals."""

    def test_empty_in_empty_out(self):
        assert merge([]) == []

    def test_merges_overlapping_and_adjacent(self):
        merged = merge([iv("10:30", "12:00"), iv("09:00", "10:00"), iv("10:00", "11:00"), iv("14:00", "15:00")])

        assert merged == [iv("09:00", "12:00"), iv("14:00", "15:00")]

    def test_keeps_gaps(self):
        assert merge([iv("09:00", "10:00"), iv("10:01", "11:00")]) == [iv("09:00", "10:00"), iv("10:01", "11:00")]


class TestSubtract:
    """Tests for removing intervals from a window."""

    def test_no_removals_returns_window(self):
        assert subtract(iv("09:00", "17:00"), []) == [iv("09:00", "17:00")]

    def test_unsorted_overlapping_removals(self):
        remaining = subtract(
            iv("09:00", "17:00"),
            [iv("14:00", "15:00"), iv("10:00", "11:00"), iv("10:30", "11:30")],
        )

        assert remaining == [iv("09:00", "10:00"), iv("11:30", "14:00"), iv("15:00", "17:00")]

    def test_removals_outside_window_are_ignored(self):
        remaining = subtract(iv("09:00", "12:00"), [iv("07:00", "08:00"), iv("12:00", "13:00")])

        assert remaining == [iv("09:00", "12:00")]

    def test_removal_clipped_at_edges(self):
        remaining = subtract(iv("09:00", "12:00"), [iv("08:00", "09:30"), iv("11:30", "13:00")])

        assert remaining == [iv("09:30", "11:30")]

    def test_fully_covered_window(self):
        assert subtract(iv("09:00", "12:00"), [iv("08:00", "10:00"), iv("10:00", "12:30")]) == []
