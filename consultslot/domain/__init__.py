"""
Domain layer - Pure business logic without external dependencies.
"""

from .conflict_detector import ConflictDetector, occupied_span
from .intervals import Interval, merge, overlaps, subtract
from .models import (
    AvailabilityTemplate,
    BookedService,
    Booking,
    BookingStatus,
    Break,
    BufferPreference,
    DailyWindow,
    DateAvailability,
    Service,
    TimeOff,
    TimeSlot,
)
from .window_calculator import DailyWindowCalculator

__all__ = [
    "AvailabilityTemplate",
    "BookedService",
    "Booking",
    "BookingStatus",
    "Break",
    "BufferPreference",
    "ConflictDetector",
    "DailyWindow",
    "DailyWindowCalculator",
    "DateAvailability",
    "Interval",
    "Service",
    "TimeOff",
    "TimeSlot",
    "merge",
    "occupied_span",
    "overlaps",
    "subtract",
]
