"""
Domain-specific exception hierarchy for the booking engine.
"""


class BookingEngineError(Exception):
    """Base class for all engine-level errors."""


class ValidationError(BookingEngineError):
    """Raised when a request is malformed, before any store is touched."""


class NotFoundError(BookingEngineError):
    """Raised when a referenced consultant, service or booking does not exist."""


class UnknownConsultant(NotFoundError):
    """Raised when the consultant id is not known to the rule store."""


class StaleService(NotFoundError):
    """Raised when the service is missing from the catalog or no longer active."""


class BookingRejected(BookingEngineError):
    """Business-rule rejection of a booking attempt. Not a fault."""

    reason = "rejected"


class OutsideAvailability(BookingRejected):
    """The requested start does not fall inside any open window."""

    reason = "outside_availability"


class CapacityExceeded(BookingRejected):
    """A buffered conflict exists or the window's max_bookings is reached."""

    reason = "capacity_exceeded"


class TransientError(BookingEngineError):
    """Store timeout or connection failure. Safe to retry with backoff."""


class ConsistencyError(BookingEngineError):
    """Store returned data that violates an invariant."""
