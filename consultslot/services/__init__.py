"""
Service layer helpers that orchestrate store access and domain logic.
"""

from .commit_guard import BookingCommitGuard, BookingOutcome
from .enumerator import SlotEnumerator
from .protocols import BookingLedger, ScheduleRuleReader, ServiceCatalog
from .rule_access import ScheduleRuleAccess

__all__ = [
    "BookingCommitGuard",
    "BookingLedger",
    "BookingOutcome",
    "ScheduleRuleAccess",
    "ScheduleRuleReader",
    "ServiceCatalog",
    "SlotEnumerator",
]
