"""
Pure domain layer.

This module contains the catalog value objects and the classification,
generation, simulation and statement logic with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (except SystemClock)

All domain objects are immutable.
"""

from assertive_kernel.domain.business_state import (
    BusinessState,
    LearnerRecord,
    LedgerEntry,
    PendingTransaction,
)
from assertive_kernel.domain.catalog import Catalog
from assertive_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "BusinessState",
    "Catalog",
    "Clock",
    "DeterministicClock",
    "LearnerRecord",
    "LedgerEntry",
    "PendingTransaction",
    "SystemClock",
]
