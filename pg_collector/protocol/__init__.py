"""
Protocol definitions for pg_collector.

- CycleResult: CollectionCycle → reporting
- ErrorDetails / CollectorError: structured cycle failures
"""

from .errors import (
    ErrorType,
    Phase,
    ErrorDetails,
    CollectorError,
    AcquisitionError,
    CycleCancelled,
)
from .result import CycleResult

__all__ = [
    # Errors
    "ErrorType",
    "Phase",
    "ErrorDetails",
    "CollectorError",
    "AcquisitionError",
    "CycleCancelled",
    # Result
    "CycleResult",
]
