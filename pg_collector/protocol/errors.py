"""
Error taxonomy for collection cycles.

- Capability probes never raise; a failed probe means "capability absent".
- A missing pg_stat_statements view gets one repair attempt; if it is still
  missing the cycle fails with MISSING_OBJECT as the cause.
- Anything else during acquisition is an AcquisitionError, which aborts the
  cycle before diffing and persistence.
- An incompatible state file is not an error at all (cold start).
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Any

import psycopg2.errors


class ErrorType(str, Enum):
    """Types of errors that can occur."""
    MISSING_OBJECT = "MISSING_OBJECT"
    CYCLE_FATAL = "CYCLE_FATAL"
    CANCELLED = "CANCELLED"


class Phase(str, Enum):
    """Phases of a collection cycle."""
    CONNECT = "CONNECT"
    PROBE = "PROBE"
    ACQUIRE = "ACQUIRE"
    LOAD = "LOAD"
    DIFF = "DIFF"
    REPORT = "REPORT"
    SAVE = "SAVE"


# Relation or function still absent after the one repair attempt
MISSING_OBJECT_ERRORS = (psycopg2.errors.UndefinedTable, psycopg2.errors.UndefinedFunction)


@dataclass
class ErrorDetails:
    """Details about a failed cycle."""
    message: str
    error_type: str = ErrorType.CYCLE_FATAL.value
    phase: str = Phase.ACQUIRE.value
    code: Optional[str] = None       # PostgreSQL SQLSTATE
    hint: Optional[str] = None       # PostgreSQL hint
    failed_sql: Optional[str] = None
    cause: Optional[str] = None      # ErrorType behind a promoted failure
    occurred_at: str = ""

    def __post_init__(self):
        if not self.occurred_at:
            self.occurred_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class CollectorError(Exception):
    """Base class for collector errors."""

    error_type = ErrorType.CYCLE_FATAL

    def __init__(
        self,
        message: str,
        phase: Phase = Phase.ACQUIRE,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        failed_sql: Optional[str] = None,
        cause: Optional[ErrorType] = None,
    ):
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.code = code
        self.hint = hint
        self.failed_sql = failed_sql
        self.cause = cause

    @property
    def details(self) -> ErrorDetails:
        return ErrorDetails(
            message=self.message,
            error_type=self.error_type.value,
            phase=self.phase.value,
            code=self.code,
            hint=self.hint,
            failed_sql=self.failed_sql,
            cause=self.cause.value if self.cause else None,
        )


class AcquisitionError(CollectorError):
    """Cycle-fatal failure while talking to the monitored server."""

    @classmethod
    def from_pg_error(
        cls,
        exc: Exception,
        phase: Phase = Phase.ACQUIRE,
        failed_sql: Optional[str] = None,
    ) -> "AcquisitionError":
        """Wrap a psycopg2 error together with the statement that raised it."""
        diag = getattr(exc, "diag", None)
        message = str(exc).strip() or type(exc).__name__
        return cls(
            message,
            phase=phase,
            code=getattr(exc, "pgcode", None),
            hint=getattr(diag, "message_hint", None) if diag is not None else None,
            failed_sql=failed_sql,
            cause=ErrorType.MISSING_OBJECT if isinstance(exc, MISSING_OBJECT_ERRORS) else None,
        )


class CycleCancelled(CollectorError):
    """The process was asked to stop while acquisition was in flight."""

    error_type = ErrorType.CANCELLED

    def __init__(self, message: str = "Collection cycle cancelled", phase: Phase = Phase.ACQUIRE):
        super().__init__(message, phase=phase)
