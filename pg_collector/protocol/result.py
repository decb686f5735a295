"""
CycleResult - what one collection cycle hands to reporting.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import json

from ..snapshot.models import DiffResult, Snapshot, TransientState, format_key
from .errors import ErrorDetails


@dataclass
class CycleResult:
    """Outcome of one collection cycle for one server."""
    server_name: str
    success: bool
    diff: Optional[DiffResult] = None
    snapshot: Optional[Snapshot] = None
    transient: Optional[TransientState] = None
    error: Optional[ErrorDetails] = None
    persisted: bool = False
    submittable: bool = False
    duration_ms: int = 0

    @classmethod
    def failure(cls, server_name: str, error: ErrorDetails, duration_ms: int = 0) -> "CycleResult":
        """Create a failure result."""
        return cls(server_name=server_name, success=False, error=error, duration_ms=duration_ms)

    @property
    def cold_start(self) -> bool:
        return self.diff is not None and self.diff.cold_start

    def summary(self) -> Dict[str, Any]:
        """Counts per category, for display."""
        result = {
            "server": self.server_name,
            "success": self.success,
            "persisted": self.persisted,
            "submittable": self.submittable,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            result["error"] = self.error.to_dict()
        if self.diff:
            result["cold_start"] = self.diff.cold_start
            categories = {}
            for name, deltas in self.diff.category_maps().items():
                categories[name] = {
                    "entities": len(deltas),
                    "reset": sum(1 for d in deltas.values() if d.reset),
                }
            result["categories"] = categories
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (query texts included, snapshot excluded)."""
        result = self.summary()
        if self.diff:
            result["diff"] = self.diff.to_dict()
        if self.transient:
            result["queries"] = {
                format_key(key): statement.query
                for key, statement in self.transient.statements.items()
            }
        return result

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=str)
