"""
Counter records and entity keys for the statistics categories.

Every category is a mapping from an entity key to a frozen counter record.
Record fields come in two kinds:

- counters: cumulative values maintained by the server (calls, block reads, ...)
- gauges: point-in-time values (mean time, live tuple estimate, ...)

Optional fields default to None, meaning "not available on this server";
None never stands in for zero.
"""

from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Union

Number = Union[int, float]

COUNTER = "counter"
GAUGE = "gauge"


def optional_counter():
    """Cumulative field that only some server versions expose."""
    return field(default=None, metadata={"kind": COUNTER})


def gauge():
    """Point-in-time field, never diffed."""
    return field(default=None, metadata={"kind": GAUGE})


# =========================================================================
# Entity keys
# =========================================================================

class StatementKey(NamedTuple):
    database_oid: int
    user_oid: int
    fingerprint: str
    # None where the server does not split top-level and nested execution
    toplevel: Optional[bool] = None


class RelationKey(NamedTuple):
    database_oid: int
    relid: int


class IndexKey(NamedTuple):
    database_oid: int
    indexrelid: int


class FunctionKey(NamedTuple):
    database_oid: int
    funcid: int


# =========================================================================
# Records
# =========================================================================

@dataclass(frozen=True)
class CounterRecord:
    """Base class for all counter records."""

    def counters(self) -> Dict[str, Number]:
        """Cumulative fields that are present (not None)."""
        return self._values_of_kind(COUNTER)

    def gauges(self) -> Dict[str, Number]:
        """Point-in-time fields that are present (not None)."""
        return self._values_of_kind(GAUGE)

    def _values_of_kind(self, kind: str) -> Dict[str, Number]:
        values = {}
        for f in fields(self):
            if f.metadata.get("kind", COUNTER) != kind:
                continue
            value = getattr(self, f.name)
            if value is not None:
                values[f.name] = value
        return values

    def combine(self, other: "CounterRecord") -> "CounterRecord":
        """
        Merge two readings of the same entity into one.

        Counters present on both sides are summed; anything else becomes
        absent, since a gauge of two rows has no single meaning.
        """
        merged = {}
        for f in fields(self):
            a, b = getattr(self, f.name), getattr(other, f.name)
            if f.metadata.get("kind", COUNTER) == COUNTER and a is not None and b is not None:
                merged[f.name] = a + b
            else:
                merged[f.name] = None
        return type(self)(**merged)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CounterRecord":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class PostgresStatementStats(CounterRecord):
    """One row of pg_stat_statements, without the query text."""
    calls: int = 0
    total_time: float = 0.0
    rows: int = 0
    shared_blks_hit: int = 0
    shared_blks_read: int = 0
    shared_blks_dirtied: int = 0
    shared_blks_written: int = 0
    local_blks_hit: int = 0
    local_blks_read: int = 0
    local_blks_dirtied: int = 0
    local_blks_written: int = 0
    temp_blks_read: int = 0
    temp_blks_written: int = 0
    blk_read_time: float = 0.0
    blk_write_time: float = 0.0

    # 9.5+
    min_time: Optional[float] = gauge()
    max_time: Optional[float] = gauge()
    mean_time: Optional[float] = gauge()
    stddev_time: Optional[float] = gauge()


@dataclass(frozen=True)
class PostgresRelationStats(CounterRecord):
    """pg_stat_user_tables joined with pg_statio_user_tables."""
    seq_scan: int = 0
    seq_tup_read: int = 0
    idx_scan: Optional[int] = optional_counter()          # NULL without indexes
    idx_tup_fetch: Optional[int] = optional_counter()
    n_tup_ins: int = 0
    n_tup_upd: int = 0
    n_tup_del: int = 0
    n_tup_hot_upd: int = 0
    vacuum_count: int = 0
    autovacuum_count: int = 0
    analyze_count: int = 0
    autoanalyze_count: int = 0
    heap_blks_read: int = 0
    heap_blks_hit: int = 0
    idx_blks_read: Optional[int] = optional_counter()
    idx_blks_hit: Optional[int] = optional_counter()
    toast_blks_read: Optional[int] = optional_counter()   # NULL without TOAST table
    toast_blks_hit: Optional[int] = optional_counter()
    tidx_blks_read: Optional[int] = optional_counter()
    tidx_blks_hit: Optional[int] = optional_counter()

    n_live_tup: Optional[int] = gauge()
    n_dead_tup: Optional[int] = gauge()
    n_mod_since_analyze: Optional[int] = gauge()          # 9.4+


@dataclass(frozen=True)
class PostgresIndexStats(CounterRecord):
    idx_scan: int = 0
    idx_tup_read: int = 0
    idx_tup_fetch: int = 0
    idx_blks_read: int = 0
    idx_blks_hit: int = 0


@dataclass(frozen=True)
class PostgresFunctionStats(CounterRecord):
    calls: int = 0
    total_time: float = 0.0
    self_time: float = 0.0


@dataclass(frozen=True)
class SystemCPUStats(CounterRecord):
    """Seconds spent per CPU mode since boot."""
    user_seconds: float = 0.0
    system_seconds: float = 0.0
    idle_seconds: float = 0.0
    nice_seconds: float = 0.0
    iowait_seconds: Optional[float] = optional_counter()
    irq_seconds: Optional[float] = optional_counter()
    soft_irq_seconds: Optional[float] = optional_counter()
    steal_seconds: Optional[float] = optional_counter()


@dataclass(frozen=True)
class NetworkStats(CounterRecord):
    receive_bytes: int = 0
    transmit_bytes: int = 0
    receive_packets: Optional[int] = optional_counter()
    transmit_packets: Optional[int] = optional_counter()


@dataclass(frozen=True)
class DiskStats(CounterRecord):
    reads_completed: int = 0
    writes_completed: int = 0
    bytes_read: int = 0
    bytes_written: int = 0
    io_time_ms: Optional[int] = optional_counter()
    in_progress: Optional[int] = gauge()


@dataclass(frozen=True)
class CollectorStats(CounterRecord):
    """Self-observed health of the collector for one target."""
    queries_executed: int = 0
    query_errors: int = 0
    query_time_ms: float = 0.0
    statements_excluded: int = 0


# =========================================================================
# Deltas
# =========================================================================

class DeltaKind(str, Enum):
    """How a delta record was produced."""
    BASELINE = "baseline"   # first sighting, zero deltas
    DIFF = "diff"           # current minus previous
    RESET = "reset"         # a counter went backwards, current values reported


@dataclass(frozen=True)
class CounterDelta:
    """Per-interval change of one entity."""
    kind: DeltaKind
    values: Dict[str, Number] = field(default_factory=dict)
    gauges: Dict[str, Number] = field(default_factory=dict)

    @property
    def reset(self) -> bool:
        return self.kind is DeltaKind.RESET

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "values": dict(self.values),
            "gauges": dict(self.gauges),
        }
