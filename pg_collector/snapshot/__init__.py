"""
Snapshot module - point-in-time statistics and the deltas between them.

- counters: cumulative counter records and their entity keys
- models: Snapshot, TransientState, DiffResult and catalog entities
- diff: turns two snapshots into per-entity deltas
- store: keeps the previous snapshot per API key across runs

SnapshotCapture (capture.py) builds a Snapshot from a live connection and is
imported directly, since it depends on the telemetry module.
"""

from .counters import (
    CounterDelta,
    CounterRecord,
    DeltaKind,
    StatementKey,
    RelationKey,
    IndexKey,
    FunctionKey,
    PostgresStatementStats,
    PostgresRelationStats,
    PostgresIndexStats,
    PostgresFunctionStats,
    SystemCPUStats,
    NetworkStats,
    DiskStats,
    CollectorStats,
)
from .models import Snapshot, TransientState, DiffResult, PostgresVersion, SystemState, Grant
from .diff import diff_record, diff_counter_set, diff_snapshots
from .store import StateStore, NullStateStore, FileStateStore, build_state_store, STATE_ON_DISK_FORMAT_VERSION

__all__ = [
    # Counters
    'CounterDelta',
    'CounterRecord',
    'DeltaKind',
    'StatementKey',
    'RelationKey',
    'IndexKey',
    'FunctionKey',
    'PostgresStatementStats',
    'PostgresRelationStats',
    'PostgresIndexStats',
    'PostgresFunctionStats',
    'SystemCPUStats',
    'NetworkStats',
    'DiskStats',
    'CollectorStats',
    # Models
    'Snapshot',
    'TransientState',
    'DiffResult',
    'PostgresVersion',
    'SystemState',
    'Grant',
    # Diff
    'diff_record',
    'diff_counter_set',
    'diff_snapshots',
    # Store
    'StateStore',
    'NullStateStore',
    'FileStateStore',
    'build_state_store',
    'STATE_ON_DISK_FORMAT_VERSION',
]
