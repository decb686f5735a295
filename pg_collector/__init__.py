"""
pg_collector - PostgreSQL statistics collector core

Samples the cumulative counters a PostgreSQL server exposes (statement,
table, index and function statistics) and turns consecutive samples into
per-interval deltas, surviving server restarts, stats resets, version
differences and collector restarts.

Usage:
    # As a module
    python -m pg_collector --config pg_collector.toml

    # Programmatically
    from pg_collector import CollectionCycle, Server, FileStateStore

    cycle = CollectionCycle(Server(config=server_config), FileStateStore(path), opts)
    result = cycle.run()
"""

__version__ = "1.0.0"

# Configuration
from .config import Config, CollectionOpts, ServerConfig

# Snapshot / diff
from .snapshot.models import Snapshot, TransientState, DiffResult, Grant
from .snapshot.counters import CounterDelta, DeltaKind
from .snapshot.diff import diff_snapshots
from .snapshot.store import StateStore, FileStateStore, NullStateStore, STATE_ON_DISK_FORMAT_VERSION

# Acquisition
from .telemetry.plan import StatementFetchPlan

# Runner
from .runner.cycle import CollectionCycle, Server
from .runner.pool import run_cycles
from .protocol.result import CycleResult

__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "CollectionOpts",
    "ServerConfig",
    # Snapshot
    "Snapshot",
    "TransientState",
    "DiffResult",
    "Grant",
    "CounterDelta",
    "DeltaKind",
    "diff_snapshots",
    "StateStore",
    "FileStateStore",
    "NullStateStore",
    "STATE_ON_DISK_FORMAT_VERSION",
    # Acquisition
    "StatementFetchPlan",
    # Runner
    "CollectionCycle",
    "Server",
    "run_cycles",
    "CycleResult",
]
