"""
Data models for the snapshot/diff system.

Snapshot      - everything one acquisition pass saw (persisted as the next baseline)
TransientState - per-cycle extras that are never persisted (query texts)
DiffResult    - per-interval deltas computed from two snapshots
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from .counters import (
    CollectorStats,
    CounterDelta,
    CounterRecord,
    DiskStats,
    FunctionKey,
    IndexKey,
    NetworkStats,
    PostgresFunctionStats,
    PostgresIndexStats,
    PostgresRelationStats,
    PostgresStatementStats,
    RelationKey,
    StatementKey,
    SystemCPUStats,
)


def _from_dict(cls, data: Dict[str, Any]):
    """Build a flat dataclass, ignoring keys written by other versions."""
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# =========================================================================
# Catalog metadata (carried through for reporting, never diffed)
# =========================================================================

@dataclass(frozen=True)
class PostgresVersion:
    full: str = ""
    short: str = ""
    numeric: int = 0

    @classmethod
    def parse(cls, full: str, numeric: int) -> "PostgresVersion":
        """Build from `server_version` / `server_version_num`."""
        short = full.split(" ")[0] if full else ""
        return cls(full=full, short=short, numeric=int(numeric))


@dataclass(frozen=True)
class PostgresRole:
    oid: int
    name: str
    inherit: bool = True
    login: bool = False
    create_db: bool = False
    create_role: bool = False
    super_user: bool = False
    replication: bool = False
    connection_limit: int = -1
    password_valid_until: Optional[str] = None


@dataclass(frozen=True)
class PostgresDatabase:
    oid: int
    name: str
    owner_role_oid: int = 0
    encoding: str = ""
    collate: str = ""
    ctype: str = ""
    is_template: bool = False
    allow_connections: bool = True
    connection_limit: int = -1
    frozen_xid_age: Optional[int] = None


@dataclass(frozen=True)
class PostgresBackend:
    """One pg_stat_activity row. The query text is deliberately not kept."""
    pid: int
    database_oid: Optional[int] = None
    role_oid: Optional[int] = None
    application_name: str = ""
    client_addr: Optional[str] = None
    backend_start: Optional[str] = None
    xact_start: Optional[str] = None
    query_start: Optional[str] = None
    state_change: Optional[str] = None
    wait_event_type: Optional[str] = None
    wait_event: Optional[str] = None
    state: Optional[str] = None
    backend_type: Optional[str] = None


@dataclass(frozen=True)
class PostgresRelation:
    oid: int
    database_oid: int
    schema_name: str
    relation_name: str
    relation_type: str = "r"
    persistence_type: str = "p"
    estimated_rows: Optional[float] = None


@dataclass(frozen=True)
class PostgresSetting:
    name: str
    current_value: Optional[str] = None
    unit: Optional[str] = None
    boot_value: Optional[str] = None
    reset_value: Optional[str] = None
    source: Optional[str] = None
    source_file: Optional[str] = None
    source_line: Optional[int] = None


@dataclass(frozen=True)
class PostgresFunction:
    oid: int
    database_oid: int
    schema_name: str
    function_name: str
    language: str = ""
    arguments: str = ""
    result: str = ""
    kind: str = "f"


@dataclass(frozen=True)
class LogLine:
    occurred_at: str
    log_level: str = ""
    content: str = ""
    backend_pid: Optional[int] = None


@dataclass(frozen=True)
class PostgresExplain:
    occurred_at: str
    fingerprint: str = ""
    explain_output: str = ""


# =========================================================================
# System state
# =========================================================================

@dataclass(frozen=True)
class SystemState:
    """Host-level counters, keyed by cpu id / interface / device name."""
    cpu_stats: Dict[str, SystemCPUStats] = field(default_factory=dict)
    network_stats: Dict[str, NetworkStats] = field(default_factory=dict)
    disk_stats: Dict[str, DiskStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpu_stats": {k: v.to_dict() for k, v in self.cpu_stats.items()},
            "network_stats": {k: v.to_dict() for k, v in self.network_stats.items()},
            "disk_stats": {k: v.to_dict() for k, v in self.disk_stats.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemState":
        return cls(
            cpu_stats={k: SystemCPUStats.from_dict(v) for k, v in data.get("cpu_stats", {}).items()},
            network_stats={k: NetworkStats.from_dict(v) for k, v in data.get("network_stats", {}).items()},
            disk_stats={k: DiskStats.from_dict(v) for k, v in data.get("disk_stats", {}).items()},
        )


# =========================================================================
# Snapshot
# =========================================================================

def _encode_counter_set(stats: Mapping[Tuple, CounterRecord]) -> List[Dict[str, Any]]:
    return [{"key": list(key), "stats": record.to_dict()} for key, record in stats.items()]


def _decode_counter_set(
    items: List[Dict[str, Any]],
    key_cls: Callable[..., Tuple],
    record_cls: Type[CounterRecord],
) -> Dict[Tuple, CounterRecord]:
    return {key_cls(*item["key"]): record_cls.from_dict(item["stats"]) for item in items}


_CATALOG_LISTS = {
    "roles": PostgresRole,
    "databases": PostgresDatabase,
    "backends": PostgresBackend,
    "relations": PostgresRelation,
    "settings": PostgresSetting,
    "functions": PostgresFunction,
    "logs": LogLine,
    "explains": PostgresExplain,
}


@dataclass(frozen=True)
class Snapshot:
    """
    One timestamped sample of a monitored server.

    Produced once per collection cycle; becomes the baseline ("previous")
    for the following cycle once persisted.
    """
    collected_at: datetime

    # Databases we connected to and fetched local catalog data from
    database_oids_with_local_catalog: List[int] = field(default_factory=list)

    statement_stats: Dict[StatementKey, PostgresStatementStats] = field(default_factory=dict)
    relation_stats: Dict[RelationKey, PostgresRelationStats] = field(default_factory=dict)
    index_stats: Dict[IndexKey, PostgresIndexStats] = field(default_factory=dict)
    function_stats: Dict[FunctionKey, PostgresFunctionStats] = field(default_factory=dict)

    roles: List[PostgresRole] = field(default_factory=list)
    databases: List[PostgresDatabase] = field(default_factory=list)
    backends: List[PostgresBackend] = field(default_factory=list)
    relations: List[PostgresRelation] = field(default_factory=list)
    settings: List[PostgresSetting] = field(default_factory=list)
    functions: List[PostgresFunction] = field(default_factory=list)
    version: PostgresVersion = field(default_factory=PostgresVersion)
    logs: List[LogLine] = field(default_factory=list)
    explains: List[PostgresExplain] = field(default_factory=list)

    data_directory: str = ""
    system: SystemState = field(default_factory=SystemState)

    collector_stats: CollectorStats = field(default_factory=CollectorStats)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = {
            "collected_at": self.collected_at.isoformat(),
            "database_oids_with_local_catalog": list(self.database_oids_with_local_catalog),
            "statement_stats": _encode_counter_set(self.statement_stats),
            "relation_stats": _encode_counter_set(self.relation_stats),
            "index_stats": _encode_counter_set(self.index_stats),
            "function_stats": _encode_counter_set(self.function_stats),
            "version": asdict(self.version),
            "data_directory": self.data_directory,
            "system": self.system.to_dict(),
            "collector_stats": self.collector_stats.to_dict(),
        }
        for name in _CATALOG_LISTS:
            data[name] = [asdict(item) for item in getattr(self, name)]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        """
        Create from dictionary (JSON deserialization).

        Raises KeyError, TypeError or ValueError on malformed input.
        """
        catalog = {
            name: [_from_dict(item_cls, item) for item in data.get(name, [])]
            for name, item_cls in _CATALOG_LISTS.items()
        }
        return cls(
            collected_at=datetime.fromisoformat(data["collected_at"]),
            database_oids_with_local_catalog=list(data.get("database_oids_with_local_catalog", [])),
            statement_stats=_decode_counter_set(
                data.get("statement_stats", []), StatementKey, PostgresStatementStats),
            relation_stats=_decode_counter_set(
                data.get("relation_stats", []), RelationKey, PostgresRelationStats),
            index_stats=_decode_counter_set(
                data.get("index_stats", []), IndexKey, PostgresIndexStats),
            function_stats=_decode_counter_set(
                data.get("function_stats", []), FunctionKey, PostgresFunctionStats),
            version=_from_dict(PostgresVersion, data.get("version", {})),
            data_directory=data.get("data_directory", ""),
            system=SystemState.from_dict(data.get("system", {})),
            collector_stats=CollectorStats.from_dict(data.get("collector_stats", {})),
            **catalog,
        )


@dataclass(frozen=True)
class PostgresStatement:
    query: str


@dataclass
class TransientState:
    """State that is only used within a collection cycle (never persisted or diffed)."""
    statements: Dict[StatementKey, PostgresStatement] = field(default_factory=dict)


# =========================================================================
# Diff result
# =========================================================================

def format_key(key: Any) -> str:
    """Entity key as a path-like string; absent key parts are left out."""
    if isinstance(key, str):
        return key
    return "/".join(str(part) for part in key if part is not None)


@dataclass
class DiffResult:
    """Result of diffing two snapshots: deltas only, never rates."""
    collected_at: datetime
    previous_collected_at: Optional[datetime] = None

    statement_stats: Dict[StatementKey, CounterDelta] = field(default_factory=dict)
    relation_stats: Dict[RelationKey, CounterDelta] = field(default_factory=dict)
    index_stats: Dict[IndexKey, CounterDelta] = field(default_factory=dict)
    function_stats: Dict[FunctionKey, CounterDelta] = field(default_factory=dict)

    system_cpu_stats: Dict[str, CounterDelta] = field(default_factory=dict)
    system_network_stats: Dict[str, CounterDelta] = field(default_factory=dict)
    system_disk_stats: Dict[str, CounterDelta] = field(default_factory=dict)

    collector_stats: Optional[CounterDelta] = None

    @property
    def cold_start(self) -> bool:
        """True when there was no usable baseline."""
        return self.previous_collected_at is None

    def category_maps(self) -> Dict[str, Dict[Any, CounterDelta]]:
        return {
            "statement_stats": self.statement_stats,
            "relation_stats": self.relation_stats,
            "index_stats": self.index_stats,
            "function_stats": self.function_stats,
            "system_cpu_stats": self.system_cpu_stats,
            "system_network_stats": self.system_network_stats,
            "system_disk_stats": self.system_disk_stats,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "collected_at": self.collected_at.isoformat(),
            "previous_collected_at": (
                self.previous_collected_at.isoformat() if self.previous_collected_at else None
            ),
            "collector_stats": self.collector_stats.to_dict() if self.collector_stats else None,
        }
        for name, deltas in self.category_maps().items():
            data[name] = {format_key(k): d.to_dict() for k, d in deltas.items()}
        return data


# =========================================================================
# Grant
# =========================================================================

@dataclass
class Grant:
    """Upload authorization for a target. Only reporting depends on it."""
    valid: bool = False
    config: Dict[str, Any] = field(default_factory=dict)
    upload_url: str = ""
    upload_fields: Dict[str, str] = field(default_factory=dict)
