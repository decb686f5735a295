"""
Telemetry module - Reads PostgreSQL statistics views.

- QueryRunner: executes marked queries and counts them
- StatementFetchPlan: version-aware pg_stat_statements query
- probes: capability checks that never fail the cycle
- statements / relations: per-entity counter acquisition
"""

from .query import QUERY_MARKER, CollectorHealth, QueryRunner
from .plan import StatementFetchPlan, StatementFieldSet, ColumnNaming, StatementSource
from .probes import Capabilities, probe_capabilities
from .statements import get_statements
from .relations import get_relation_stats, get_index_stats, get_function_stats
from .connection import connect

__all__ = [
    "QUERY_MARKER",
    "CollectorHealth",
    "QueryRunner",
    "StatementFetchPlan",
    "StatementFieldSet",
    "ColumnNaming",
    "StatementSource",
    "Capabilities",
    "probe_capabilities",
    "get_statements",
    "get_relation_stats",
    "get_index_stats",
    "get_function_stats",
    "connect",
]
