"""
Relation, index and function statistics for the connected database.

Provides:
- pg_stat_user_tables + pg_statio_user_tables
- pg_stat_user_indexes + pg_statio_user_indexes
- pg_stat_user_functions
"""

from typing import Dict

from ..snapshot.counters import (
    FunctionKey,
    IndexKey,
    PostgresFunctionStats,
    PostgresIndexStats,
    PostgresRelationStats,
    RelationKey,
)
from ..snapshot.models import PostgresVersion
from .plan import PG_VERSION_94
from .query import QueryRunner

RELATION_STATS_SQL = """
SELECT s.relid,
       s.seq_scan, s.seq_tup_read, s.idx_scan, s.idx_tup_fetch,
       s.n_tup_ins, s.n_tup_upd, s.n_tup_del, s.n_tup_hot_upd,
       s.vacuum_count, s.autovacuum_count, s.analyze_count, s.autoanalyze_count,
       io.heap_blks_read, io.heap_blks_hit, io.idx_blks_read, io.idx_blks_hit,
       io.toast_blks_read, io.toast_blks_hit, io.tidx_blks_read, io.tidx_blks_hit,
       s.n_live_tup, s.n_dead_tup, {n_mod_since_analyze}
  FROM pg_stat_user_tables s
  JOIN pg_statio_user_tables io USING (relid)
"""

RELATION_STATS_COLUMNS = (
    "seq_scan", "seq_tup_read", "idx_scan", "idx_tup_fetch",
    "n_tup_ins", "n_tup_upd", "n_tup_del", "n_tup_hot_upd",
    "vacuum_count", "autovacuum_count", "analyze_count", "autoanalyze_count",
    "heap_blks_read", "heap_blks_hit", "idx_blks_read", "idx_blks_hit",
    "toast_blks_read", "toast_blks_hit", "tidx_blks_read", "tidx_blks_hit",
    "n_live_tup", "n_dead_tup", "n_mod_since_analyze",
)

INDEX_STATS_SQL = """
SELECT s.indexrelid, s.idx_scan, s.idx_tup_read, s.idx_tup_fetch,
       io.idx_blks_read, io.idx_blks_hit
  FROM pg_stat_user_indexes s
  JOIN pg_statio_user_indexes io USING (indexrelid)
"""

INDEX_STATS_COLUMNS = ("idx_scan", "idx_tup_read", "idx_tup_fetch", "idx_blks_read", "idx_blks_hit")

FUNCTION_STATS_SQL = """
SELECT funcid, calls, total_time, self_time
  FROM pg_stat_user_functions
"""

FUNCTION_STATS_COLUMNS = ("calls", "total_time", "self_time")


def _required(value, default=0):
    # statio counters are NULL for relations never read since the last reset
    return default if value is None else value


def get_relation_stats(
    runner: QueryRunner,
    database_oid: int,
    version: PostgresVersion,
) -> Dict[RelationKey, PostgresRelationStats]:
    """Get per-table counters for the current database."""
    n_mod = "s.n_mod_since_analyze" if version.numeric >= PG_VERSION_94 else "NULL"
    rows = runner.fetchall(RELATION_STATS_SQL.format(n_mod_since_analyze=n_mod))

    optional = {
        name for name, f in PostgresRelationStats.__dataclass_fields__.items()
        if f.default is None
    }
    stats = {}
    for row in rows:
        values = dict(zip(RELATION_STATS_COLUMNS, row[1:]))
        for name, value in values.items():
            if name not in optional:
                values[name] = _required(value)
        stats[RelationKey(database_oid, row[0])] = PostgresRelationStats(**values)
    return stats


def get_index_stats(runner: QueryRunner, database_oid: int) -> Dict[IndexKey, PostgresIndexStats]:
    """Get per-index counters for the current database."""
    stats = {}
    for row in runner.fetchall(INDEX_STATS_SQL):
        values = {name: _required(value) for name, value in zip(INDEX_STATS_COLUMNS, row[1:])}
        stats[IndexKey(database_oid, row[0])] = PostgresIndexStats(**values)
    return stats


def get_function_stats(runner: QueryRunner, database_oid: int) -> Dict[FunctionKey, PostgresFunctionStats]:
    """Get per-function counters (requires track_functions)."""
    stats = {}
    for row in runner.fetchall(FUNCTION_STATS_SQL):
        values = {name: _required(value) for name, value in zip(FUNCTION_STATS_COLUMNS, row[1:])}
        stats[FunctionKey(database_oid, row[0])] = PostgresFunctionStats(**values)
    return stats
