"""
Statement statistics acquisition (pg_stat_statements).
"""

import hashlib
import logging
from typing import Dict, Tuple

import psycopg2
import psycopg2.errors

from ..snapshot.counters import PostgresStatementStats, StatementKey
from ..snapshot.models import PostgresStatement
from .plan import STATEMENT_COLUMNS, StatementFetchPlan, StatementSource, is_collector_query
from .query import QueryRunner

logger = logging.getLogger(__name__)

CREATE_EXTENSION_SQL = "CREATE EXTENSION IF NOT EXISTS pg_stat_statements"

_STATS_FIELDS = set(PostgresStatementStats.__dataclass_fields__)


def fingerprint(queryid, query: str) -> str:
    """Stable identity of a normalized query."""
    if queryid is not None:
        return str(queryid)
    return hashlib.md5(query.encode("utf-8")).hexdigest()


def _fetch_rows(runner: QueryRunner, plan: StatementFetchPlan):
    sql = plan.statement_sql()
    params = plan.statement_params()

    try:
        return runner.fetchall(sql, params)
    except psycopg2.errors.UndefinedTable:
        if plan.source is not StatementSource.VIEW:
            raise
        logger.info("pg_stat_statements relation does not exist, trying to create extension...")

    # Exactly one repair attempt; any failure from here on is the caller's problem
    runner.execute(CREATE_EXTENSION_SQL)
    return runner.fetchall(sql, params)


def get_statements(
    runner: QueryRunner,
    plan: StatementFetchPlan,
) -> Tuple[Dict[StatementKey, PostgresStatementStats], Dict[StatementKey, PostgresStatement]]:
    """
    Fetch statement statistics and query texts.

    Returns:
        (stats keyed by StatementKey, query texts for the TransientState)

    Raises:
        psycopg2.Error: if the fetch fails (after at most one repair attempt)
    """
    stats: Dict[StatementKey, PostgresStatementStats] = {}
    texts: Dict[StatementKey, PostgresStatement] = {}
    excluded = 0

    for row in _fetch_rows(runner, plan):
        values = dict(zip(STATEMENT_COLUMNS, row))
        query = values["query"] or ""

        # Server-side filter covers this too; rows from helpers are re-checked here
        if is_collector_query(query):
            excluded += 1
            continue

        key = StatementKey(
            database_oid=values["dbid"],
            user_oid=values["userid"],
            fingerprint=fingerprint(values["queryid"], query),
            toplevel=values["toplevel"],
        )
        record = PostgresStatementStats(
            **{k: v for k, v in values.items() if k in _STATS_FIELDS}
        )

        if key in stats:
            stats[key] = stats[key].combine(record)
        else:
            stats[key] = record
            texts[key] = PostgresStatement(query=query)

    if excluded:
        runner.health.record_excluded(excluded)

    return stats, texts
