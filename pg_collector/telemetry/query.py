"""
QueryRunner - runs every collector query against a monitored server.

All SQL sent through here is prefixed with QUERY_MARKER so the collector can
recognise (and exclude) its own statements in pg_stat_statements.
"""

import threading
import time
from typing import Any, List, Optional, Sequence, Tuple

from ..snapshot.counters import CollectorStats

QUERY_MARKER = "/* pg_collector */ "


class CollectorHealth:
    """
    Cumulative self-observed counters for one target.

    Lives as long as the process; a restart starts again from zero, which the
    diff engine sees as a reset.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.queries_executed = 0
        self.query_errors = 0
        self.query_time_ms = 0.0
        self.statements_excluded = 0

    def record_query(self, elapsed_ms: float, failed: bool = False):
        with self._lock:
            self.queries_executed += 1
            self.query_time_ms += elapsed_ms
            if failed:
                self.query_errors += 1

    def record_excluded(self, count: int):
        with self._lock:
            self.statements_excluded += count

    def snapshot(self) -> CollectorStats:
        with self._lock:
            return CollectorStats(
                queries_executed=self.queries_executed,
                query_errors=self.query_errors,
                query_time_ms=self.query_time_ms,
                statements_excluded=self.statements_excluded,
            )


class QueryRunner:
    """Thin wrapper around a DB-API connection (psycopg2 in production)."""

    def __init__(self, connection, health: Optional[CollectorHealth] = None):
        self.conn = connection
        self.health = health or CollectorHealth()
        # Text of the most recent statement sent, marker included
        self.last_sql: Optional[str] = None

    def _run(self, sql: str, params: Optional[Sequence[Any]], fetch: str):
        started = time.monotonic()
        failed = True
        self.last_sql = QUERY_MARKER + sql
        try:
            with self.conn.cursor() as cur:
                cur.execute(self.last_sql, params)
                if fetch == "all":
                    result = cur.fetchall()
                elif fetch == "one":
                    result = cur.fetchone()
                else:
                    result = None
            failed = False
            return result
        finally:
            elapsed_ms = (time.monotonic() - started) * 1000
            self.health.record_query(elapsed_ms, failed=failed)

    def fetchall(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Tuple]:
        return self._run(sql, params, "all")

    def fetchone(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Tuple]:
        return self._run(sql, params, "one")

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        self._run(sql, params, None)
