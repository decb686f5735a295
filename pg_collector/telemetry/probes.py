"""
Capability probes - read-only checks that never fail the cycle.

Any error (missing privilege, missing catalog, dropped connection) collapses
to "capability absent".
"""

import logging
from dataclasses import dataclass

from .plan import STATEMENT_STATS_HELPER, STATS_HELPER_SCHEMA
from .query import QueryRunner

logger = logging.getLogger(__name__)

STATS_HELPER_SQL = """
SELECT 1 AS enabled
  FROM pg_proc
  JOIN pg_namespace ON (pronamespace = pg_namespace.oid)
 WHERE nspname = %s AND proname = %s
"""

CONNECTED_AS_SUPERUSER_SQL = "SELECT current_setting('is_superuser') = 'on'"

CONNECTED_AS_MONITORING_ROLE_SQL = """
SELECT true
  FROM pg_auth_members
 WHERE roleid = (SELECT oid FROM pg_roles WHERE rolname = 'pg_monitor')
       AND member = (SELECT oid FROM pg_roles WHERE rolname = current_user)
"""


@dataclass(frozen=True)
class Capabilities:
    """Result of probing one server."""
    statement_stats_helper: bool = False
    superuser: bool = False
    monitoring_role: bool = False

    @property
    def privileged(self) -> bool:
        return self.superuser or self.monitoring_role


def _probe(runner: QueryRunner, sql: str, params=None) -> bool:
    try:
        row = runner.fetchone(sql, params)
    except Exception as e:
        logger.debug("Capability probe failed, treating as absent: %s", e)
        return False
    return bool(row and row[0])


def stats_helper_exists(runner: QueryRunner, helper: str) -> bool:
    """Check for a helper function in the collector's helper schema."""
    return _probe(runner, STATS_HELPER_SQL, (STATS_HELPER_SCHEMA, helper))


def statement_stats_helper_exists(runner: QueryRunner) -> bool:
    return stats_helper_exists(runner, STATEMENT_STATS_HELPER)


def connected_as_superuser(runner: QueryRunner) -> bool:
    return _probe(runner, CONNECTED_AS_SUPERUSER_SQL)


def connected_as_monitoring_role(runner: QueryRunner) -> bool:
    return _probe(runner, CONNECTED_AS_MONITORING_ROLE_SQL)


def probe_capabilities(runner: QueryRunner) -> Capabilities:
    capabilities = Capabilities(
        statement_stats_helper=statement_stats_helper_exists(runner),
        superuser=connected_as_superuser(runner),
        monitoring_role=connected_as_monitoring_role(runner),
    )
    logger.debug("Probed capabilities: %s", capabilities)
    return capabilities
