"""
Statement fetch plan - decides what pg_stat_statements may legally be asked for.

The plan is a small closed set of choices made once per cycle:

- StatementFieldSet: which optional fields exist (by server version)
- ColumnNaming: what the timing columns are called (by server version)
- StatementSource: the standard view, or the privileged helper function

and it renders the one query the acquisition step runs.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from ..snapshot.models import PostgresVersion
from .query import QUERY_MARKER

PG_VERSION_94 = 90400
PG_VERSION_95 = 90500
PG_VERSION_13 = 130000
PG_VERSION_14 = 140000
PG_VERSION_17 = 170000

STATS_HELPER_SCHEMA = "pg_collector"
STATEMENT_STATS_HELPER = "get_stat_statements"

INSUFFICIENT_PRIVILEGE = "<insufficient privilege>"
HOUSEKEEPING_PREFIXES = ("DEALLOCATE ",)

TIMING_FIELDS = ("min_time", "max_time", "mean_time", "stddev_time")


class StatementFieldSet(str, Enum):
    """Optional statement fields available on the server."""
    NONE = "none"                        # before 9.4
    QUERYID = "queryid"                  # 9.4
    QUERYID_AND_TIMING = "queryid_timing"  # 9.5+

    @classmethod
    def for_version(cls, version: PostgresVersion) -> "StatementFieldSet":
        if version.numeric >= PG_VERSION_95:
            return cls.QUERYID_AND_TIMING
        if version.numeric >= PG_VERSION_94:
            return cls.QUERYID
        return cls.NONE


class ColumnNaming(str, Enum):
    """Names of the timing columns in pg_stat_statements."""
    CLASSIC = "classic"          # total_time, blk_read_time
    EXEC_TIME = "exec_time"      # 13+: total_exec_time
    SHARED_BLK_TIME = "shared_blk_time"  # 17+: shared_blk_read_time

    @classmethod
    def for_version(cls, version: PostgresVersion) -> "ColumnNaming":
        if version.numeric >= PG_VERSION_17:
            return cls.SHARED_BLK_TIME
        if version.numeric >= PG_VERSION_13:
            return cls.EXEC_TIME
        return cls.CLASSIC

    def timing_column(self, name: str) -> str:
        """Server-side column for a canonical timing field name."""
        if self is ColumnNaming.CLASSIC:
            return name
        return name.replace("_time", "_exec_time")

    def blk_time_column(self, name: str) -> str:
        if self is ColumnNaming.SHARED_BLK_TIME:
            return "shared_" + name
        return name


class StatementSource(str, Enum):
    VIEW = "view"
    HELPER = "helper"

    @property
    def relation(self) -> str:
        if self is StatementSource.HELPER:
            return f"{STATS_HELPER_SCHEMA}.{STATEMENT_STATS_HELPER}()"
        return "pg_stat_statements"


STATEMENT_COLUMNS = (
    "dbid", "userid", "query", "calls", "total_time", "rows",
    "shared_blks_hit", "shared_blks_read", "shared_blks_dirtied", "shared_blks_written",
    "local_blks_hit", "local_blks_read", "local_blks_dirtied", "local_blks_written",
    "temp_blks_read", "temp_blks_written", "blk_read_time", "blk_write_time",
    "queryid",
) + TIMING_FIELDS + ("toplevel",)

STATEMENT_SQL = """
SELECT {columns}
  FROM {source}
 WHERE query !~* %s AND query <> '{insufficient_privilege}'
       AND query NOT LIKE 'DEALLOCATE %%'
       AND dbid IN (SELECT oid FROM pg_database WHERE datname = current_database())
"""


def marker_pattern(marker: str = QUERY_MARKER) -> str:
    """
    Anchored regex matching queries that start with the literal marker.

    Every regex metacharacter in the marker is escaped; the result is valid
    for both PostgreSQL's `~*` operator and Python's re module.
    """
    # Matched case-insensitively and without the trailing space on purpose
    return "^" + re.escape(marker.strip())


def is_collector_query(query: str, marker: str = QUERY_MARKER) -> bool:
    """True for the collector's own statements and internal housekeeping rows."""
    if query == INSUFFICIENT_PRIVILEGE:
        return True
    if query.startswith(HOUSEKEEPING_PREFIXES):
        return True
    return re.match(marker_pattern(marker), query, re.IGNORECASE) is not None


@dataclass(frozen=True)
class StatementFetchPlan:
    """How pg_stat_statements is read on this server."""
    field_set: StatementFieldSet
    naming: ColumnNaming
    source: StatementSource
    # 14+ keeps separate rows for top-level and nested execution
    tracks_toplevel: bool = False

    @classmethod
    def build(cls, version: PostgresVersion, helper_available: bool) -> "StatementFetchPlan":
        return cls(
            field_set=StatementFieldSet.for_version(version),
            naming=ColumnNaming.for_version(version),
            source=StatementSource.HELPER if helper_available else StatementSource.VIEW,
            tracks_toplevel=version.numeric >= PG_VERSION_14,
        )

    def column_expressions(self) -> Dict[str, str]:
        """Canonical column name -> SQL expression, in STATEMENT_COLUMNS order."""
        exprs = {name: name for name in STATEMENT_COLUMNS}
        exprs["total_time"] = self.naming.timing_column("total_time")
        exprs["blk_read_time"] = self.naming.blk_time_column("blk_read_time")
        exprs["blk_write_time"] = self.naming.blk_time_column("blk_write_time")

        if self.field_set is StatementFieldSet.NONE:
            exprs["queryid"] = "NULL"
        if self.field_set is not StatementFieldSet.QUERYID_AND_TIMING:
            for name in TIMING_FIELDS:
                exprs[name] = "NULL"
        else:
            for name in TIMING_FIELDS:
                exprs[name] = self.naming.timing_column(name)
        if not self.tracks_toplevel:
            exprs["toplevel"] = "NULL"
        return exprs

    def statement_sql(self) -> str:
        """Query text (without the marker prefix, QueryRunner adds it)."""
        columns = ", ".join(
            expr if expr == name else f"{expr} AS {name}"
            for name, expr in self.column_expressions().items()
        )
        return STATEMENT_SQL.format(
            columns=columns,
            source=self.source.relation,
            insufficient_privilege=INSUFFICIENT_PRIVILEGE,
        )

    def statement_params(self) -> Tuple[str]:
        return (marker_pattern(),)

    def describe(self) -> str:
        return f"{self.field_set.value}/{self.naming.value} from {self.source.relation}"
