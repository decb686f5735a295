"""
CatalogScanner - Reads catalog metadata that is carried alongside statistics.

Collects server version, current database, data directory, roles,
databases, backends, relations, settings and functions. None of this is
diffed; it travels with the snapshot for reporting.
"""

from datetime import datetime
from typing import Any, List, Optional

from ..snapshot.models import (
    PostgresBackend,
    PostgresDatabase,
    PostgresFunction,
    PostgresRelation,
    PostgresRole,
    PostgresSetting,
    PostgresVersion,
)
from ..telemetry.query import QueryRunner

VERSION_SQL = "SELECT current_setting('server_version'), current_setting('server_version_num')::int"

CURRENT_DATABASE_SQL = "SELECT oid FROM pg_database WHERE datname = current_database()"

DATA_DIRECTORY_SQL = "SELECT current_setting('data_directory')"

ROLES_SQL = """
SELECT oid, rolname, rolinherit, rolcanlogin, rolcreatedb, rolcreaterole,
       rolsuper, rolreplication, rolconnlimit, rolvaliduntil
  FROM pg_roles
"""

DATABASES_SQL = """
SELECT oid, datname, datdba, pg_encoding_to_char(encoding), datcollate, datctype,
       datistemplate, datallowconn, datconnlimit, age(datfrozenxid)
  FROM pg_database
"""

BACKENDS_SQL = """
SELECT pid, datid, usesysid, application_name, client_addr::text,
       backend_start, xact_start, query_start, state_change,
       {wait_event_type}, {wait_event}, state, {backend_type}
  FROM pg_stat_activity
 WHERE pid <> pg_backend_pid()
"""

RELATIONS_SQL = """
SELECT c.oid, n.nspname, c.relname, c.relkind, c.relpersistence, c.reltuples
  FROM pg_class c
  JOIN pg_namespace n ON (c.relnamespace = n.oid)
 WHERE c.relkind IN ('r', 'm', 'p')
       AND n.nspname NOT IN ('pg_catalog', 'information_schema')
       AND n.nspname !~ '^pg_toast'
"""

SETTINGS_SQL = """
SELECT name, setting, unit, boot_val, reset_val, source, sourcefile, sourceline
  FROM pg_settings
"""

FUNCTIONS_SQL = """
SELECT p.oid, n.nspname, p.proname, l.lanname,
       pg_get_function_arguments(p.oid), pg_get_function_result(p.oid),
       {kind}
  FROM pg_proc p
  JOIN pg_namespace n ON (p.pronamespace = n.oid)
  JOIN pg_language l ON (p.prolang = l.oid)
 WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
"""

PG_VERSION_96 = 90600
PG_VERSION_10 = 100000
PG_VERSION_11 = 110000


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class CatalogScanner:
    """
    Scans catalog metadata of the connected database.
    """

    def __init__(self, runner: QueryRunner):
        self.runner = runner

    def get_version(self) -> PostgresVersion:
        """Get PostgreSQL version (full string and server_version_num)."""
        full, numeric = self.runner.fetchone(VERSION_SQL)
        return PostgresVersion.parse(full, numeric)

    def get_current_database_oid(self) -> int:
        return self.runner.fetchone(CURRENT_DATABASE_SQL)[0]

    def get_data_directory(self) -> str:
        """Requires superuser or pg_monitor (pg_read_all_settings)."""
        row = self.runner.fetchone(DATA_DIRECTORY_SQL)
        return row[0] if row else ""

    def get_roles(self) -> List[PostgresRole]:
        return [
            PostgresRole(
                oid=row[0],
                name=row[1],
                inherit=row[2],
                login=row[3],
                create_db=row[4],
                create_role=row[5],
                super_user=row[6],
                replication=row[7],
                connection_limit=row[8],
                password_valid_until=_iso(row[9]),
            )
            for row in self.runner.fetchall(ROLES_SQL)
        ]

    def get_databases(self) -> List[PostgresDatabase]:
        return [
            PostgresDatabase(
                oid=row[0],
                name=row[1],
                owner_role_oid=row[2],
                encoding=row[3],
                collate=row[4],
                ctype=row[5],
                is_template=row[6],
                allow_connections=row[7],
                connection_limit=row[8],
                frozen_xid_age=row[9],
            )
            for row in self.runner.fetchall(DATABASES_SQL)
        ]

    def get_backends(self, version: PostgresVersion) -> List[PostgresBackend]:
        """Get pg_stat_activity rows (other than our own)."""
        # wait_event columns appeared in 9.6, backend_type in 10
        sql = BACKENDS_SQL.format(
            wait_event_type="wait_event_type" if version.numeric >= PG_VERSION_96 else "NULL",
            wait_event="wait_event" if version.numeric >= PG_VERSION_96 else "NULL",
            backend_type="backend_type" if version.numeric >= PG_VERSION_10 else "NULL",
        )
        return [
            PostgresBackend(
                pid=row[0],
                database_oid=row[1],
                role_oid=row[2],
                application_name=row[3] or "",
                client_addr=row[4],
                backend_start=_iso(row[5]),
                xact_start=_iso(row[6]),
                query_start=_iso(row[7]),
                state_change=_iso(row[8]),
                wait_event_type=row[9],
                wait_event=row[10],
                state=row[11],
                backend_type=row[12],
            )
            for row in self.runner.fetchall(sql)
        ]

    def get_relations(self, database_oid: int) -> List[PostgresRelation]:
        return [
            PostgresRelation(
                oid=row[0],
                database_oid=database_oid,
                schema_name=row[1],
                relation_name=row[2],
                relation_type=row[3],
                persistence_type=row[4],
                estimated_rows=row[5],
            )
            for row in self.runner.fetchall(RELATIONS_SQL)
        ]

    def get_settings(self) -> List[PostgresSetting]:
        return [
            PostgresSetting(
                name=row[0],
                current_value=row[1],
                unit=row[2],
                boot_value=row[3],
                reset_value=row[4],
                source=row[5],
                source_file=row[6],
                source_line=row[7],
            )
            for row in self.runner.fetchall(SETTINGS_SQL)
        ]

    def get_functions(self, database_oid: int, version: PostgresVersion) -> List[PostgresFunction]:
        # prokind replaced proisagg/proiswindow in 11
        kind = "p.prokind" if version.numeric >= PG_VERSION_11 else (
            "CASE WHEN p.proisagg THEN 'a' WHEN p.proiswindow THEN 'w' ELSE 'f' END"
        )
        return [
            PostgresFunction(
                oid=row[0],
                database_oid=database_oid,
                schema_name=row[1],
                function_name=row[2],
                language=row[3],
                arguments=row[4],
                result=row[5] or "",
                kind=row[6],
            )
            for row in self.runner.fetchall(FUNCTIONS_SQL.format(kind=kind))
        ]
