"""
Tests for statement acquisition, including the one-shot extension repair.
"""

import hashlib

import psycopg2.errors
import pytest

from pg_collector.snapshot.counters import DeltaKind, StatementKey
from pg_collector.snapshot.diff import diff_counter_set
from pg_collector.snapshot.models import PostgresVersion
from pg_collector.telemetry.plan import StatementFetchPlan
from pg_collector.telemetry.query import QUERY_MARKER, QueryRunner
from pg_collector.telemetry.statements import CREATE_EXTENSION_SQL, fingerprint, get_statements

from .mocks import DATABASE_OID, USER_OID, MockConnection, Responses, statement_row

PG15 = PostgresVersion.parse("15.4", 150004)


def view_plan():
    return StatementFetchPlan.build(PG15, helper_available=False)


def helper_plan():
    return StatementFetchPlan.build(PG15, helper_available=True)


def undefined_table():
    return psycopg2.errors.UndefinedTable('relation "pg_stat_statements" does not exist')


class TestGetStatements:

    def test_rows_become_keyed_stats_and_texts(self):
        conn = MockConnection({"FROM pg_stat_statements": [
            statement_row("SELECT $1", 5, 1.5, queryid=77, timing=(0.1, 0.5, 0.3, 0.1)),
        ]})

        stats, texts = get_statements(QueryRunner(conn), view_plan())

        key = StatementKey(DATABASE_OID, USER_OID, "77")
        assert stats[key].calls == 5
        assert stats[key].total_time == 1.5
        assert stats[key].mean_time == 0.3
        assert texts[key].query == "SELECT $1"

    def test_query_text_not_in_stats(self):
        conn = MockConnection({"FROM pg_stat_statements": [statement_row("SELECT $1", 5, 1.5, queryid=77)]})

        stats, _ = get_statements(QueryRunner(conn), view_plan())

        assert "query" not in next(iter(stats.values())).to_dict()

    def test_query_is_prefixed_and_marker_bound(self):
        conn = MockConnection({"FROM pg_stat_statements": []})

        get_statements(QueryRunner(conn), view_plan())

        sql, params = conn.executed[0]
        assert sql.startswith(QUERY_MARKER)
        assert params == view_plan().statement_params()

    def test_own_queries_are_excluded_and_counted(self):
        conn = MockConnection({"FROM pg_stat_statements": [
            statement_row(QUERY_MARKER + "SELECT 1", 10, 1.0, queryid=1),
            statement_row("<insufficient privilege>", 3, 1.0, queryid=2),
            statement_row("DEALLOCATE pdo_stmt_01", 1, 0.0, queryid=3),
            statement_row("SELECT * FROM accounts", 4, 2.0, queryid=4),
        ]})
        runner = QueryRunner(conn)

        stats, texts = get_statements(runner, view_plan())

        assert [k.fingerprint for k in stats] == ["4"]
        assert list(texts.values())[0].query == "SELECT * FROM accounts"
        assert runner.health.snapshot().statements_excluded == 3

    def test_duplicate_keys_are_combined(self):
        conn = MockConnection({"FROM pg_stat_statements": [
            statement_row("SELECT $1", 5, 1.5, queryid=77, rows=5, timing=(0.1, 0.5, 0.3, 0.1)),
            statement_row("SELECT $1", 2, 0.5, queryid=77, rows=2, timing=(0.2, 0.3, 0.25, 0.05)),
        ]})

        stats, texts = get_statements(QueryRunner(conn), view_plan())

        key = StatementKey(DATABASE_OID, USER_OID, "77")
        assert len(stats) == 1
        assert stats[key].calls == 7
        assert stats[key].rows == 7
        assert stats[key].total_time == 2.0
        assert stats[key].mean_time is None
        assert texts[key].query == "SELECT $1"

    def test_top_level_and_nested_rows_stay_separate(self):
        conn = MockConnection({"FROM pg_stat_statements": [
            statement_row("SELECT $1", 100, 10.0, queryid=7, toplevel=True),
            statement_row("SELECT $1", 50, 5.0, queryid=7, toplevel=False),
        ]})

        stats, texts = get_statements(QueryRunner(conn), view_plan())

        assert stats[StatementKey(DATABASE_OID, USER_OID, "7", toplevel=True)].calls == 100
        assert stats[StatementKey(DATABASE_OID, USER_OID, "7", toplevel=False)].calls == 50
        assert len(texts) == 2

    def test_evicted_nested_row_is_not_a_reset(self):
        previous = MockConnection({"FROM pg_stat_statements": [
            statement_row("SELECT $1", 100, 10.0, queryid=7, toplevel=True),
            statement_row("SELECT $1", 50, 5.0, queryid=7, toplevel=False),
        ]})
        current = MockConnection({"FROM pg_stat_statements": [
            statement_row("SELECT $1", 105, 10.5, queryid=7, toplevel=True),
        ]})

        prev_stats, _ = get_statements(QueryRunner(previous), view_plan())
        cur_stats, _ = get_statements(QueryRunner(current), view_plan())
        result = diff_counter_set(prev_stats, cur_stats)

        delta = result[StatementKey(DATABASE_OID, USER_OID, "7", toplevel=True)]
        assert delta.kind is DeltaKind.DIFF
        assert delta.values["calls"] == 5

    def test_missing_queryid_uses_text_hash(self):
        conn = MockConnection({"FROM pg_stat_statements": [statement_row("SELECT 1", 1, 0.1)]})

        stats, _ = get_statements(QueryRunner(conn), StatementFetchPlan.build(
            PostgresVersion.parse("9.3.25", 90325), helper_available=False))

        key = next(iter(stats))
        assert key.fingerprint == hashlib.md5(b"SELECT 1").hexdigest()


class TestExtensionRepair:

    def test_missing_view_is_repaired_once(self):
        conn = MockConnection({
            "FROM pg_stat_statements": Responses(undefined_table(), [statement_row("SELECT 1", 1, 0.1, queryid=9)]),
        })

        stats, _ = get_statements(QueryRunner(conn), view_plan())

        assert len(stats) == 1
        assert len(conn.queries_matching(CREATE_EXTENSION_SQL)) == 1
        assert len(conn.queries_matching("FROM pg_stat_statements")) == 2

    def test_second_failure_propagates(self):
        conn = MockConnection({"FROM pg_stat_statements": undefined_table()})

        with pytest.raises(psycopg2.errors.UndefinedTable):
            get_statements(QueryRunner(conn), view_plan())

        assert len(conn.queries_matching(CREATE_EXTENSION_SQL)) == 1

    def test_failed_repair_propagates(self):
        conn = MockConnection({
            "FROM pg_stat_statements": undefined_table(),
            "CREATE EXTENSION": psycopg2.errors.InsufficientPrivilege("permission denied"),
        })

        with pytest.raises(psycopg2.errors.InsufficientPrivilege):
            get_statements(QueryRunner(conn), view_plan())

        assert len(conn.queries_matching("FROM pg_stat_statements")) == 1

    def test_helper_source_is_never_repaired(self):
        conn = MockConnection({"get_stat_statements()": undefined_table()})

        with pytest.raises(psycopg2.errors.UndefinedTable):
            get_statements(QueryRunner(conn), helper_plan())

        assert conn.queries_matching(CREATE_EXTENSION_SQL) == []

    def test_other_errors_are_not_repaired(self):
        conn = MockConnection({"FROM pg_stat_statements": psycopg2.errors.QueryCanceled("timeout")})

        with pytest.raises(psycopg2.errors.QueryCanceled):
            get_statements(QueryRunner(conn), view_plan())

        assert conn.queries_matching(CREATE_EXTENSION_SQL) == []


class TestFingerprint:

    def test_queryid_wins(self):
        assert fingerprint(-123456789, "SELECT 1") == "-123456789"

    def test_hash_is_stable(self):
        assert fingerprint(None, "SELECT 1") == fingerprint(None, "SELECT 1")
        assert fingerprint(None, "SELECT 1") != fingerprint(None, "SELECT 2")
