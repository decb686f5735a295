"""
Tests for CollectionCycle: ordering of acquisition, diff and persistence.
"""

import threading

import psycopg2
import psycopg2.errors
import pytest

from pg_collector.config import CollectionOpts, ServerConfig
from pg_collector.protocol.errors import ErrorType, Phase
from pg_collector.runner.cycle import CollectionCycle, Server
from pg_collector.snapshot.counters import DeltaKind, StatementKey
from pg_collector.snapshot.models import Grant
from pg_collector.snapshot.store import NullStateStore

from .mocks import DATABASE_OID, USER_OID, MockConnection, server_responses, statement_row

Q1 = StatementKey(DATABASE_OID, USER_OID, "1001")


def responses_with_calls(calls):
    return server_responses(statements=[statement_row("SELECT $1", calls, calls * 0.5, queryid=1001)])


class TestCollectionCycle:

    def test_cold_start_establishes_baseline(self, server, store, opts):
        result = CollectionCycle(server, store, opts).run()

        assert result.success
        assert result.cold_start
        assert result.persisted
        assert result.diff.statement_stats[Q1].kind is DeltaKind.BASELINE
        assert store.load("key-primary") is not None

    def test_second_cycle_reports_deltas(self, server, store, opts):
        server.connection = MockConnection(responses_with_calls(100))
        CollectionCycle(server, store, opts).run()

        server.connection = MockConnection(responses_with_calls(130))
        result = CollectionCycle(server, store, opts).run()

        assert not result.cold_start
        assert result.diff.statement_stats[Q1].values["calls"] == 30
        assert result.diff.statement_stats[Q1].values["total_time"] == 15.0

    def test_stats_reset_between_cycles(self, server, store, opts):
        server.connection = MockConnection(responses_with_calls(500))
        CollectionCycle(server, store, opts).run()

        server.connection = MockConnection(responses_with_calls(20))
        result = CollectionCycle(server, store, opts).run()

        delta = result.diff.statement_stats[Q1]
        assert delta.reset
        assert delta.values["calls"] == 20

    def test_failed_acquisition_keeps_previous_state(self, server, store, opts):
        server.connection = MockConnection(responses_with_calls(100))
        CollectionCycle(server, store, opts).run()
        before = store.load("key-primary")

        server.connection = MockConnection(server_responses(
            statement_response=psycopg2.errors.QueryCanceled("canceling statement due to statement timeout"),
        ))
        result = CollectionCycle(server, store, opts).run()

        assert not result.success
        assert not result.persisted
        assert result.diff is None
        assert result.error.error_type == ErrorType.CYCLE_FATAL.value
        assert result.error.phase == Phase.ACQUIRE.value
        assert store.load("key-primary") == before

    def test_cancelled_cycle_does_not_save(self, server, store, opts):
        stop = threading.Event()
        stop.set()

        result = CollectionCycle(server, store, opts, stop_event=stop).run()

        assert not result.success
        assert result.error.error_type == ErrorType.CANCELLED.value
        assert store.load("key-primary") is None

    def test_no_write_state_update(self, server, store):
        opts = CollectionOpts(write_state_update=False)

        result = CollectionCycle(server, store, opts).run()

        assert result.success
        assert not result.persisted
        assert store.load("key-primary") is None

    def test_null_store_is_always_cold(self, server):
        store = NullStateStore()
        opts = CollectionOpts(test_run=True)

        CollectionCycle(server, store, opts).run()
        result = CollectionCycle(server, store, opts).run()

        assert result.cold_start

    def test_diff_statements_disabled(self, server, store):
        result = CollectionCycle(server, store, CollectionOpts(diff_statements=False)).run()

        assert result.diff.statement_stats == {}
        assert result.transient.statements

    def test_submittable_needs_valid_grant(self, server, store, opts):
        assert not CollectionCycle(server, store, opts).run().submittable

        server.grant = Grant(valid=True)
        assert CollectionCycle(server, store, opts).run().submittable

        assert not CollectionCycle(server, store, CollectionOpts(submit_collected_data=False)).run().submittable

    def test_invalid_grant_still_persists(self, server, store, opts):
        result = CollectionCycle(server, store, opts).run()

        assert not result.submittable
        assert result.persisted

    def test_reporter_sees_result_before_save(self, server, store, opts):
        seen = []

        def reporter(result):
            seen.append((result.success, store.load("key-primary")))

        CollectionCycle(server, store, opts, reporter=reporter).run()

        assert seen == [(True, None)]

    def test_reporter_failure_prevents_save(self, server, store, opts):
        def reporter(result):
            raise RuntimeError("upload failed")

        with pytest.raises(RuntimeError):
            CollectionCycle(server, store, opts, reporter=reporter).run()

        assert store.load("key-primary") is None

    def test_connects_when_no_connection(self, store, opts):
        opened = []

        def factory(config, collection_opts):
            opened.append(config.name)
            return MockConnection(server_responses())

        server = Server(config=ServerConfig(name="replica", api_key="key-replica"))
        result = CollectionCycle(server, store, opts, connection_factory=factory).run()

        assert result.success
        assert opened == ["replica"]

    def test_reconnects_closed_connection(self, server, store, opts):
        server.connection.close()
        replacement = MockConnection(server_responses())

        CollectionCycle(server, store, opts, connection_factory=lambda c, o: replacement).run()

        assert server.connection is replacement

    def test_reuses_open_connection(self, server, store, opts):
        original = server.connection

        def factory(config, collection_opts):
            raise AssertionError("should not reconnect")

        CollectionCycle(server, store, opts, connection_factory=factory).run()

        assert server.connection is original

    def test_connection_failure(self, store, opts):
        def factory(config, collection_opts):
            raise psycopg2.OperationalError("could not connect to server: Connection refused")

        server = Server(config=ServerConfig(name="down", api_key="key-down"))
        result = CollectionCycle(server, store, opts, connection_factory=factory).run()

        assert not result.success
        assert result.error.phase == Phase.CONNECT.value
        assert "Connection refused" in result.error.message

    def test_state_partitioned_by_api_key(self, store, opts):
        a = Server(config=ServerConfig(name="a", api_key="key-a"),
                   connection=MockConnection(responses_with_calls(10)))
        b = Server(config=ServerConfig(name="b", api_key="key-b"),
                   connection=MockConnection(responses_with_calls(1000)))

        CollectionCycle(a, store, opts).run()
        CollectionCycle(b, store, opts).run()

        a.connection = MockConnection(responses_with_calls(15))
        result = CollectionCycle(a, store, opts).run()

        assert result.diff.statement_stats[Q1].values["calls"] == 5
        assert store.load("key-b").statement_stats[Q1].calls == 1000
