"""
Tests for baseline persistence.
"""

import json

import pytest

from pg_collector.config import CollectionOpts
from pg_collector.snapshot.counters import PostgresStatementStats, StatementKey
from pg_collector.snapshot.store import (
    STATE_ON_DISK_FORMAT_VERSION,
    FileStateStore,
    NullStateStore,
    build_state_store,
)

from .mocks import T0, later, make_snapshot

Q1 = StatementKey(16384, 10, "1001")


def snapshot_with_calls(calls, collected_at=T0):
    return make_snapshot(collected_at, statements={Q1: PostgresStatementStats(calls=calls)})


class TestFileStateStore:

    def test_missing_file_loads_nothing(self, store):
        assert store.load("key-a") is None

    def test_save_then_load(self, store):
        store.save("key-a", snapshot_with_calls(42))

        loaded = store.load("key-a")

        assert loaded.collected_at == T0
        assert loaded.statement_stats[Q1].calls == 42

    def test_container_layout(self, store, state_path):
        store.save("key-a", snapshot_with_calls(1))

        data = json.loads(state_path.read_text())

        assert data["format_version"] == STATE_ON_DISK_FORMAT_VERSION
        assert list(data["prev_state_by_api_key"]) == ["key-a"]

    def test_keys_are_isolated(self, store):
        store.save("key-a", snapshot_with_calls(1))
        store.save("key-b", snapshot_with_calls(2))
        store.save("key-a", snapshot_with_calls(3, later()))

        assert store.load("key-a").statement_stats[Q1].calls == 3
        assert store.load("key-b").statement_stats[Q1].calls == 2

    def test_unknown_key_loads_nothing(self, store):
        store.save("key-a", snapshot_with_calls(1))

        assert store.load("key-b") is None

    def test_other_format_version_is_discarded(self, state_path):
        FileStateStore(state_path, format_version=0).save("key-a", snapshot_with_calls(1))

        assert FileStateStore(state_path).load("key-a") is None

    def test_save_over_incompatible_container_drops_old_entries(self, state_path):
        FileStateStore(state_path, format_version=0).save("key-b", snapshot_with_calls(1))
        store = FileStateStore(state_path)

        store.save("key-a", snapshot_with_calls(2))

        data = json.loads(state_path.read_text())
        assert list(data["prev_state_by_api_key"]) == ["key-a"]
        assert data["format_version"] == STATE_ON_DISK_FORMAT_VERSION

    def test_corrupt_file_is_a_cold_start(self, store, state_path):
        state_path.write_text("{not json")

        assert store.load("key-a") is None

    def test_undecodable_entry_only_affects_its_key(self, store, state_path):
        store.save("key-b", snapshot_with_calls(5))
        data = json.loads(state_path.read_text())
        data["prev_state_by_api_key"]["key-a"] = {"statement_stats": "garbage"}
        state_path.write_text(json.dumps(data))

        assert store.load("key-a") is None
        assert store.load("key-b").statement_stats[Q1].calls == 5

    def test_save_leaves_no_temporary_files(self, store, state_path):
        store.save("key-a", snapshot_with_calls(1))
        store.save("key-a", snapshot_with_calls(2))

        assert [p.name for p in state_path.parent.iterdir()] == [state_path.name]

    def test_failed_write_keeps_previous_file(self, store, state_path, monkeypatch):
        store.save("key-a", snapshot_with_calls(1))
        before = state_path.read_text()

        def broken_dump(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("pg_collector.snapshot.store.json.dump", broken_dump)

        with pytest.raises(OSError):
            store.save("key-a", snapshot_with_calls(2))

        assert state_path.read_text() == before
        assert [p.name for p in state_path.parent.iterdir()] == [state_path.name]

    def test_creates_parent_directory(self, tmp_path):
        store = FileStateStore(tmp_path / "nested" / "dir" / "state.json")

        store.save("key-a", snapshot_with_calls(1))

        assert store.load("key-a") is not None


class TestNullStateStore:

    def test_never_remembers(self):
        store = NullStateStore()
        store.save("key-a", snapshot_with_calls(1))

        assert store.load("key-a") is None


class TestBuildStateStore:

    def test_test_run_uses_null_store(self, state_path):
        store = build_state_store(CollectionOpts(test_run=True, state_filename=str(state_path)))

        assert isinstance(store, NullStateStore)

    def test_regular_run_uses_file_store(self, state_path):
        store = build_state_store(CollectionOpts(state_filename=str(state_path)))

        assert isinstance(store, FileStateStore)
        assert store.path == state_path
