"""Shared fixtures for pg_collector tests."""

import pytest

from pg_collector.config import CollectionOpts, ServerConfig
from pg_collector.runner.cycle import Server
from pg_collector.snapshot.store import FileStateStore
from pg_collector.telemetry.query import QueryRunner

from .mocks import MockConnection, server_responses


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "state.json"


@pytest.fixture
def opts(state_path):
    return CollectionOpts(state_filename=str(state_path))


@pytest.fixture
def store(state_path):
    return FileStateStore(state_path)


@pytest.fixture
def connection():
    return MockConnection(server_responses())


@pytest.fixture
def runner(connection):
    return QueryRunner(connection)


@pytest.fixture
def server(connection):
    return Server(
        config=ServerConfig(name="primary", api_key="key-primary", host="db1"),
        connection=connection,
    )
