"""
Mock components for testing pg_collector.

These mocks answer collector queries with realistic PostgreSQL catalog and
statistics rows (golden_data.py) so capture, cycle and pool tests run
without a database server.
"""

from .golden_data import (
    DATABASE_OID,
    USER_OID,
    PG_VERSIONS,
    T0,
    SAMPLE_STATEMENTS,
    statement_row,
    relation_stats_row,
    index_stats_row,
    function_stats_row,
    server_responses,
    make_snapshot,
    later,
)
from .mock_connection import MockConnection, MockCursor, Responses

__all__ = [
    # Connection mocks
    'MockConnection',
    'MockCursor',
    'Responses',
    # Golden data
    'DATABASE_OID',
    'USER_OID',
    'PG_VERSIONS',
    'T0',
    'SAMPLE_STATEMENTS',
    'statement_row',
    'relation_stats_row',
    'index_stats_row',
    'function_stats_row',
    'server_responses',
    'make_snapshot',
    'later',
]
