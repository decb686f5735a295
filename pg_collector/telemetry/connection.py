"""
Connection factory for monitored servers.
"""

import psycopg2

from ..config import CollectionOpts, ServerConfig


def connect(server_config: ServerConfig, opts: CollectionOpts):
    """
    Open an autocommit psycopg2 connection for collection.

    Autocommit keeps a failed probe from aborting the statements that follow
    it; the statement timeout bounds every acquisition query.
    """
    conn = psycopg2.connect(
        application_name=opts.application_name,
        options=f"-c statement_timeout={int(opts.statement_timeout_ms)}",
        connect_timeout=10,
        **server_config.connection_kwargs(),
    )
    conn.autocommit = True
    return conn
