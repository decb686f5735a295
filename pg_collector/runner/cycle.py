"""
CollectionCycle - one collect/diff/persist pass for one monitored server.

Sequence:
CONNECT → PROBE/ACQUIRE → LOAD previous → DIFF → REPORT → SAVE

A failed or cancelled acquisition returns before LOAD, so the stored
baseline is never replaced by a partial snapshot.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import psycopg2

from ..config import CollectionOpts, ServerConfig
from ..protocol.errors import AcquisitionError, CollectorError, CycleCancelled, Phase
from ..protocol.result import CycleResult
from ..snapshot.capture import SnapshotCapture
from ..snapshot.diff import diff_snapshots
from ..snapshot.models import Grant, SystemState
from ..snapshot.store import StateStore
from ..telemetry.connection import connect
from ..telemetry.query import CollectorHealth, QueryRunner

logger = logging.getLogger(__name__)


@dataclass
class Server:
    """Runtime context of one monitored server."""
    config: ServerConfig
    connection: Any = None
    grant: Grant = field(default_factory=Grant)
    health: CollectorHealth = field(default_factory=CollectorHealth)


class CollectionCycle:
    """
    Runs a single cycle. The state store is injected and every access is
    keyed by the server's API key.
    """

    def __init__(
        self,
        server: Server,
        store: StateStore,
        opts: CollectionOpts,
        reporter: Optional[Callable[[CycleResult], None]] = None,
        stop_event: Optional[threading.Event] = None,
        system_sampler: Optional[Callable[[], SystemState]] = None,
        connection_factory: Optional[Callable] = None,
    ):
        self.server = server
        self.store = store
        self.opts = opts
        self.reporter = reporter
        self.stop_event = stop_event
        self.system_sampler = system_sampler
        self.connection_factory = connection_factory or connect
        self.phase = Phase.CONNECT

    @property
    def name(self) -> str:
        return self.server.config.name

    def _ensure_connection(self):
        conn = self.server.connection
        if conn is not None and not getattr(conn, "closed", 0):
            return
        try:
            self.server.connection = self.connection_factory(self.server.config, self.opts)
        except psycopg2.Error as e:
            raise AcquisitionError.from_pg_error(e, phase=Phase.CONNECT) from e

    def run(self) -> CycleResult:
        """Run the cycle and return its result (failures included)."""
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        self.phase = Phase.CONNECT
        try:
            self._ensure_connection()
            self.phase = Phase.ACQUIRE
            capture = SnapshotCapture(
                QueryRunner(self.server.connection, self.server.health),
                self.opts,
                system_sampler=self.system_sampler,
                stop_event=self.stop_event,
            )
            snapshot, transient = capture.capture()
        except CycleCancelled as e:
            logger.info("Collection for %s cancelled, previous state kept", self.name)
            return CycleResult.failure(self.name, e.details, elapsed_ms())
        except CollectorError as e:
            logger.error("Collection for %s failed during %s: %s", self.name, e.phase.value, e.message)
            return CycleResult.failure(self.name, e.details, elapsed_ms())

        api_key = self.server.config.api_key
        self.phase = Phase.LOAD
        previous = self.store.load(api_key)
        if previous is None:
            logger.info("No usable previous state for %s, this cycle only establishes a baseline", self.name)

        self.phase = Phase.DIFF
        diff = diff_snapshots(previous, snapshot, diff_statements=self.opts.diff_statements)

        if not self.server.grant.valid:
            logger.debug("No valid grant for %s, results will not be submitted", self.name)

        result = CycleResult(
            server_name=self.name,
            success=True,
            diff=diff,
            snapshot=snapshot,
            transient=transient,
            submittable=self.opts.submit_collected_data and self.server.grant.valid,
        )

        self.phase = Phase.REPORT
        if self.reporter:
            self.reporter(result)

        if self.opts.write_state_update:
            self.phase = Phase.SAVE
            self.store.save(api_key, snapshot)
            result.persisted = True

        result.duration_ms = elapsed_ms()
        return result
