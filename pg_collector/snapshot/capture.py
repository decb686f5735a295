"""
Snapshot capture - runs one acquisition pass against a monitored server.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

import psycopg2

from ..config import CollectionOpts
from ..discovery.catalog import CatalogScanner
from ..protocol.errors import AcquisitionError, CycleCancelled, Phase
from ..telemetry.plan import StatementFetchPlan
from ..telemetry.probes import probe_capabilities
from ..telemetry.query import QueryRunner
from ..telemetry.relations import get_function_stats, get_index_stats, get_relation_stats
from ..telemetry.statements import get_statements
from .models import Snapshot, SystemState, TransientState

logger = logging.getLogger(__name__)


class SnapshotCapture:
    """Builds a Snapshot (plus its TransientState) from a live server."""

    def __init__(
        self,
        runner: QueryRunner,
        opts: CollectionOpts,
        system_sampler: Optional[Callable[[], SystemState]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize snapshot capture.

        Args:
            runner: QueryRunner bound to the target's connection
            opts: Collection options (which categories to collect)
            system_sampler: Optional callable returning host-level counters
            stop_event: Set when the process is shutting down
        """
        self.runner = runner
        self.opts = opts
        self.system_sampler = system_sampler
        self.stop_event = stop_event
        self.catalog = CatalogScanner(runner)

    def _check_cancelled(self, phase: Phase = Phase.ACQUIRE):
        if self.stop_event is not None and self.stop_event.is_set():
            raise CycleCancelled(phase=phase)

    def _step(self, phase: Phase, fn, *args):
        """Run one acquisition step, turning driver errors into AcquisitionError."""
        self._check_cancelled(phase)
        try:
            return fn(*args)
        except psycopg2.Error as e:
            raise AcquisitionError.from_pg_error(e, phase=phase, failed_sql=self.runner.last_sql) from e

    def capture(self) -> Tuple[Snapshot, TransientState]:
        """
        Capture current statistics and catalog state.

        Returns:
            (Snapshot, TransientState)

        Raises:
            AcquisitionError: on any non-recoverable database error
            CycleCancelled: if stop_event was set mid-way
        """
        catalog = self.catalog

        version = self._step(Phase.ACQUIRE, catalog.get_version)
        database_oid = self._step(Phase.ACQUIRE, catalog.get_current_database_oid)

        self._check_cancelled(Phase.PROBE)
        capabilities = probe_capabilities(self.runner)
        plan = StatementFetchPlan.build(version, capabilities.statement_stats_helper)
        logger.debug("Statement fetch plan: %s", plan.describe())

        statement_stats, statements = self._step(Phase.ACQUIRE, get_statements, self.runner, plan)

        relation_stats, index_stats, relations = {}, {}, []
        if self.opts.collect_relations:
            relation_stats = self._step(Phase.ACQUIRE, get_relation_stats, self.runner, database_oid, version)
            index_stats = self._step(Phase.ACQUIRE, get_index_stats, self.runner, database_oid)
            relations = self._step(Phase.ACQUIRE, catalog.get_relations, database_oid)

        function_stats, functions = {}, []
        if self.opts.collect_functions:
            function_stats = self._step(Phase.ACQUIRE, get_function_stats, self.runner, database_oid)
            functions = self._step(Phase.ACQUIRE, catalog.get_functions, database_oid, version)

        settings = []
        if self.opts.collect_settings:
            settings = self._step(Phase.ACQUIRE, catalog.get_settings)

        data_directory = ""
        if capabilities.privileged:
            data_directory = self._step(Phase.ACQUIRE, catalog.get_data_directory)

        roles = self._step(Phase.ACQUIRE, catalog.get_roles)
        databases = self._step(Phase.ACQUIRE, catalog.get_databases)
        backends = self._step(Phase.ACQUIRE, catalog.get_backends, version)

        self._check_cancelled()
        system = self.system_sampler() if self.system_sampler else SystemState()

        snapshot = Snapshot(
            collected_at=datetime.now(timezone.utc),
            database_oids_with_local_catalog=[database_oid],
            statement_stats=statement_stats,
            relation_stats=relation_stats,
            index_stats=index_stats,
            function_stats=function_stats,
            roles=roles,
            databases=databases,
            backends=backends,
            relations=relations,
            settings=settings,
            functions=functions,
            version=version,
            data_directory=data_directory,
            system=system,
            collector_stats=self.runner.health.snapshot(),
        )
        return snapshot, TransientState(statements=statements)
