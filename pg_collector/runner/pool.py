"""
Runs collection cycles for several servers in parallel, one worker per server.

Servers share the state store (partitioned by API key) but nothing else.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from ..config import CollectionOpts
from ..protocol.errors import ErrorDetails, ErrorType
from ..protocol.result import CycleResult
from ..snapshot.models import SystemState
from ..snapshot.store import StateStore
from .cycle import CollectionCycle, Server

logger = logging.getLogger(__name__)


def run_cycles(
    servers: List[Server],
    store: StateStore,
    opts: CollectionOpts,
    reporter: Optional[Callable[[CycleResult], None]] = None,
    stop_event: Optional[threading.Event] = None,
    system_sampler: Optional[Callable[[], SystemState]] = None,
    **cycle_kwargs,
) -> List[CycleResult]:
    """
    Run one cycle per server concurrently.

    Returns:
        One CycleResult per server, in the order the servers were given
    """
    if not servers:
        return []

    cycles = [
        CollectionCycle(
            server,
            store,
            opts,
            reporter=reporter,
            stop_event=stop_event,
            system_sampler=system_sampler,
            **cycle_kwargs,
        )
        for server in servers
    ]

    with ThreadPoolExecutor(max_workers=len(cycles), thread_name_prefix="collector") as pool:
        futures = [pool.submit(cycle.run) for cycle in cycles]

    results = []
    for cycle, future in zip(cycles, futures):
        try:
            results.append(future.result())
        except Exception as e:
            logger.exception("Unexpected error while collecting %s", cycle.name)
            results.append(CycleResult.failure(
                cycle.name,
                ErrorDetails(
                    message=str(e) or type(e).__name__,
                    error_type=ErrorType.CYCLE_FATAL.value,
                    phase=cycle.phase.value,
                ),
            ))
    return results


def run_loop(
    servers: List[Server],
    store: StateStore,
    opts: CollectionOpts,
    interval_seconds: float,
    stop_event: threading.Event,
    on_results: Optional[Callable[[List[CycleResult]], None]] = None,
    **kwargs,
) -> int:
    """
    Collect every `interval_seconds` until stop_event is set.

    Returns:
        Number of rounds completed
    """
    rounds = 0
    while not stop_event.is_set():
        results = run_cycles(servers, store, opts, stop_event=stop_event, **kwargs)
        rounds += 1
        if on_results:
            on_results(results)
        stop_event.wait(interval_seconds)
    return rounds
