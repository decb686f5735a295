"""
Snapshot diffing - turns two cumulative snapshots into per-interval deltas.

Rules, applied identically to every category:
- an entity seen for the first time only establishes a baseline (zero deltas)
- counters present on both sides are subtracted
- if any of those counters went backwards the entity is treated as reset
  and its current values are reported as the delta
- fields missing on either side are left out, never coerced to zero
- entities that disappeared produce nothing

Nothing here does I/O or divides by elapsed time.
"""

from typing import Dict, Hashable, Mapping, Optional, TypeVar

from .counters import CounterDelta, CounterRecord, DeltaKind, Number
from .models import DiffResult, Snapshot

K = TypeVar("K", bound=Hashable)


def _zero(value: Number) -> Number:
    return 0.0 if isinstance(value, float) else 0


def diff_record(previous: Optional[CounterRecord], current: CounterRecord) -> CounterDelta:
    """Diff a single entity."""
    counters = current.counters()

    if previous is None:
        return CounterDelta(
            kind=DeltaKind.BASELINE,
            values={name: _zero(value) for name, value in counters.items()},
        )

    prev_counters = previous.counters()
    shared = [name for name in counters if name in prev_counters]

    prev_gauges = previous.gauges()
    gauges = {name: value for name, value in current.gauges().items() if name in prev_gauges}

    if any(counters[name] < prev_counters[name] for name in shared):
        return CounterDelta(
            kind=DeltaKind.RESET,
            values={name: counters[name] for name in shared},
            gauges=gauges,
        )

    return CounterDelta(
        kind=DeltaKind.DIFF,
        values={name: counters[name] - prev_counters[name] for name in shared},
        gauges=gauges,
    )


def diff_counter_set(
    previous: Optional[Mapping[K, CounterRecord]],
    current: Mapping[K, CounterRecord],
) -> Dict[K, CounterDelta]:
    """
    Diff one category.

    A missing previous map means every entity is new.
    """
    previous = previous or {}
    return {key: diff_record(previous.get(key), record) for key, record in current.items()}


def diff_snapshots(
    previous: Optional[Snapshot],
    current: Snapshot,
    diff_statements: bool = True,
) -> DiffResult:
    """
    Compute the DiffResult for a collection cycle.

    Args:
        previous: Baseline from the state store, or None on a cold start
        current: Snapshot acquired in this cycle
        diff_statements: When False, statement statistics are not diffed

    Returns:
        DiffResult keyed identically to the current snapshot
    """
    def prev(attr: str):
        return getattr(previous, attr) if previous is not None else None

    prev_system = prev("system")

    return DiffResult(
        collected_at=current.collected_at,
        previous_collected_at=prev("collected_at"),
        statement_stats=(
            diff_counter_set(prev("statement_stats"), current.statement_stats)
            if diff_statements else {}
        ),
        relation_stats=diff_counter_set(prev("relation_stats"), current.relation_stats),
        index_stats=diff_counter_set(prev("index_stats"), current.index_stats),
        function_stats=diff_counter_set(prev("function_stats"), current.function_stats),
        system_cpu_stats=diff_counter_set(
            prev_system.cpu_stats if prev_system else None, current.system.cpu_stats),
        system_network_stats=diff_counter_set(
            prev_system.network_stats if prev_system else None, current.system.network_stats),
        system_disk_stats=diff_counter_set(
            prev_system.disk_stats if prev_system else None, current.system.disk_stats),
        collector_stats=diff_record(prev("collector_stats"), current.collector_stats),
    )
