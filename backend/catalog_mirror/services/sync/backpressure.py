"""
Backpressure Gate - decides whether new batches may be submitted

The gate reads four live load counters and reports "busy" while the job
queue or task manager still has work pending, or while processing and
exclusive-resource usage is above its baseline allowance.
"""
from dataclasses import asdict, dataclass
from typing import Dict, Protocol

from ...utils.logger import get_logger

logger = get_logger('backpressure')

DEFAULT_MAX_IN_FLIGHT_PROCESSING = 50
DEFAULT_MAX_HELD_EXCLUSIVE_LOCKS = 4


@dataclass(frozen=True)
class LoadSnapshot:
    """Point-in-time reading of the load counters."""

    pending_jobs: int = 0
    pending_tasks: int = 0
    in_flight_processing: int = 0
    held_exclusive_locks: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class LoadMetricsProvider(Protocol):
    """Read-only source of the four load counters."""

    def pending_jobs(self) -> int: ...

    def pending_tasks(self) -> int: ...

    def in_flight_processing(self) -> int: ...

    def held_exclusive_locks(self) -> int: ...


def take_snapshot(provider: LoadMetricsProvider) -> LoadSnapshot:
    """Sample every counter of ``provider`` once."""
    return LoadSnapshot(
        pending_jobs=provider.pending_jobs(),
        pending_tasks=provider.pending_tasks(),
        in_flight_processing=provider.in_flight_processing(),
        held_exclusive_locks=provider.held_exclusive_locks(),
    )


def is_busy(
    snapshot: LoadSnapshot,
    max_in_flight_processing: int = DEFAULT_MAX_IN_FLIGHT_PROCESSING,
    max_held_exclusive_locks: int = DEFAULT_MAX_HELD_EXCLUSIVE_LOCKS,
) -> bool:
    """Composite busy predicate over a load snapshot."""
    return (
        snapshot.pending_tasks > 0
        or snapshot.pending_jobs > 0
        or snapshot.in_flight_processing > max_in_flight_processing
        or snapshot.held_exclusive_locks > max_held_exclusive_locks
    )


class BackpressureGate:
    """Evaluates the busy predicate against a live metrics provider.

    The gate is advisory: it samples fresh counters on every call and makes
    no atomicity promise, so work submitted between two polls can overshoot
    the thresholds slightly.

    Example:
        >>> gate = BackpressureGate(RuntimeLoadMetrics(jobs, tasks, processing, locks))
        >>> if not gate.is_busy():
        ...     submit_next_batch()
    """

    def __init__(
        self,
        provider: LoadMetricsProvider,
        max_in_flight_processing: int = DEFAULT_MAX_IN_FLIGHT_PROCESSING,
        max_held_exclusive_locks: int = DEFAULT_MAX_HELD_EXCLUSIVE_LOCKS,
    ):
        self.provider = provider
        self.max_in_flight_processing = max_in_flight_processing
        self.max_held_exclusive_locks = max_held_exclusive_locks

    def snapshot(self) -> LoadSnapshot:
        return take_snapshot(self.provider)

    def is_busy(self) -> bool:
        """Sample the provider and evaluate the predicate, logging the counters."""
        snapshot = self.snapshot()
        logger.info(
            f"[FullRun] Jobs: {snapshot.pending_jobs} - Tasks: {snapshot.pending_tasks} - "
            f"Processing: {snapshot.in_flight_processing} - Depot locks: {snapshot.held_exclusive_locks}"
        )
        return is_busy(
            snapshot,
            max_in_flight_processing=self.max_in_flight_processing,
            max_held_exclusive_locks=self.max_held_exclusive_locks,
        )


class RuntimeLoadMetrics:
    """Load metrics backed by the in-process job queue, task manager and trackers."""

    def __init__(self, job_queue, task_manager, processing_tracker, lock_tracker):
        self._job_queue = job_queue
        self._task_manager = task_manager
        self._processing_tracker = processing_tracker
        self._lock_tracker = lock_tracker

    def pending_jobs(self) -> int:
        return self._job_queue.pending_job_count

    def pending_tasks(self) -> int:
        return self._task_manager.pending_task_count

    def in_flight_processing(self) -> int:
        return self._processing_tracker.count

    def held_exclusive_locks(self) -> int:
        return self._lock_tracker.held_count
