"""
Sync Engine Module - backpressure-controlled batch dispatch

This package contains the dispatch engine components:
- batching: Fixed-size windows over identifier lists
- backpressure: Load snapshot and busy predicate
- enumeration: Run modes and target selection
- dispatcher: Paced batch submission
- change_detector: Change number diffing
- job_queue: Thread pool job engine
- task_manager: Background tasks and single-flight invocations
- trackers: In-flight processing and exclusive lock counters
- log_collector: Per-run summaries
"""
from .backpressure import BackpressureGate, LoadSnapshot, RuntimeLoadMetrics, is_busy
from .batching import split
from .change_detector import EntityKind, detect_changes
from .dispatcher import dispatch
from .enumeration import RunMode, select_targets
from .exceptions import StoreReadError, SyncFailureError
from .job_queue import JobQueue
from .log_collector import SyncRunLog
from .task_manager import TaskManager
from .trackers import ExclusiveLockTracker, ProcessingTracker

__all__ = [
    'BackpressureGate',
    'LoadSnapshot',
    'RuntimeLoadMetrics',
    'is_busy',
    'split',
    'EntityKind',
    'detect_changes',
    'dispatch',
    'RunMode',
    'select_targets',
    'StoreReadError',
    'SyncFailureError',
    'JobQueue',
    'SyncRunLog',
    'TaskManager',
    'ExclusiveLockTracker',
    'ProcessingTracker',
]
