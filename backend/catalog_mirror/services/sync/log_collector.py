"""
Sync Run Log - per-invocation summary of a sync run

Counts what a run submitted and what it found, so the status endpoint and
the logs can report on finished runs.
"""
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from ...utils.logger import get_logger

logger = get_logger('log_collector')


class SyncRunLog:
    """Collects counters for one sync invocation.

    Example:
        >>> run_log = SyncRunLog('full_run', mode='full_normal')
        >>> run_log.record_requested(apps=400, packages=1000)
        >>> run_log.record_batch(SyncRunLog.BATCH_APP_TOKENS)
        >>> summary = run_log.finalize()
    """

    BATCH_APP_TOKENS = 'app_token_batches'
    BATCH_PACKAGE_TOKENS = 'package_token_batches'
    BATCH_APP_METADATA = 'app_metadata_batches'
    BATCH_PACKAGE_METADATA = 'package_metadata_batches'

    def __init__(self, run_kind: str, mode: Optional[str] = None):
        self.run_kind = run_kind
        self.mode = mode
        self.start_time = datetime.utcnow().isoformat() + 'Z'
        self.end_time: Optional[str] = None
        self.status = 'running'
        self.error_message: Optional[str] = None
        self.summary = {
            'apps_requested': 0,
            'packages_requested': 0,
            self.BATCH_APP_TOKENS: 0,
            self.BATCH_PACKAGE_TOKENS: 0,
            self.BATCH_APP_METADATA: 0,
            self.BATCH_PACKAGE_METADATA: 0,
            'changed_apps': 0,
            'changed_packages': 0,
            'token_cache_flushed': False,
        }
        self._lock = threading.Lock()

    def record_requested(self, apps: int = 0, packages: int = 0) -> None:
        with self._lock:
            self.summary['apps_requested'] += apps
            self.summary['packages_requested'] += packages

    def record_batch(self, batch_type: str, count: int = 1) -> None:
        with self._lock:
            self.summary[batch_type] += count

    def record_changes(self, apps: int = 0, packages: int = 0) -> None:
        # Called from task threads while the run may already be finalized
        with self._lock:
            self.summary['changed_apps'] += apps
            self.summary['changed_packages'] += packages

    def record_flush(self) -> None:
        with self._lock:
            self.summary['token_cache_flushed'] = True

    def fail(self, error: Exception) -> None:
        with self._lock:
            self.status = 'failed'
            self.error_message = str(error)[:500]

    def finalize(self) -> Dict[str, Any]:
        """Close the run and return its summary."""
        with self._lock:
            self.end_time = datetime.utcnow().isoformat() + 'Z'
            if self.status == 'running':
                self.status = 'completed'
        data = self.to_dict()
        logger.info(f"[SyncRunLog] {self.run_kind} {self.status}: {data['summary']}")
        return data

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'run_kind': self.run_kind,
                'mode': self.mode,
                'status': self.status,
                'start_time': self.start_time,
                'end_time': self.end_time,
                'error_message': self.error_message,
                'summary': dict(self.summary),
            }
