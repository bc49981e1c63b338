"""
Job Queue - asynchronous catalog requests on a thread pool

Work submitted here runs off the dispatch loop. A job is pending from the
moment it is submitted until its work and completion callback have both
finished; that pending count is one of the backpressure signals.
"""
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional

from ...utils.logger import get_logger

logger = get_logger('job_queue')


class JobQueue:
    """Thread pool backed job engine.

    Failures of a job (in its work or in its completion callback) are logged
    and counted here and never raised back to the submitter.

    Example:
        >>> queue = JobQueue(app, max_workers=4)
        >>> queue.submit(lambda: client.get_access_tokens([10], []),
        ...              metadata=TokenRequest(app_ids=[10]),
        ...              on_complete=handle_tokens)
        >>> queue.pending_job_count
        1
    """

    DEFAULT_WORKERS = 4

    def __init__(self, app=None, max_workers: int = DEFAULT_WORKERS):
        """
        Args:
            app: Flask app whose context wraps every job (optional)
            max_workers: Concurrent job threads
        """
        self._app = app
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix='catalog_job'
        )
        self._futures: List[Future] = []
        self._futures_lock = threading.Lock()
        self._stats = {'submitted': 0, 'completed': 0, 'failed': 0}
        self._stats_lock = threading.Lock()
        logger.info(f"[JobQueue] Initialized with {max_workers} workers")

    def submit(
        self,
        work: Callable[[], Any],
        metadata: Any = None,
        on_complete: Optional[Callable[[Any], None]] = None
    ) -> Optional[Future]:
        """Enqueue one unit of work.

        Args:
            work: Callable performing the catalog request
            metadata: Correlation data describing the request (logged on failure)
            on_complete: Called with the work's result inside the same job

        Returns:
            Future of the job, or None if the pool refused it
        """
        def _job():
            try:
                if self._app is not None:
                    with self._app.app_context():
                        self._run(work, on_complete)
                else:
                    self._run(work, on_complete)
                with self._stats_lock:
                    self._stats['completed'] += 1
            except Exception as e:
                logger.warning(f"[JobQueue] Job failed ({metadata!r}): {e}")
                with self._stats_lock:
                    self._stats['failed'] += 1

        try:
            future = self._executor.submit(_job)
        except RuntimeError as e:
            logger.warning(f"[JobQueue] Failed to submit job ({metadata!r}): {e}")
            with self._stats_lock:
                self._stats['failed'] += 1
            return None

        with self._futures_lock:
            self._futures = [f for f in self._futures if not f.done()]
            self._futures.append(future)
        with self._stats_lock:
            self._stats['submitted'] += 1
        return future

    @staticmethod
    def _run(work, on_complete) -> None:
        result = work()
        if on_complete is not None:
            on_complete(result)

    @property
    def pending_job_count(self) -> int:
        with self._futures_lock:
            return sum(1 for f in self._futures if not f.done())

    def wait_completion(self, timeout: Optional[float] = None) -> bool:
        """Wait until every job submitted so far has finished.

        Jobs submitted by completion callbacks while waiting are picked up too.

        Args:
            timeout: Maximum seconds to wait per round. None means wait forever.

        Returns:
            True if all jobs finished, False on timeout
        """
        while True:
            with self._futures_lock:
                pending = [f for f in self._futures if not f.done()]

            if not pending:
                return True

            try:
                for _ in as_completed(pending, timeout=timeout):
                    pass
            except FutureTimeoutError:
                logger.warning(f"[JobQueue] Wait timeout after {timeout}s")
                return False

    def get_stats(self) -> Dict:
        """Submitted, completed, failed and pending job counts."""
        with self._stats_lock:
            stats = dict(self._stats)
        stats['pending'] = self.pending_job_count
        return stats

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("[JobQueue] Thread pool shutdown")
