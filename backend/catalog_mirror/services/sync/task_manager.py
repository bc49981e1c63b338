"""
Task Manager - fire-and-forget background work

Two kinds of background work are run here:
- tasks: short follow-up work (e.g. diffing a metadata response), counted
  in ``pending_task_count`` and therefore visible to the backpressure gate
- invocations: top-level sync routines, each an asyncio control flow in its
  own thread, guarded so only one invocation of a kind runs at a time
"""
import asyncio
import threading
from contextlib import nullcontext
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List

from ...utils.logger import get_logger, log_error

logger = get_logger('task_manager')


class TaskManager:
    """Background task runner with a single-flight guard per invocation kind.

    Errors never escape a task or an invocation: they are logged here, at
    the top of the background thread, and the invocation slot is released.

    Example:
        >>> manager = TaskManager(app)
        >>> manager.start_invocation('full_run', lambda: service.run_full_sync(mode))
        True
        >>> manager.start_invocation('full_run', lambda: service.run_full_sync(mode))
        False
    """

    DEFAULT_WORKERS = 4

    def __init__(self, app=None, max_workers: int = DEFAULT_WORKERS):
        self._app = app
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix='catalog_task'
        )
        self._pending = 0
        self._pending_lock = threading.Lock()

        self._invocations: Dict[str, Dict[str, Any]] = {}
        self._invocations_lock = threading.Lock()

    # ==================== Tasks ====================

    def run(self, fn: Callable[..., Any], *args, name: str = 'task') -> Future:
        """Run ``fn(*args)`` in the background and count it as pending until done."""
        with self._pending_lock:
            self._pending += 1

        def _task():
            try:
                with self._context():
                    return fn(*args)
            except Exception as e:
                log_error(e, f"task {name}")
                return None
            finally:
                with self._pending_lock:
                    self._pending -= 1

        try:
            return self._executor.submit(_task)
        except RuntimeError:
            with self._pending_lock:
                self._pending -= 1
            raise

    @property
    def pending_task_count(self) -> int:
        with self._pending_lock:
            return self._pending

    # ==================== Invocations ====================

    def start_invocation(self, kind: str, coro_factory: Callable[[], Awaitable[Any]]) -> bool:
        """Start a top-level sync routine unless one of the same kind is running.

        Args:
            kind: Invocation kind, e.g. 'full_run'
            coro_factory: Builds the coroutine to run

        Returns:
            True if started, False if an invocation of ``kind`` is already running
        """
        with self._invocations_lock:
            if kind in self._invocations:
                logger.warning(f"[TaskManager] Invocation '{kind}' is already running, not starting another")
                return False
            self._invocations[kind] = {
                'kind': kind,
                'started_at': datetime.utcnow().isoformat() + 'Z',
            }

        thread = threading.Thread(
            target=self._run_invocation,
            args=(kind, coro_factory),
            name=f'invocation-{kind}',
        )
        thread.daemon = True
        try:
            thread.start()
        except RuntimeError:
            self._release(kind)
            raise

        logger.info(f"[TaskManager] Invocation '{kind}' started")
        return True

    def _run_invocation(self, kind: str, coro_factory: Callable[[], Awaitable[Any]]) -> None:
        """Execute an invocation in its own event loop with top-level error handling."""
        try:
            with self._context():
                asyncio.run(coro_factory())
            logger.info(f"[TaskManager] Invocation '{kind}' finished")
        except Exception as e:
            logger.error(f"[FatalError] Invocation '{kind}' crashed: {e}")
            log_error(e, f"invocation {kind}")
        finally:
            self._release(kind)

    def _release(self, kind: str) -> None:
        with self._invocations_lock:
            self._invocations.pop(kind, None)

    def is_running(self, kind: str) -> bool:
        with self._invocations_lock:
            return kind in self._invocations

    def running_invocations(self) -> List[Dict[str, Any]]:
        with self._invocations_lock:
            return [dict(info) for info in self._invocations.values()]

    # ==================== Helpers ====================

    def _context(self):
        if self._app is not None:
            return self._app.app_context()
        return nullcontext()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
