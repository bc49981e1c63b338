"""
Activity trackers feeding the backpressure gate

- ProcessingTracker: product info entries currently being processed
- ExclusiveLockTracker: exclusive resources (e.g. depot locks) currently held

Depot downloads are done by the hosting process, not by this package. The
host takes its depot ids through ``SyncRuntime.lock_tracker`` (``hold`` or
``acquire``/``release``) so that the gate backs off while too many of them
are held; nothing inside the sync pipeline takes a lock itself.
"""
import threading
from contextlib import contextmanager
from typing import Hashable, Set


class ProcessingTracker:
    """Thread-safe counter of in-flight processing units.

    Example:
        >>> tracker = ProcessingTracker()
        >>> with tracker.track():
        ...     process(app_info)
        >>> tracker.count
        0
    """

    def __init__(self):
        self._count = 0
        self._lock = threading.Lock()

    @contextmanager
    def track(self):
        """Count the enclosed block as one in-flight processing unit."""
        with self._lock:
            self._count += 1
        try:
            yield
        finally:
            with self._lock:
                self._count -= 1

    @property
    def count(self) -> int:
        with self._lock:
            return self._count


class ExclusiveLockTracker:
    """Tracks exclusive resources held by this process.

    A key can be held by one owner at a time; ``hold`` raises if the key is
    already taken so callers never wait on each other silently.
    """

    def __init__(self):
        self._held: Set[Hashable] = set()
        self._lock = threading.Lock()

    def acquire(self, key: Hashable) -> bool:
        """Try to take ``key``. Returns False when it is already held."""
        with self._lock:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._lock:
            self._held.discard(key)

    @contextmanager
    def hold(self, key: Hashable):
        """Hold ``key`` for the duration of the block."""
        if not self.acquire(key):
            raise RuntimeError(f"Exclusive resource {key!r} is already held")
        try:
            yield
        finally:
            self.release(key)

    @property
    def held_count(self) -> int:
        with self._lock:
            return len(self._held)
