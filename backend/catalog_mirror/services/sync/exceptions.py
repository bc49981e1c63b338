"""Sync-specific exceptions for error handling."""


class SyncFailureError(Exception):
    """Raised when a critical error occurs that should abort the whole sync invocation.

    Fatal errors are not handled inside the dispatch engine: they bubble up to
    the task manager's top-level runner, which logs them and releases the
    invocation slot. Nothing is rolled back; whatever the job queue already
    completed stays completed.
    """

    pass


class StoreReadError(SyncFailureError):
    """Raised when a query against the persisted catalog state fails.

    Usage:
        raise StoreReadError("Failed to read package ids") from exc
    """

    pass
