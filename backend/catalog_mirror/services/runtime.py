"""
Sync runtime - wires the sync collaborators for one Flask app
"""
from flask import current_app

from ..utils.logger import get_logger
from .catalog_client import load_catalog_client
from .full_update_service import FullUpdateService, SyncSettings
from .product_info import ProductInfoProcessor
from .store import CatalogStore
from .sync.backpressure import BackpressureGate, RuntimeLoadMetrics
from .sync.job_queue import JobQueue
from .sync.task_manager import TaskManager
from .sync.trackers import ExclusiveLockTracker, ProcessingTracker
from .token_cache import AccessTokenCache

logger = get_logger('runtime')

EXTENSION_KEY = 'catalog_sync'


class SyncRuntime:
    """Owns the job queue, task manager, trackers, token cache and pipeline of an app."""

    def __init__(self, app, catalog_client=None):
        config = app.config

        if catalog_client is None:
            catalog_client = load_catalog_client(config.get('CATALOG_CLIENT_FACTORY'))
        if catalog_client is None:
            logger.warning("[SyncRuntime] No catalog client configured, sync runs are disabled")

        self.job_queue = JobQueue(app, max_workers=config.get('JOB_WORKERS', JobQueue.DEFAULT_WORKERS))
        self.task_manager = TaskManager(app, max_workers=config.get('TASK_WORKERS', TaskManager.DEFAULT_WORKERS))
        self.processing_tracker = ProcessingTracker()
        self.lock_tracker = ExclusiveLockTracker()

        self.metrics = RuntimeLoadMetrics(
            self.job_queue,
            self.task_manager,
            self.processing_tracker,
            self.lock_tracker,
        )
        self.gate = BackpressureGate(
            self.metrics,
            max_in_flight_processing=config.get('MAX_IN_FLIGHT_PROCESSING', 50),
            max_held_exclusive_locks=config.get('MAX_HELD_EXCLUSIVE_LOCKS', 4),
        )

        self.token_cache = AccessTokenCache(config.get('TOKEN_CACHE_PATH'))
        self.token_cache.load()

        self.store = CatalogStore(app_id_ceiling=config.get('ENUMERATE_APP_ID_CEILING', 2000000))
        self.product_info_processor = ProductInfoProcessor(self.store, self.processing_tracker)

        self.service = FullUpdateService(
            store=self.store,
            token_cache=self.token_cache,
            job_queue=self.job_queue,
            task_manager=self.task_manager,
            gate=self.gate,
            catalog_client=catalog_client,
            product_info_processor=self.product_info_processor,
            settings=SyncSettings.from_config(config),
        )

    def shutdown(self, wait: bool = True) -> None:
        self.job_queue.shutdown(wait=wait)
        self.task_manager.shutdown(wait=wait)


def init_sync_runtime(app, catalog_client=None) -> SyncRuntime:
    runtime = SyncRuntime(app, catalog_client=catalog_client)
    app.extensions[EXTENSION_KEY] = runtime
    return runtime


def get_sync_runtime(app=None) -> SyncRuntime:
    """Sync runtime of ``app`` (defaults to the current app)."""
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
