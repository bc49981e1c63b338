"""
Full Update Service - the sync pipeline

Two flows share the dispatch engine:
- bulk token flow: enumerate ids for a run mode, split them into token
  batches and request access tokens batch by batch under backpressure
- metadata-only flow: request metadata-only product info for every known
  id, diff the returned change numbers and request fresh tokens for the
  entities that actually changed

The feedback from the metadata flow into the token flow is one level deep:
changed ids produce a single token job, whose completion only ever leads to
a full product info request, never to another metadata round.
"""
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..utils.logger import get_logger, log_sync_event
from .catalog_client import (
    AccessTokensResult,
    ProductInfoRequest,
    ProductInfoResult,
    TokenRequest,
)
from .sync.backpressure import is_busy
from .sync.batching import split
from .sync.change_detector import EntityKind, detect_changes
from .sync.dispatcher import dispatch
from .sync.enumeration import (
    ENUMERATE_APP_PADDING,
    ENUMERATE_PACKAGE_PADDING,
    RunMode,
    select_targets,
)
from .sync.exceptions import SyncFailureError
from .sync.log_collector import SyncRunLog

logger = get_logger('full_update')

RUN_FULL = 'full_run'
RUN_METADATA = 'metadata_run'

# Upper bounds of the batch sizes accepted by the catalog per request type
MAX_APP_TOKEN_BATCH_SIZE = 200
MAX_PACKAGE_TOKEN_BATCH_SIZE = 1000
MAX_METADATA_BATCH_SIZE = 10000


def _bounded_batch_size(name: str, value: int, bound: int) -> int:
    if value > bound:
        logger.warning(f"[Settings] {name}={value} exceeds the maximum of {bound}, using {bound}")
        return bound
    return value


@dataclass
class SyncSettings:
    """Batch sizes, poll intervals and enumeration padding of the pipeline.

    Batch sizes above their bound are clamped to it.
    """

    app_token_batch_size: int = MAX_APP_TOKEN_BATCH_SIZE
    package_token_batch_size: int = MAX_PACKAGE_TOKEN_BATCH_SIZE
    metadata_batch_size: int = MAX_METADATA_BATCH_SIZE
    token_poll_interval_ms: int = 100
    metadata_poll_interval_ms: int = 500
    enumerate_app_padding: int = ENUMERATE_APP_PADDING
    enumerate_package_padding: int = ENUMERATE_PACKAGE_PADDING

    def __post_init__(self):
        self.app_token_batch_size = _bounded_batch_size(
            'APP_TOKEN_BATCH_SIZE', self.app_token_batch_size, MAX_APP_TOKEN_BATCH_SIZE
        )
        self.package_token_batch_size = _bounded_batch_size(
            'PACKAGE_TOKEN_BATCH_SIZE', self.package_token_batch_size, MAX_PACKAGE_TOKEN_BATCH_SIZE
        )
        self.metadata_batch_size = _bounded_batch_size(
            'METADATA_BATCH_SIZE', self.metadata_batch_size, MAX_METADATA_BATCH_SIZE
        )

    @classmethod
    def from_config(cls, config) -> 'SyncSettings':
        return cls(
            app_token_batch_size=config.get('APP_TOKEN_BATCH_SIZE', MAX_APP_TOKEN_BATCH_SIZE),
            package_token_batch_size=config.get('PACKAGE_TOKEN_BATCH_SIZE', MAX_PACKAGE_TOKEN_BATCH_SIZE),
            metadata_batch_size=config.get('METADATA_BATCH_SIZE', MAX_METADATA_BATCH_SIZE),
            token_poll_interval_ms=config.get('TOKEN_POLL_INTERVAL_MS', 100),
            metadata_poll_interval_ms=config.get('METADATA_POLL_INTERVAL_MS', 500),
            enumerate_app_padding=config.get('ENUMERATE_APP_PADDING', ENUMERATE_APP_PADDING),
            enumerate_package_padding=config.get('ENUMERATE_PACKAGE_PADDING', ENUMERATE_PACKAGE_PADDING),
        )


class FullUpdateService:
    """Composes enumeration, batching, dispatch and change detection.

    Every collaborator is injected so tests can swap in fakes for the job
    queue, the task manager and the load metrics behind the gate.
    """

    def __init__(
        self,
        store,
        token_cache,
        job_queue,
        task_manager,
        gate,
        catalog_client,
        product_info_processor,
        settings: Optional[SyncSettings] = None,
    ):
        self.store = store
        self.token_cache = token_cache
        self.job_queue = job_queue
        self.task_manager = task_manager
        self.gate = gate
        self.catalog_client = catalog_client
        self.product_info_processor = product_info_processor
        self.settings = settings or SyncSettings()
        self.last_runs: Dict[str, SyncRunLog] = {}
        # First change detection failure of the current metadata run
        self._detector_error: Optional[SyncFailureError] = None
        self._failure_lock = threading.Lock()

    # ==================== Entry points ====================

    def perform_sync(self, mode: RunMode = RunMode.FULL_NORMAL) -> bool:
        """Start a full run in the background.

        Ids are enumerated here, before the invocation starts, so a store
        failure is raised to the caller.

        Returns:
            True if started, False if a run of the same kind is already going
        """
        self._require_client()

        if mode == RunMode.NORMAL_USING_METADATA:
            return self.start_metadata_run()

        if self.task_manager.is_running(RUN_FULL):
            logger.warning("[FullRun] A full run is already in progress")
            return False

        app_ids, package_ids = self.select(mode)

        return self.task_manager.start_invocation(
            RUN_FULL,
            lambda: self.request_update_for_list(app_ids, package_ids, mode)
        )

    def start_metadata_run(self) -> bool:
        """Start the metadata-only flow in the background."""
        self._require_client()
        return self.task_manager.start_invocation(RUN_METADATA, self.run_metadata_sync)

    async def run_full_sync(self, mode: RunMode = RunMode.FULL_NORMAL) -> Dict[str, Any]:
        """Run a full sync in the current event loop (used by the CLI)."""
        self._require_client()

        if mode == RunMode.NORMAL_USING_METADATA:
            return await self.run_metadata_sync()

        app_ids, package_ids = self.select(mode)
        return await self.request_update_for_list(app_ids, package_ids, mode)

    def select(self, mode: RunMode):
        return select_targets(
            mode,
            self.store,
            self.token_cache,
            app_padding=self.settings.enumerate_app_padding,
            package_padding=self.settings.enumerate_package_padding,
        )

    # ==================== Bulk token flow ====================

    async def request_update_for_list(
        self,
        app_ids: List[int],
        package_ids: List[int],
        mode: RunMode = RunMode.FULL_NORMAL,
    ) -> Dict[str, Any]:
        """Request access tokens for every id, batch by batch, then flush the token cache once."""
        skip_packages = mode == RunMode.WITH_FORCED_DEPOTS
        run_log = self._begin_run(RUN_FULL, mode.value)

        logger.info(f"[FullRun] Requesting info for {len(app_ids)} apps and {len(package_ids)} packages")
        run_log.record_requested(apps=len(app_ids), packages=0 if skip_packages else len(package_ids))

        try:
            submitted = await dispatch(
                split(app_ids, self.settings.app_token_batch_size),
                self.request_app_tokens,
                self.settings.token_poll_interval_ms,
                self.gate,
            )
            run_log.record_batch(SyncRunLog.BATCH_APP_TOKENS, submitted)

            # Forced depot processing already holds depot credentials
            if not skip_packages:
                submitted = await dispatch(
                    split(package_ids, self.settings.package_token_batch_size),
                    self.request_package_tokens,
                    self.settings.token_poll_interval_ms,
                    self.gate,
                )
                run_log.record_batch(SyncRunLog.BATCH_PACKAGE_TOKENS, submitted)

            self.token_cache.flush()
            run_log.record_flush()
        except Exception as e:
            run_log.fail(e)
            raise
        finally:
            run_log.finalize()
            log_sync_event(RUN_FULL, run_log.status, run_log.summary)

        return run_log.to_dict()

    def request_app_tokens(self, app_ids: List[int]):
        return self.submit_token_request(TokenRequest(app_ids=list(app_ids)))

    def request_package_tokens(self, package_ids: List[int]):
        return self.submit_token_request(TokenRequest(package_ids=list(package_ids)))

    def submit_token_request(self, request: TokenRequest):
        """Enqueue one "request access tokens" job."""
        return self.job_queue.submit(
            lambda: self.catalog_client.get_access_tokens(request.app_ids, request.package_ids),
            metadata=request,
            on_complete=lambda result: self.handle_access_tokens(request, result),
        )

    def handle_access_tokens(self, request: TokenRequest, result: AccessTokensResult) -> Optional[ProductInfoRequest]:
        """Store granted tokens and request full product info for the ids not denied."""
        updated = self.token_cache.apply(result)
        if updated:
            logger.debug(f"[Tokens] {updated} new or changed tokens")

        app_ids = [i for i in request.app_ids if i not in result.app_denied]
        package_ids = [i for i in request.package_ids if i not in result.package_denied]
        if not app_ids and not package_ids:
            return None

        info_request = ProductInfoRequest(
            app_requests=[self.token_cache.new_app_request(i) for i in app_ids],
            package_requests=[self.token_cache.new_package_request(i) for i in package_ids],
            metadata_only=False,
        )
        self.job_queue.submit(
            lambda: self.catalog_client.get_product_info(
                info_request.app_requests, info_request.package_requests, metadata_only=False
            ),
            metadata=info_request,
            on_complete=self.product_info_processor.process,
        )
        return info_request

    # ==================== Metadata-only flow ====================

    async def run_metadata_sync(self) -> Dict[str, Any]:
        """Metadata-only requests for all apps, then all packages."""
        run_log = self._begin_run(RUN_METADATA, RunMode.NORMAL_USING_METADATA.value)
        with self._failure_lock:
            self._detector_error = None
        try:
            await self.full_update_apps_metadata(run_log)
            self._raise_detector_failure()
            await self.full_update_packages_metadata(run_log)
            self._raise_detector_failure()
        except Exception as e:
            run_log.fail(e)
            raise
        finally:
            run_log.finalize()
            log_sync_event(RUN_METADATA, run_log.status, run_log.summary)

        return run_log.to_dict()

    async def full_update_apps_metadata(self, run_log: Optional[SyncRunLog] = None) -> int:
        logger.info("[FullUpdate] Doing a full update for apps using metadata requests")

        app_ids = self.store.get_all_app_ids()
        if run_log:
            run_log.record_requested(apps=len(app_ids))

        submitted = await dispatch(
            split(app_ids, self.settings.metadata_batch_size),
            lambda batch: self._submit_metadata_batch(app_ids=batch),
            self.settings.metadata_poll_interval_ms,
            self.gate,
        )
        if run_log:
            run_log.record_batch(SyncRunLog.BATCH_APP_METADATA, submitted)
        return submitted

    async def full_update_packages_metadata(self, run_log: Optional[SyncRunLog] = None) -> int:
        logger.info("[FullUpdate] Doing a full update for packages using metadata requests")

        package_ids = self.store.get_all_package_ids()
        if run_log:
            run_log.record_requested(packages=len(package_ids))

        submitted = await dispatch(
            split(package_ids, self.settings.metadata_batch_size),
            lambda batch: self._submit_metadata_batch(package_ids=batch),
            self.settings.metadata_poll_interval_ms,
            self.gate,
        )
        if run_log:
            run_log.record_batch(SyncRunLog.BATCH_PACKAGE_METADATA, submitted)
        return submitted

    def _submit_metadata_batch(self, app_ids: Iterable[int] = (), package_ids: Iterable[int] = ()):
        # A failed diff of an earlier batch stops the run before the next request
        self._raise_detector_failure()
        return self.submit_metadata_request(app_ids=app_ids, package_ids=package_ids)

    def submit_metadata_request(self, app_ids: Iterable[int] = (), package_ids: Iterable[int] = ()):
        """Enqueue one "request metadata-only product info" job."""
        request = ProductInfoRequest(
            app_requests=[self.token_cache.new_app_request(i) for i in app_ids],
            package_requests=[self.token_cache.new_package_request(i) for i in package_ids],
            metadata_only=True,
        )
        return self.job_queue.submit(
            lambda: self.catalog_client.get_product_info(
                request.app_requests, request.package_requests, metadata_only=True
            ),
            metadata=request,
            on_complete=self._on_metadata_info,
        )

    def _on_metadata_info(self, result: ProductInfoResult) -> None:
        # Diffing runs as a task so the gate stays busy until it is done
        self.task_manager.run(self.handle_metadata_info, result, name='metadata_info')

    def handle_metadata_info(self, result: ProductInfoResult) -> Optional[TokenRequest]:
        """Diff a metadata-only response and request tokens for what changed.

        Returns:
            The follow-up token request, or None if nothing changed
        """
        logger.debug(
            f"[FullUpdate] Received metadata only product info for "
            f"{len(result.apps)} apps and {len(result.packages)} packages"
        )

        try:
            changed_apps = detect_changes(
                EntityKind.APP,
                ((info.id, info.change_number) for info in result.apps.values()),
                self.store,
            )
            changed_packages = detect_changes(
                EntityKind.PACKAGE,
                ((info.id, info.change_number) for info in result.packages.values()),
                self.store,
            )
        except SyncFailureError as e:
            self._record_detector_failure(e)
            raise

        run_log = self.last_runs.get(RUN_METADATA)
        if run_log:
            run_log.record_changes(apps=len(changed_apps), packages=len(changed_packages))

        return self.request_tokens_for_changes(changed_apps, changed_packages)

    def request_tokens_for_changes(self, app_ids: Iterable[int], package_ids: Iterable[int]) -> Optional[TokenRequest]:
        """Single feedback step: one token job for the changed ids, nothing more."""
        return self.request_tokens(app_ids, package_ids)

    def request_tokens(self, app_ids: Iterable[int], package_ids: Iterable[int]) -> Optional[TokenRequest]:
        """Submit one token job for explicit ids, outside any dispatch loop."""
        app_ids = sorted(set(app_ids), reverse=True)
        package_ids = sorted(set(package_ids), reverse=True)
        if not app_ids and not package_ids:
            return None

        request = TokenRequest(app_ids=app_ids, package_ids=package_ids)
        self.submit_token_request(request)
        return request

    # ==================== Status ====================

    def get_status(self) -> Dict[str, Any]:
        snapshot = self.gate.snapshot()
        return {
            'load': snapshot.to_dict(),
            'busy': is_busy(
                snapshot,
                max_in_flight_processing=self.gate.max_in_flight_processing,
                max_held_exclusive_locks=self.gate.max_held_exclusive_locks,
            ),
            'running': self.task_manager.running_invocations(),
            'last_runs': {kind: run_log.to_dict() for kind, run_log in self.last_runs.items()},
            'catalog_client_configured': self.catalog_client is not None,
        }

    # ==================== Helpers ====================

    def _begin_run(self, run_kind: str, mode: Optional[str]) -> SyncRunLog:
        run_log = SyncRunLog(run_kind, mode=mode)
        self.last_runs[run_kind] = run_log
        log_sync_event(run_kind, 'started', {'mode': mode})
        return run_log

    def _record_detector_failure(self, error: SyncFailureError) -> None:
        """Keep the first change detection failure and mark the metadata run failed."""
        with self._failure_lock:
            if self._detector_error is not None:
                return
            self._detector_error = error

        logger.error(f"[FullUpdate] Change detection failed: {error}")
        run_log = self.last_runs.get(RUN_METADATA)
        if run_log:
            run_log.fail(error)

    def _raise_detector_failure(self) -> None:
        with self._failure_lock:
            error = self._detector_error
        if error is not None:
            raise error

    def _require_client(self) -> None:
        if self.catalog_client is None:
            raise SyncFailureError("No catalog client configured (set CATALOG_CLIENT_FACTORY)")
