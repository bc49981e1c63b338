"""
Pytest Configuration and Fixtures

This module provides shared fixtures and fakes for all tests.
"""
import os
import sys
import pytest

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from catalog_mirror import create_app
from catalog_mirror.config import TestingConfig
from catalog_mirror.extensions import db
from catalog_mirror.models import App, Package, PackageApp
from catalog_mirror.services.catalog_client import (
    AccessTokensResult,
    ProductInfo,
    ProductInfoRequest,
    ProductInfoResult,
)
from catalog_mirror.services.full_update_service import FullUpdateService, SyncSettings
from catalog_mirror.services.product_info import ProductInfoProcessor
from catalog_mirror.services.runtime import get_sync_runtime
from catalog_mirror.services.store import CatalogStore
from catalog_mirror.services.sync.backpressure import BackpressureGate
from catalog_mirror.services.sync.trackers import ProcessingTracker
from catalog_mirror.services.token_cache import AccessTokenCache

ADMIN_KEY = 'test-admin-key'


class FakeCatalogClient:
    """Catalog client answering from in-memory change numbers."""

    def __init__(self, app_change_numbers=None, package_change_numbers=None,
                 denied_apps=(), denied_packages=()):
        self.app_change_numbers = dict(app_change_numbers or {})
        self.package_change_numbers = dict(package_change_numbers or {})
        self.denied_apps = set(denied_apps)
        self.denied_packages = set(denied_packages)
        self.token_calls = []
        self.info_calls = []

    def get_access_tokens(self, app_ids, package_ids):
        self.token_calls.append((list(app_ids), list(package_ids)))
        return AccessTokensResult(
            app_tokens={i: 1000 + i for i in app_ids if i not in self.denied_apps},
            package_tokens={i: 5000 + i for i in package_ids if i not in self.denied_packages},
            app_denied={i for i in app_ids if i in self.denied_apps},
            package_denied={i for i in package_ids if i in self.denied_packages},
        )

    def get_product_info(self, app_requests, package_requests, metadata_only=False):
        self.info_calls.append(ProductInfoRequest(list(app_requests), list(package_requests), metadata_only))
        return ProductInfoResult(
            apps={r.id: ProductInfo(r.id, self.app_change_numbers.get(r.id, 1)) for r in app_requests},
            packages={r.id: ProductInfo(r.id, self.package_change_numbers.get(r.id, 1)) for r in package_requests},
            metadata_only=metadata_only,
        )


class RecordedJob:
    def __init__(self, work, metadata, on_complete):
        self.work = work
        self.metadata = metadata
        self.on_complete = on_complete
        self.done = False


class RecordingJobQueue:
    """Job queue that records submissions and runs them only on demand."""

    def __init__(self):
        self.jobs = []

    def submit(self, work, metadata=None, on_complete=None):
        job = RecordedJob(work, metadata, on_complete)
        self.jobs.append(job)
        return job

    @property
    def pending_job_count(self):
        return sum(1 for job in self.jobs if not job.done)

    @property
    def submitted(self):
        return [job.metadata for job in self.jobs]

    def run_all(self):
        """Run pending jobs in submission order, including follow-ups they submit."""
        index = 0
        while index < len(self.jobs):
            job = self.jobs[index]
            if not job.done:
                result = job.work()
                if job.on_complete is not None:
                    job.on_complete(result)
                job.done = True
            index += 1


class InlineTaskManager:
    """Task manager running tasks inline and only recording invocations."""

    def __init__(self, running=()):
        self.running = set(running)
        self.started = []
        self.factories = {}
        self.task_names = []
        self.errors = []

    @property
    def pending_task_count(self):
        return 0

    def run(self, fn, *args, name='task'):
        # Task errors are logged and dropped, like TaskManager.run
        self.task_names.append(name)
        try:
            return fn(*args)
        except Exception as e:
            self.errors.append(e)
            return None

    def is_running(self, kind):
        return kind in self.running

    def start_invocation(self, kind, coro_factory):
        if kind in self.running:
            return False
        self.started.append(kind)
        self.factories[kind] = coro_factory
        return True

    def running_invocations(self):
        return [{'kind': kind} for kind in sorted(self.running)]


class StubLoadMetrics:
    """Fixed load counters."""

    def __init__(self, pending_jobs=0, pending_tasks=0, in_flight_processing=0, held_exclusive_locks=0):
        self.values = {
            'pending_jobs': pending_jobs,
            'pending_tasks': pending_tasks,
            'in_flight_processing': in_flight_processing,
            'held_exclusive_locks': held_exclusive_locks,
        }

    def pending_jobs(self):
        return self.values['pending_jobs']

    def pending_tasks(self):
        return self.values['pending_tasks']

    def in_flight_processing(self):
        return self.values['in_flight_processing']

    def held_exclusive_locks(self):
        return self.values['held_exclusive_locks']


class ScriptedGate:
    """Gate answering is_busy() from a script; idle once the script runs out."""

    def __init__(self, busy_sequence=(), events=None):
        self.busy_sequence = list(busy_sequence)
        self.events = events if events is not None else []
        self.polls = 0

    def is_busy(self):
        self.polls += 1
        self.events.append('poll')
        if self.busy_sequence:
            return self.busy_sequence.pop(0)
        return False


class _TestConfig(TestingConfig):
    ADMIN_API_KEY = ADMIN_KEY


@pytest.fixture(scope='function')
def catalog_client():
    return FakeCatalogClient()


@pytest.fixture(scope='function')
def app(catalog_client):
    """Create application for testing, inside an app context."""
    app = create_app(_TestConfig, catalog_client=catalog_client)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

    get_sync_runtime(app).shutdown(wait=False)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {'X-API-Key': ADMIN_KEY}


@pytest.fixture
def store(app):
    return CatalogStore()


@pytest.fixture
def token_cache():
    return AccessTokenCache(None)


@pytest.fixture
def job_queue():
    return RecordingJobQueue()


@pytest.fixture
def task_manager():
    return InlineTaskManager()


@pytest.fixture
def load_metrics():
    return StubLoadMetrics()


@pytest.fixture
def service(store, token_cache, job_queue, task_manager, load_metrics, catalog_client):
    """Pipeline wired to recording fakes and an idle gate."""
    return FullUpdateService(
        store=store,
        token_cache=token_cache,
        job_queue=job_queue,
        task_manager=task_manager,
        gate=BackpressureGate(load_metrics),
        catalog_client=catalog_client,
        product_info_processor=ProductInfoProcessor(store, ProcessingTracker()),
        settings=SyncSettings(token_poll_interval_ms=0, metadata_poll_interval_ms=0),
    )


def seed_catalog(apps=(), packages=(), package_apps=()):
    """Insert catalog rows.

    Args:
        apps: app ids or (app_id, change_number) pairs
        packages: package ids or (package_id, change_number) pairs
        package_apps: (package_id, app_id, type) triples
    """
    for entry in apps:
        app_id, change_number = entry if isinstance(entry, tuple) else (entry, None)
        db.session.add(App(app_id=app_id, change_number=change_number))
    for entry in packages:
        package_id, change_number = entry if isinstance(entry, tuple) else (entry, None)
        db.session.add(Package(package_id=package_id, change_number=change_number))
    for package_id, app_id, content_type in package_apps:
        db.session.add(PackageApp(package_id=package_id, app_id=app_id, type=content_type))
    db.session.commit()
