"""
Sync Module Tests

Tests for the building blocks of the dispatch engine.
"""
import asyncio
import pytest

from conftest import ScriptedGate, StubLoadMetrics


class TestSplit:
    """Tests for batch splitting."""

    def test_split_with_remainder(self):
        """Test 450 ids in chunks of 200 give batches of 200, 200 and 50."""
        from catalog_mirror.services.sync.batching import split

        batches = list(split(list(range(450)), 200))

        assert [len(b) for b in batches] == [200, 200, 50]
        assert batches[0][0] == 0
        assert batches[2][-1] == 449

    def test_split_preserves_order(self):
        """Test concatenated batches equal the input."""
        from catalog_mirror.services.sync.batching import split

        items = [9, 7, 5, 3, 1]
        batches = list(split(items, 2))

        assert batches == [[9, 7], [5, 3], [1]]
        assert [i for b in batches for i in b] == items

    def test_split_empty(self):
        """Test an empty input yields no batches."""
        from catalog_mirror.services.sync.batching import split

        assert list(split([], 200)) == []

    @pytest.mark.parametrize('chunk_size', [0, -1])
    def test_split_rejects_invalid_chunk_size(self, chunk_size):
        """Test non-positive chunk sizes raise ValueError."""
        from catalog_mirror.services.sync.batching import split

        with pytest.raises(ValueError):
            list(split([1, 2, 3], chunk_size))


class TestBackpressureGate:
    """Tests for the busy predicate."""

    def test_idle(self):
        """Test no load is not busy."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(StubLoadMetrics())
        assert gate.is_busy() is False

    def test_pending_jobs_is_busy(self):
        """Test a pending job alone makes the gate busy."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(StubLoadMetrics(pending_jobs=1))
        assert gate.is_busy() is True

    def test_pending_tasks_is_busy(self):
        """Test a pending task alone makes the gate busy."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(StubLoadMetrics(pending_tasks=1))
        assert gate.is_busy() is True

    def test_thresholds_are_exclusive(self):
        """Test processing and locks exactly at their allowance are not busy."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(StubLoadMetrics(in_flight_processing=50, held_exclusive_locks=4))
        assert gate.is_busy() is False

    def test_processing_over_allowance(self):
        """Test more than 50 in-flight processing is busy."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(StubLoadMetrics(in_flight_processing=51))
        assert gate.is_busy() is True

    def test_locks_over_allowance(self):
        """Test more than 4 held exclusive locks is busy."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(StubLoadMetrics(held_exclusive_locks=5))
        assert gate.is_busy() is True

    def test_custom_thresholds(self):
        """Test thresholds are configurable."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(
            StubLoadMetrics(in_flight_processing=11),
            max_in_flight_processing=10,
        )
        assert gate.is_busy() is True

    def test_gate_samples_fresh_counters(self):
        """Test every call reads the provider again."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        metrics = StubLoadMetrics(pending_jobs=2)
        gate = BackpressureGate(metrics)
        assert gate.is_busy() is True

        metrics.values['pending_jobs'] = 0
        assert gate.is_busy() is False

    def test_snapshot_to_dict(self):
        """Test snapshots expose the four counters."""
        from catalog_mirror.services.sync.backpressure import BackpressureGate

        gate = BackpressureGate(StubLoadMetrics(1, 2, 3, 4))
        assert gate.snapshot().to_dict() == {
            'pending_jobs': 1,
            'pending_tasks': 2,
            'in_flight_processing': 3,
            'held_exclusive_locks': 4,
        }


class TestRuntimeLoadMetrics:
    """Tests for metrics backed by the live trackers."""

    def test_reads_trackers(self):
        """Test counters come from the queue, task manager and trackers."""
        from catalog_mirror.services.sync.backpressure import RuntimeLoadMetrics
        from catalog_mirror.services.sync.trackers import ExclusiveLockTracker, ProcessingTracker
        from conftest import InlineTaskManager, RecordingJobQueue

        queue = RecordingJobQueue()
        queue.submit(lambda: None)
        processing = ProcessingTracker()
        locks = ExclusiveLockTracker()
        metrics = RuntimeLoadMetrics(queue, InlineTaskManager(), processing, locks)

        with processing.track():
            with locks.hold(7):
                assert metrics.pending_jobs() == 1
                assert metrics.pending_tasks() == 0
                assert metrics.in_flight_processing() == 1
                assert metrics.held_exclusive_locks() == 1

        assert metrics.in_flight_processing() == 0
        assert metrics.held_exclusive_locks() == 0


class TestTrackers:
    """Tests for processing and exclusive lock trackers."""

    def test_processing_tracker_releases_on_error(self):
        """Test the count drops even if tracked work raises."""
        from catalog_mirror.services.sync.trackers import ProcessingTracker

        tracker = ProcessingTracker()
        with pytest.raises(RuntimeError):
            with tracker.track():
                assert tracker.count == 1
                raise RuntimeError('boom')

        assert tracker.count == 0

    def test_lock_is_exclusive(self):
        """Test a key cannot be held twice."""
        from catalog_mirror.services.sync.trackers import ExclusiveLockTracker

        tracker = ExclusiveLockTracker()
        with tracker.hold(42):
            with pytest.raises(RuntimeError):
                with tracker.hold(42):
                    pass
        assert tracker.held_count == 0


class TestDispatch:
    """Tests for the paced dispatch loop."""

    def test_submits_every_batch_in_order(self):
        """Test each batch is submitted once, in order."""
        from catalog_mirror.services.sync.dispatcher import dispatch

        submitted = []
        count = asyncio.run(dispatch([[1, 2], [3], [4]], submitted.append, 0, ScriptedGate()))

        assert count == 3
        assert submitted == [[1, 2], [3], [4]]

    def test_polls_after_submit_and_waits_while_busy(self):
        """Test the gate is checked after each submission and the next batch waits until idle."""
        from catalog_mirror.services.sync.dispatcher import dispatch

        events = []
        gate = ScriptedGate([True, True, False, False], events=events)

        def submit(batch):
            events.append(f'submit:{batch[0]}')

        asyncio.run(dispatch([[0], [1]], submit, 0, gate))

        assert events == ['submit:0', 'poll', 'poll', 'poll', 'submit:1', 'poll']

    def test_empty_batches(self):
        """Test nothing is submitted and the gate is never polled."""
        from catalog_mirror.services.sync.dispatcher import dispatch

        gate = ScriptedGate()
        count = asyncio.run(dispatch([], lambda batch: None, 0, gate))

        assert count == 0
        assert gate.polls == 0

    def test_gate_error_aborts(self):
        """Test an error while polling propagates to the caller."""
        from catalog_mirror.services.sync.dispatcher import dispatch

        class BrokenGate:
            def is_busy(self):
                raise RuntimeError('metrics unavailable')

        submitted = []
        with pytest.raises(RuntimeError):
            asyncio.run(dispatch([[1], [2]], submitted.append, 0, BrokenGate()))

        assert submitted == [[1]]

    def test_wait_until_idle_sleeps_first(self):
        """Test wait_until_idle always polls at least once."""
        from catalog_mirror.services.sync.dispatcher import wait_until_idle

        gate = ScriptedGate([False])
        assert asyncio.run(wait_until_idle(gate, 0)) == 1
        assert gate.polls == 1


class _StubStore:
    def __init__(self, highest_app_id=0, highest_package_id=0, app_ids=(), package_ids=()):
        self.highest_app_id = highest_app_id
        self.highest_package_id = highest_package_id
        self.app_ids = list(app_ids)
        self.package_ids = list(package_ids)
        self.calls = []

    def get_highest_app_id(self):
        self.calls.append('highest_app_id')
        return self.highest_app_id

    def get_highest_package_id(self):
        self.calls.append('highest_package_id')
        return self.highest_package_id

    def get_all_app_ids(self):
        self.calls.append('all_app_ids')
        return self.app_ids

    def get_all_package_ids(self):
        self.calls.append('all_package_ids')
        return self.package_ids

    def get_change_numbers(self, kind, ids):
        raise AssertionError('store must not be read')


class TestSelectTargets:
    """Tests for the enumeration strategy selector."""

    def test_enumerate_pads_highest_ids(self):
        """Test Enumerate covers every id up to the highest known plus padding."""
        from catalog_mirror.services.sync.enumeration import RunMode, select_targets
        from catalog_mirror.services.token_cache import AccessTokenCache

        store = _StubStore(highest_app_id=10, highest_package_id=5)
        apps, packages = select_targets(RunMode.ENUMERATE, store, AccessTokenCache())

        assert len(apps) == 50010
        assert apps[0] == 50009 and apps[-1] == 0
        assert len(packages) == 10005
        assert packages[0] == 10004 and packages[-1] == 0
        assert apps == sorted(set(apps), reverse=True)

    def test_tokens_only_uses_cache(self):
        """Test TokensOnly targets exactly the ids holding a token."""
        from catalog_mirror.services.catalog_client import AccessTokensResult
        from catalog_mirror.services.sync.enumeration import RunMode, select_targets
        from catalog_mirror.services.token_cache import AccessTokenCache

        cache = AccessTokenCache()
        cache.apply(AccessTokensResult(app_tokens={3: 30, 10: 100}, package_tokens={7: 70}))
        store = _StubStore()

        apps, packages = select_targets(RunMode.TOKENS_ONLY, store, cache)

        assert apps == [10, 3]
        assert packages == [7]
        assert store.calls == []

    def test_packages_normal_skips_apps(self):
        """Test PackagesNormal returns no apps and does not read them."""
        from catalog_mirror.services.sync.enumeration import RunMode, select_targets
        from catalog_mirror.services.token_cache import AccessTokenCache

        store = _StubStore(app_ids=[5, 4], package_ids=[3, 2, 1])
        apps, packages = select_targets(RunMode.PACKAGES_NORMAL, store, AccessTokenCache())

        assert apps == []
        assert packages == [3, 2, 1]
        assert 'all_app_ids' not in store.calls

    @pytest.mark.parametrize('mode_name', ['FULL_NORMAL', 'WITH_FORCED_DEPOTS', 'NORMAL_USING_METADATA'])
    def test_normal_modes_use_store(self, mode_name):
        """Test the remaining modes target every stored app and package."""
        from catalog_mirror.services.sync.enumeration import RunMode, select_targets
        from catalog_mirror.services.token_cache import AccessTokenCache

        store = _StubStore(app_ids=[5, 4], package_ids=[3])
        apps, packages = select_targets(RunMode[mode_name], store, AccessTokenCache())

        assert apps == [5, 4]
        assert packages == [3]


class TestRunMode:
    """Tests for run mode parsing."""

    @pytest.mark.parametrize('text, expected', [
        ('tokens_only', 'TOKENS_ONLY'),
        ('TokensOnly', 'TOKENS_ONLY'),
        ('with-forced-depots', 'WITH_FORCED_DEPOTS'),
        ('NormalUsingMetadata', 'NORMAL_USING_METADATA'),
        ('enumerate', 'ENUMERATE'),
    ])
    def test_parse(self, text, expected):
        """Test values, CamelCase and hyphenated names parse."""
        from catalog_mirror.services.sync.enumeration import RunMode

        assert RunMode.parse(text) is RunMode[expected]

    def test_parse_unknown(self):
        """Test unknown names raise ValueError."""
        from catalog_mirror.services.sync.enumeration import RunMode

        with pytest.raises(ValueError):
            RunMode.parse('everything')


class TestDetectChanges:
    """Tests for the metadata change detector."""

    def test_empty_input_skips_store(self):
        """Test no fresh pairs means no store read."""
        from catalog_mirror.services.sync.change_detector import EntityKind, detect_changes

        assert detect_changes(EntityKind.APP, [], _StubStore()) == set()

    def test_changed_and_unknown_ids(self, store):
        """Test moved and never-seen change numbers are both reported."""
        from catalog_mirror.services.sync.change_detector import EntityKind, detect_changes
        from conftest import seed_catalog

        seed_catalog(apps=[(1, 100), (2, 200)])

        changed = detect_changes(EntityKind.APP, [(1, 100), (2, 205), (3, 1)], store)

        assert changed == {2, 3}

    def test_null_change_number_counts_as_zero(self, store):
        """Test a stored entity without change number compares as 0."""
        from catalog_mirror.services.sync.change_detector import EntityKind, detect_changes
        from conftest import seed_catalog

        seed_catalog(packages=[10, (11, 4)])

        assert detect_changes(EntityKind.PACKAGE, [(10, 0), (11, 4)], store) == set()
        assert detect_changes(EntityKind.PACKAGE, [(10, 1)], store) == {10}

    def test_detector_does_not_write(self, store):
        """Test detection leaves persisted change numbers untouched."""
        from catalog_mirror.models import App
        from catalog_mirror.extensions import db
        from catalog_mirror.services.sync.change_detector import EntityKind, detect_changes
        from conftest import seed_catalog

        seed_catalog(apps=[(1, 100)])
        detect_changes(EntityKind.APP, [(1, 101)], store)

        assert db.session.get(App, 1).change_number == 100


class TestSyncRunLog:
    """Tests for SyncRunLog."""

    def test_finalize_completes(self):
        """Test a run without failure finalizes as completed."""
        from catalog_mirror.services.sync.log_collector import SyncRunLog

        run_log = SyncRunLog('full_run', mode='full_normal')
        run_log.record_requested(apps=3, packages=2)
        run_log.record_batch(SyncRunLog.BATCH_APP_TOKENS, 2)
        run_log.record_flush()

        data = run_log.finalize()

        assert data['status'] == 'completed'
        assert data['end_time'] is not None
        assert data['summary']['apps_requested'] == 3
        assert data['summary']['app_token_batches'] == 2
        assert data['summary']['token_cache_flushed'] is True

    def test_failed_run_stays_failed(self):
        """Test finalize keeps the failed status and error message."""
        from catalog_mirror.services.sync.log_collector import SyncRunLog

        run_log = SyncRunLog('metadata_run')
        run_log.fail(RuntimeError('store unavailable'))
        data = run_log.finalize()

        assert data['status'] == 'failed'
        assert data['error_message'] == 'store unavailable'
