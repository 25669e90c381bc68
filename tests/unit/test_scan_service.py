"""
Tests for ScanService: scanning into the catalog, re-scans and cleaning.
"""

import threading
from datetime import timedelta

import pytest

from dpc.core.project_scanner import utc_now
from dpc.core.rules import ConfigurationError, Hint, RuleConfiguration
from dpc.infrastructure.catalog_store import CatalogStore
from dpc.services.scan_service import ScanService
from tests.scanner_test_utils import canonical, make_tree


@pytest.fixture
def rules():
    return RuleConfiguration.from_strings(
        indicators=["package.json", ".git"], exclusions=["node_modules"]
    )


@pytest.fixture
def service(store, rules):
    return ScanService(store=store, rules=rules)


@pytest.fixture
def work(tmp_path):
    return make_tree(
        tmp_path / "work",
        ["app/package.json", "app/node_modules/lib/package.json", ".git/"],
    )


class TestScan:
    def test_catalogs_discoveries_and_records_run(self, service, store, work):
        run = service.scan([work])

        paths = {r.path for r in store.all_projects()}
        assert paths == {canonical(work), canonical(work / "app")}
        assert store.get(work / "app").hints == frozenset({Hint.PACKAGE_JSON})
        assert store.get(work).last_scan_run_id == run.run_id

        [history] = service.history()
        assert history.run_id == run.run_id
        assert history.discovered_count == 2
        assert history.finished_at is not None

    def test_rescan_is_idempotent(self, service, store, work):
        service.scan([work])
        store.record_visit(work / "app")
        before = {r.path: r for r in store.all_projects()}

        service.scan([work])
        after = {r.path: r for r in store.all_projects()}

        assert after.keys() == before.keys()
        for path, record in after.items():
            assert record.first_seen == before[path].first_seen
            assert record.visit_count == before[path].visit_count
            assert record.last_scanned >= before[path].last_scanned

    def test_each_scan_gets_a_distinct_run_id(self, service, work):
        first = service.scan([work])
        second = service.scan([work])

        assert first.run_id != second.run_id
        assert len(service.history()) == 2

    def test_projects_outside_scanned_roots_are_kept(self, service, store, tmp_path, work):
        other = make_tree(tmp_path / "other", ["svc/.git/"])
        service.scan([other])

        service.scan([work])

        assert store.get(other / "svc") is not None

    def test_invalid_root_rejected_before_anything_is_recorded(self, service, tmp_path):
        with pytest.raises(ConfigurationError):
            service.scan([tmp_path / "missing"])

        assert service.history() == []

    def test_rules_override(self, service, store, work):
        only_git = RuleConfiguration.from_strings(indicators=[".git"])

        service.scan([work], rules=only_git)

        assert [r.path for r in store.all_projects()] == [canonical(work)]


class TestClean:
    def test_removes_stale_projects(self, service, store, tmp_path):
        stale = make_tree(tmp_path / "stale", [".git/"])
        store.upsert(stale, {Hint.GIT}, scanned_at=utc_now() - timedelta(days=45))
        fresh = make_tree(tmp_path / "fresh", [".git/"])
        store.upsert(fresh, {Hint.GIT})

        assert service.clean(30, dry_run=True) == [canonical(stale)]
        assert store.get(stale) is not None

        assert service.clean(30) == [canonical(stale)]
        assert store.get(stale) is None
        assert store.get(fresh) is not None

    def test_missing_directories(self, service, store, tmp_path):
        store.upsert(tmp_path / "deleted", {Hint.GIT})

        assert service.clean(30) == []
        assert service.clean(30, missing=True) == [canonical(tmp_path / "deleted")]
        assert store.all_projects() == []

    def test_negative_age_rejected(self, service):
        with pytest.raises(ValueError):
            service.clean(-1)


class TestInterruptedScan:
    def test_partial_results_are_committed_and_run_marked_cancelled(self, service, store, tmp_path):
        root = make_tree(tmp_path / "many", [f"p{i}/package.json" for i in range(30)])

        def interrupt_after_first(scanned, found, current):
            if found >= 1:
                raise KeyboardInterrupt

        run = service.scan([root], progress_callback=interrupt_after_first)

        assert run.cancelled is True
        committed = [r for r in store.all_projects() if r.last_scan_run_id == run.run_id]
        assert len(committed) == run.discovered_count >= 1

        [history] = service.history()
        assert history.cancelled is True
        assert history.finished_at is not None
        assert history.discovered_count == run.discovered_count


class TestConcurrentScans:
    def test_two_scans_share_one_catalog(self, rules, tmp_path):
        db = tmp_path / "shared.db"
        first_root = make_tree(tmp_path / "first", [f"p{i}/package.json" for i in range(15)])
        second_root = make_tree(tmp_path / "second", [f"q{i}/.git/" for i in range(15)])
        with CatalogStore(db) as setup:
            setup.initialize()
        runs, errors = [], []

        def run_scan(root):
            with CatalogStore(db) as own_store:
                try:
                    runs.append(ScanService(own_store, rules).scan([root, tmp_path / "first"]))
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=run_scan, args=(r,)) for r in (first_root, second_root)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len({run.run_id for run in runs}) == 2
        with CatalogStore(db) as check:
            assert len(check.all_projects()) == 30
            history = check.recent_scan_runs()
        assert len(history) == 2
        assert all(h.finished_at is not None and not h.cancelled for h in history)


class TestIncrementalScan:
    def test_recently_scanned_root_is_skipped(self, service, work):
        service.scan([work])

        assert service.scan([work], skip_recent=timedelta(hours=1)) is None
        assert len(service.history()) == 1

    def test_only_stale_roots_are_scanned(self, service, store, work, tmp_path):
        service.scan([work])
        other = make_tree(tmp_path / "other", ["svc/.git/"])

        run = service.scan([work, other], skip_recent=timedelta(hours=1))

        assert run.roots == [canonical(other)]
        assert store.get(other / "svc").last_scan_run_id == run.run_id

    def test_zero_window_rescans_everything(self, service, work):
        service.scan([work])

        run = service.scan([work], skip_recent=timedelta(0))

        assert run is not None
        assert run.roots == [canonical(work)]

    def test_cancelled_scan_does_not_count_as_recent(self, service, work):
        cancel = threading.Event()
        cancel.set()
        service.scan([work], cancel_event=cancel)

        assert service.scan([work], skip_recent=timedelta(hours=1)) is not None


class TestHistoryRetention:
    def test_project_age_does_not_erase_history(self, service, work):
        service.scan([work])

        service.clean(0)

        assert len(service.history()) == 1

    def test_history_days_prunes_runs(self, service, store, work):
        service.scan([work])
        store.begin_scan_run([canonical(work)], utc_now() - timedelta(days=120))

        service.clean(30, history_days=90)

        assert len(service.history()) == 1

    def test_dry_run_keeps_history(self, service, work):
        service.scan([work])

        service.clean(0, dry_run=True, history_days=0)

        assert len(service.history()) == 1

    def test_negative_history_days_rejected(self, service):
        with pytest.raises(ValueError):
            service.clean(30, history_days=-1)
