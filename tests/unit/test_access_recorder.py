"""
Tests for AccessRecorder: visit recording and jump resolution.
"""

from datetime import datetime, timedelta, timezone

import pytest

from dpc.core.rules import Hint
from dpc.services.access_recorder import AccessRecorder
from tests.scanner_test_utils import canonical

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def recorder(store):
    return AccessRecorder(store, clock=lambda: NOW)


def _catalog(store, tmp_path, name, visits=0):
    path = tmp_path / name
    path.mkdir(parents=True, exist_ok=True)
    store.upsert(path, {Hint.GIT}, scanned_at=NOW - timedelta(days=1))
    for i in range(visits):
        store.record_visit(path, NOW - timedelta(hours=i + 1))
    return canonical(path)


class TestRecord:
    def test_cataloged_path(self, store, recorder, tmp_path):
        path = _catalog(store, tmp_path, "app")

        assert recorder.record(path) is True
        record = store.get(path)
        assert record.visit_count == 1
        assert record.last_visited == NOW

    def test_uncataloged_path_is_silent_no_op(self, store, recorder, tmp_path):
        _catalog(store, tmp_path, "app")

        assert recorder.record(str(tmp_path / "elsewhere")) is False
        assert store.get(tmp_path / "elsewhere") is None

    def test_relative_spelling_is_canonicalized(self, store, recorder, tmp_path):
        path = _catalog(store, tmp_path, "app")
        (tmp_path / "other").mkdir()

        assert recorder.record(str(tmp_path / "other" / ".." / "app")) is True
        assert store.get(path).visit_count == 1


class TestJump:
    def test_fuzzy_query_picks_best_and_records_visit(self, store, recorder, tmp_path):
        api = _catalog(store, tmp_path, "payments-api", visits=3)
        _catalog(store, tmp_path, "docs")

        assert recorder.jump("payapi") == api
        assert store.get(api).visit_count == 4

    def test_existing_cataloged_directory_wins(self, store, recorder, tmp_path):
        target = _catalog(store, tmp_path, "web")
        _catalog(store, tmp_path, "webapp", visits=50)

        assert recorder.jump(target) == target

    def test_exact_name_wins_over_frecency(self, store, recorder, tmp_path):
        exact = _catalog(store, tmp_path, "myproject")
        _catalog(store, tmp_path, "myprojectx", visits=30)

        assert recorder.jump("myproject") == exact

    def test_no_match(self, store, recorder, tmp_path):
        _catalog(store, tmp_path, "app")

        assert recorder.jump("zzzz") is None

    def test_empty_query_picks_most_frecent(self, store, recorder, tmp_path):
        _catalog(store, tmp_path, "quiet")
        busy = _catalog(store, tmp_path, "busy", visits=5)

        assert recorder.jump() == busy

    def test_vanished_directories_are_skipped(self, store, recorder, tmp_path):
        gone = tmp_path / "service-old"
        store.upsert(gone, {Hint.GIT}, scanned_at=NOW)
        for _ in range(10):
            store.record_visit(gone, NOW)
        alive = _catalog(store, tmp_path, "service")

        assert recorder.jump("serv") == alive


class TestComplete:
    def test_ranked_paths_without_recording(self, store, recorder, tmp_path):
        first = _catalog(store, tmp_path, "tool-a", visits=4)
        second = _catalog(store, tmp_path, "tool-b")

        assert recorder.complete("tool") == [first, second]
        assert store.get(first).visit_count == 4
        assert store.get(second).visit_count == 0

    def test_limit(self, store, recorder, tmp_path):
        for i in range(5):
            _catalog(store, tmp_path, f"lib{i}")

        assert len(recorder.complete("lib", limit=2)) == 2
