"""
Tests for the ranking engine: fuzzy matching, frecency and result ordering.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from dpc.core.rules import ConfigurationError, Hint
from dpc.infrastructure.catalog_store import ProjectRecord
from dpc.services.ranking import (
    DEFAULT_WEIGHTS,
    RankingWeights,
    frecency,
    fuzzy_match,
    is_exact_match,
    search,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_record(path, visits=0, last_visited=None, last_scanned=NOW):
    return ProjectRecord(
        path=path,
        name=path.rstrip("/").rsplit("/", 1)[-1],
        hints=frozenset({Hint.GIT}),
        first_seen=NOW - timedelta(days=100),
        last_scanned=last_scanned,
        visit_count=visits,
        last_visited=last_visited,
    )


class TestFuzzyMatch:
    def test_subsequence_required(self):
        assert fuzzy_match("dpc", "/home/u/durable-project-catalog") is not None
        assert fuzzy_match("cpd", "/home/u/dpc") is None

    def test_case_insensitive(self):
        assert fuzzy_match("API", "/srv/api") == fuzzy_match("api", "/srv/api")

    def test_empty_query_matches_with_zero_quality(self):
        assert fuzzy_match("", "/anything") == 0.0

    def test_contiguous_beats_scattered(self):
        assert fuzzy_match("abc", "/p/abc") > fuzzy_match("abc", "/p/axbxc")

    def test_segment_boundary_beats_mid_word(self):
        assert fuzzy_match("core", "/src/core") > fuzzy_match("core", "/src/score")

    def test_best_alignment_is_chosen(self):
        # The leftmost "p" would give a scattered match; the later one is contiguous
        scattered_only = fuzzy_match("proj", "/xpxrxoxj/zzzz")
        best_of_both = fuzzy_match("proj", "/xpxrxoxj/proj")
        assert best_of_both > scattered_only

    def test_shorter_path_scores_higher(self):
        assert fuzzy_match("app", "/a/app") > fuzzy_match("app", "/a/very/long/prefix/app")


class TestFrecency:
    def test_never_visited_is_baseline(self):
        assert frecency(make_record("/p/a"), NOW) == DEFAULT_WEIGHTS.baseline

    def test_half_life(self):
        record = make_record("/p/a", visits=4, last_visited=NOW - timedelta(days=7))

        assert frecency(record, NOW) == pytest.approx(DEFAULT_WEIGHTS.baseline + 2.0)

    def test_future_visit_counts_as_now(self):
        record = make_record("/p/a", visits=3, last_visited=NOW + timedelta(hours=5))

        assert frecency(record, NOW) == pytest.approx(DEFAULT_WEIGHTS.baseline + 3.0)

    def test_decreases_with_age(self):
        recent = make_record("/p/a", visits=5, last_visited=NOW - timedelta(days=1))
        old = make_record("/p/a", visits=5, last_visited=NOW - timedelta(days=30))

        assert frecency(recent, NOW) > frecency(old, NOW) > DEFAULT_WEIGHTS.baseline

    def test_custom_half_life(self):
        weights = RankingWeights(half_life_days=1.0)
        record = make_record("/p/a", visits=8, last_visited=NOW - timedelta(days=3))

        assert frecency(record, NOW, weights) == pytest.approx(weights.baseline + 1.0)


class TestSearch:
    def test_exact_name_match_ranks_first(self):
        exact = make_record("/a/myproject", visits=0)
        popular = make_record("/b/myprojectx", visits=1000, last_visited=NOW)

        hits = search("myproject", [popular, exact], now=NOW)

        assert [h.path for h in hits] == ["/a/myproject", "/b/myprojectx"]
        assert hits[0].exact is True
        assert hits[1].exact is False

    def test_exact_full_path_match(self):
        assert is_exact_match("/A/MyProject/", make_record("/a/myproject"))

    def test_non_matching_candidates_dropped(self):
        hits = search("zzz", [make_record("/a/app"), make_record("/b/lib")], now=NOW)

        assert hits == []

    def test_frecency_breaks_equal_quality(self):
        rarely = make_record("/p/api-one", visits=1, last_visited=NOW - timedelta(days=3))
        often = make_record("/p/api-two", visits=20, last_visited=NOW - timedelta(days=1))

        hits = search("api", [rarely, often], now=NOW)

        assert hits[0].path == "/p/api-two"

    def test_score_combines_quality_and_frecency(self):
        record = make_record("/p/tool", visits=2, last_visited=NOW)

        [hit] = search("tool", [record], now=NOW)

        expected = hit.match_quality + DEFAULT_WEIGHTS.frecency_weight * math.log1p(hit.frecency)
        assert hit.score == pytest.approx(expected)

    def test_ties_broken_by_last_scanned_then_path(self):
        older = make_record("/p/svc-b", last_scanned=NOW - timedelta(days=2))
        newer = make_record("/p/svc-a", last_scanned=NOW)
        newest_twin = make_record("/p/svc-c", last_scanned=NOW)

        hits = search("svc", [older, newest_twin, newer], now=NOW)

        assert [h.path for h in hits] == ["/p/svc-a", "/p/svc-c", "/p/svc-b"]

    def test_empty_query_ranks_by_frecency(self):
        idle = make_record("/p/idle")
        busy = make_record("/p/busy", visits=9, last_visited=NOW)

        hits = search("", [idle, busy], now=NOW)

        assert [h.path for h in hits] == ["/p/busy", "/p/idle"]

    def test_limit(self):
        records = [make_record(f"/p/app{i}") for i in range(10)]

        assert len(search("app", records, now=NOW, limit=3)) == 3


class TestRankingWeights:
    @pytest.mark.parametrize(
        "kwargs", [{"half_life_days": 0}, {"frecency_weight": -1}, {"baseline": 0}]
    )
    def test_invalid_weights(self, kwargs):
        with pytest.raises(ConfigurationError):
            RankingWeights(**kwargs)
