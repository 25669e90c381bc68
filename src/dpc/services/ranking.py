"""
Ranking engine for DPC.

Pure functions that score catalog entries against a query by combining
fuzzy match quality with frecency (visit frequency decayed by recency).
No store access happens here; callers pass candidate records in.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from dpc.core.rules import ConfigurationError
from dpc.infrastructure.catalog_store import ProjectRecord

_SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class RankingWeights:
    """
    Tunable weights for match quality and frecency.

    Attributes:
        contiguous_bonus: Added for each matched character directly after the previous one
        boundary_bonus: Added for each matched character at a path segment start
        match_bonus: Added for every matched character
        length_penalty: Subtracted per character of the candidate path
        frecency_weight: Multiplier on log1p(frecency) in the final score
        half_life_days: Days after which a visit counts half as much
        baseline: Frecency of a never-visited project
    """

    contiguous_bonus: float = 2.0
    boundary_bonus: float = 3.0
    match_bonus: float = 1.0
    length_penalty: float = 0.01
    frecency_weight: float = 2.0
    half_life_days: float = 7.0
    baseline: float = 0.1

    def __post_init__(self) -> None:
        if self.half_life_days <= 0:
            raise ConfigurationError(
                f"half_life_days must be positive, got {self.half_life_days}"
            )
        if self.frecency_weight < 0:
            raise ConfigurationError(
                f"frecency_weight cannot be negative, got {self.frecency_weight}"
            )
        if self.baseline <= 0:
            raise ConfigurationError(f"baseline must be positive, got {self.baseline}")


DEFAULT_WEIGHTS = RankingWeights()


@dataclass(frozen=True)
class SearchHit:
    """A ranked search result."""

    record: ProjectRecord
    score: float
    match_quality: float
    frecency: float
    exact: bool = False

    @property
    def path(self) -> str:
        return self.record.path


def _greedy_positions(query: str, text: str, start: int) -> Optional[list[int]]:
    """Leftmost subsequence positions of query in text, with query[0] at start."""
    positions = [start]
    cursor = start + 1
    for char in query[1:]:
        index = text.find(char, cursor)
        if index == -1:
            return None
        positions.append(index)
        cursor = index + 1
    return positions


def _alignment_quality(positions: Sequence[int], text: str, weights: RankingWeights) -> float:
    quality = 0.0
    previous = -2
    for index in positions:
        quality += weights.match_bonus
        if index == previous + 1:
            quality += weights.contiguous_bonus
        if index == 0 or text[index - 1] == "/":
            quality += weights.boundary_bonus
        previous = index
    return quality


def fuzzy_match(
    query: str, text: str, weights: RankingWeights = DEFAULT_WEIGHTS
) -> Optional[float]:
    """
    Score a case-insensitive subsequence match of query against text.

    Every starting position of the first query character is tried and the
    best alignment wins, so "proj" prefers "/src/proj" over "/p/r/o/j".

    Returns:
        Match quality (higher is better), or None if query is not a
        subsequence of text. An empty query matches with quality 0.
    """
    if not query:
        return 0.0

    needle = query.lower()
    haystack = text.lower()

    best: Optional[float] = None
    start = haystack.find(needle[0])
    while start != -1:
        positions = _greedy_positions(needle, haystack, start)
        if positions is None:
            # Later starts only leave fewer characters to match
            break
        quality = _alignment_quality(positions, haystack, weights)
        if best is None or quality > best:
            best = quality
        start = haystack.find(needle[0], start + 1)

    if best is None:
        return None
    return best - weights.length_penalty * len(text)


def frecency(
    record: ProjectRecord, now: datetime, weights: RankingWeights = DEFAULT_WEIGHTS
) -> float:
    """
    Frequency decayed by recency.

    baseline + visit_count * 0.5 ** (elapsed_days / half_life_days).
    Never-visited projects score exactly the baseline, so they stay
    discoverable. Visits stamped in the future count as elapsed zero.
    """
    if record.visit_count <= 0 or record.last_visited is None:
        return weights.baseline
    elapsed_days = max(0.0, (now - record.last_visited).total_seconds() / _SECONDS_PER_DAY)
    decay = 0.5 ** (elapsed_days / weights.half_life_days)
    return weights.baseline + record.visit_count * decay


def is_exact_match(query: str, record: ProjectRecord) -> bool:
    """True if query equals the record's name or full path, ignoring case."""
    wanted = query.strip().lower()
    if not wanted:
        return False
    if len(wanted) > 1:
        wanted = wanted.rstrip("/")
    return wanted == record.name.lower() or wanted == record.path.lower()


def _sort_key(hit: SearchHit) -> tuple:
    return (
        not hit.exact,
        -hit.score,
        -hit.record.last_scanned.timestamp(),
        len(hit.record.path),
        hit.record.path,
    )


def search(
    query: str,
    candidates: Iterable[ProjectRecord],
    now: Optional[datetime] = None,
    weights: RankingWeights = DEFAULT_WEIGHTS,
    limit: Optional[int] = None,
) -> list[SearchHit]:
    """
    Rank candidates against a query.

    Non-matching candidates are dropped. Exact name or full-path matches come
    first regardless of frecency; the rest are ordered by
    match_quality + frecency_weight * log1p(frecency), then by more recent
    last_scanned, then by shorter path.

    Args:
        query: Fuzzy query; empty matches everything and ranks by frecency
        candidates: Records to rank
        now: Reference time for decay (defaults to the current UTC time)
        weights: Ranking weights
        limit: Maximum number of hits to return

    Returns:
        Ordered list of SearchHit, best first
    """
    now = now or datetime.now(timezone.utc)
    query = query.strip()

    hits = []
    for record in candidates:
        quality = fuzzy_match(query, record.path, weights)
        if quality is None:
            continue
        record_frecency = frecency(record, now, weights)
        hits.append(
            SearchHit(
                record=record,
                score=quality + weights.frecency_weight * math.log1p(record_frecency),
                match_quality=quality,
                frecency=record_frecency,
                exact=is_exact_match(query, record),
            )
        )

    hits.sort(key=_sort_key)
    if limit is not None:
        hits = hits[:limit]
    return hits
