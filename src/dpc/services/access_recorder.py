"""
Access recorder for shell integration.

Shell hooks call into this on every directory change and on every jump.
Unknown paths are never an error here: a hook must stay silent for
directories outside the catalog.
"""

import logging
import os
from datetime import datetime
from typing import Callable, Optional

from dpc.core.path_utils import canonicalize_path
from dpc.core.project_scanner import utc_now
from dpc.infrastructure.catalog_store import CatalogStore, ProjectNotFoundError
from dpc.services.ranking import DEFAULT_WEIGHTS, RankingWeights, SearchHit, search

logger = logging.getLogger(__name__)


class AccessRecorder:
    """Records visits and resolves jump queries against the catalog."""

    def __init__(
        self,
        store: CatalogStore,
        weights: RankingWeights = DEFAULT_WEIGHTS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._weights = weights
        self._clock = clock

    def record(self, path: str, visited_at: Optional[datetime] = None) -> bool:
        """
        Record a visit to path.

        Returns:
            True if the path is cataloged and the visit was counted,
            False if the path is not in the catalog.
        """
        try:
            self._store.record_visit(canonicalize_path(path), visited_at or self._clock())
        except ProjectNotFoundError:
            logger.debug(f"Visit ignored, not cataloged: {path}")
            return False
        return True

    def rank(self, query: str = "", limit: Optional[int] = None) -> list[SearchHit]:
        """Rank every cataloged project against query."""
        return search(
            query,
            self._store.all_projects(),
            now=self._clock(),
            weights=self._weights,
            limit=limit,
        )

    def resolve(self, query: str = "") -> Optional[str]:
        """
        Pick the directory a jump to query should land in, without recording.

        A query naming an existing cataloged directory wins outright.
        Otherwise the best ranked project whose directory still exists.
        """
        query = query.strip()
        if query:
            candidate = os.path.expanduser(query)
            if os.path.isdir(candidate):
                canonical = canonicalize_path(candidate)
                if self._store.get(canonical) is not None:
                    return canonical

        for hit in self.rank(query):
            if os.path.isdir(hit.path):
                return hit.path
            logger.debug(f"Skipping vanished project: {hit.path}")
        return None

    def jump(self, query: str = "") -> Optional[str]:
        """
        Resolve query to a project path and record a visit to it.

        Returns:
            The chosen absolute path, or None if nothing matches.
        """
        target = self.resolve(query)
        if target is None:
            logger.debug(f"No project matches {query!r}")
            return None
        self.record(target)
        return target

    def complete(self, query: str = "", limit: int = 10) -> list[str]:
        """Ranked paths for shell completion; no visit is recorded."""
        return [hit.path for hit in self.rank(query, limit=limit)]
