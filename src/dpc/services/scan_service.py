"""
Scan Service for DPC.

Coordinates the scan workflow: root validation, run registration,
traversal, catalog upserts and run bookkeeping.
"""

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Sequence

from dpc.core.project_scanner import (
    Discovery,
    ProgressCallback,
    ProjectScanner,
    ProjectScannerInterface,
    ScanRun,
    utc_now,
)
from dpc.core.rules import RuleConfiguration
from dpc.infrastructure.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


class ScanService:
    """
    Service for scanning roots into the catalog.

    The scanner never touches the store itself; this service hands it a
    sink that upserts each discovery, so every project is committed as soon
    as it is found and a cancelled scan keeps what it already cataloged.
    """

    def __init__(
        self,
        store: CatalogStore,
        rules: RuleConfiguration,
        scanner: Optional[ProjectScannerInterface] = None,
    ):
        """
        Initialize the scan service.

        Args:
            store: Catalog to write discoveries into
            rules: Default rules used when scan() is not given any
            scanner: Traversal implementation (default: ProjectScanner)
        """
        self._store = store
        self._rules = rules
        self._scanner = scanner or ProjectScanner()

    @property
    def rules(self) -> RuleConfiguration:
        return self._rules

    def scan(
        self,
        roots: Sequence[Path | str],
        rules: Optional[RuleConfiguration] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
        skip_recent: Optional[timedelta] = None,
    ) -> Optional[ScanRun]:
        """
        Scan roots and catalog every project found.

        Projects outside the given roots are left untouched. With skip_recent,
        roots that a completed scan covered within that window are skipped;
        None is returned when that leaves nothing to scan.

        Raises:
            ConfigurationError: If a root is invalid; nothing is traversed or recorded.
            CatalogError: If the catalog cannot be written; the scan is stopped.
        """
        rules = rules or self._rules
        resolved = ProjectScanner.resolve_roots(roots)

        started_at = utc_now()
        if skip_recent is not None:
            resolved = self._stale_roots(resolved, started_at - skip_recent)
            if not resolved:
                return None
        run_id = self._store.begin_scan_run(resolved, started_at)

        def sink(discovery: Discovery) -> None:
            self._store.upsert(
                discovery.path,
                discovery.hints,
                scanned_at=discovery.discovered_at,
                run_id=discovery.run_id,
                name=discovery.name,
            )

        try:
            run = self._scanner.scan(
                resolved,
                rules,
                sink,
                run_id=run_id,
                cancel_event=cancel_event,
                progress_callback=progress_callback,
            )
        except Exception:
            logger.error(f"Scan {run_id} failed; run left unfinished in history")
            raise

        self._store.finish_scan_run(run)
        for error in run.errors:
            logger.debug(f"Skipped during scan: {error}")
        return run

    def _stale_roots(self, roots: List[str], cutoff: datetime) -> List[str]:
        stale = []
        for root in roots:
            if self._store.root_scanned_since(root, cutoff):
                logger.info(f"Skipping recently scanned root: {root}")
            else:
                stale.append(root)
        return stale

    def history(self, limit: int = 10):
        """Most recent scan runs, newest first."""
        return self._store.recent_scan_runs(limit)

    def clean(
        self,
        max_age_days: int,
        dry_run: bool = False,
        missing: bool = False,
        history_days: Optional[int] = None,
    ) -> List[str]:
        """
        Remove projects not refreshed by a scan within max_age_days.

        With missing=True, projects whose directory is gone are removed too.
        With history_days, scan runs older than that are dropped from history
        (never on a dry run); project staleness does not affect history.

        Returns:
            Removed paths (or, for a dry run, paths that would be removed).
        """
        if max_age_days < 0:
            raise ValueError(f"max_age_days cannot be negative: {max_age_days}")
        if history_days is not None and history_days < 0:
            raise ValueError(f"history_days cannot be negative: {history_days}")

        removed = self._store.prune(timedelta(days=max_age_days), dry_run=dry_run)
        if missing:
            already = set(removed)
            removed.extend(
                p for p in self._store.prune_missing(dry_run=dry_run) if p not in already
            )
        if history_days is not None and not dry_run:
            self._store.prune_scan_runs(timedelta(days=history_days))
        return sorted(removed)
