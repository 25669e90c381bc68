"""
Catalog Store implementation.

SQLite-based persistent catalog of discovered projects, their hints,
visit history and scan provenance.
"""

import json
import logging
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional

from dpc.core.path_utils import canonicalize_path
from dpc.core.rules import Hint

from .models import (
    CatalogCorruptError,
    CatalogError,
    CatalogLockedError,
    CatalogNotFoundError,
    CatalogStats,
    ProjectNotFoundError,
    ProjectRecord,
    ProjectType,
    ScanRunRecord,
)
from .queries import CatalogQueryExecutor, from_db_time, to_db_time
from .schema import initialize_schema

if TYPE_CHECKING:
    from dpc.core.project_scanner import ScanRun

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_MS = 5000
_RUN_ID_ATTEMPTS = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_hints(raw: Optional[str]) -> frozenset[Hint]:
    if not raw:
        return frozenset()
    hints = set()
    for value in raw.split(","):
        try:
            hints.add(Hint(value))
        except ValueError:
            logger.debug(f"Ignoring unknown hint in catalog: {value}")
    return frozenset(hints)


def _row_to_record(row: sqlite3.Row) -> ProjectRecord:
    return ProjectRecord(
        path=row["path"],
        name=row["name"],
        hints=_parse_hints(row["hints"]),
        first_seen=from_db_time(row["first_seen"]),
        last_scanned=from_db_time(row["last_scanned"]),
        visit_count=row["visit_count"] or 0,
        last_visited=from_db_time(row["last_visited"]),
        last_scan_run_id=row["last_scan_run_id"],
    )


def _row_to_scan_run(row: sqlite3.Row) -> ScanRunRecord:
    return ScanRunRecord(
        run_id=row["run_id"],
        roots=json.loads(row["roots"]),
        started_at=from_db_time(row["started_at"]),
        finished_at=from_db_time(row["finished_at"]),
        discovered_count=row["discovered_count"],
        directories_scanned=row["directories_scanned"],
        excluded_count=row["excluded_count"],
        skipped_count=row["skipped_count"],
        cancelled=bool(row["cancelled"]),
    )


def _translate_error(e: sqlite3.Error, action: str) -> CatalogError:
    """Map a sqlite3 error to the precise catalog error for the caller."""
    message = str(e).lower()
    if "locked" in message or "busy" in message:
        return CatalogLockedError(f"Catalog is locked by another process ({action}): {e}")
    if "not a database" in message or "malformed" in message or "corrupt" in message:
        return CatalogCorruptError(f"Catalog database is corrupt ({action}): {e}")
    return CatalogError(f"Failed to {action}: {e}")


class CatalogStore:
    """
    SQLite-based project catalog.

    Every write commits its own transaction, so readers in other processes
    see each upserted project as soon as it lands. A single connection is
    shared under a lock, which also serializes writers within a process.
    """

    def __init__(self, db_path: Path | str, must_exist: bool = False):
        """
        Args:
            db_path: Catalog database file.
            must_exist: Raise CatalogNotFoundError instead of creating a new
                catalog when the file is missing.
        """
        self._db_path = Path(db_path).expanduser()
        self._must_exist = must_exist
        self._conn: Optional[sqlite3.Connection] = None
        self._query: Optional[CatalogQueryExecutor] = None
        self._initialized = False
        self._lock = threading.RLock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            if self._must_exist and not self._db_path.exists():
                raise CatalogNotFoundError(
                    f"Catalog not found at {self._db_path}; run a scan to create it"
                )
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CatalogError(
                    f"Failed to create catalog directory {self._db_path.parent}: {e}"
                ) from e

            try:
                conn = sqlite3.connect(
                    str(self._db_path),
                    timeout=_BUSY_TIMEOUT_MS / 1000,
                    check_same_thread=False,
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS};")
                conn.execute("PRAGMA foreign_keys=ON;")
            except sqlite3.Error as e:
                raise _translate_error(e, f"open catalog {self._db_path}") from e

            self._conn = conn
            self._query = CatalogQueryExecutor(conn)
        return self._conn

    def initialize(self) -> None:
        """Initialize or migrate the database schema."""
        with self._lock:
            if self._initialized:
                return
            conn = self._get_connection()
            try:
                initialize_schema(conn)
                self._initialized = True
                logger.debug(f"Initialized catalog store: {self._db_path}")
            except sqlite3.Error as e:
                raise _translate_error(e, "initialize catalog schema") from e

    def _ensure_query(self) -> CatalogQueryExecutor:
        """Ensure query executor is available."""
        self.initialize()
        assert self._query is not None
        return self._query

    # ─────────────────────────────────────────────────────────────────
    # Project Operations
    # ─────────────────────────────────────────────────────────────────

    def upsert(
        self,
        path: Path | str,
        hints: Iterable[Hint],
        scanned_at: Optional[datetime] = None,
        run_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Insert a project or refresh an existing one.

        Existing projects get new hints, name and last_scanned; their
        first_seen and visit fields are left untouched. New projects start
        with visit_count=0 and no last_visited.

        Raises:
            ValueError: If hints is empty.
        """
        hint_values = sorted({Hint(h).value for h in hints})
        if not hint_values:
            raise ValueError(f"A project needs at least one hint: {path}")

        canonical = canonicalize_path(path)
        display_name = name or os.path.basename(canonical) or canonical
        timestamp = to_db_time(scanned_at or _utc_now())
        with self._lock:
            try:
                self._ensure_query().upsert_project(
                    canonical, display_name, hint_values, timestamp, run_id
                )
            except sqlite3.Error as e:
                raise _translate_error(e, f"upsert project {canonical}") from e

    def get(self, path: Path | str) -> Optional[ProjectRecord]:
        """Get a project by path, or None if it is not cataloged."""
        canonical = canonicalize_path(path)
        with self._lock:
            try:
                row = self._ensure_query().get_project(canonical)
            except sqlite3.Error as e:
                raise _translate_error(e, "get project") from e
        return _row_to_record(row) if row is not None else None

    def query(
        self,
        text: str = "",
        hint: Optional[Hint] = None,
        project_type: Optional[ProjectType] = None,
        limit: Optional[int] = None,
    ) -> List[ProjectRecord]:
        """
        List projects whose path or name contains text (case-insensitive).

        Results are ordered by last_scanned, newest first. Relevance
        ordering is the ranking engine's job.
        """
        with self._lock:
            try:
                rows = self._ensure_query().query_projects(
                    text=text,
                    hint=Hint(hint).value if hint is not None else None,
                    limit=None if project_type is not None else limit,
                )
            except sqlite3.Error as e:
                raise _translate_error(e, "query projects") from e

        records = [_row_to_record(row) for row in rows]
        if project_type is not None:
            records = [r for r in records if r.project_type is project_type]
            if limit is not None:
                records = records[:limit]
        return records

    def all_projects(self) -> List[ProjectRecord]:
        """Get every cataloged project."""
        return self.query()

    def record_visit(self, path: Path | str, visited_at: Optional[datetime] = None) -> None:
        """
        Count a visit to a cataloged project.

        Raises:
            ProjectNotFoundError: If the path is not cataloged.
        """
        canonical = canonicalize_path(path)
        with self._lock:
            try:
                updated = self._ensure_query().record_visit(
                    canonical, to_db_time(visited_at or _utc_now())
                )
            except sqlite3.Error as e:
                raise _translate_error(e, "record visit") from e
        if updated == 0:
            raise ProjectNotFoundError(canonical)
        logger.debug(f"Recorded visit: {canonical}")

    def delete(self, path: Path | str) -> bool:
        """Delete a project. Returns True if it was cataloged."""
        canonical = canonicalize_path(path)
        with self._lock:
            try:
                return self._ensure_query().delete_projects([canonical]) > 0
            except sqlite3.Error as e:
                raise _translate_error(e, "delete project") from e

    def prune(
        self,
        older_than: timedelta,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Remove projects not refreshed by any scan within older_than.

        Returns:
            Paths removed, or that would be removed when dry_run is True.
        """
        cutoff = to_db_time((now or _utc_now()) - older_than)
        with self._lock:
            try:
                query = self._ensure_query()
                stale = query.get_paths_scanned_before(cutoff)
                if not dry_run and stale:
                    query.delete_projects(stale)
            except sqlite3.Error as e:
                raise _translate_error(e, "prune stale projects") from e

        if stale:
            verb = "Would remove" if dry_run else "Removed"
            logger.info(f"{verb} {len(stale)} project(s) not scanned since {cutoff}")
        return stale

    def prune_missing(self, dry_run: bool = False) -> List[str]:
        """
        Remove projects whose directory no longer exists on disk.

        Returns:
            Paths removed, or that would be removed when dry_run is True.
        """
        with self._lock:
            try:
                query = self._ensure_query()
                missing = [p for p in query.get_all_paths() if not os.path.isdir(p)]
                if not dry_run and missing:
                    query.delete_projects(missing)
            except sqlite3.Error as e:
                raise _translate_error(e, "prune missing projects") from e
        return missing

    # ─────────────────────────────────────────────────────────────────
    # Statistics
    # ─────────────────────────────────────────────────────────────────

    def stats(self) -> CatalogStats:
        """Get aggregate catalog statistics."""
        with self._lock:
            try:
                query = self._ensure_query()
                row = query.get_aggregate_stats()
                hint_counts = query.get_hint_breakdown()
                hint_sets = query.get_all_hint_sets()
                runs = query.get_scan_run_summary()
            except sqlite3.Error as e:
                raise _translate_error(e, "get stats") from e

        type_counts: dict[str, int] = {}
        for raw in hint_sets:
            project_type = ProjectType.from_hints(_parse_hints(raw)).value
            type_counts[project_type] = type_counts.get(project_type, 0) + 1

        return CatalogStats(
            total_projects=row["total_projects"],
            hint_counts=hint_counts,
            type_counts=dict(sorted(type_counts.items(), key=lambda kv: (-kv[1], kv[0]))),
            total_visits=row["total_visits"],
            visited_projects=row["visited_projects"],
            scan_runs=runs["runs"],
            last_scan_at=from_db_time(runs["last_finished"]),
            database_size_bytes=self.database_size_bytes(),
        )

    def database_size_bytes(self) -> int:
        """Size of the catalog file plus its write-ahead log."""
        total = 0
        for suffix in ("", "-wal"):
            candidate = Path(str(self._db_path) + suffix)
            try:
                total += candidate.stat().st_size
            except OSError:
                continue
        return total

    # ─────────────────────────────────────────────────────────────────
    # Scan Runs
    # ─────────────────────────────────────────────────────────────────

    def begin_scan_run(self, roots: List[str], started_at: Optional[datetime] = None) -> str:
        """
        Register a new scan run and return its unique id.

        The id is drawn fresh and re-drawn on the (unlikely) chance it is
        already taken, so two scans never share a run_id.
        """
        roots_json = json.dumps(list(roots))
        timestamp = to_db_time(started_at or _utc_now())
        with self._lock:
            query = self._ensure_query()
            for _ in range(_RUN_ID_ATTEMPTS):
                run_id = uuid.uuid4().hex
                try:
                    query.insert_scan_run(run_id, roots_json, timestamp)
                    return run_id
                except sqlite3.IntegrityError:
                    logger.debug(f"Scan run id collision, drawing again: {run_id}")
                except sqlite3.Error as e:
                    raise _translate_error(e, "begin scan run") from e
        raise CatalogError("Could not allocate a unique scan run id")

    def finish_scan_run(self, run: "ScanRun") -> None:
        """Store the final counts of a scan run."""
        with self._lock:
            try:
                self._ensure_query().finish_scan_run(
                    run.run_id,
                    to_db_time(run.finished_at or _utc_now()),
                    run.discovered_count,
                    run.directories_scanned,
                    run.excluded_count,
                    run.skipped_count,
                    run.cancelled,
                )
            except sqlite3.Error as e:
                raise _translate_error(e, "finish scan run") from e

    def recent_scan_runs(self, limit: int = 10) -> List[ScanRunRecord]:
        """Get the most recent scan runs, newest first."""
        with self._lock:
            try:
                rows = self._ensure_query().get_recent_scan_runs(limit)
            except sqlite3.Error as e:
                raise _translate_error(e, "list scan runs") from e
        return [_row_to_scan_run(row) for row in rows]

    def root_scanned_since(self, root: Path | str, cutoff: datetime) -> bool:
        """
        True if a finished, uncancelled scan run started at or after cutoff
        listed root among its roots.
        """
        key = canonicalize_path(root)
        with self._lock:
            try:
                stored = self._ensure_query().get_completed_run_roots_since(to_db_time(cutoff))
            except sqlite3.Error as e:
                raise _translate_error(e, "read scan history") from e
        return any(key in json.loads(roots) for roots in stored)

    def prune_scan_runs(self, older_than: timedelta, now: Optional[datetime] = None) -> int:
        """Delete scan run history older than older_than. Returns count deleted."""
        cutoff = to_db_time((now or _utc_now()) - older_than)
        with self._lock:
            try:
                return self._ensure_query().delete_scan_runs_before(cutoff)
            except sqlite3.Error as e:
                raise _translate_error(e, "prune scan runs") from e

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def backup(self, destination: Path | str) -> Path:
        """Write a consistent copy of the catalog using SQLite's online backup."""
        destination = Path(destination).expanduser()
        destination.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            conn = self._get_connection()
            self.initialize()
            try:
                target = sqlite3.connect(str(destination))
                try:
                    conn.backup(target)
                finally:
                    target.close()
            except sqlite3.Error as e:
                raise _translate_error(e, f"back up catalog to {destination}") from e
        logger.info(f"Catalog backed up to {destination}")
        return destination

    def restore(self, source: Path | str) -> None:
        """
        Replace the catalog contents with a backup made by backup().

        The copy runs through SQLite's online backup in the reverse direction,
        then the schema is re-checked so an older backup is migrated on use.

        Raises:
            FileNotFoundError: If source does not exist
            CatalogCorruptError: If source is not a catalog database
        """
        source = Path(source).expanduser()
        if not source.is_file():
            raise FileNotFoundError(f"Backup file not found: {source}")
        with self._lock:
            conn = self._get_connection()
            try:
                origin = sqlite3.connect(str(source))
                try:
                    origin.backup(conn)
                finally:
                    origin.close()
            except sqlite3.Error as e:
                raise _translate_error(e, f"restore catalog from {source}") from e
            self._initialized = False
            self.initialize()
        logger.info(f"Catalog restored from {source}")

    def clear_all(self) -> None:
        """Clear all data from the catalog."""
        with self._lock:
            try:
                self._ensure_query().clear_all()
            except sqlite3.Error as e:
                raise _translate_error(e, "clear catalog") from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                self._query = None
                self._initialized = False

    def __enter__(self) -> "CatalogStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def create_catalog_store(db_path: Path | str, must_exist: bool = False) -> CatalogStore:
    """Factory function to create a catalog store."""
    return CatalogStore(db_path, must_exist=must_exist)
