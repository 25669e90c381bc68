"""
Low-level SQL query executor for the catalog store.
"""

import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional

_PROJECT_COLUMNS = """
    p.path, p.name, p.first_seen, p.last_scanned, p.last_scan_run_id,
    p.visit_count, p.last_visited,
    (SELECT GROUP_CONCAT(h.hint, ',') FROM project_hints h WHERE h.path = p.path) AS hints
"""

_SCAN_RUN_COLUMNS = """
    run_id, roots, started_at, finished_at, discovered_count,
    directories_scanned, excluded_count, skipped_count, cancelled
"""


def to_db_time(value: datetime) -> str:
    """
    Serialize a datetime for storage.

    Always UTC with microseconds, so stored values sort correctly as text.
    """
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are treated as UTC."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class CatalogQueryExecutor:
    """Executes SQL queries for the catalog store."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    # ─────────────────────────────────────────────────────────────────
    # Project Operations
    # ─────────────────────────────────────────────────────────────────

    def get_project(self, path: str) -> Optional[sqlite3.Row]:
        """Get a single project by path."""
        cursor = self._conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects p WHERE p.path = ?",
            (path,),
        )
        return cursor.fetchone()

    def upsert_project(
        self,
        path: str,
        name: str,
        hints: Iterable[str],
        scanned_at: str,
        run_id: Optional[str],
    ) -> None:
        """
        Insert a project or refresh an existing one in one transaction.

        Visit fields and first_seen are only written on insert.
        """
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO projects
                    (path, name, first_seen, last_scanned, last_scan_run_id,
                     visit_count, last_visited)
                VALUES (?, ?, ?, ?, ?, 0, NULL)
                ON CONFLICT(path) DO UPDATE SET
                    name = excluded.name,
                    last_scanned = excluded.last_scanned,
                    last_scan_run_id = excluded.last_scan_run_id
                """,
                (path, name, scanned_at, scanned_at, run_id),
            )
            self._conn.execute("DELETE FROM project_hints WHERE path = ?", (path,))
            self._conn.executemany(
                "INSERT INTO project_hints (path, hint) VALUES (?, ?)",
                [(path, hint) for hint in sorted(set(hints))],
            )

    def record_visit(self, path: str, visited_at: str) -> int:
        """
        Increment the visit count and move last_visited forward.

        last_visited never moves backwards, so late or duplicate events
        cannot make a project look less recent.
        """
        with self._conn:
            cursor = self._conn.execute(
                """
                UPDATE projects SET
                    visit_count = visit_count + 1,
                    last_visited = CASE
                        WHEN last_visited IS NULL OR last_visited < ? THEN ?
                        ELSE last_visited
                    END
                WHERE path = ?
                """,
                (visited_at, visited_at, path),
            )
        return cursor.rowcount

    def delete_projects(self, paths: List[str]) -> int:
        """Delete projects and their hints. Returns count deleted."""
        if not paths:
            return 0
        with self._conn:
            self._conn.executemany(
                "DELETE FROM project_hints WHERE path = ?", [(p,) for p in paths]
            )
            cursor = self._conn.executemany(
                "DELETE FROM projects WHERE path = ?", [(p,) for p in paths]
            )
        return cursor.rowcount

    def query_projects(
        self,
        text: str = "",
        hint: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[sqlite3.Row]:
        """Substring match on path or name, newest scans first."""
        clauses = []
        params: list = []
        if text:
            pattern = _like_pattern(text)
            clauses.append("(p.path LIKE ? ESCAPE '\\' OR p.name LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern])
        if hint:
            clauses.append(
                "EXISTS (SELECT 1 FROM project_hints h WHERE h.path = p.path AND h.hint = ?)"
            )
            params.append(hint)

        sql = f"SELECT {_PROJECT_COLUMNS} FROM projects p"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY p.last_scanned DESC, p.path"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self._conn.execute(sql, params).fetchall()

    def get_paths_scanned_before(self, cutoff: str) -> List[str]:
        """Get paths whose last_scanned predates the cutoff."""
        cursor = self._conn.execute(
            "SELECT path FROM projects WHERE last_scanned < ? ORDER BY path", (cutoff,)
        )
        return [row["path"] for row in cursor.fetchall()]

    def get_all_paths(self) -> List[str]:
        cursor = self._conn.execute("SELECT path FROM projects ORDER BY path")
        return [row["path"] for row in cursor.fetchall()]

    # ─────────────────────────────────────────────────────────────────
    # Statistics
    # ─────────────────────────────────────────────────────────────────

    def get_aggregate_stats(self) -> sqlite3.Row:
        cursor = self._conn.execute(
            """
            SELECT
                COUNT(*) AS total_projects,
                COALESCE(SUM(visit_count), 0) AS total_visits,
                COALESCE(SUM(CASE WHEN visit_count > 0 THEN 1 ELSE 0 END), 0)
                    AS visited_projects
            FROM projects
            """
        )
        return cursor.fetchone()

    def get_hint_breakdown(self) -> dict[str, int]:
        cursor = self._conn.execute(
            """
            SELECT hint, COUNT(*) AS count FROM project_hints
            GROUP BY hint ORDER BY count DESC, hint
            """
        )
        return {row["hint"]: row["count"] for row in cursor.fetchall()}

    def get_all_hint_sets(self) -> List[Optional[str]]:
        cursor = self._conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects p"
        )
        return [row["hints"] for row in cursor.fetchall()]

    # ─────────────────────────────────────────────────────────────────
    # Scan Runs
    # ─────────────────────────────────────────────────────────────────

    def insert_scan_run(self, run_id: str, roots_json: str, started_at: str) -> None:
        """Insert a new run row; raises IntegrityError if the id is taken."""
        with self._conn:
            self._conn.execute(
                "INSERT INTO scan_runs (run_id, roots, started_at) VALUES (?, ?, ?)",
                (run_id, roots_json, started_at),
            )

    def finish_scan_run(
        self,
        run_id: str,
        finished_at: str,
        discovered_count: int,
        directories_scanned: int,
        excluded_count: int,
        skipped_count: int,
        cancelled: bool,
    ) -> int:
        with self._conn:
            cursor = self._conn.execute(
                """
                UPDATE scan_runs SET
                    finished_at = ?, discovered_count = ?, directories_scanned = ?,
                    excluded_count = ?, skipped_count = ?, cancelled = ?
                WHERE run_id = ?
                """,
                (
                    finished_at, discovered_count, directories_scanned,
                    excluded_count, skipped_count, int(cancelled), run_id,
                ),
            )
        return cursor.rowcount

    def get_recent_scan_runs(self, limit: int) -> List[sqlite3.Row]:
        cursor = self._conn.execute(
            f"SELECT {_SCAN_RUN_COLUMNS} FROM scan_runs ORDER BY started_at DESC LIMIT ?",
            (limit,),
        )
        return cursor.fetchall()

    def get_scan_run_summary(self) -> sqlite3.Row:
        cursor = self._conn.execute(
            "SELECT COUNT(*) AS runs, MAX(finished_at) AS last_finished FROM scan_runs"
        )
        return cursor.fetchone()

    def get_completed_run_roots_since(self, cutoff: str) -> List[str]:
        """Roots (as stored JSON) of finished, uncancelled runs started at or after cutoff."""
        cursor = self._conn.execute(
            """
            SELECT roots FROM scan_runs
            WHERE started_at >= ? AND finished_at IS NOT NULL AND cancelled = 0
            """,
            (cutoff,),
        )
        return [row["roots"] for row in cursor.fetchall()]

    def delete_scan_runs_before(self, cutoff: str) -> int:
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM scan_runs WHERE started_at < ?", (cutoff,)
            )
        return cursor.rowcount

    # ─────────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────────

    def clear_all(self) -> None:
        """Clear all tables."""
        with self._conn:
            self._conn.execute("DELETE FROM project_hints")
            self._conn.execute("DELETE FROM projects")
            self._conn.execute("DELETE FROM scan_runs")
