"""
Catalog schema definitions and migrations.

Schema versions are tracked in ``PRAGMA user_version``:

- 1: projects (path, name, first_seen, last_scanned), project_hints, scan_runs
- 2: adds visit tracking (visit_count, last_visited) and last_scan_run_id
"""

import logging
import sqlite3

from .models import CatalogSchemaError

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2

SCHEMA = """
-- Cataloged projects, keyed by canonical absolute path
CREATE TABLE IF NOT EXISTS projects (
    path TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    first_seen TEXT NOT NULL,
    last_scanned TEXT NOT NULL,
    last_scan_run_id TEXT,
    visit_count INTEGER NOT NULL DEFAULT 0,
    last_visited TEXT
);

-- Marker kinds found for each project
CREATE TABLE IF NOT EXISTS project_hints (
    path TEXT NOT NULL REFERENCES projects(path) ON DELETE CASCADE,
    hint TEXT NOT NULL,
    PRIMARY KEY (path, hint)
);

-- Scan run provenance
CREATE TABLE IF NOT EXISTS scan_runs (
    run_id TEXT PRIMARY KEY,
    roots TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    discovered_count INTEGER NOT NULL DEFAULT 0,
    directories_scanned INTEGER NOT NULL DEFAULT 0,
    excluded_count INTEGER NOT NULL DEFAULT 0,
    skipped_count INTEGER NOT NULL DEFAULT 0,
    cancelled INTEGER NOT NULL DEFAULT 0
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_projects_last_scanned
    ON projects(last_scanned);
CREATE INDEX IF NOT EXISTS idx_projects_name
    ON projects(name);
CREATE INDEX IF NOT EXISTS idx_projects_visits
    ON projects(visit_count DESC, last_visited DESC);
CREATE INDEX IF NOT EXISTS idx_hints_hint
    ON project_hints(hint);
CREATE INDEX IF NOT EXISTS idx_scan_runs_started
    ON scan_runs(started_at);
"""

# Columns added to the projects table after version 1
_V2_PROJECT_COLUMNS = {
    "visit_count": "INTEGER NOT NULL DEFAULT 0",
    "last_visited": "TEXT",
    "last_scan_run_id": "TEXT",
}


def get_schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    )
    return cursor.fetchone() is not None


def initialize_schema(conn: sqlite3.Connection) -> None:
    """
    Create or upgrade the catalog schema.

    Raises:
        CatalogSchemaError: If the catalog was written by a newer version.
    """
    version = get_schema_version(conn)
    if version > CURRENT_SCHEMA_VERSION:
        raise CatalogSchemaError(
            f"Catalog schema version {version} is newer than supported "
            f"version {CURRENT_SCHEMA_VERSION}; upgrade dpc or reset the catalog"
        )

    if _table_exists(conn, "projects"):
        migrate_schema(conn)

    conn.executescript(SCHEMA)
    conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
    conn.commit()


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Run schema migrations for existing catalogs."""
    cursor = conn.execute("PRAGMA table_info(projects)")
    columns = {row[1] for row in cursor.fetchall()}

    required = {"path", "name", "first_seen", "last_scanned"}
    missing_required = required - columns
    if missing_required:
        raise CatalogSchemaError(
            f"Catalog projects table is missing column(s): {', '.join(sorted(missing_required))}"
        )

    for column, definition in _V2_PROJECT_COLUMNS.items():
        if column not in columns:
            logger.info(f"Migrating catalog: adding {column} column to projects")
            conn.execute(f"ALTER TABLE projects ADD COLUMN {column} {definition}")
    conn.commit()
