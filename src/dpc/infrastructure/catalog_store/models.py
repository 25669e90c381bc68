"""
Data models for the catalog store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from dpc.core.rules import Hint


class CatalogError(Exception):
    """Base exception for catalog store errors."""
    pass


class CatalogNotFoundError(CatalogError):
    """The catalog database file does not exist."""
    pass


class CatalogCorruptError(CatalogError):
    """The catalog file is not a valid SQLite database or is damaged."""
    pass


class CatalogLockedError(CatalogError):
    """Another process holds the catalog lock for longer than the busy timeout."""
    pass


class CatalogSchemaError(CatalogError):
    """The catalog schema cannot be used or migrated by this version."""
    pass


class ProjectNotFoundError(LookupError):
    """A path is not present in the catalog."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Project not in catalog: {path}")


class ProjectType(str, Enum):
    """Display classification derived from a project's hints."""

    RUST = "Rust"
    NODEJS = "Node.js"
    RUBY = "Ruby"
    PYTHON = "Python"
    GO = "Go"
    JAVA = "Java"
    GIT = "Git"
    NIX = "Nix"
    UNKNOWN = "Unknown"

    @classmethod
    def from_hints(cls, hints: Iterable[Hint]) -> "ProjectType":
        """Pick the most specific type; ecosystem manifests beat plain version control."""
        present = set(hints)
        for project_type, required in _TYPE_PRECEDENCE:
            if present & required:
                return project_type
        return cls.UNKNOWN

    @classmethod
    def parse(cls, value: str) -> "ProjectType":
        """Parse a type by value or name, case-insensitively ("node.js", "nodejs")."""
        wanted = value.strip().lower()
        for member in cls:
            if wanted in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown project type: {value}")


_TYPE_PRECEDENCE: list[tuple[ProjectType, frozenset[Hint]]] = [
    (ProjectType.RUST, frozenset({Hint.CARGO})),
    (ProjectType.NODEJS, frozenset({Hint.PACKAGE_JSON})),
    (ProjectType.RUBY, frozenset({Hint.GEMFILE, Hint.GEMSPEC})),
    (ProjectType.PYTHON, frozenset({Hint.PYPROJECT, Hint.REQUIREMENTS})),
    (ProjectType.GO, frozenset({Hint.GO_MOD})),
    (ProjectType.JAVA, frozenset({Hint.POM})),
    (ProjectType.GIT, frozenset({Hint.GIT})),
    (ProjectType.NIX, frozenset({Hint.DEVENV})),
]


@dataclass(frozen=True)
class ProjectRecord:
    """A cataloged project."""

    path: str
    name: str
    hints: frozenset[Hint]
    first_seen: datetime
    last_scanned: datetime
    visit_count: int = 0
    last_visited: Optional[datetime] = None
    last_scan_run_id: Optional[str] = None

    @property
    def project_type(self) -> ProjectType:
        return ProjectType.from_hints(self.hints)


@dataclass(frozen=True)
class ScanRunRecord:
    """A persisted scan run."""

    run_id: str
    roots: list[str]
    started_at: datetime
    finished_at: Optional[datetime]
    discovered_count: int
    directories_scanned: int
    excluded_count: int
    skipped_count: int
    cancelled: bool


@dataclass
class CatalogStats:
    """Aggregate catalog statistics."""

    total_projects: int = 0
    hint_counts: dict[str, int] = field(default_factory=dict)
    type_counts: dict[str, int] = field(default_factory=dict)
    total_visits: int = 0
    visited_projects: int = 0
    scan_runs: int = 0
    last_scan_at: Optional[datetime] = None
    database_size_bytes: int = 0
