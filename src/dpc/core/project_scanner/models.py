"""
Data models for the project scanner module.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from dpc.core.rules import Hint


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class ScanErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"


@dataclass(frozen=True)
class ScanError:
    """A directory that could not be listed and was skipped."""

    path: str
    kind: ScanErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message} ({self.kind.value})"


@dataclass(frozen=True)
class Discovery:
    """
    A project found during a scan.

    Attributes:
        path: Canonical absolute path of the project directory
        name: Final path component
        hints: Marker kinds matched directly inside the directory
        discovered_at: When the directory was classified
        run_id: Scan run that produced this discovery
        depth: Depth below the scan root (root is 0)
    """

    path: str
    name: str
    hints: frozenset[Hint]
    discovered_at: datetime
    run_id: str
    depth: int = 0


@dataclass
class ScanRun:
    """Summary of one scan invocation."""

    run_id: str
    roots: list[str]
    started_at: datetime
    finished_at: Optional[datetime] = None
    discovered_count: int = 0
    directories_scanned: int = 0
    excluded_count: int = 0
    skipped_count: int = 0
    errors: list[ScanError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
