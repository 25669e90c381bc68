"""
Path utilities for DPC.

Centralizes path canonicalization, scan-root validation and the default
catalog location used across the CLI and service layers.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

CATALOG_DIR_NAME = "durable-project-catalog"
CATALOG_FILE_NAME = "catalog.db"


@dataclass
class PathValidationResult:
    """Result of path validation.

    Attributes:
        valid: True if the path can be used as a scan root.
        error_message: Human-readable error message if validation failed.
    """
    valid: bool
    error_message: Optional[str] = None


def canonicalize_path(path: str | Path) -> str:
    """
    Canonicalize a path for use as a catalog key.

    Expands `~`, makes the path absolute, resolves symlinks and removes
    `.`/`..` components. Paths that do not exist are still normalized
    (resolution is non-strict), so lookups for vanished directories work.
    """
    p = Path(path).expanduser()
    try:
        return str(p.resolve())
    except (OSError, RuntimeError):
        return os.path.normpath(os.path.abspath(p))


def validate_scan_root(path: str | Path) -> PathValidationResult:
    """
    Validate that a path is usable as a scan root.

    Checks that the path exists, is a directory, and can be listed.
    """
    try:
        p = Path(path).expanduser()

        if not p.exists():
            return PathValidationResult(
                valid=False,
                error_message=f"Scan root '{path}' does not exist"
            )

        if not p.is_dir():
            return PathValidationResult(
                valid=False,
                error_message=f"Scan root '{path}' is not a directory"
            )

        if not os.access(p, os.R_OK | os.X_OK):
            return PathValidationResult(
                valid=False,
                error_message=f"Scan root '{path}' is not readable"
            )

        return PathValidationResult(valid=True)

    except (OSError, ValueError) as e:
        return PathValidationResult(
            valid=False,
            error_message=f"Invalid scan root '{path}': {e}"
        )


def default_data_dir() -> Path:
    """Return the user's local data directory ($XDG_DATA_HOME or ~/.local/share)."""
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg).expanduser()
    return Path.home() / ".local" / "share"


def default_catalog_path() -> Path:
    """Default location of the catalog database file."""
    return default_data_dir() / CATALOG_DIR_NAME / CATALOG_FILE_NAME


def default_config_dir() -> Path:
    """Return the user's config directory ($XDG_CONFIG_HOME or ~/.config)."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg).expanduser() / "dpc"
    return Path.home() / ".config" / "dpc"


def display_path(path: str | Path) -> str:
    """Format a path for display, abbreviating the home directory as `~`."""
    text = str(path)
    home = str(Path.home())
    if text == home:
        return "~"
    if text.startswith(home.rstrip(os.sep) + os.sep):
        return "~" + text[len(home.rstrip(os.sep)):]
    return text
