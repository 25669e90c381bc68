"""
ProjectScanner module for DPC.

Provides bounded-depth, multi-threaded directory traversal that reports
project directories according to a RuleConfiguration.
"""

from .interfaces import DiscoverySink, ProgressCallback, ProjectScannerInterface
from .models import Discovery, ScanError, ScanErrorKind, ScanRun, utc_now
from .scanner import ProjectScanner

__all__ = [
    # Main classes
    "ProjectScanner",
    "ProjectScannerInterface",
    # Models
    "Discovery",
    "ScanError",
    "ScanErrorKind",
    "ScanRun",
    # Callback types
    "DiscoverySink",
    "ProgressCallback",
    # Utilities
    "utc_now",
]
