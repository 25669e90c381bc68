"""
Abstract interfaces for project scanning operations.
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Optional

from dpc.core.rules import RuleConfiguration

from .models import Discovery, ScanRun

DiscoverySink = Callable[[Discovery], None]
ProgressCallback = Callable[[int, int, str], None]


class ProjectScannerInterface(ABC):
    """
    Abstract interface for project scanning operations.

    Implementations walk one or more roots with bounded depth and report
    each discovered project through a sink callback. They never persist
    anything themselves.
    """

    @abstractmethod
    def scan(
        self,
        roots: Sequence[Path | str],
        rules: RuleConfiguration,
        sink: DiscoverySink,
        run_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ScanRun:
        """
        Scan roots for projects.

        Args:
            roots: Directories to start from
            rules: Validated indicator/exclusion rules and depth limit
            sink: Called synchronously, from the calling thread, per discovery
            run_id: Identifier for this run; generated if omitted
            cancel_event: Set by another thread to stop the scan early
            progress_callback: Optional callback(directories_scanned, discovered, path)

        Returns:
            ScanRun summary reflecting only the work actually completed

        Notes:
            - Unlistable directories are logged, counted and skipped
            - Invalid roots raise ConfigurationError before any traversal
        """
        pass
