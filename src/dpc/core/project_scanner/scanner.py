"""
ProjectScanner implementation for bounded-depth project discovery.
"""

import logging
import os
import queue
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from dpc.core.path_utils import canonicalize_path, validate_scan_root
from dpc.core.rules import (
    ConfigurationError,
    Project,
    RuleConfiguration,
    classify,
    excluding_name,
)

from .interfaces import DiscoverySink, ProgressCallback, ProjectScannerInterface
from .models import Discovery, ScanError, ScanErrorKind, ScanRun, utc_now

logger = logging.getLogger(__name__)

# How long the consuming thread blocks on the event queue before re-checking
_POLL_INTERVAL = 0.1

_DONE = object()


@dataclass
class _TaskFailure:
    error: BaseException


@dataclass
class _ScanState:
    """Mutable state shared between worker threads for one scan."""

    rules: RuleConfiguration
    run_id: str
    cancel: threading.Event
    events: "queue.Queue[object]" = field(default_factory=queue.Queue)
    lock: threading.Lock = field(default_factory=threading.Lock)
    outstanding: int = 0
    directories_scanned: int = 0
    excluded_count: int = 0
    errors: list[ScanError] = field(default_factory=list)
    visited: set[str] = field(default_factory=set)
    current_path: str = ""


def _error_kind(exc: OSError) -> ScanErrorKind:
    if isinstance(exc, PermissionError):
        return ScanErrorKind.PERMISSION_DENIED
    if isinstance(exc, FileNotFoundError):
        return ScanErrorKind.NOT_FOUND
    return ScanErrorKind.IO_ERROR


class ProjectScanner(ProjectScannerInterface):
    """
    Concrete implementation of ProjectScannerInterface.

    Walks each root with a thread pool:
    - One task per root; the root task fans out one task per first-level
      subdirectory, which then walks its subtree depth-first
    - Excluded directories are pruned before they are ever listed
    - Project directories are reported and still descended into
    - Workers only enqueue discoveries; the calling thread is the single
      consumer and the only caller of the sink
    - Symlinked directories are skipped unless the rules enable following,
      in which case a visited set of real paths breaks cycles
    """

    def __init__(self, max_workers: int = 4):
        """
        Initialize the ProjectScanner.

        Args:
            max_workers: Number of threads listing directories concurrently.
        """
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        self._max_workers = max_workers

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @staticmethod
    def resolve_roots(roots: Sequence[Path | str]) -> list[str]:
        """
        Validate and canonicalize scan roots, dropping duplicates.

        Raises:
            ConfigurationError: Naming the first invalid root.
        """
        if not roots:
            raise ConfigurationError("At least one scan root is required")

        resolved: list[str] = []
        for root in roots:
            validation = validate_scan_root(root)
            if not validation.valid:
                raise ConfigurationError(validation.error_message)
            canonical = canonicalize_path(root)
            if canonical not in resolved:
                resolved.append(canonical)
        return resolved

    def scan(
        self,
        roots: Sequence[Path | str],
        rules: RuleConfiguration,
        sink: DiscoverySink,
        run_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ScanRun:
        """Scan roots for projects, reporting each discovery through sink."""
        resolved_roots = self.resolve_roots(roots)

        state = _ScanState(
            rules=rules,
            run_id=run_id or uuid.uuid4().hex,
            cancel=cancel_event or threading.Event(),
        )
        run = ScanRun(run_id=state.run_id, roots=resolved_roots, started_at=utc_now())
        logger.info(
            f"Scan {run.run_id} started: {len(resolved_roots)} root(s), "
            f"max_depth={rules.max_depth}, workers={self._max_workers}"
        )

        executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="dpc-scan"
        )
        # Held until every root is submitted, so an early finisher cannot end the scan
        with state.lock:
            state.outstanding += 1
        try:
            for root in resolved_roots:
                self._submit(executor, state, self._scan_root, executor, state, root)
            self._release(state)
            self._consume(state, run, sink, progress_callback)
        except KeyboardInterrupt:
            logger.warning(f"Scan {run.run_id} interrupted; keeping partial results")
            state.cancel.set()
            executor.shutdown(wait=True, cancel_futures=True)
            self._drain(state, run, sink)
        except BaseException:
            state.cancel.set()
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        with state.lock:
            run.directories_scanned = state.directories_scanned
            run.excluded_count = state.excluded_count
            run.errors = list(state.errors)
            run.skipped_count = len(state.errors)
        run.cancelled = state.cancel.is_set()
        run.finished_at = utc_now()

        logger.info(
            f"Scan {run.run_id} {'cancelled' if run.cancelled else 'finished'}: "
            f"{run.discovered_count} project(s), {run.directories_scanned} dir(s), "
            f"{run.skipped_count} skipped, {run.duration_seconds:.2f}s"
        )
        return run

    # ─────────────────────────────────────────────────────────────────
    # Consumer side (calling thread)
    # ─────────────────────────────────────────────────────────────────

    def _consume(
        self,
        state: _ScanState,
        run: ScanRun,
        sink: DiscoverySink,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        while True:
            try:
                item = state.events.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if progress_callback is not None:
                    progress_callback(
                        state.directories_scanned, run.discovered_count, state.current_path
                    )
                continue

            if item is _DONE:
                return
            if isinstance(item, _TaskFailure):
                raise item.error
            self._deliver(item, run, sink)
            if progress_callback is not None:
                progress_callback(state.directories_scanned, run.discovered_count, item.path)

    def _drain(self, state: _ScanState, run: ScanRun, sink: DiscoverySink) -> None:
        """Hand discoveries already queued before cancellation to the sink."""
        while True:
            try:
                item = state.events.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, Discovery):
                self._deliver(item, run, sink)

    @staticmethod
    def _deliver(discovery: Discovery, run: ScanRun, sink: DiscoverySink) -> None:
        # Counted first: an interrupt after the sink commits must not undercount
        run.discovered_count += 1
        try:
            sink(discovery)
        except Exception:
            run.discovered_count -= 1
            raise

    # ─────────────────────────────────────────────────────────────────
    # Worker side
    # ─────────────────────────────────────────────────────────────────

    def _submit(self, executor: ThreadPoolExecutor, state: _ScanState, fn, *args) -> None:
        with state.lock:
            state.outstanding += 1
        executor.submit(self._run_task, state, fn, args)

    @staticmethod
    def _run_task(state: _ScanState, fn, args) -> None:
        try:
            fn(*args)
        except BaseException as e:
            state.cancel.set()
            state.events.put(_TaskFailure(e))
        finally:
            ProjectScanner._release(state)

    @staticmethod
    def _release(state: _ScanState) -> None:
        with state.lock:
            state.outstanding -= 1
            finished = state.outstanding == 0
        if finished:
            state.events.put(_DONE)

    def _scan_root(self, executor: ThreadPoolExecutor, state: _ScanState, root: str) -> None:
        """List a root, report it if it qualifies, and fan out its children."""
        if state.cancel.is_set() or not self._mark_visited(state, root):
            return

        entries = self._list_directory(state, root)
        if entries is None:
            return

        # The root was named explicitly, so its own name is never excluded
        classification = classify("", [e.name for e in entries], (), state.rules)
        if isinstance(classification, Project):
            self._emit(state, root, classification, depth=0)

        if state.rules.max_depth < 1:
            return
        for entry in entries:
            if self._is_traversable(state, entry):
                self._submit(executor, state, self._walk, state, entry.path, 1, ())

    def _walk(
        self, state: _ScanState, start: str, start_depth: int, start_ancestors: tuple[str, ...]
    ) -> None:
        """Depth-first walk of one subtree below a root."""
        rules = state.rules
        stack: list[tuple[str, int, tuple[str, ...]]] = [(start, start_depth, start_ancestors)]

        while stack:
            if state.cancel.is_set():
                return
            path, depth, ancestors = stack.pop()
            name = os.path.basename(path)

            excluded_by = excluding_name(name, ancestors, rules)
            if excluded_by is not None:
                logger.debug(f"Pruning excluded directory: {path} (matched {excluded_by!r})")
                with state.lock:
                    state.excluded_count += 1
                continue

            if not self._mark_visited(state, path):
                logger.debug(f"Skipping already visited directory: {path}")
                continue

            entries = self._list_directory(state, path)
            if entries is None:
                continue

            classification = classify(name, [e.name for e in entries], ancestors, rules)
            if isinstance(classification, Project):
                self._emit(state, path, classification, depth)

            if depth >= rules.max_depth:
                continue
            child_ancestors = ancestors + (name,)
            for entry in entries:
                if self._is_traversable(state, entry):
                    stack.append((entry.path, depth + 1, child_ancestors))

    def _emit(self, state: _ScanState, path: str, classification: Project, depth: int) -> None:
        canonical = os.path.realpath(path) if state.rules.follow_symlinks else path
        logger.debug(
            f"Project found: {canonical} "
            f"[{', '.join(sorted(h.value for h in classification.hints))}]"
        )
        state.events.put(
            Discovery(
                path=canonical,
                name=os.path.basename(canonical) or canonical,
                hints=classification.hints,
                discovered_at=utc_now(),
                run_id=state.run_id,
                depth=depth,
            )
        )

    def _mark_visited(self, state: _ScanState, path: str) -> bool:
        """Record a directory's real path; False if it was already walked."""
        if not state.rules.follow_symlinks:
            return True
        real = os.path.realpath(path)
        with state.lock:
            if real in state.visited:
                return False
            state.visited.add(real)
        return True

    def _list_directory(self, state: _ScanState, path: str) -> Optional[list[os.DirEntry]]:
        """List immediate entries; errors are recorded and the directory skipped."""
        try:
            with os.scandir(path) as it:
                entries = list(it)
        except OSError as e:
            kind = _error_kind(e)
            logger.warning(f"Skipping unreadable directory: {path} - {e}")
            with state.lock:
                state.errors.append(ScanError(path=path, kind=kind, message=str(e)))
            return None

        with state.lock:
            state.directories_scanned += 1
            state.current_path = path
        return entries

    @staticmethod
    def _is_traversable(state: _ScanState, entry: os.DirEntry) -> bool:
        try:
            if entry.is_symlink():
                if not state.rules.follow_symlinks:
                    logger.debug(f"Skipping symlink (follow_symlinks=False): {entry.path}")
                    return False
                return entry.is_dir(follow_symlinks=True)
            return entry.is_dir(follow_symlinks=False)
        except OSError as e:
            logger.debug(f"Cannot stat entry {entry.path}: {e}")
            return False
