"""Scan orchestration: discover repositories, extract, and commit to the index.

A scan walks the immediate children of the configured root in name order.
Each directory is driven through the :mod:`scan_state` machine; extracted
projects are buffered in memory and only written once every directory has
reached a terminal state.  A failing project never aborts the batch.  After
the commit the flat view beside the index is merged with the scanned
projects.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from pathlib import Path

from src.repo_index.parsers.source_extractor import (
    CSharpSourceExtractor,
    SourceExtractor,
    find_solution_file,
)
from src.repo_index.services.change_detector import ChangeDetector, compute_fingerprint
from src.repo_index.services.git_client import GitClient
from src.repo_index.services.query_cache import NullQueryCache, QueryCache
from src.repo_index.services.scan_state import ProjectScan, create_project_scan_machine
from src.repo_index.storage.flat_view import FlatViewWriter
from src.repo_index.storage.index_store import IndexStore
from src.shared.cancellation import CancellationToken
from src.shared.config import RepoIndexConfig
from src.shared.constants import GIT_MARKER_DIR
from src.shared.errors import ScanCancelledError, StoreCorruptedError
from src.shared.models.index import ProjectRecord, ProjectSnapshot
from src.shared.models.scan import ProjectFailure, ProjectScanState, ScanSummary

logger = logging.getLogger(__name__)


def discover_directories(root: Path) -> list[Path]:
    """Return the non-hidden child directories of *root*, sorted by name."""
    return sorted(
        (p for p in root.iterdir() if p.is_dir() and not p.name.startswith(".")),
        key=lambda p: p.name,
    )


def resolve_internal_flags(snapshots: list[ProjectSnapshot], persisted_assemblies: set[str]) -> None:
    """Mark package references that name a known assembly as internal.

    *persisted_assemblies* holds the assembly names of indexed projects that
    are not being replaced.  Matching is case-insensitive.
    """
    known = {name.lower() for name in persisted_assemblies}
    for snapshot in snapshots:
        known.update(a.assembly_name.lower() for a in snapshot.assemblies)
    for snapshot in snapshots:
        for assembly in snapshot.assemblies:
            for ref in assembly.package_references:
                ref.is_internal = ref.name.lower() in known


class ScanOrchestrator:
    """Runs full and incremental scans of every repository under the root.

    Only one scan runs at a time; concurrent callers block on an internal
    lock until the running scan finishes.

    Args:
        config: Supplies the root directory and the index location.
        extractor: Turns a project directory into index entities.
        cache: Query cache to invalidate after a successful commit.
        git_client: Used to read each project's remote URL.
    """

    def __init__(
        self,
        config: RepoIndexConfig,
        extractor: SourceExtractor | None = None,
        cache: QueryCache | None = None,
        git_client: GitClient | None = None,
    ) -> None:
        self._config = config
        self._extractor = extractor or CSharpSourceExtractor()
        self._cache = cache if cache is not None else NullQueryCache()
        self._git = git_client or GitClient()
        self._lock = threading.Lock()

    @property
    def db_path(self) -> Path:
        return self._config.resolved_database_path

    def run(self, incremental: bool = True, cancel: CancellationToken | None = None) -> ScanSummary:
        """Scan the root and commit every changed project.

        Raises:
            ScanCancelledError: *cancel* was triggered; projects scanned so far
                are committed and the partial summary is attached.
            StoreCorruptedError: the index cannot be opened or written.
        """
        with self._lock:
            return self._run_locked(incremental, cancel)

    def rescan_project(self, name: str, cancel: CancellationToken | None = None) -> ScanSummary:
        """Forget one project's fingerprint and run an incremental scan."""
        with self._lock:
            if self.db_path.exists():
                store = IndexStore.open_existing(self.db_path)
                try:
                    if store.clear_fingerprint(name):
                        logger.info("[%s] Fingerprint cleared", name)
                finally:
                    store.close()
            return self._run_locked(True, cancel)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_locked(self, incremental: bool, cancel: CancellationToken | None) -> ScanSummary:
        started = time.perf_counter()
        root = Path(self._config.root_path)
        if not root.is_dir():
            message = f"Root path not found: {root}"
            logger.error("Scanner failed: %s", message)
            return ScanSummary(success=False, error=message, elapsed_seconds=time.perf_counter() - started)

        directories = discover_directories(root)
        logger.info("Found %d directories to scan", len(directories))

        store = IndexStore.open_or_create(self.db_path)
        try:
            fingerprints = store.read_fingerprints()
            detector = ChangeDetector(fingerprints, incremental=incremental)
            if incremental:
                logger.info("Incremental mode: loaded %d existing project fingerprints", len(fingerprints))

            scans: list[ProjectScan] = []
            cancelled = False
            for directory in directories:
                if cancel is not None and cancel.cancelled:
                    cancelled = True
                    break
                scan = ProjectScan(directory.name, directory)
                create_project_scan_machine(scan)
                self._scan_one(scan, detector)
                scans.append(scan)

            summary = self._commit(store, scans, prune=not incremental and not cancelled)
        except sqlite3.DatabaseError as exc:
            raise StoreCorruptedError(f"Index database at {self.db_path} could not be written: {exc}") from exc
        finally:
            store.close()

        self._cache.invalidate()
        summary.elapsed_seconds = time.perf_counter() - started
        logger.info(
            "Scan complete in %.1fs. %d projects scanned, %d skipped, %d failed, %d total types.",
            summary.elapsed_seconds, summary.project_count, summary.skipped_count,
            summary.failed_count, summary.type_count,
        )
        if cancelled:
            summary.cancelled = True
            raise ScanCancelledError(summary)
        return summary

    def _scan_one(self, scan: ProjectScan, detector: ChangeDetector) -> None:
        """Drive one directory to a terminal state."""
        name = scan.name
        if not (scan.path / GIT_MARKER_DIR).is_dir():
            logger.info("[%s] Skipped (not a git repo)", name)
            scan.skip_not_repo()
            return

        try:
            scan.fingerprint = compute_fingerprint(scan.path)
        except OSError as exc:
            logger.warning("[%s] Cannot fingerprint: %s", name, exc)
            scan.mark_failed(f"Cannot fingerprint project: {exc}")
            return

        if not detector.needs_scan(name, scan.fingerprint):
            logger.info("[%s] Skipped (unchanged)", name)
            scan.skip_unchanged()
            return

        logger.info("[%s] Scanning...", name)
        scan.start_scan()
        try:
            extracted = self._extractor.extract(scan.path)
            project = ProjectRecord(
                name=name,
                directory_path=str(scan.path),
                solution_file=find_solution_file(scan.path),
                remote_url=self._git.remote_url(scan.path),
            )
            scan.snapshot = ProjectSnapshot(
                project=project,
                assemblies=extracted.assemblies,
                types=extracted.types,
                config_entries=extracted.config_entries,
                fingerprint=scan.fingerprint,
            )
            scan.complete()
        except Exception as exc:  # one project's failure must not stop the batch
            logger.warning("[%s] Scan failed: %s", name, exc)
            scan.mark_failed(str(exc) or type(exc).__name__)
            return

        logger.info(
            "[%s] Found %d assemblies, %d types, %d config keys",
            name, len(extracted.assemblies), len(extracted.types), len(extracted.config_entries),
        )

    def _write_flat_view(self, snapshots: list[ProjectSnapshot], pruned: list[str]) -> None:
        writer = FlatViewWriter(self._config.flat_view_dir)
        try:
            writer.merge(snapshots, removed=pruned)
        except OSError as exc:
            # Index rows are already committed at this point.
            logger.warning("Flat view not written to %s: %s", writer.output_dir, exc)

    def _commit(self, store: IndexStore, scans: list[ProjectScan], prune: bool) -> ScanSummary:
        scanned = [s for s in scans if s.state == ProjectScanState.SCANNED.value]
        snapshots = [s.snapshot for s in scanned if s.snapshot is not None]

        replaced = {s.name for s in snapshots}
        resolve_internal_flags(snapshots, store.assembly_names(exclude_projects=replaced))
        for snapshot in snapshots:
            store.replace_project(snapshot)

        pruned: list[str] = []
        if prune:
            present = {
                s.name for s in scans
                if s.state != ProjectScanState.SKIPPED_NOT_REPO.value
            }
            for name in store.project_names():
                if name not in present and store.delete_project(name):
                    logger.info("[%s] Removed (directory no longer present)", name)
                    pruned.append(name)
            store.delete_fingerprint_rows(pruned)

        store.resolve_internal_packages()
        if self._config.flat_view_enabled:
            self._write_flat_view(snapshots, pruned)

        return ScanSummary(
            project_count=len(snapshots),
            type_count=sum(len(s.types) for s in snapshots),
            skipped_count=sum(
                1 for s in scans if s.state == ProjectScanState.SKIPPED_UNCHANGED.value
            ),
            pruned_count=len(pruned),
            failed_projects=[
                ProjectFailure(project_name=s.name, message=s.error or "Unknown error")
                for s in scans if s.state == ProjectScanState.FAILED.value
            ],
        )
