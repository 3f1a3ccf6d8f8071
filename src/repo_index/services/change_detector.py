"""Content fingerprints that decide whether a project must be rescanned."""
from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
from pathlib import Path

from src.shared.constants import BUILD_OUTPUT_DIRS, FINGERPRINT_PATTERNS, GIT_MARKER_DIR

logger = logging.getLogger(__name__)


def compute_fingerprint(project_dir: str | Path) -> str:
    """Return a SHA-256 fingerprint of a project's source tree.

    Every ``*.cs`` and ``*.csproj`` file outside ``bin``/``obj``
    contributes ``relative/path|mtime_ns|size``.  Entries are sorted
    case-insensitively by path before hashing, so the result only depends
    on file identity, size and modification time.  Touching a file without
    editing it changes the fingerprint; a spurious rescan is preferred over
    a missed change.
    """
    root = Path(project_dir)
    entries: list[str] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [
            d for d in dirnames
            if d not in BUILD_OUTPUT_DIRS and d != GIT_MARKER_DIR
        ]
        for filename in filenames:
            if not any(fnmatch.fnmatch(filename, p) for p in FINGERPRINT_PATTERNS):
                continue
            full_path = Path(dirpath) / filename
            try:
                stat = full_path.stat()
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", full_path, exc)
                continue
            relative = full_path.relative_to(root).as_posix()
            entries.append(f"{relative}|{stat.st_mtime_ns}|{stat.st_size}")

    entries.sort(key=str.casefold)
    combined = "\n".join(entries)
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


class ChangeDetector:
    """Compares current fingerprints against those stored by the last scan.

    Args:
        stored: Mapping of project name to the fingerprint recorded by the
            previous successful scan.  Empty when no prior run exists.
        incremental: When ``False`` every project is reported as changed.
    """

    def __init__(self, stored: dict[str, str], incremental: bool = True) -> None:
        self._stored = dict(stored)
        self._incremental = incremental

    @property
    def incremental(self) -> bool:
        return self._incremental

    def needs_scan(self, project_name: str, fingerprint: str) -> bool:
        """Decide whether *project_name* must be scanned.

        A project is scanned when incremental mode is off, when it has no
        stored fingerprint, or when the stored fingerprint differs.
        """
        if not self._incremental:
            return True
        previous = self._stored.get(project_name)
        if previous is None:
            return True
        return previous != fingerprint
