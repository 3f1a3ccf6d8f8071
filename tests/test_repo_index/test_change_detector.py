"""Tests for src.repo_index.services.change_detector.

Covers:
    1. Fingerprints are deterministic and ignore unrelated files
    2. Content, size and mtime changes alter the fingerprint
    3. bin/obj/.git are excluded
    4. needs_scan decisions in full and incremental mode
"""

from __future__ import annotations

import os
from pathlib import Path

from src.repo_index.services.change_detector import ChangeDetector, compute_fingerprint


def _project(tmp_path: Path) -> Path:
    root = tmp_path / "acme.caching"
    (root / "src").mkdir(parents=True)
    (root / "src" / "Caching.csproj").write_text("<Project />")
    (root / "src" / "CoherentCacheService.cs").write_text("class A {}")
    return root


class TestComputeFingerprint:
    """Hash of (path, mtime, size) for every *.cs and *.csproj file."""

    def test_deterministic(self, tmp_path: Path) -> None:
        root = _project(tmp_path)
        assert compute_fingerprint(root) == compute_fingerprint(root)
        assert len(compute_fingerprint(root)) == 64

    def test_unrelated_files_ignored(self, tmp_path: Path) -> None:
        root = _project(tmp_path)
        before = compute_fingerprint(root)
        (root / "README.md").write_text("docs")
        (root / "src" / "appsettings.json").write_text("{}")
        assert compute_fingerprint(root) == before

    def test_content_change(self, tmp_path: Path) -> None:
        root = _project(tmp_path)
        before = compute_fingerprint(root)
        (root / "src" / "CoherentCacheService.cs").write_text("class A { int x; }")
        assert compute_fingerprint(root) != before

    def test_touch_changes_fingerprint(self, tmp_path: Path) -> None:
        root = _project(tmp_path)
        target = root / "src" / "CoherentCacheService.cs"
        before = compute_fingerprint(root)
        stat = target.stat()
        os.utime(target, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))
        assert compute_fingerprint(root) != before

    def test_new_file(self, tmp_path: Path) -> None:
        root = _project(tmp_path)
        before = compute_fingerprint(root)
        (root / "src" / "ICoherentCache.cs").write_text("interface ICoherentCache {}")
        assert compute_fingerprint(root) != before

    def test_build_output_excluded(self, tmp_path: Path) -> None:
        root = _project(tmp_path)
        before = compute_fingerprint(root)
        for folder in ("bin", "obj", ".git"):
            (root / "src" / folder).mkdir()
            (root / "src" / folder / "Generated.cs").write_text("x")
        assert compute_fingerprint(root) == before

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert compute_fingerprint(tmp_path) == compute_fingerprint(tmp_path)


class TestChangeDetector:
    """Which projects need scanning."""

    def test_incremental(self) -> None:
        detector = ChangeDetector({"acme.core": "h1", "acme.caching": "h2"})

        assert detector.needs_scan("acme.core", "h1") is False
        assert detector.needs_scan("acme.caching", "changed") is True
        assert detector.needs_scan("acme.web.api", "h3") is True

    def test_full_mode_scans_everything(self) -> None:
        detector = ChangeDetector({"acme.core": "h1"}, incremental=False)

        assert detector.incremental is False
        assert detector.needs_scan("acme.core", "h1") is True

    def test_stored_mapping_is_copied(self) -> None:
        stored = {"acme.core": "h1"}
        detector = ChangeDetector(stored)
        stored["acme.core"] = "h2"
        assert detector.needs_scan("acme.core", "h1") is False
