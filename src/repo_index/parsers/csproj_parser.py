"""Parser for MSBuild project files (``*.csproj``)."""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path

from src.shared.constants import BUILD_OUTPUT_DIRS, GIT_MARKER_DIR
from src.shared.errors import ParsingError
from src.shared.models.index import AssemblyRecord, PackageReference

logger = logging.getLogger(__name__)

_TEST_PATH_MARKERS = ("/test/", "/tests/", "benchmark")
_TEST_CONTENT_MARKERS = ("microsoft.net.test.sdk", "xunit", "nunit")


def find_csproj_files(project_dir: str | Path) -> list[Path]:
    """Return every ``*.csproj`` under *project_dir*, sorted, skipping build output."""
    root = Path(project_dir)
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in BUILD_OUTPUT_DIRS and d != GIT_MARKER_DIR
        )
        for filename in sorted(filenames):
            if filename.endswith(".csproj"):
                found.append(Path(dirpath) / filename)
    return found


def is_test_project(relative_path: str, content: str) -> bool:
    """Decide whether a build descriptor describes a test assembly.

    Either its path mentions a test or benchmark folder, or its content
    references a test SDK or framework.
    """
    path = "/" + relative_path.replace("\\", "/").lower()
    if any(marker in path for marker in _TEST_PATH_MARKERS):
        return True
    lowered = content.lower()
    return any(marker in lowered for marker in _TEST_CONTENT_MARKERS)


def _local(tag: str) -> str:
    """Strip an XML namespace from an element tag."""
    return tag.rsplit("}", 1)[-1]


def _first_text(root: ET.Element, name: str) -> str | None:
    for elem in root.iter():
        if _local(elem.tag) == name and elem.text and elem.text.strip():
            return elem.text.strip()
    return None


def parse_csproj(content: str, relative_path: str) -> AssemblyRecord:
    """Parse the text of one build descriptor.

    Args:
        content: Raw XML of the ``*.csproj`` file.
        relative_path: Path of the file relative to the project root,
            stored as-is on the returned record.

    Returns:
        The assembly described by the file.

    Raises:
        ParsingError: The content is not well-formed XML.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ParsingError(f"Malformed project file {relative_path}: {exc}") from exc

    normalized = relative_path.replace("\\", "/")
    stem = Path(normalized).stem

    target_framework = _first_text(root, "TargetFramework") or _first_text(root, "TargetFrameworks")

    packages: list[PackageReference] = []
    project_refs: list[str] = []
    for elem in root.iter():
        tag = _local(elem.tag)
        if tag == "PackageReference":
            name = (elem.get("Include") or "").strip()
            if not name:
                continue
            version = elem.get("Version")
            if version is None:
                version = next(
                    (
                        child.text.strip()
                        for child in elem
                        if _local(child.tag) == "Version" and child.text
                    ),
                    None,
                )
            packages.append(PackageReference(name=name, version=version))
        elif tag == "ProjectReference":
            include = (elem.get("Include") or "").strip()
            if include:
                project_refs.append(include)

    return AssemblyRecord(
        csproj_path=normalized,
        assembly_name=_first_text(root, "AssemblyName") or stem,
        target_framework=target_framework,
        output_type=_first_text(root, "OutputType"),
        is_test=is_test_project(normalized, content),
        package_references=packages,
        project_references=project_refs,
    )


def parse_csproj_file(path: Path, project_dir: Path) -> AssemblyRecord:
    """Read and parse a build descriptor on disk.

    Raises:
        ParsingError: The file cannot be read or is malformed.
    """
    relative = path.relative_to(project_dir).as_posix()
    try:
        content = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        raise ParsingError(f"Cannot read project file {relative}: {exc}") from exc
    return parse_csproj(content, relative)
