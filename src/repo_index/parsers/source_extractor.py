"""Source extraction: turns a project directory into index entities.

:class:`SourceExtractor` is the seam the scan orchestrator depends on;
:class:`CSharpSourceExtractor` is the implementation for .NET repositories
and combines the build-descriptor, C# and configuration parsers.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from src.shared.constants import BUILD_OUTPUT_DIRS, GIT_MARKER_DIR
from src.shared.errors import ParsingError
from src.shared.models.index import AssemblyRecord, ExtractedSource, TypeRecord
from src.repo_index.parsers.config_parser import scan_config_keys
from src.repo_index.parsers.csharp_parser import CSharpParser
from src.repo_index.parsers.csproj_parser import find_csproj_files, parse_csproj_file

logger = logging.getLogger(__name__)


@runtime_checkable
class SourceExtractor(Protocol):
    """Anything that can extract index entities from a project root."""

    def extract(self, project_root: Path) -> ExtractedSource:
        ...


def find_source_files(project_dir: Path) -> list[Path]:
    """Return ``*.cs`` files under ``src/`` when it exists, else the whole tree."""
    src_dir = project_dir / "src"
    search_root = src_dir if src_dir.is_dir() else project_dir
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(search_root):
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in BUILD_OUTPUT_DIRS and d != GIT_MARKER_DIR
        )
        for filename in sorted(filenames):
            if filename.endswith(".cs"):
                found.append(Path(dirpath) / filename)
    return found


def find_solution_file(project_dir: Path) -> str | None:
    """Return the name of the first top-level ``*.sln`` file, if any."""
    solutions = sorted(p.name for p in project_dir.glob("*.sln") if p.is_file())
    return solutions[0] if solutions else None


class CSharpSourceExtractor:
    """Extracts assemblies, types and configuration keys from a .NET project.

    Malformed files are skipped and reported as warnings.  A project whose
    build descriptors *all* fail to parse is unusable and raises
    :class:`ParsingError`.
    """

    def __init__(self, parser: CSharpParser | None = None) -> None:
        self._parser = parser or CSharpParser()

    def extract(self, project_root: Path) -> ExtractedSource:
        project_root = Path(project_root)
        warnings: list[str] = []

        assemblies = self._extract_assemblies(project_root, warnings)
        types = self._extract_types(project_root, warnings)
        config_entries, config_warnings = scan_config_keys(project_root)
        warnings.extend(config_warnings)

        logger.debug(
            "Extracted %d assemblies, %d types, %d config keys from %s",
            len(assemblies), len(types), len(config_entries), project_root,
        )
        return ExtractedSource(
            assemblies=assemblies,
            types=types,
            config_entries=config_entries,
            warnings=warnings,
        )

    def _extract_assemblies(self, project_root: Path, warnings: list[str]) -> list[AssemblyRecord]:
        descriptors = find_csproj_files(project_root)
        assemblies: list[AssemblyRecord] = []
        for path in descriptors:
            try:
                assemblies.append(parse_csproj_file(path, project_root))
            except ParsingError as exc:
                logger.warning("%s", exc.detail)
                warnings.append(exc.detail)

        if descriptors and not assemblies:
            raise ParsingError(
                f"None of the {len(descriptors)} project files in "
                f"{project_root.name} could be parsed"
            )
        return assemblies

    def _extract_types(self, project_root: Path, warnings: list[str]) -> list[TypeRecord]:
        types: list[TypeRecord] = []
        for path in find_source_files(project_root):
            relative = path.relative_to(project_root).as_posix()
            try:
                source = path.read_bytes()
            except OSError as exc:
                message = f"Cannot read source file {relative}: {exc}"
                logger.warning("%s", message)
                warnings.append(message)
                continue
            types.extend(self._parser.parse_types(source, relative))
        return types
