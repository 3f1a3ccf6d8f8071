"""Tests for src.repo_index.parsers.source_extractor.

Covers:
    1. Full extraction of assemblies, types and config keys
    2. Source discovery prefers ``src/`` and skips build output
    3. A malformed descriptor becomes a warning when others parse
    4. All descriptors malformed raises ParsingError
    5. Solution file lookup
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.repo_index.parsers.source_extractor import (
    CSharpSourceExtractor,
    SourceExtractor,
    find_solution_file,
    find_source_files,
)
from src.shared.errors import ParsingError
from tests.conftest import write_csproj


@pytest.fixture
def extractor() -> CSharpSourceExtractor:
    return CSharpSourceExtractor()


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestExtract:
    """End-to-end extraction of one project root."""

    def test_extracts_everything(self, tmp_path: Path, extractor: CSharpSourceExtractor) -> None:
        write_csproj(tmp_path / "src" / "Caching" / "Caching.csproj", "Acme.Caching", {"Acme.Core": "1.2.0"})
        _write(
            tmp_path / "src" / "Caching" / "ICoherentCache.cs",
            "namespace Acme.Caching;\npublic interface ICoherentCache { }\n",
        )
        _write(
            tmp_path / "src" / "Caching" / "CoherentCacheService.cs",
            "namespace Acme.Caching;\npublic class CoherentCacheService : ICoherentCache { }\n",
        )
        _write(tmp_path / "src" / "Caching" / "appsettings.json", '{"Caching": {"DefaultTtlSeconds": 300}}')

        result = extractor.extract(tmp_path)

        assert [a.assembly_name for a in result.assemblies] == ["Acme.Caching"]
        assert {t.name for t in result.types} == {"ICoherentCache", "CoherentCacheService"}
        service = next(t for t in result.types if t.name == "CoherentCacheService")
        assert service.file_path == "src/Caching/CoherentCacheService.cs"
        assert [c.key_name for c in result.config_entries] == ["Caching:DefaultTtlSeconds"]
        assert result.warnings == []

    def test_is_a_source_extractor(self, extractor: CSharpSourceExtractor) -> None:
        assert isinstance(extractor, SourceExtractor)

    def test_malformed_descriptor_is_a_warning(self, tmp_path: Path, extractor: CSharpSourceExtractor) -> None:
        write_csproj(tmp_path / "src" / "Good" / "Good.csproj", "Good")
        _write(tmp_path / "src" / "Bad" / "Bad.csproj", "<Project><oops>")

        result = extractor.extract(tmp_path)

        assert [a.assembly_name for a in result.assemblies] == ["Good"]
        assert len(result.warnings) == 1
        assert "Bad.csproj" in result.warnings[0]

    def test_all_descriptors_malformed_raises(self, tmp_path: Path, extractor: CSharpSourceExtractor) -> None:
        _write(tmp_path / "src" / "Bad" / "Bad.csproj", "<Project><oops>")

        with pytest.raises(ParsingError, match="None of the 1 project files"):
            extractor.extract(tmp_path)

    def test_no_descriptors_is_not_an_error(self, tmp_path: Path, extractor: CSharpSourceExtractor) -> None:
        _write(tmp_path / "Program.cs", "public class Program { }")

        result = extractor.extract(tmp_path)

        assert result.assemblies == []
        assert [t.name for t in result.types] == ["Program"]


class TestDiscovery:
    """File and solution discovery."""

    def test_prefers_src_directory(self, tmp_path: Path) -> None:
        _write(tmp_path / "src" / "A.cs", "")
        _write(tmp_path / "tests" / "ATests.cs", "")
        _write(tmp_path / "src" / "obj" / "Generated.cs", "")

        found = [p.relative_to(tmp_path).as_posix() for p in find_source_files(tmp_path)]
        assert found == ["src/A.cs"]

    def test_whole_tree_without_src(self, tmp_path: Path) -> None:
        _write(tmp_path / "Lib" / "A.cs", "")
        _write(tmp_path / "bin" / "B.cs", "")

        found = [p.relative_to(tmp_path).as_posix() for p in find_source_files(tmp_path)]
        assert found == ["Lib/A.cs"]

    def test_find_solution_file(self, tmp_path: Path) -> None:
        assert find_solution_file(tmp_path) is None
        _write(tmp_path / "Zeta.sln", "")
        _write(tmp_path / "Caching.sln", "")
        assert find_solution_file(tmp_path) == "Caching.sln"
