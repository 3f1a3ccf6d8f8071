"""Tests for src.repo_index.services.graph_engine.GraphQueryEngine.

Covers:
    1. trace_flow: implementors and injectors of an interface
    2. trace_flow: cycles terminate, each type expanded once
    3. trace_flow: depth limit and isolated types
    4. analyze_impact: direct references, transitive projects, package cycles
       and test assemblies excluded from provider edges
    5. check_version_alignment: MAJOR/MINOR classification and ordering
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.repo_index.services.graph_engine import GraphQueryEngine, classify_mismatch_severity
from src.repo_index.storage.index_queries import IndexQueries
from src.repo_index.storage.index_store import IndexStore
from src.shared.models.analysis import MismatchSeverity, RelationKind
from src.shared.models.index import (
    AssemblyRecord,
    PackageReference,
    ProjectRecord,
    ProjectSnapshot,
    TypeKind,
    TypeRecord,
)


@pytest.fixture
def engine(queries: IndexQueries) -> GraphQueryEngine:
    return GraphQueryEngine(queries)


def _single_project_index(db_path: Path, types: list[TypeRecord]) -> IndexQueries:
    store = IndexStore.create(db_path)
    try:
        store.replace_project(ProjectSnapshot(
            project=ProjectRecord(name="loop", directory_path="/repos/loop"),
            assemblies=[AssemblyRecord(csproj_path="src/Loop.csproj", assembly_name="Loop")],
            types=types,
            fingerprint="fp",
        ))
    finally:
        store.close()
    return IndexQueries(db_path)


def _multi_project_index(
    db_path: Path, projects: list[tuple[str, str, bool, list[str], list[str]]]
) -> IndexQueries:
    """Index ``(project, assembly, is_test, internal packages, public types)`` rows."""
    store = IndexStore.create(db_path)
    try:
        for name, assembly, is_test, packages, type_names in projects:
            directory = f"src/{assembly}"
            store.replace_project(ProjectSnapshot(
                project=ProjectRecord(name=name, directory_path=f"/repos/{name}"),
                assemblies=[AssemblyRecord(
                    csproj_path=f"{directory}/{assembly}.csproj",
                    assembly_name=assembly,
                    is_test=is_test,
                    package_references=[PackageReference(name=p, version="1.0.0") for p in packages],
                )],
                types=[
                    TypeRecord(
                        namespace=assembly, name=t, kind=TypeKind.CLASS,
                        is_public=True, file_path=f"{directory}/{t}.cs",
                    )
                    for t in type_names
                ],
                fingerprint=f"fp-{name}",
            ))
        store.resolve_internal_packages()
    finally:
        store.close()
    return IndexQueries(db_path)


def _cls(name: str, interfaces=(), injects=()) -> TypeRecord:
    return TypeRecord(
        namespace="Loop",
        name=name,
        kind=TypeKind.INTERFACE if name.startswith("I") else TypeKind.CLASS,
        is_public=True,
        file_path=f"src/{name}.cs",
        interfaces=list(interfaces),
        injected_dependencies=list(injects),
    )


# ---------------------------------------------------------------------------
# 1. Flow tracing
# ---------------------------------------------------------------------------

class TestTraceFlow:
    """Implement/inject walks from a root type."""

    def test_implementor_reported(self, engine: GraphQueryEngine) -> None:
        trace = engine.trace_flow("ICoherentCache")

        implements = [s for s in trace.steps if s.relation == RelationKind.IMPLEMENTS]
        assert len(implements) == 1
        assert [n.type_name for n in implements[0].neighbours] == ["CoherentCacheService"]
        assert implements[0].neighbours[0].project_name == "acme.caching"

    def test_injectors_reported(self, engine: GraphQueryEngine) -> None:
        trace = engine.trace_flow("ICoherentCache")

        injects = [s for s in trace.steps if s.relation == RelationKind.INJECTS]
        assert len(injects) == 1
        assert sorted(n.type_name for n in injects[0].neighbours) == [
            "CacheEvictionHandler",
            "ContentController",
        ]

    def test_edges_and_visited(self, engine: GraphQueryEngine) -> None:
        trace = engine.trace_flow("ICoherentCache")

        edges = {(e.source, e.target, e.label) for e in trace.edges}
        assert ("ICoherentCache", "CoherentCacheService", RelationKind.IMPLEMENTS) in edges
        assert ("CacheEvictionHandler", "ICoherentCache", RelationKind.INJECTS) in edges
        assert ("ContentController", "ICoherentCache", RelationKind.INJECTS) in edges
        assert trace.visited[0] == "ICoherentCache"
        assert trace.has_connections is True

    def test_injection_chain(self, engine: GraphQueryEngine) -> None:
        trace = engine.trace_flow("IRepository")

        edges = {(e.source, e.target) for e in trace.edges}
        assert ("IRepository", "ContentController") in edges
        assert ("PublishingService", "IRepository") in edges


# ---------------------------------------------------------------------------
# 2 & 3. Cycles, depth and isolated types
# ---------------------------------------------------------------------------

class TestTraceFlowTermination:
    """Walks always terminate and respect max_depth."""

    def test_cycle_terminates(self, tmp_path: Path) -> None:
        queries = _single_project_index(tmp_path / "loop.db", [
            _cls("IA"),
            _cls("IB"),
            _cls("A", interfaces=["IA"], injects=["IB"]),
            _cls("B", interfaces=["IB"], injects=["IA"]),
        ])
        try:
            trace = GraphQueryEngine(queries).trace_flow("IA", max_depth=10)
        finally:
            queries.close()

        lowered = [name.casefold() for name in trace.visited]
        assert len(lowered) == len(set(lowered))
        assert trace.has_connections

    def test_self_injection(self, tmp_path: Path) -> None:
        queries = _single_project_index(tmp_path / "self.db", [
            _cls("ISelf"),
            _cls("Self", interfaces=["ISelf"], injects=["ISelf"]),
        ])
        try:
            trace = GraphQueryEngine(queries).trace_flow("ISelf", max_depth=5)
        finally:
            queries.close()

        assert trace.visited.count("ISelf") == 1

    def test_depth_zero_has_only_root_neighbours(self, engine: GraphQueryEngine) -> None:
        trace = engine.trace_flow("IRepository", max_depth=0)

        assert trace.visited == ["IRepository"]
        targets = {(e.source, e.target) for e in trace.edges}
        assert ("PublishingService", "IRepository") in targets
        injects = next(s for s in trace.steps if s.relation == RelationKind.INJECTS)
        assert injects.neighbours[0].steps == []

    def test_isolated_type(self, engine: GraphQueryEngine) -> None:
        trace = engine.trace_flow("EntityStatus")

        assert trace.steps == []
        assert trace.edges == []
        assert trace.has_connections is False

    def test_unknown_type(self, engine: GraphQueryEngine) -> None:
        assert engine.trace_flow("INowhere").has_connections is False


# ---------------------------------------------------------------------------
# 4. Impact analysis
# ---------------------------------------------------------------------------

class TestAnalyzeImpact:
    """Blast radius of changing a type."""

    def test_interface_impact(self, engine: GraphQueryEngine) -> None:
        report = engine.analyze_impact("ICoherentCache")

        injects = [r for r in report.direct_references if r.relation == RelationKind.INJECTS]
        assert len(injects) == 2
        assert {r.project_name for r in injects} == {"acme.caching", "acme.web.api"}
        assert report.home_projects == ["acme.caching"]
        assert report.direct_project_count == 2
        assert report.transitive_projects == []

    def test_transitive_projects(self, engine: GraphQueryEngine) -> None:
        report = engine.analyze_impact("BaseEntity")

        assert [r.type_name for r in report.direct_references] == ["ContentItem"]
        assert report.direct_projects == ["acme.core"]
        assert report.transitive_projects == ["acme.caching", "acme.web.api"]
        assert report.blast_radius == 3

    def test_internal_package_cycle_terminates(self, tmp_path: Path) -> None:
        queries = _multi_project_index(tmp_path / "cycle.db", [
            ("alpha", "Alpha", False, ["Beta"], ["Widget"]),
            ("beta", "Beta", False, ["Alpha"], []),
            ("gamma", "Gamma", False, ["Beta"], []),
        ])
        try:
            report = GraphQueryEngine(queries).analyze_impact("Widget")
        finally:
            queries.close()

        assert report.direct_projects == ["alpha"]
        assert report.transitive_projects == ["beta", "gamma"]
        assert report.blast_radius == 3

    def test_test_assemblies_do_not_provide_edges(self, tmp_path: Path) -> None:
        queries = _multi_project_index(tmp_path / "testing.db", [
            ("fixtures", "Shared.Testing", True, [], ["FakeClock"]),
            ("orders", "Orders", False, ["Shared.Testing"], []),
        ])
        try:
            edges = queries.internal_dependency_edges()
            report = GraphQueryEngine(queries).analyze_impact("FakeClock")
        finally:
            queries.close()

        assert edges == []
        assert report.home_projects == ["fixtures"]
        assert report.transitive_projects == []

    def test_unknown_type(self, engine: GraphQueryEngine) -> None:
        report = engine.analyze_impact("IDoesNotExist")

        assert report.found is False
        assert report.direct_references == []

    def test_non_public_type_is_not_found(self, engine: GraphQueryEngine) -> None:
        assert engine.analyze_impact("ApiStartup").found is False


# ---------------------------------------------------------------------------
# 5. Version alignment
# ---------------------------------------------------------------------------

class TestVersionAlignment:
    """External packages used at several versions."""

    def test_mismatches(self, engine: GraphQueryEngine) -> None:
        mismatches = {m.package_name: m for m in engine.check_version_alignment()}

        assert mismatches["Newtonsoft.Json"].severity == MismatchSeverity.MINOR
        assert mismatches["Newtonsoft.Json"].versions == {
            "13.0.1": ["acme.web.api"],
            "13.0.3": ["acme.caching", "acme.core"],
        }
        assert mismatches["HotChocolate"].severity == MismatchSeverity.MAJOR
        assert "Acme.Core" not in mismatches

    def test_major_first(self, engine: GraphQueryEngine) -> None:
        names = [m.package_name for m in engine.check_version_alignment()]
        assert names == ["HotChocolate", "Newtonsoft.Json"]

    @pytest.mark.parametrize("versions,expected", [
        (["13.0.3", "13.0.1"], MismatchSeverity.MINOR),
        (["13.9.0", "14.0.0"], MismatchSeverity.MAJOR),
        (["1.0", "1"], MismatchSeverity.MINOR),
        (["2.0.0-beta", "3.0.0"], MismatchSeverity.MAJOR),
    ])
    def test_classify(self, versions: list[str], expected: MismatchSeverity) -> None:
        assert classify_mismatch_severity(versions) == expected
