"""Graph traversals over the name-keyed relationships in the index.

Implements/injects/extends edges are stored as plain names, so every
traversal resolves neighbours lazily through :class:`IndexQueries`.  A name
that matches no indexed type is simply a leaf.
"""
from __future__ import annotations

import logging

import networkx as nx

from src.repo_index.storage.index_queries import IndexQueries
from src.shared.constants import DEFAULT_TRACE_DEPTH
from src.shared.models.analysis import (
    DirectReference,
    FlowEdge,
    FlowNeighbour,
    FlowStep,
    FlowTrace,
    ImpactReport,
    MismatchSeverity,
    RelationKind,
    VersionMismatch,
)

logger = logging.getLogger(__name__)


def classify_mismatch_severity(versions: list[str] | set[str]) -> MismatchSeverity:
    """MAJOR when the versions disagree on the leading numeric segment."""
    majors = set()
    for version in versions:
        dot = version.find(".")
        majors.add(version[:dot] if dot > 0 else version)
    return MismatchSeverity.MAJOR if len(majors) > 1 else MismatchSeverity.MINOR


def _unique(names: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


class _FlowWalk:
    """State for one trace_flow call.

    The visited set is shared by the whole walk and compared
    case-insensitively, so each type is expanded at most once even when
    the graph has cycles or several paths lead to it.
    """

    def __init__(self, queries: IndexQueries, max_depth: int) -> None:
        self._queries = queries
        self._max_depth = max_depth
        self._seen: set[str] = set()
        self.visited: list[str] = []
        self.edges: list[FlowEdge] = []

    def expand(self, type_name: str, depth: int) -> list[FlowStep]:
        if depth > self._max_depth or type_name.casefold() in self._seen:
            return []
        self._seen.add(type_name.casefold())
        self.visited.append(type_name)

        steps: list[FlowStep] = []
        implementors = self._queries.implementors_of(type_name)
        if implementors:
            step = FlowStep(type_name=type_name, depth=depth, relation=RelationKind.IMPLEMENTS)
            for impl in implementors:
                self.edges.append(
                    FlowEdge(source=type_name, target=impl.type_name, label=RelationKind.IMPLEMENTS)
                )
                step.neighbours.append(
                    FlowNeighbour(
                        type_name=impl.type_name,
                        project_name=impl.project_name,
                        steps=self.injectors(impl.type_name, depth + 1),
                    )
                )
            steps.append(step)

        steps.extend(self.injectors(type_name, depth))
        return steps

    def injectors(self, type_name: str, depth: int) -> list[FlowStep]:
        found = self._queries.injectors_of(type_name)
        if not found:
            return []
        step = FlowStep(type_name=type_name, depth=depth, relation=RelationKind.INJECTS)
        for injector in found:
            self.edges.append(
                FlowEdge(source=injector.type_name, target=type_name, label=RelationKind.INJECTS)
            )
            children: list[FlowStep] = []
            if depth + 1 <= self._max_depth:
                children = self.expand(injector.type_name, depth + 1)
            step.neighbours.append(
                FlowNeighbour(
                    type_name=injector.type_name,
                    project_name=injector.project_name,
                    steps=children,
                )
            )
        return [step]


class GraphQueryEngine:
    """Flow tracing, impact analysis and version alignment.

    Each operation reads from one consistent snapshot of the index.
    """

    def __init__(self, queries: IndexQueries) -> None:
        self._queries = queries

    @property
    def queries(self) -> IndexQueries:
        return self._queries

    def trace_flow(self, type_name: str, max_depth: int = DEFAULT_TRACE_DEPTH) -> FlowTrace:
        """Trace who implements and who injects *type_name*, recursively.

        From each node the walk follows its implementors (then the types
        injecting those implementors) and the types injecting the node
        itself, up to *max_depth* levels from the root.
        """
        walk = _FlowWalk(self._queries, max_depth)
        with self._queries.snapshot():
            steps = walk.expand(type_name, 0)
        logger.debug(
            "trace_flow(%s, depth=%d): %d visited, %d edges",
            type_name, max_depth, len(walk.visited), len(walk.edges),
        )
        return FlowTrace(
            root=type_name,
            max_depth=max_depth,
            steps=steps,
            edges=walk.edges,
            visited=walk.visited,
        )

    def analyze_impact(self, type_name: str) -> ImpactReport:
        """Estimate the blast radius of changing *type_name*.

        Direct references are implementors, injectors and subclasses.  The
        transitive set is every project reachable over internal-package
        edges from a directly touched project (the owners of the direct
        references plus the home projects), minus those touched projects.
        """
        with self._queries.snapshot():
            homes = _unique(self._queries.public_type_homes(type_name))
            if not homes:
                return ImpactReport(type_name=type_name)

            references: list[DirectReference] = []
            for relation, lookup in (
                (RelationKind.IMPLEMENTS, self._queries.implementors_of),
                (RelationKind.INJECTS, self._queries.injectors_of),
                (RelationKind.EXTENDS, self._queries.inheritors_of),
            ):
                references.extend(
                    DirectReference(
                        type_name=loc.type_name,
                        project_name=loc.project_name,
                        relation=relation,
                    )
                    for loc in lookup(type_name)
                )
            edges = self._queries.internal_dependency_edges()

        touched = set(homes) | {ref.project_name for ref in references}

        graph = nx.DiGraph()
        graph.add_edges_from(edges)
        reachable: set[str] = set()
        for project in touched:
            if project in graph:
                reachable |= nx.descendants(graph, project)
        transitive = sorted(reachable - touched)

        references.sort(key=lambda ref: ref.project_name)
        return ImpactReport(
            type_name=type_name,
            home_projects=homes,
            direct_references=references,
            direct_projects=sorted(touched),
            transitive_projects=transitive,
        )

    def check_version_alignment(self) -> list[VersionMismatch]:
        """List external packages used at more than one version.

        Only production assemblies and versioned references count.  MAJOR
        mismatches come first, then packages in name order.
        """
        packages: dict[str, dict[str, list[str]]] = {}
        for row in self._queries.external_production_packages():
            projects = packages.setdefault(row["package_name"], {}).setdefault(row["version"], [])
            if row["project_name"] not in projects:
                projects.append(row["project_name"])

        mismatches = [
            VersionMismatch(
                package_name=package,
                versions=dict(sorted(versions.items())),
                severity=classify_mismatch_severity(list(versions)),
            )
            for package, versions in packages.items()
            if len(versions) > 1
        ]
        mismatches.sort(
            key=lambda m: (m.severity != MismatchSeverity.MAJOR, m.package_name)
        )
        return mismatches
