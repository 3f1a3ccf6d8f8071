"""Result models for graph queries over the repository index."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class RelationKind(str, Enum):
    """How a type refers to another type by name."""
    IMPLEMENTS = "implements"
    INJECTS = "injects"
    EXTENDS = "extends"


class MismatchSeverity(str, Enum):
    """Severity of a package version mismatch."""
    MAJOR = "MAJOR"
    MINOR = "MINOR"


class TypeLocation(BaseModel):
    """A type name together with its owning project."""
    type_name: str
    project_name: str


class FlowEdge(BaseModel):
    """A directed, labelled edge discovered by a flow trace."""
    source: str
    target: str
    label: RelationKind


class FlowNeighbour(BaseModel):
    """An implementor or injector reached from a step, with its own sub-trace."""
    type_name: str
    project_name: str
    steps: list[FlowStep] = Field(default_factory=list)


class FlowStep(BaseModel):
    """One block of the flow narrative.

    ``neighbours`` are the implementors (``relation == implements``) or the
    injectors (``relation == injects``) of ``type_name`` at ``depth``.
    """
    type_name: str
    depth: int
    relation: RelationKind
    neighbours: list[FlowNeighbour] = Field(default_factory=list)


FlowNeighbour.model_rebuild()


class FlowTrace(BaseModel):
    """Result of tracing the implement/inject flow from a root type.

    ``visited`` lists every type expanded by the walk, root first.
    """
    root: str
    max_depth: int
    steps: list[FlowStep] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    visited: list[str] = Field(default_factory=list)

    @property
    def has_connections(self) -> bool:
        return bool(self.edges)

    @property
    def unique_edges(self) -> list[FlowEdge]:
        """Edges with duplicates removed, in discovery order."""
        seen: set[tuple[str, str, str]] = set()
        result: list[FlowEdge] = []
        for edge in self.edges:
            key = (edge.source, edge.target, edge.label.value)
            if key not in seen:
                seen.add(key)
                result.append(edge)
        return result


class DirectReference(BaseModel):
    """A type that refers to the analysed type."""
    type_name: str
    project_name: str
    relation: RelationKind


class ImpactReport(BaseModel):
    """Blast radius of a hypothetical change to one type."""
    type_name: str
    home_projects: list[str] = Field(default_factory=list)
    direct_references: list[DirectReference] = Field(default_factory=list)
    direct_projects: list[str] = Field(default_factory=list)
    transitive_projects: list[str] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.home_projects)

    @property
    def direct_reference_count(self) -> int:
        return len(self.direct_references)

    @property
    def direct_project_count(self) -> int:
        return len(self.direct_projects)

    @property
    def transitive_project_count(self) -> int:
        return len(self.transitive_projects)

    @property
    def blast_radius(self) -> int:
        return self.direct_project_count + self.transitive_project_count


class VersionMismatch(BaseModel):
    """An external package used at more than one version."""
    package_name: str
    versions: dict[str, list[str]] = Field(default_factory=dict)
    severity: MismatchSeverity


class PatternFinding(BaseModel):
    """One match produced by an architecture-pattern rule.

    ``related`` carries the rule-specific second name (the interface of a
    repository or decorator, the options type, the dependency count).
    Aggregate rules set ``count`` and leave ``type_name`` empty.
    """
    rule: str
    type_name: str | None = None
    related: str | None = None
    kind: str | None = None
    project_name: str | None = None
    count: int | None = None


class PatternReport(BaseModel):
    """All findings from one pattern-detection run, grouped by rule."""
    project_filter: str | None = None
    findings: dict[str, list[PatternFinding]] = Field(default_factory=dict)

    @property
    def patterns_found(self) -> int:
        return sum(1 for items in self.findings.values() if items)
