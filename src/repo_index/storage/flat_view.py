"""Flat-file view of the index, merged after every scan.

Beside the database the scanner keeps:

* ``projects.json``: project catalog with assemblies.
* ``dependency-graph.json``: internal packages consumed per project.
* ``types-index.json``: every public type with its public methods.
* ``projects/<name>.md``: a readable summary per project.

A scan only rewrites the entries of the projects it scanned (and drops
the ones it pruned); entries for every other project are carried over
from the existing files.  Each file is replaced atomically.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, TypeVar

from pydantic import RootModel

from src.shared.constants import (
    DEPENDENCY_GRAPH_FILE_NAME,
    PROJECT_SUMMARIES_DIR_NAME,
    PROJECTS_FILE_NAME,
    TYPES_INDEX_FILE_NAME,
)
from src.shared.models.flat_view import (
    CatalogAssembly,
    CatalogProject,
    DependencyGraph,
    IndexedMethod,
    IndexedType,
    ProjectCatalog,
    TypesIndex,
)
from src.shared.models.index import ProjectSnapshot, TypeRecord
from src.shared.utils import atomic_write_text

logger = logging.getLogger(__name__)

RootT = TypeVar("RootT", bound=RootModel)

_UNSAFE_FILE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def summary_file_name(project_name: str) -> str:
    return _UNSAFE_FILE_CHARS.sub("_", project_name) + ".md"


class FlatViewWriter:
    """Merges scanned projects into the flat view under *output_dir*."""

    def __init__(self, output_dir: str | Path) -> None:
        self._output_dir = Path(output_dir)

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def merge(self, snapshots: list[ProjectSnapshot], removed: Iterable[str] = ()) -> None:
        """Replace the entries of *snapshots*, drop *removed*, keep the rest."""
        removed = set(removed)
        replaced = {s.name for s in snapshots} | removed

        catalog = self._read(PROJECTS_FILE_NAME, ProjectCatalog)
        entries = [e for e in catalog.root if e.name not in replaced]
        entries += [build_catalog_entry(s) for s in snapshots]
        entries.sort(key=lambda e: e.name)
        self._write(PROJECTS_FILE_NAME, ProjectCatalog(entries))

        graph = self._read(DEPENDENCY_GRAPH_FILE_NAME, DependencyGraph)
        edges = {name: deps for name, deps in graph.root.items() if name not in replaced}
        for snapshot in snapshots:
            deps = internal_dependencies(snapshot)
            if deps:
                edges[snapshot.name] = deps
        self._write(DEPENDENCY_GRAPH_FILE_NAME, DependencyGraph(dict(sorted(edges.items()))))

        types = self._read(TYPES_INDEX_FILE_NAME, TypesIndex)
        indexed = [t for t in types.root if t.project not in replaced]
        for snapshot in snapshots:
            indexed += [build_indexed_type(snapshot.name, t) for t in snapshot.types if t.is_public]
        indexed.sort(key=lambda t: (t.namespace_name, t.type_name, t.project))
        self._write(TYPES_INDEX_FILE_NAME, TypesIndex(indexed))

        summaries = self._output_dir / PROJECT_SUMMARIES_DIR_NAME
        for snapshot in snapshots:
            atomic_write_text(summaries / summary_file_name(snapshot.name), render_project_summary(snapshot))
        for name in removed:
            stale = summaries / summary_file_name(name)
            if stale.exists():
                stale.unlink()

        logger.info(
            "Flat view updated in %s: %d projects merged, %d removed",
            self._output_dir, len(snapshots), len(removed),
        )

    def _read(self, file_name: str, model: type[RootT]) -> RootT:
        path = self._output_dir / file_name
        if not path.exists():
            return model()
        try:
            return model.model_validate_json(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            logger.warning("Rebuilding unreadable flat view file %s: %s", path, exc)
            return model()

    def _write(self, file_name: str, value: RootModel) -> None:
        atomic_write_text(
            self._output_dir / file_name,
            value.model_dump_json(indent=2, exclude_none=True),
        )


# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------

def build_catalog_entry(snapshot: ProjectSnapshot) -> CatalogProject:
    return CatalogProject(
        name=snapshot.name,
        solution_file=snapshot.project.solution_file,
        assemblies=[
            CatalogAssembly(
                assembly_name=a.assembly_name,
                target_framework=a.target_framework,
                output_type=a.output_type,
            )
            for a in snapshot.assemblies
        ],
    )


def internal_dependencies(snapshot: ProjectSnapshot) -> list[str]:
    return sorted({
        ref.name
        for assembly in snapshot.assemblies
        for ref in assembly.package_references
        if ref.is_internal
    })


def build_indexed_type(project: str, record: TypeRecord) -> IndexedType:
    methods = [
        IndexedMethod(
            method_name=m.name,
            return_type=m.return_type,
            is_static=m.is_static,
            parameters=[f"{p.type_name} {p.name}" for p in m.parameters] or None,
            endpoints=[f"[{e.verb}] {e.route or ''}" for e in m.endpoints] or None,
        )
        for m in record.methods
        if m.is_public
    ]
    return IndexedType(
        project=project,
        namespace_name=record.namespace,
        type_name=record.name,
        kind=record.kind.value,
        base_type=record.base_type,
        interfaces=record.interfaces or None,
        injected_deps=record.injected_dependencies or None,
        methods=methods or None,
    )


def render_project_summary(snapshot: ProjectSnapshot) -> str:
    project = snapshot.project
    lines = [
        f"# {project.name}",
        "",
        f"**Solution:** {project.solution_file or 'N/A'}",
        f"**Path:** {project.directory_path}",
        "",
        "## Assemblies",
        "",
    ]
    for assembly in snapshot.assemblies:
        lines.append(f"### {assembly.assembly_name}")
        lines.append(f"- **Framework:** {assembly.target_framework or 'N/A'}")
        lines.append(f"- **Output:** {assembly.output_type or 'Library'}")
        if assembly.package_references:
            lines.append("- **Package Dependencies:**")
            for ref in sorted(assembly.package_references, key=lambda r: r.name):
                internal = " *(internal)*" if ref.is_internal else ""
                lines.append(f"  - {ref.name} {ref.version or ''}".rstrip() + internal)
        if assembly.project_references:
            lines.append("- **Project References:**")
            lines += [f"  - {path}" for path in assembly.project_references]
        lines.append("")

    public = [t for t in snapshot.types if t.is_public]
    if public:
        lines += ["## Public Types", ""]
        for namespace in sorted({t.namespace for t in public}):
            lines.append(f"### {namespace}")
            for record in sorted((t for t in public if t.namespace == namespace), key=lambda t: t.name):
                extras = []
                if record.base_type:
                    extras.append(f"extends {record.base_type}")
                if record.interfaces:
                    extras.append(f"implements {', '.join(record.interfaces)}")
                suffix = f" ({'; '.join(extras)})" if extras else ""
                lines.append(f"- `{record.kind.value}` **{record.name}**{suffix}")
                for method in record.methods:
                    if not method.is_public:
                        continue
                    params = ", ".join(f"{p.type_name} {p.name}" for p in method.parameters)
                    lines.append(f"  - `{method.return_type}` {method.name}({params})")
                    for endpoint in method.endpoints:
                        lines.append(
                            f"    - **{endpoint.kind.value}:** `[{endpoint.verb}] {endpoint.route or ''}`"
                        )
            lines.append("")

    if snapshot.config_entries:
        lines += ["## Configuration", ""]
        for source in sorted({e.source.value for e in snapshot.config_entries}):
            lines.append(f"### {source}")
            entries = sorted(
                (e for e in snapshot.config_entries if e.source.value == source),
                key=lambda e: e.key_name,
            )
            for entry in entries:
                default = f" (default: `{entry.default_value}`)" if entry.default_value is not None else ""
                lines.append(f"- `{entry.key_name}`{default}")
            lines.append("")

    return "\n".join(lines)
