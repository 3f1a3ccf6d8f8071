"""Shapes of the JSON files in the flat view of the index (Pydantic v2).

The flat view mirrors the index as plain files next to the database so
that tools without SQLite access can read it.  Every file is keyed by
project name, which is what lets a partial scan merge into it.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, RootModel


class CatalogAssembly(BaseModel):
    assembly_name: str
    target_framework: str | None = None
    output_type: str | None = None


class CatalogProject(BaseModel):
    """One entry of ``projects.json``."""
    name: str
    solution_file: str | None = None
    assemblies: list[CatalogAssembly] = Field(default_factory=list)


class IndexedMethod(BaseModel):
    method_name: str
    return_type: str
    is_static: bool = False
    parameters: list[str] | None = None
    endpoints: list[str] | None = None


class IndexedType(BaseModel):
    """One public type in ``types-index.json``."""
    project: str
    namespace_name: str
    type_name: str
    kind: str
    base_type: str | None = None
    interfaces: list[str] | None = None
    injected_deps: list[str] | None = None
    methods: list[IndexedMethod] | None = None


class ProjectCatalog(RootModel[list[CatalogProject]]):
    root: list[CatalogProject] = Field(default_factory=list)


class TypesIndex(RootModel[list[IndexedType]]):
    root: list[IndexedType] = Field(default_factory=list)


class DependencyGraph(RootModel[dict[str, list[str]]]):
    """Project name to the sorted internal packages it consumes."""
    root: dict[str, list[str]] = Field(default_factory=dict)
