"""Entity models for the repository index (Pydantic v2).

These are the shapes the source extractor produces and the index store
persists.  Relations to interfaces and injected dependencies are plain
names rather than ids: the target may live outside the scanned corpus.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from src.shared.constants import DEFAULT_BRANCH


class TypeKind(str, Enum):
    """Kinds of declared types."""
    CLASS = "class"
    INTERFACE = "interface"
    STRUCT = "struct"
    ENUM = "enum"
    RECORD = "record"
    RECORD_STRUCT = "record struct"


class EndpointKind(str, Enum):
    """Network-exposed operation flavours."""
    REST = "REST"
    GRAPHQL = "GraphQL"


class ConfigSource(str, Enum):
    """Where a configuration key was discovered."""
    APPSETTINGS = "appsettings"
    ENV_VAR = "env_var"
    CONFIGURATION = "IConfiguration"


class PackageReference(BaseModel):
    """A package dependency declared by an assembly."""
    name: str = Field(..., min_length=1)
    version: str | None = None
    is_internal: bool = False

    model_config = {"from_attributes": True}


class AssemblyRecord(BaseModel):
    """One buildable unit (build descriptor) inside a project."""
    csproj_path: str
    assembly_name: str = Field(..., min_length=1)
    target_framework: str | None = None
    output_type: str | None = None
    is_test: bool = False
    package_references: list[PackageReference] = Field(default_factory=list)
    project_references: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def directory(self) -> str:
        """Directory of the build descriptor, relative to the project root."""
        normalized = self.csproj_path.replace("\\", "/")
        return normalized.rsplit("/", 1)[0] if "/" in normalized else ""


class ParameterRecord(BaseModel):
    """One method parameter; ``position`` is the call-site ordinal."""
    name: str
    type_name: str
    position: int = Field(..., ge=0)

    model_config = {"from_attributes": True}


class EndpointRecord(BaseModel):
    """A REST route or GraphQL operation exposed by a method."""
    verb: str
    route: str | None = None
    kind: EndpointKind

    model_config = {"from_attributes": True}


class MethodRecord(BaseModel):
    """A public method on a public type."""
    name: str
    return_type: str
    is_public: bool = True
    is_static: bool = False
    parameters: list[ParameterRecord] = Field(default_factory=list)
    endpoints: list[EndpointRecord] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class TypeRecord(BaseModel):
    """A declared class, interface, struct, enum or record."""
    namespace: str
    name: str = Field(..., min_length=1)
    kind: TypeKind
    is_public: bool = False
    is_partial: bool = False
    file_path: str | None = None
    base_type: str | None = None
    summary: str | None = None
    interfaces: list[str] = Field(default_factory=list)
    injected_dependencies: list[str] = Field(default_factory=list)
    methods: list[MethodRecord] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ConfigEntry(BaseModel):
    """A configuration key discovered in a project."""
    source: ConfigSource
    key_name: str
    default_value: str | None = None
    file_path: str

    model_config = {"from_attributes": True}

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.key_name, self.source.value, self.file_path)


class ProjectRecord(BaseModel):
    """One scanned repository."""
    name: str = Field(..., min_length=1)
    directory_path: str
    solution_file: str | None = None
    remote_url: str | None = None
    default_branch: str = DEFAULT_BRANCH

    model_config = {"from_attributes": True}


class ExtractedSource(BaseModel):
    """Everything the source extractor reports for one project root."""
    assemblies: list[AssemblyRecord] = Field(default_factory=list)
    types: list[TypeRecord] = Field(default_factory=list)
    config_entries: list[ConfigEntry] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ProjectSnapshot(BaseModel):
    """A fully extracted project, buffered in memory until commit."""
    project: ProjectRecord
    assemblies: list[AssemblyRecord] = Field(default_factory=list)
    types: list[TypeRecord] = Field(default_factory=list)
    config_entries: list[ConfigEntry] = Field(default_factory=list)
    fingerprint: str

    @property
    def name(self) -> str:
        return self.project.name


class ScanFingerprint(BaseModel):
    """Last-seen content hash of a project."""
    project_name: str
    file_hash: str
    last_scan_utc: str

    model_config = {"from_attributes": True}
