"""Shared test fixtures for the repo-index test suite."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Generator

import pytest

from src.repo_index.services.query_cache import NullQueryCache
from src.repo_index.services.query_service import QueryService
from src.repo_index.storage.index_queries import IndexQueries
from src.repo_index.storage.index_store import IndexStore
from src.shared.db.connection import ConnectionPool
from src.shared.models.index import (
    AssemblyRecord,
    ConfigEntry,
    ConfigSource,
    EndpointKind,
    EndpointRecord,
    MethodRecord,
    PackageReference,
    ParameterRecord,
    ProjectRecord,
    ProjectSnapshot,
    TypeKind,
    TypeRecord,
)


@pytest.fixture(autouse=True)
def _propagate_src_logs() -> Generator[None, None, None]:
    """Keep ``src`` records reaching caplog even after setup_logging ran."""
    src_logger = logging.getLogger("src")
    saved = (list(src_logger.handlers), src_logger.level, src_logger.propagate)
    src_logger.propagate = True
    yield
    src_logger.handlers[:] = saved[0]
    src_logger.setLevel(saved[1])
    src_logger.propagate = saved[2]


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def connection_pool(tmp_db_path: Path) -> Generator[ConnectionPool, None, None]:
    """Provide a ConnectionPool with a temporary database."""
    pool = ConnectionPool(tmp_db_path)
    yield pool
    pool.close()


# ---------------------------------------------------------------------------
# Sample corpus
# ---------------------------------------------------------------------------


def _type(
    namespace: str,
    name: str,
    kind: TypeKind,
    file_path: str,
    *,
    is_public: bool = True,
    base_type: str | None = None,
    summary: str | None = None,
    interfaces: list[str] | None = None,
    injects: list[str] | None = None,
    methods: list[MethodRecord] | None = None,
) -> TypeRecord:
    return TypeRecord(
        namespace=namespace,
        name=name,
        kind=kind,
        is_public=is_public,
        file_path=file_path,
        base_type=base_type,
        summary=summary,
        interfaces=interfaces or [],
        injected_dependencies=injects or [],
        methods=methods or [],
    )


def _rest(name: str, verb: str, route: str, *params: tuple[str, str]) -> MethodRecord:
    return MethodRecord(
        name=name,
        return_type="Task<IActionResult>",
        parameters=[
            ParameterRecord(name=p_name, type_name=p_type, position=i)
            for i, (p_name, p_type) in enumerate(params)
        ],
        endpoints=[EndpointRecord(verb=verb, route=route, kind=EndpointKind.REST)],
    )


def build_sample_snapshots() -> list[ProjectSnapshot]:
    """Three projects: a core library, a caching library and a web API.

    * ``acme.caching`` and ``acme.web.api`` consume ``Acme.Core``;
      ``acme.web.api`` also consumes ``Acme.Caching``.
    * ``ICoherentCache`` is implemented by ``CoherentCacheService`` and
      injected by ``CacheEvictionHandler`` and ``ContentController``.
    * ``Newtonsoft.Json`` is used at 13.0.3 and 13.0.1 (minor drift),
      ``HotChocolate`` at 13.9.0 and 14.0.0 (major drift).
    """
    core = ProjectSnapshot(
        project=ProjectRecord(
            name="acme.core",
            directory_path="/repos/acme.core",
            solution_file="Common.sln",
            remote_url="https://github.com/org/common",
        ),
        assemblies=[
            AssemblyRecord(
                csproj_path="src/Common/Common.csproj",
                assembly_name="Acme.Core",
                target_framework="net8.0",
                output_type="Library",
                package_references=[
                    PackageReference(name="Newtonsoft.Json", version="13.0.3"),
                    PackageReference(name="Microsoft.Extensions.Logging", version="8.0.0"),
                ],
            ),
            AssemblyRecord(
                csproj_path="tests/Common.Tests/Common.Tests.csproj",
                assembly_name="Acme.Core.Tests",
                target_framework="net8.0",
                is_test=True,
            ),
        ],
        types=[
            _type("Acme.Core", "IRepository", TypeKind.INTERFACE,
                  "src/Common/IRepository.cs", summary="Base repository interface"),
            _type("Acme.Core", "IEntityService", TypeKind.INTERFACE, "src/Common/IEntityService.cs"),
            _type("Acme.Core.Models", "BaseEntity", TypeKind.CLASS,
                  "src/Common/Models/BaseEntity.cs", summary="Base entity class"),
            _type("Acme.Core.Models", "ContentItem", TypeKind.CLASS,
                  "src/Common/Models/ContentItem.cs",
                  base_type="BaseEntity", interfaces=["IEntityService"]),
            _type("Acme.Core.Models", "EntityStatus", TypeKind.ENUM, "src/Common/Models/EntityStatus.cs"),
            _type("Acme.Core.Models", "ItemRecord", TypeKind.RECORD, "src/Common/Models/ItemRecord.cs"),
            _type("Acme.Core.Tests", "BaseEntityTests", TypeKind.CLASS,
                  "tests/Common.Tests/BaseEntityTests.cs"),
            _type("Acme.Core.Tests", "ContentItemTests", TypeKind.CLASS,
                  "tests/Common.Tests/ContentItemTests.cs"),
        ],
        config_entries=[
            ConfigEntry(source=ConfigSource.ENV_VAR, key_name="LOG_LEVEL", file_path="src/Common/Logging.cs"),
        ],
        fingerprint="fp-core",
    )

    caching = ProjectSnapshot(
        project=ProjectRecord(
            name="acme.caching",
            directory_path="/repos/acme.caching",
            solution_file="Caching.sln",
        ),
        assemblies=[
            AssemblyRecord(
                csproj_path="src/Caching/Caching.csproj",
                assembly_name="Acme.Caching",
                target_framework="net8.0",
                output_type="Library",
                package_references=[
                    PackageReference(name="Acme.Core", version="1.2.0"),
                    PackageReference(name="Microsoft.Extensions.Caching.Memory", version="8.0.0"),
                    PackageReference(name="Newtonsoft.Json", version="13.0.3"),
                ],
            ),
            AssemblyRecord(
                csproj_path="tests/Caching.Tests/Caching.Tests.csproj",
                assembly_name="Acme.Caching.Tests",
                is_test=True,
            ),
        ],
        types=[
            _type("Acme.Caching", "ICoherentCache", TypeKind.INTERFACE,
                  "src/Caching/ICoherentCache.cs", summary="Coherent cache interface"),
            _type("Acme.Caching", "CoherentCacheService", TypeKind.CLASS,
                  "src/Caching/CoherentCacheService.cs",
                  interfaces=["ICoherentCache", "IDisposable"],
                  injects=["ILogger<CoherentCacheService>", "IOptions<CacheOptions>"],
                  methods=[
                      MethodRecord(name="GetAsync", return_type="Task<T>"),
                      MethodRecord(name="EvictAsync", return_type="Task"),
                  ]),
            _type("Acme.Caching", "CacheEvictionHandler", TypeKind.CLASS,
                  "src/Caching/CacheEvictionHandler.cs",
                  interfaces=["ICacheEvictionHandler"],
                  injects=["ICoherentCache", "ILogger<CacheEvictionHandler>"]),
            _type("Acme.Caching", "ICacheEvictionHandler", TypeKind.INTERFACE,
                  "src/Caching/ICacheEvictionHandler.cs"),
            _type("Acme.Caching", "CacheOptions", TypeKind.RECORD, "src/Caching/CacheOptions.cs"),
            _type("Acme.Caching.Tests", "CoherentCacheServiceTests", TypeKind.CLASS,
                  "tests/Caching.Tests/CoherentCacheServiceTests.cs"),
        ],
        config_entries=[
            ConfigEntry(source=ConfigSource.APPSETTINGS, key_name="Caching:DefaultTtlSeconds",
                        default_value="300", file_path="appsettings.json"),
            ConfigEntry(source=ConfigSource.APPSETTINGS, key_name="Caching:RedisConnectionString",
                        file_path="appsettings.json"),
        ],
        fingerprint="fp-caching",
    )

    web = ProjectSnapshot(
        project=ProjectRecord(
            name="acme.web.api",
            directory_path="/repos/acme.web.api",
            solution_file="CmApi.sln",
        ),
        assemblies=[
            AssemblyRecord(
                csproj_path="src/CmApi/CmApi.csproj",
                assembly_name="Acme.Web.Api",
                target_framework="net8.0",
                output_type="Exe",
                package_references=[
                    PackageReference(name="acme.core", version="1.2.0"),
                    PackageReference(name="Acme.Caching", version="2.0.0"),
                    PackageReference(name="HotChocolate", version="13.9.0"),
                    PackageReference(name="HotChocolate", version="14.0.0"),
                    PackageReference(name="Newtonsoft.Json", version="13.0.1"),
                ],
            ),
        ],
        types=[
            _type("Acme.Web.Api", "ContentController", TypeKind.CLASS,
                  "src/CmApi/ContentController.cs",
                  base_type="ControllerBase",
                  interfaces=["IRepository"],
                  injects=["ICoherentCache", "IPublishingService"],
                  methods=[
                      _rest("GetContent", "GET", "api/content/{id}", ("id", "string")),
                      _rest("CreateContent", "POST", "api/content",
                            ("item", "ContentItem"), ("cancellationToken", "CancellationToken")),
                      _rest("DeleteContent", "DELETE", "api/content/{id}", ("id", "string")),
                  ]),
            _type("Acme.Web.Api", "PublishingService", TypeKind.CLASS,
                  "src/CmApi/PublishingService.cs",
                  interfaces=["IPublishingService"],
                  injects=["IRepository"],
                  methods=[
                      MethodRecord(
                          name="PublishAsync",
                          return_type="Task<PublishResult>",
                          parameters=[ParameterRecord(name="contentId", type_name="string", position=0)],
                      ),
                  ]),
            _type("Acme.Web.Api", "IPublishingService", TypeKind.INTERFACE,
                  "src/CmApi/IPublishingService.cs"),
            _type("Acme.Web.Api", "ApiStartup", TypeKind.CLASS, "src/CmApi/ApiStartup.cs", is_public=False),
        ],
        config_entries=[
            ConfigEntry(source=ConfigSource.APPSETTINGS, key_name="CosmosDb:DatabaseName",
                        default_value="content-db", file_path="appsettings.json"),
            ConfigEntry(source=ConfigSource.ENV_VAR, key_name="ASPNETCORE_ENVIRONMENT",
                        file_path="src/CmApi/Program.cs"),
            ConfigEntry(source=ConfigSource.CONFIGURATION, key_name="Kafka:BootstrapServers",
                        file_path="src/CmApi/Startup.cs"),
        ],
        fingerprint="fp-web",
    )
    return [core, caching, web]


@pytest.fixture
def sample_index(tmp_path: Path) -> Path:
    """Build the sample corpus into an on-disk index and return its path."""
    db_path = tmp_path / "memory" / "repo_index.db"
    store = IndexStore.create(db_path)
    try:
        for snapshot in build_sample_snapshots():
            store.replace_project(snapshot)
        store.resolve_internal_packages()
    finally:
        store.close()
    return db_path


@pytest.fixture
def queries(sample_index: Path) -> Generator[IndexQueries, None, None]:
    q = IndexQueries(sample_index)
    yield q
    q.close()


@pytest.fixture
def query_service(queries: IndexQueries) -> QueryService:
    return QueryService(queries, NullQueryCache())


# ---------------------------------------------------------------------------
# Repositories on disk
# ---------------------------------------------------------------------------

CSPROJ_TEMPLATE = """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
    <AssemblyName>{assembly}</AssemblyName>
  </PropertyGroup>
  <ItemGroup>
{packages}
  </ItemGroup>
</Project>
"""


def csproj_text(assembly: str, packages: dict[str, str] | None = None) -> str:
    lines = "\n".join(
        f'    <PackageReference Include="{name}" Version="{version}" />'
        for name, version in (packages or {}).items()
    )
    return CSPROJ_TEMPLATE.format(assembly=assembly, packages=lines)


def write_csproj(path: Path, assembly: str, packages: dict[str, str] | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(csproj_text(assembly, packages), encoding="utf-8")
    return path


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[..., Path]:
    """Factory creating ``<tmp>/repos/<name>`` with a ``.git`` folder and files.

    ``files`` maps relative paths to file contents.
    """
    root = tmp_path / "repos"
    root.mkdir(exist_ok=True)

    def _make(name: str, files: dict[str, str] | None = None, git: bool = True) -> Path:
        repo = root / name
        repo.mkdir(parents=True, exist_ok=True)
        if git:
            (repo / ".git").mkdir(exist_ok=True)
        for relative, content in (files or {}).items():
            target = repo / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return repo

    return _make
