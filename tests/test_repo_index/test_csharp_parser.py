"""Tests for src.repo_index.parsers.csharp_parser.CSharpParser.

Covers parse_types including:
    1. Type kinds (class, interface, struct, enum, record, record struct)
    2. Namespaces (block, nested block, file-scoped, global)
    3. Nested types are not reported
    4. Base list split into base type and interfaces
    5. Constructor and primary-constructor injections
    6. Public methods with parameters
    7. REST and GraphQL endpoints
    8. XML doc summaries
"""

from __future__ import annotations

import pytest

from src.repo_index.parsers.csharp_parser import (
    CSharpParser,
    combine_route,
    is_likely_dependency,
    looks_like_interface,
)
from src.shared.constants import GLOBAL_NAMESPACE
from src.shared.models.index import EndpointKind, TypeKind


# ---------------------------------------------------------------------------
# Fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def parser() -> CSharpParser:
    """Provide a fresh CSharpParser instance for each test."""
    return CSharpParser()


def _by_name(records):
    return {r.name: r for r in records}


# ---------------------------------------------------------------------------
# 1. Type kinds
# ---------------------------------------------------------------------------

class TestTypeKinds:
    """Every supported declaration is reported with the right kind."""

    def test_all_kinds(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Core
{
    public class ContentItem { }
    public interface IRepository { }
    public struct Point { }
    public enum EntityStatus { Draft, Published }
    public record ItemRecord(string Id);
    public record struct Money(decimal Amount);
}
"""
        types = _by_name(parser.parse_types(source, "src/Core/Types.cs"))

        assert types["ContentItem"].kind == TypeKind.CLASS
        assert types["IRepository"].kind == TypeKind.INTERFACE
        assert types["Point"].kind == TypeKind.STRUCT
        assert types["EntityStatus"].kind == TypeKind.ENUM
        assert types["ItemRecord"].kind == TypeKind.RECORD
        assert types["Money"].kind == TypeKind.RECORD_STRUCT

    def test_source_order_and_file_path(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    public class Zeta { }
    public class Alpha { }
}
"""
        records = parser.parse_types(source, "src/Zeta.cs")

        assert [r.name for r in records] == ["Zeta", "Alpha"]
        assert all(r.file_path == "src/Zeta.cs" for r in records)

    def test_visibility_and_partial(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    public partial class Shown { }
    internal class Hidden { }
    class Implicit { }
}
"""
        types = _by_name(parser.parse_types(source, "src/A.cs"))

        assert types["Shown"].is_public is True
        assert types["Shown"].is_partial is True
        assert types["Hidden"].is_public is False
        assert types["Implicit"].is_public is False


# ---------------------------------------------------------------------------
# 2 & 3. Namespaces and nested types
# ---------------------------------------------------------------------------

class TestNamespaces:
    """Namespaces are resolved from block and file-scoped declarations."""

    def test_file_scoped_namespace(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Caching;

public class CoherentCacheService { }
"""
        (record,) = parser.parse_types(source, "src/Caching/CoherentCacheService.cs")
        assert record.namespace == "Acme.Caching"

    def test_nested_block_namespaces(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    namespace Web.Api
    {
        public class ContentController { }
    }
}
"""
        (record,) = parser.parse_types(source, "src/CmApi/ContentController.cs")
        assert record.namespace == "Acme.Web.Api"

    def test_global_namespace(self, parser: CSharpParser) -> None:
        (record,) = parser.parse_types(b"public class Program { }\n", "Program.cs")
        assert record.namespace == GLOBAL_NAMESPACE

    def test_nested_types_are_skipped(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    public class Outer
    {
        public class Inner { }
        private enum Mode { A, B }
    }
}
"""
        records = parser.parse_types(source, "src/Outer.cs")
        assert [r.name for r in records] == ["Outer"]


# ---------------------------------------------------------------------------
# 4. Base lists
# ---------------------------------------------------------------------------

class TestBaseList:
    """The first base-list entry is a base type unless it looks like an interface."""

    def test_base_type_and_interfaces(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Core.Models
{
    public class ContentItem : BaseEntity, IEntityService, IDisposable { }
}
"""
        (record,) = parser.parse_types(source, "src/Common/Models/ContentItem.cs")

        assert record.base_type == "BaseEntity"
        assert record.interfaces == ["IEntityService", "IDisposable"]

    def test_interface_only_base_list(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Caching
{
    public class CoherentCacheService : ICoherentCache { }
}
"""
        (record,) = parser.parse_types(source, "src/Caching/CoherentCacheService.cs")

        assert record.base_type is None
        assert record.interfaces == ["ICoherentCache"]

    def test_generic_interface_text_is_kept(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    public class GetItemHandler : IRequestHandler<GetItem, Item> { }
}
"""
        (record,) = parser.parse_types(source, "src/GetItemHandler.cs")
        assert record.interfaces == ["IRequestHandler<GetItem, Item>"]


# ---------------------------------------------------------------------------
# 5. Injections
# ---------------------------------------------------------------------------

class TestInjections:
    """Constructor parameters that look like services are injected dependencies."""

    def test_constructor_injection(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Caching
{
    public class CoherentCacheService : ICoherentCache
    {
        public CoherentCacheService(
            ILogger<CoherentCacheService> logger,
            IOptions<CacheOptions> options,
            string name,
            CancellationToken token)
        {
        }
    }
}
"""
        (record,) = parser.parse_types(source, "src/Caching/CoherentCacheService.cs")

        assert record.injected_dependencies == [
            "ILogger<CoherentCacheService>",
            "IOptions<CacheOptions>",
        ]

    def test_primary_constructor_injection(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Caching;

public class CacheEvictionHandler(ICoherentCache cache, int retries) : ICacheEvictionHandler
{
}
"""
        (record,) = parser.parse_types(source, "src/Caching/CacheEvictionHandler.cs")

        assert record.injected_dependencies == ["ICoherentCache"]
        assert record.interfaces == ["ICacheEvictionHandler"]

    def test_duplicate_dependencies_reported_once(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    public class Worker
    {
        public Worker(IClock clock) { }
        public Worker(IClock clock, IQueue queue) { }
    }
}
"""
        (record,) = parser.parse_types(source, "src/Worker.cs")
        assert record.injected_dependencies == ["IClock", "IQueue"]

    def test_interfaces_have_no_injections(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    public interface IWorker { void Run(IClock clock); }
}
"""
        (record,) = parser.parse_types(source, "src/IWorker.cs")
        assert record.injected_dependencies == []


# ---------------------------------------------------------------------------
# 6 & 7. Methods and endpoints
# ---------------------------------------------------------------------------

class TestMethodsAndEndpoints:
    """Public methods of public types are extracted together with endpoints."""

    CONTROLLER = b"""\
namespace Acme.Web.Api
{
    [ApiController]
    [Route("api/content")]
    public class ContentController : ControllerBase
    {
        [HttpGet("{id}")]
        public async Task<IActionResult> GetContent(string id) { return Ok(); }

        [HttpPost]
        public Task<IActionResult> CreateContent(ContentItem item, CancellationToken cancellationToken)
        {
            return null;
        }

        public static string Describe() { return ""; }

        private void Helper() { }
    }
}
"""

    def test_public_methods_only(self, parser: CSharpParser) -> None:
        (record,) = parser.parse_types(self.CONTROLLER, "src/CmApi/ContentController.cs")

        names = [m.name for m in record.methods]
        assert names == ["GetContent", "CreateContent", "Describe"]
        describe = record.methods[2]
        assert describe.is_static is True
        assert describe.return_type == "string"

    def test_parameters_in_position_order(self, parser: CSharpParser) -> None:
        (record,) = parser.parse_types(self.CONTROLLER, "src/CmApi/ContentController.cs")

        create = next(m for m in record.methods if m.name == "CreateContent")
        assert [(p.name, p.type_name, p.position) for p in create.parameters] == [
            ("item", "ContentItem", 0),
            ("cancellationToken", "CancellationToken", 1),
        ]

    def test_rest_routes_combine_class_prefix(self, parser: CSharpParser) -> None:
        (record,) = parser.parse_types(self.CONTROLLER, "src/CmApi/ContentController.cs")

        endpoints = {m.name: m.endpoints for m in record.methods}
        (get,) = endpoints["GetContent"]
        assert (get.verb, get.route, get.kind) == ("GET", "api/content/{id}", EndpointKind.REST)
        (post,) = endpoints["CreateContent"]
        assert (post.verb, post.route) == ("POST", "api/content")
        assert endpoints["Describe"] == []

    def test_graphql_operations(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Web.Api
{
    public class ContentMutations
    {
        [Mutation]
        public Task<ContentItem> Publish(string id) { return null; }

        [Query("allContent")]
        public IQueryable<ContentItem> GetAll() { return null; }
    }
}
"""
        (record,) = parser.parse_types(source, "src/CmApi/ContentMutations.cs")

        endpoints = {m.name: m.endpoints[0] for m in record.methods}
        assert endpoints["Publish"].kind == EndpointKind.GRAPHQL
        assert endpoints["Publish"].verb == "MUTATION"
        assert endpoints["Publish"].route == "Publish"
        assert endpoints["GetAll"].verb == "QUERY"
        assert endpoints["GetAll"].route == "allContent"

    def test_non_public_type_has_no_methods(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    internal class ApiStartup
    {
        public void Configure() { }
    }
}
"""
        (record,) = parser.parse_types(source, "src/ApiStartup.cs")
        assert record.methods == []


# ---------------------------------------------------------------------------
# 8. XML summaries
# ---------------------------------------------------------------------------

class TestXmlSummary:
    """The ``<summary>`` of a preceding ``///`` block is captured."""

    def test_summary(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme.Caching
{
    /// <summary>
    /// Coherent cache interface
    /// </summary>
    public interface ICoherentCache { }
}
"""
        (record,) = parser.parse_types(source, "src/Caching/ICoherentCache.cs")
        assert record.summary == "Coherent cache interface"

    def test_plain_comment_is_not_a_summary(self, parser: CSharpParser) -> None:
        source = b"""\
namespace Acme
{
    // just a note
    public class Plain { }
}
"""
        (record,) = parser.parse_types(source, "src/Plain.cs")
        assert record.summary is None


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    """Naming heuristics and route joining."""

    @pytest.mark.parametrize("name,expected", [
        ("IRepository", True),
        ("ICoherentCache", True),
        ("Item", False),
        ("I", False),
        ("Ideas", False),
    ])
    def test_looks_like_interface(self, name: str, expected: bool) -> None:
        assert looks_like_interface(name) is expected

    @pytest.mark.parametrize("type_name,expected", [
        ("IPublishingService", True),
        ("IPublishingService?", True),
        ("ILogger<Foo>", True),
        ("IOptions<CacheOptions>", True),
        ("string", False),
        ("CancellationToken", False),
        ("ContentItem", False),
    ])
    def test_is_likely_dependency(self, type_name: str, expected: bool) -> None:
        assert is_likely_dependency(type_name) is expected

    def test_combine_route(self) -> None:
        assert combine_route("api/content/", "/{id}") == "api/content/{id}"
        assert combine_route("", "health") == "health"
        assert combine_route("api/content", "") == "api/content"
