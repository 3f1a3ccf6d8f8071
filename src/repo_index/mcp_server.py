"""MCP server for the repository index.

Exposes project, type, dependency, endpoint and configuration queries,
graph analysis (flow tracing, impact, version alignment, patterns), AGENTS.md
generation and scan/repository maintenance as MCP tools over stdio transport.

Query tools return markdown.  Pass ``format="json"`` to receive the
structured envelope ``{content, result_count, truncated, query_ms}``
instead.

Environment variables (typically set via .mcp.json):
    REPO_INDEX_ROOT   -- Directory whose children are the repositories.
    DATABASE_PATH     -- Index file; defaults to <root>/memory/repo_index.db.
    MAX_PARALLELISM   -- Concurrent git operations (default 4).
    ALLOWED_BRANCHES  -- Comma-separated branches that may be pulled.

Usage:
    python -m src.repo_index.mcp_server
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from mcp.server.fastmcp import FastMCP

from src.repo_index.runtime import RepoIndexRuntime
from src.repo_index.services.formatting import (
    render_repo_statuses,
    render_scan_result,
    render_update_report,
)
from src.repo_index.services.tool_result import timed_tool_result
from src.shared.constants import (
    DEFAULT_TRACE_DEPTH,
    REPO_INDEX_SERVICE_NAME,
    SEARCH_RESULTS_LIMIT,
    SEARCH_TYPES_LIMIT,
    TYPE_DETAILS_LIMIT,
    UNTESTED_TYPES_LIMIT,
)
from src.shared.errors import AppError, IndexUnavailableError, ScanCancelledError
from src.shared.logging import setup_logging

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("repo_index.mcp")

# Returned instead of raw exception text; the traceback goes to the log.
UNEXPECTED_ERROR_MESSAGE = "Error: unexpected internal error. See the server log for details."

# ---------------------------------------------------------------------------
# Module-level initialisation
# ---------------------------------------------------------------------------

_runtime = RepoIndexRuntime()
_service = _runtime.query_service

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_query(
    tool_name: str,
    compute: Callable[[], str],
    output_format: str = "markdown",
    limit: int | None = None,
) -> str:
    """Run a read tool, mapping expected errors to their message."""
    logger.info("Tool %s invoked", tool_name)
    try:
        result = timed_tool_result(compute, limit)
    except AppError as exc:
        return exc.detail
    # Top-level handler: broad catch intentional
    except Exception:
        logger.exception("Unexpected error in tool %s", tool_name)
        return UNEXPECTED_ERROR_MESSAGE
    if output_format == "json":
        return result.model_dump_json()
    return result.content


def _last_scan() -> str | None:
    try:
        return _runtime.queries.last_scan_utc()
    except IndexUnavailableError:
        return None


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------

mcp = FastMCP("Repository Index")


# Projects -------------------------------------------------------------------


@mcp.tool()
def list_projects(format: str = "markdown") -> str:
    """List all scanned projects with their assembly and type counts."""
    return _run_query("list_projects", _service.list_projects, format)


@mcp.tool()
def get_project_info(project: str, format: str = "markdown") -> str:
    """Show a project's assemblies, internal and external dependencies,
    namespaces and key public types.

    Args:
        project: Project name; exact match first, then contains-match.
    """
    return _run_query("get_project_info", lambda: _service.get_project_info(project), format)


@mcp.tool()
def get_dependency_graph(project: str, format: str = "markdown") -> str:
    """Show which internal packages a project consumes and which projects consume it."""
    return _run_query(
        "get_dependency_graph", lambda: _service.get_dependency_graph(project), format
    )


# Types ----------------------------------------------------------------------


@mcp.tool()
def search_types(
    pattern: str,
    namespace: str | None = None,
    kind: str | None = None,
    project: str | None = None,
    format: str = "markdown",
) -> str:
    """Search types by name.  ``*`` is a wildcard; no wildcard means contains.

    Args:
        pattern: Type name pattern, e.g. ``*Repository``.
        namespace: Optional namespace pattern.
        kind: Optional kind filter (class, interface, struct, enum, record).
        project: Optional project name filter.
    """
    return _run_query(
        "search_types",
        lambda: _service.search_types(pattern, namespace, kind, project),
        format,
        SEARCH_TYPES_LIMIT,
    )


@mcp.tool()
def find_implementors(interface_pattern: str, format: str = "markdown") -> str:
    """Find every type implementing an interface matching the pattern."""
    return _run_query(
        "find_implementors",
        lambda: _service.find_implementors(interface_pattern),
        format,
        SEARCH_RESULTS_LIMIT,
    )


@mcp.tool()
def get_type_details(type_name: str, format: str = "markdown") -> str:
    """Show up to five same-named types with interfaces and injected dependencies."""
    return _run_query(
        "get_type_details",
        lambda: _service.get_type_details(type_name),
        format,
        TYPE_DETAILS_LIMIT,
    )


@mcp.tool()
def search_injections(dependency_pattern: str, format: str = "markdown") -> str:
    """Find types that receive a dependency matching the pattern through their constructor."""
    return _run_query(
        "search_injections",
        lambda: _service.search_injections(dependency_pattern),
        format,
        SEARCH_RESULTS_LIMIT,
    )


@mcp.tool()
def find_untested_types(project: str | None = None, format: str = "markdown") -> str:
    """List public production classes and records without a matching test type."""
    return _run_query(
        "find_untested_types",
        lambda: _service.find_untested_types(project),
        format,
        UNTESTED_TYPES_LIMIT,
    )


# Packages, endpoints, methods, configuration --------------------------------


@mcp.tool()
def get_package_versions(package_pattern: str, format: str = "markdown") -> str:
    """Show which versions of matching packages each project uses."""
    return _run_query(
        "get_package_versions", lambda: _service.get_package_versions(package_pattern), format
    )


@mcp.tool()
def search_endpoints(route_pattern: str, format: str = "markdown") -> str:
    """Search REST routes and GraphQL operations by route or handler name."""
    return _run_query(
        "search_endpoints",
        lambda: _service.search_endpoints(route_pattern),
        format,
        SEARCH_RESULTS_LIMIT,
    )


@mcp.tool()
def search_methods(
    pattern: str,
    return_type: str | None = None,
    project: str | None = None,
    format: str = "markdown",
) -> str:
    """Search public methods by name, optionally filtered by return type and project."""
    return _run_query(
        "search_methods",
        lambda: _service.search_methods(pattern, return_type, project),
        format,
        SEARCH_RESULTS_LIMIT,
    )


@mcp.tool()
def search_config(
    key_pattern: str,
    source: str | None = None,
    project: str | None = None,
    format: str = "markdown",
) -> str:
    """Search configuration keys.

    Args:
        key_pattern: Key pattern, e.g. ``ConnectionStrings:*``.
        source: Optional source filter: appsettings, env_var or IConfiguration.
        project: Optional project name filter.
    """
    return _run_query(
        "search_config",
        lambda: _service.search_config(key_pattern, source, project),
        format,
        SEARCH_RESULTS_LIMIT,
    )


# Analysis -------------------------------------------------------------------


@mcp.tool()
def trace_flow(type_name: str, max_depth: int = DEFAULT_TRACE_DEPTH, format: str = "markdown") -> str:
    """Trace implementors and injectors of a type across projects.

    Args:
        type_name: Exact type name, e.g. ``IOrderService``.
        max_depth: How many hops to follow (default 3).
    """
    return _run_query("trace_flow", lambda: _service.trace_flow(type_name, max_depth), format)


@mcp.tool()
def analyze_impact(type_name: str, format: str = "markdown") -> str:
    """Report the types and projects affected by changing a type."""
    return _run_query("analyze_impact", lambda: _service.analyze_impact(type_name), format)


@mcp.tool()
def check_version_alignment(format: str = "markdown") -> str:
    """Find external packages referenced at different versions across projects."""
    return _run_query("check_version_alignment", _service.check_version_alignment, format)


@mcp.tool()
def detect_patterns(project: str | None = None, format: str = "markdown") -> str:
    """Detect common architecture patterns, optionally within one project."""
    return _run_query("detect_patterns", lambda: _service.detect_patterns(project), format)


@mcp.tool()
def get_index_info(format: str = "markdown") -> str:
    """Show the index location, size, last scan time and row counts."""
    return _run_query("get_index_info", _service.get_index_info, format)


# Generators -----------------------------------------------------------------


@mcp.tool()
def generate_agents_md(product_name: str | None = None, format: str = "markdown") -> str:
    """Generate an AGENTS.md file for the indexed codebase.

    Returns markdown with the product overview, project structure,
    dependency graph and detected conventions.  Save the output as
    AGENTS.md in the target repository root.

    Args:
        product_name: Optional product or codebase name for the header.
    """
    return _run_query(
        "generate_agents_md", lambda: _service.generate_agents_md(product_name), format
    )


# Maintenance ----------------------------------------------------------------


@mcp.tool()
async def rescan_memory(incremental: bool = False) -> str:
    """Re-scan every repository and refresh the index.

    Args:
        incremental: Only rescan projects whose source files changed.
    """
    logger.info("Tool rescan_memory invoked (incremental=%s)", incremental)
    last_scan = _last_scan()
    try:
        summary = await asyncio.to_thread(_runtime.scanner.run, incremental)
    except ScanCancelledError as exc:
        return f"⏹️ {exc.summary.describe() if exc.summary else exc.detail}"
    except AppError as exc:
        return f"❌ Scan failed: {exc.detail}"
    # Top-level handler: broad catch intentional
    except Exception:
        logger.exception("Unexpected error during scan")
        return UNEXPECTED_ERROR_MESSAGE
    return render_scan_result(summary, last_scan)


@mcp.tool()
async def rescan_project(project_name: str) -> str:
    """Forget one project's fingerprint and run an incremental scan."""
    logger.info("Tool rescan_project invoked with project=%s", project_name)
    try:
        summary = await asyncio.to_thread(_runtime.scanner.rescan_project, project_name)
    except AppError as exc:
        return f"❌ Rescan failed for '{project_name}': {exc.detail}"
    # Top-level handler: broad catch intentional
    except Exception:
        logger.exception("Unexpected error rescanning %s", project_name)
        return UNEXPECTED_ERROR_MESSAGE
    if not summary.success:
        return f"❌ Rescan failed for '{project_name}': {summary.describe()}"
    return f"✅ {summary.describe()}"


@mcp.tool()
async def update_repos(auto_rescan: bool = False) -> str:
    """Fetch and pull every repository on an allowed branch.

    Args:
        auto_rescan: Run an incremental scan afterwards when anything changed.
    """
    logger.info("Tool update_repos invoked (auto_rescan=%s)", auto_rescan)
    try:
        report = await _runtime.fetcher.update_repos(auto_rescan)
    except AppError as exc:
        return f"❌ Update failed: {exc.detail}"
    # Top-level handler: broad catch intentional
    except Exception:
        logger.exception("Unexpected error updating repositories")
        return UNEXPECTED_ERROR_MESSAGE
    return render_update_report(report)


@mcp.tool()
async def get_repo_status() -> str:
    """Show branch, uncommitted changes and ahead/behind counts for every repository."""
    logger.info("Tool get_repo_status invoked")
    try:
        statuses = await _runtime.fetcher.status_all()
    # Top-level handler: broad catch intentional
    except Exception:
        logger.exception("Unexpected error reading repository status")
        return UNEXPECTED_ERROR_MESSAGE
    return render_repo_statuses(statuses, _runtime.config.allowed_branches)


if __name__ == "__main__":
    setup_logging(REPO_INDEX_SERVICE_NAME, _runtime.config.log_level)
    mcp.run()
