"""Read façade over the index: cached lookups rendered as markdown."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from src.repo_index.services.formatting import (
    build_markdown_table,
    mermaid_block,
    render_flow_trace,
    render_impact,
    render_patterns,
    render_version_alignment,
    sanitize_mermaid_id,
    table_header,
    table_row,
)
from src.repo_index.services.graph_engine import GraphQueryEngine
from src.repo_index.services.pattern_detector import PatternDetector
from src.repo_index.services.query_cache import QueryCache, make_key
from src.repo_index.storage.index_queries import IndexQueries
from src.shared.constants import (
    COMMON_PACKAGE_MIN_PROJECTS,
    COMMON_PACKAGES_LIMIT,
    DEFAULT_PRODUCT_NAME,
    DEFAULT_TRACE_DEPTH,
    KEY_INTERFACES_LIMIT,
    OVERVIEW_ENDPOINTS_LIMIT,
    PROJECT_EXTERNAL_DEPS_LIMIT,
    PROJECT_KEY_TYPES_LIMIT,
    SEARCH_RESULTS_LIMIT,
    SEARCH_TYPES_LIMIT,
    TEST_PACKAGE_FRAGMENTS,
    TYPE_DETAILS_LIMIT,
    UNTESTED_TYPES_LIMIT,
)
from src.shared.errors import ValidationError
from src.shared.utils import to_like_pattern

logger = logging.getLogger(__name__)


def _project_not_found(name: str) -> str:
    return f"Project '{name}' not found."


class QueryService:
    """Answers every read query as a markdown string.

    Project listing, type search and implementor search go through the
    injected :class:`QueryCache`.  All other operations read the index
    directly.  A missing index raises
    :class:`~src.shared.errors.IndexUnavailableError` from every method.

    Args:
        queries: Read-side query layer.
        cache: Result cache; pass ``NullQueryCache()`` to disable caching.
    """

    def __init__(self, queries: IndexQueries, cache: QueryCache) -> None:
        self._queries = queries
        self._cache = cache
        self._engine = GraphQueryEngine(queries)
        self._patterns = PatternDetector(queries)

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def engine(self) -> GraphQueryEngine:
        return self._engine

    def invalidate_cache(self) -> None:
        self._cache.invalidate()

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self) -> str:
        return self._cache.get_or_compute(make_key("list_projects"), self._list_projects)

    def _list_projects(self) -> str:
        lines = table_header("Project", "Assemblies", "Types")
        for row in self._queries.list_projects():
            lines.append(table_row(row["name"], row["assembly_count"], row["type_count"]))
        return build_markdown_table(lines, "No projects found.")

    def get_project_info(self, project: str) -> str:
        q = self._queries
        with q.snapshot():
            name = q.resolve_project_name(project)
            if name is None:
                return _project_not_found(project)

            lines = [f"# {name}"]
            row = q.project_row(name)
            if row is not None:
                lines.append(f"- **Path:** {row['directory_path']}")
                if row["solution_file"]:
                    lines.append(f"- **Solution:** {row['solution_file']}")
                if row["git_remote_url"]:
                    lines.append(f"- **Remote:** {row['git_remote_url']}")

            lines.append("\n## Assemblies")
            for asm in q.project_assemblies(name):
                test_tag = " (test)" if asm["is_test"] else ""
                lines.append(f"- {asm['assembly_name']} [{asm['target_framework'] or ''}]{test_tag}")

            lines.append("\n## Internal Dependencies (packages)")
            internal = q.project_packages(name, internal=True)
            lines += [f"- {pkg['package_name']} {pkg['version'] or ''}".rstrip() for pkg in internal]
            if not internal:
                lines.append("None")

            lines.append(f"\n## External Dependencies (top {PROJECT_EXTERNAL_DEPS_LIMIT})")
            for pkg in q.project_packages(name, internal=False, limit=PROJECT_EXTERNAL_DEPS_LIMIT):
                version = f" {pkg['version']}" if pkg["version"] else ""
                lines.append(f"- {pkg['package_name']}{version}")

            lines.append("\n## Namespaces")
            for ns in q.project_namespaces(name):
                lines.append(f"- {ns['namespace_name']} ({ns['type_count']} types)")

            lines.append(f"\n## Key Public Types (up to {PROJECT_KEY_TYPES_LIMIT})")
            for t in q.project_key_types(name, PROJECT_KEY_TYPES_LIMIT):
                lines.append(f"- `{t['type_name']}` ({t['kind']}) in {t['namespace_name']}")
        return "\n".join(lines) + "\n"

    def get_dependency_graph(self, project: str) -> str:
        q = self._queries
        with q.snapshot():
            name = q.resolve_project_name(project)
            if name is None:
                return _project_not_found(project)
            upstream = q.project_packages(name, internal=True)
            downstream = q.downstream_projects(name)

        lines = [f"# Dependency Graph: {name}", "", "## Depends On (upstream)"]
        lines += [f"- {pkg['package_name']} {pkg['version'] or ''}".rstrip() for pkg in upstream]
        if not upstream:
            lines.append("None (foundation library)")

        lines += ["", "## Depended On By (downstream)"]
        lines += [f"- {p}" for p in downstream]
        if not downstream:
            lines.append("None (leaf service)")

        if upstream or downstream:
            node = sanitize_mermaid_id(name)
            edges = [
                f"    {node} -->|depends on| {sanitize_mermaid_id(pkg['package_name'])}"
                for pkg in upstream
            ]
            edges += [f"    {sanitize_mermaid_id(p)} -->|depends on| {node}" for p in downstream]
            lines += ["", "## Dependency Diagram", ""]
            lines += mermaid_block("LR", edges)
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def search_types(
        self,
        pattern: str,
        namespace: str | None = None,
        kind: str | None = None,
        project: str | None = None,
    ) -> str:
        key = make_key("search_types", pattern, namespace, kind, project)
        return self._cache.get_or_compute(
            key, lambda: self._search_types(pattern, namespace, kind, project)
        )

    def _search_types(
        self, pattern: str, namespace: str | None, kind: str | None, project: str | None
    ) -> str:
        logger.debug("search_types pattern=%s", pattern)
        rows = self._queries.search_types(
            to_like_pattern(pattern),
            to_like_pattern(namespace) if namespace else None,
            kind,
            project,
            SEARCH_TYPES_LIMIT,
        )
        lines = table_header("Type", "Kind", "Namespace", "Project", "File")
        lines += [
            table_row(r["type_name"], r["kind"], r["namespace_name"], r["project_name"], r["file_path"])
            for r in rows
        ]
        return build_markdown_table(lines, f"No types matching '{pattern}'.")

    def find_implementors(self, interface_pattern: str) -> str:
        key = make_key("find_implementors", interface_pattern)
        return self._cache.get_or_compute(key, lambda: self._find_implementors(interface_pattern))

    def _find_implementors(self, interface_pattern: str) -> str:
        rows = self._queries.find_implementors(to_like_pattern(interface_pattern), SEARCH_RESULTS_LIMIT)
        lines = table_header("Implementing Type", "Kind", "Interface", "Project", "File")
        lines += [
            table_row(r["type_name"], r["kind"], r["interface_name"], r["project_name"], r["file_path"])
            for r in rows
        ]
        return build_markdown_table(lines, f"No implementors of '{interface_pattern}' found.")

    def get_type_details(self, type_name: str) -> str:
        q = self._queries
        lines: list[str] = []
        with q.snapshot():
            rows = q.type_details(type_name, TYPE_DETAILS_LIMIT)
            if not rows:
                return f"Type '{type_name}' not found."
            for row in rows:
                lines += [
                    f"# {row['type_name']}",
                    f"- **Kind:** {row['kind']}",
                    f"- **Public:** {'Yes' if row['is_public'] else 'No'}",
                    f"- **Namespace:** {row['namespace_name']}",
                    f"- **Project:** {row['project_name']}",
                ]
                if row["file_path"]:
                    lines.append(f"- **File:** {row['file_path']}")
                if row["base_type"]:
                    lines.append(f"- **Base Type:** {row['base_type']}")
                if row["summary_comment"]:
                    lines.append(f"- **Summary:** {row['summary_comment']}")
                interfaces = q.type_interfaces(row["id"])
                if interfaces:
                    lines.append(f"- **Implements:** {', '.join(interfaces)}")
                deps = q.type_injected_dependencies(row["id"])
                if deps:
                    lines.append(f"- **Injected Dependencies:** {', '.join(deps)}")
                lines.append("")
        return "\n".join(lines) + "\n"

    def search_injections(self, dependency_pattern: str) -> str:
        rows = self._queries.search_injections(to_like_pattern(dependency_pattern), SEARCH_RESULTS_LIMIT)
        lines = table_header("Type", "Dependency", "Project", "File")
        lines += [
            table_row(r["type_name"], r["dependency_type"], r["project_name"], r["file_path"])
            for r in rows
        ]
        return build_markdown_table(lines, f"No types inject '{dependency_pattern}'.")

    def find_untested_types(self, project: str | None = None) -> str:
        rows = self._queries.untested_types(project, UNTESTED_TYPES_LIMIT)
        if not rows:
            return "✅ All production types appear to have test coverage."
        lines = table_header("Type", "Namespace", "Project", "File")
        lines += [
            table_row(r["type_name"], r["namespace_name"], r["project_name"], r["file_path"])
            for r in rows
        ]
        return (
            f"Found **{len(rows)} production types** without matching test classes:\n\n"
            + "\n".join(lines)
        )

    # ------------------------------------------------------------------
    # Packages, methods, endpoints, configuration
    # ------------------------------------------------------------------

    def get_package_versions(self, package_pattern: str) -> str:
        rows = self._queries.package_versions(to_like_pattern(package_pattern))
        if not rows:
            return f"No packages matching '{package_pattern}'."

        lines = table_header("Package", "Version", "Project")
        versions: dict[str, list[str]] = {}
        for r in rows:
            version = r["version"] or "unspecified"
            lines.append(table_row(r["package_name"], version, r["project_name"]))
            seen = versions.setdefault(r["package_name"], [])
            if version not in seen:
                seen.append(version)

        mismatched = {pkg: vs for pkg, vs in versions.items() if len(vs) > 1}
        if mismatched:
            lines += ["", "⚠️ **Version mismatches detected:**"]
            lines += [f"- {pkg}: {', '.join(vs)}" for pkg, vs in mismatched.items()]
        return "\n".join(lines)

    def search_endpoints(self, route_pattern: str) -> str:
        logger.debug("search_endpoints pattern=%s", route_pattern)
        rows = self._queries.search_endpoints(to_like_pattern(route_pattern), SEARCH_RESULTS_LIMIT)
        lines = table_header("Method", "Route", "Kind", "Handler", "Type", "Project")
        lines += [
            table_row(
                r["http_method"], r["route_template"], r["endpoint_kind"],
                r["method_name"], r["type_name"], r["project_name"],
            )
            for r in rows
        ]
        return build_markdown_table(lines, f"No endpoints matching '{route_pattern}'.")

    def search_methods(
        self,
        pattern: str,
        return_type: str | None = None,
        project: str | None = None,
    ) -> str:
        rows = self._queries.search_methods(
            to_like_pattern(pattern), return_type, project, SEARCH_RESULTS_LIMIT
        )
        lines = table_header("Method", "Returns", "Type", "Project", "File")
        lines += [
            table_row(r["method_name"], r["return_type"], r["type_name"], r["project_name"], r["file_path"])
            for r in rows
        ]
        return build_markdown_table(lines, f"No methods matching '{pattern}'.")

    def search_config(
        self,
        key_pattern: str,
        source: str | None = None,
        project: str | None = None,
    ) -> str:
        rows = self._queries.search_config(
            to_like_pattern(key_pattern), source, project, SEARCH_RESULTS_LIMIT
        )
        lines = table_header("Project", "Source", "Key", "Default", "File")
        lines += [
            table_row(r["project_name"], r["source"], r["key_name"], r["default_value"], r["file_path"])
            for r in rows
        ]
        return build_markdown_table(lines, f"No config keys matching '{key_pattern}'.")

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def trace_flow(self, type_name: str, max_depth: int = DEFAULT_TRACE_DEPTH) -> str:
        if max_depth < 0:
            raise ValidationError("max_depth must be zero or greater")
        return render_flow_trace(self._engine.trace_flow(type_name, max_depth))

    def analyze_impact(self, type_name: str) -> str:
        return render_impact(self._engine.analyze_impact(type_name))

    def check_version_alignment(self) -> str:
        return render_version_alignment(self._engine.check_version_alignment())

    def detect_patterns(self, project: str | None = None) -> str:
        resolved = None
        if project:
            resolved = self._queries.resolve_project_name(project)
            if resolved is None:
                return _project_not_found(project)
        return render_patterns(self._patterns.detect(resolved))

    def get_index_info(self) -> str:
        q = self._queries
        with q.snapshot():
            last_scan = q.last_scan_utc()
            counts = q.table_counts()

        lines = ["## Index Database Info", ""]
        size = q.db_path.stat().st_size
        if size < 1024 * 1024:
            size_text = f"{size / 1024.0:.1f} KB"
        else:
            size_text = f"{size / (1024.0 * 1024.0):.1f} MB"
        lines += [f"**Database path:** `{q.db_path}`", f"**Database size:** {size_text}", ""]
        if last_scan:
            lines += [f"**Last scan:** {last_scan}", ""]
        lines += ["### Row Counts", ""]
        lines += table_header("Table", "Rows")
        lines += [table_row(table, count) for table, count in counts.items()]
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Codebase overview
    # ------------------------------------------------------------------

    def generate_agents_md(self, product_name: str | None = None) -> str:
        """Render an AGENTS.md overview of the whole indexed codebase.

        Sections: overview counts, projects, internal dependencies,
        detected conventions (frameworks, common packages, test tooling),
        API endpoints and the most implemented interfaces.
        """
        q = self._queries
        with q.snapshot():
            counts = q.overview_counts()
            projects = q.project_overview()
            consumers = q.internal_package_consumers()
            frameworks = q.target_framework_counts()
            common = q.common_external_packages(COMMON_PACKAGE_MIN_PROJECTS, COMMON_PACKAGES_LIMIT)
            test_packages = q.test_packages_matching(TEST_PACKAGE_FRAGMENTS)
            endpoints = (
                q.search_endpoints("%", OVERVIEW_ENDPOINTS_LIMIT) if counts["endpoints"] else []
            )
            interfaces = q.key_interfaces(KEY_INTERFACES_LIMIT)

        name = product_name or DEFAULT_PRODUCT_NAME
        lines = [
            f"# {name}: Agent Instructions",
            "",
            "## Overview",
            "",
            f"This codebase consists of **{counts['projects']} projects** with "
            f"**{counts['assemblies']} assemblies**, **{counts['public_types']} public types**, "
            f"and **{counts['endpoints']} endpoints**.",
            "",
            "## Projects",
            "",
        ]
        lines += table_header("Project", "Assemblies", "Public Types")
        lines += [
            table_row(row["name"], row["assembly_count"], row["public_type_count"])
            for row in projects
        ]

        lines += ["", "## Internal Dependencies", ""]
        lines += ["Projects that consume other projects via internal packages:", ""]
        grouped: dict[str, list[str]] = {}
        for row in consumers:
            grouped.setdefault(row["consumer"], []).append(row["dependency"])
        lines += [f"- **{consumer}** → {', '.join(deps)}" for consumer, deps in grouped.items()]
        if not grouped:
            lines.append("None")

        lines += ["", "## Detected Conventions", ""]
        framework_text = ", ".join(
            f"{row['target_framework']} ({row['assembly_count']} projects)" for row in frameworks
        )
        lines.append(f"- **Target Framework:** {framework_text or 'unknown'}")
        lines.append("- **Common Packages:**")
        lines += [
            f"  - {row['package_name']} (used by {row['project_count']} projects)"
            for row in common
        ]
        if test_packages:
            lines.append(f"- **Testing:** {', '.join(test_packages)}")

        if endpoints:
            lines += ["", "## API Endpoints", ""]
            lines += table_header("Method", "Route", "Kind", "Type", "Project")
            lines += [
                table_row(
                    row["http_method"], row["route_template"] or "", row["endpoint_kind"],
                    row["type_name"], row["project_name"],
                )
                for row in endpoints
            ]

        lines += ["", "## Key Interfaces", ""]
        lines += table_header("Interface", "Namespace", "Project", "Implementors")
        lines += [
            table_row(
                row["type_name"], row["namespace_name"], row["project_name"],
                row["implementor_count"],
            )
            for row in interfaces
        ]

        generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
        lines += ["", "---", f"*Generated by repo-index on {generated} UTC*"]
        return "\n".join(lines) + "\n"
