"""Rule-based architecture pattern detection.

Each rule is an independent, read-only function registered in
:data:`PATTERN_RULES` under its name.  A rule receives the query layer and
an optional resolved project name; with a project it only looks at that
project's own types.  Finding nothing is a normal outcome.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from src.repo_index.storage.index_queries import IndexQueries
from src.shared.constants import HIGH_COUPLING_THRESHOLD
from src.shared.models.analysis import PatternFinding, PatternReport

logger = logging.getLogger(__name__)

PatternRule = Callable[[IndexQueries, Optional[str]], list[PatternFinding]]

_TYPE_JOINS = """
    JOIN namespaces n ON t.namespace_id = n.id
    JOIN assemblies a ON n.assembly_id = a.id
    JOIN projects p ON a.project_id = p.id
"""
_PROJECT_FILTER = " AND a.project_id = (SELECT id FROM projects WHERE name = :project)"


def _run(queries: IndexQueries, sql: str, project: str | None) -> list:
    params = {"project": project} if project else {}
    return queries.fetch_all(sql.replace("{project_filter}", _PROJECT_FILTER if project else ""), params)


def detect_repositories(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    """Implementors of ``IRepository*`` or ``I*Repository`` interfaces."""
    rows = _run(queries, f"""
        SELECT DISTINCT ti.interface_name, t.type_name, p.name
        FROM type_interfaces ti
        JOIN types t ON ti.type_id = t.id
        {_TYPE_JOINS}
        WHERE (ti.interface_name LIKE 'IRepository%' OR ti.interface_name LIKE 'I%Repository')
        {{project_filter}}
        ORDER BY ti.interface_name, t.type_name
    """, project)
    return [
        PatternFinding(rule="repository", type_name=row[1], related=row[0], project_name=row[2])
        for row in rows
    ]


def detect_decorators(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    """Types that implement an interface and also inject that same interface."""
    rows = _run(queries, f"""
        SELECT DISTINCT t.type_name, ti.interface_name, p.name
        FROM types t
        JOIN type_interfaces ti ON ti.type_id = t.id
        JOIN type_injected_deps tid ON tid.type_id = t.id
        {_TYPE_JOINS}
        WHERE tid.dependency_type = ti.interface_name
        {{project_filter}}
        ORDER BY t.type_name
    """, project)
    return [
        PatternFinding(rule="decorator", type_name=row[0], related=row[1], project_name=row[2])
        for row in rows
    ]


def detect_cqrs(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    """Command/query handlers by name or by mediator handler interface."""
    rows = _run(queries, f"""
        SELECT DISTINCT t.type_name, t.kind, p.name
        FROM types t
        {_TYPE_JOINS}
        WHERE t.is_public = 1
        AND (
            t.type_name LIKE '%CommandHandler' OR t.type_name LIKE '%QueryHandler'
            OR EXISTS (SELECT 1 FROM type_interfaces ti WHERE ti.type_id = t.id
                       AND (ti.interface_name LIKE 'IRequestHandler%'
                            OR ti.interface_name LIKE 'INotificationHandler%'))
        )
        {{project_filter}}
        ORDER BY t.type_name
    """, project)
    return [
        PatternFinding(rule="cqrs", type_name=row[0], kind=row[1], project_name=row[2])
        for row in rows
    ]


def detect_factories(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    rows = _run(queries, f"""
        SELECT DISTINCT t.type_name, p.name
        FROM types t
        {_TYPE_JOINS}
        WHERE t.is_public = 1 AND t.type_name LIKE '%Factory'
        {{project_filter}}
        ORDER BY t.type_name
    """, project)
    return [
        PatternFinding(rule="factory", type_name=row[0], project_name=row[1])
        for row in rows
    ]


def detect_event_sourcing(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    """Domain events, event stores and event handlers."""
    rows = _run(queries, f"""
        SELECT DISTINCT t.type_name, t.kind, p.name
        FROM types t
        {_TYPE_JOINS}
        WHERE t.is_public = 1
        AND (
            t.type_name LIKE '%DomainEvent' OR t.type_name LIKE 'I%EventStore'
            OR t.type_name LIKE '%EventHandler'
            OR EXISTS (SELECT 1 FROM type_interfaces ti WHERE ti.type_id = t.id
                       AND (ti.interface_name LIKE 'IEventStore%'
                            OR ti.interface_name LIKE 'IDomainEvent%'))
        )
        {{project_filter}}
        ORDER BY t.type_name
    """, project)
    return [
        PatternFinding(rule="event_sourcing", type_name=row[0], kind=row[1], project_name=row[2])
        for row in rows
    ]


def detect_options(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    """Consumers of strongly typed ``IOptions<T>`` configuration."""
    rows = _run(queries, f"""
        SELECT DISTINCT t.type_name, tid.dependency_type, p.name
        FROM type_injected_deps tid
        JOIN types t ON tid.type_id = t.id
        {_TYPE_JOINS}
        WHERE tid.dependency_type LIKE 'IOptions<%>'
        {{project_filter}}
        ORDER BY t.type_name
    """, project)
    return [
        PatternFinding(rule="options", type_name=row[0], related=row[1], project_name=row[2])
        for row in rows
    ]


def detect_service_layer(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    """Count of classes implementing an ``I*Service`` interface.

    Aggregate rule: yields a single finding carrying the count, or nothing.
    """
    rows = _run(queries, f"""
        SELECT COUNT(DISTINCT ti.type_id)
        FROM type_interfaces ti
        JOIN types t ON ti.type_id = t.id
        {_TYPE_JOINS}
        WHERE ti.interface_name LIKE 'I%Service'
        AND t.kind = 'class'
        {{project_filter}}
    """, project)
    count = int(rows[0][0]) if rows else 0
    if count == 0:
        return []
    return [PatternFinding(rule="service_layer", count=count, project_name=project)]


def detect_high_coupling(queries: IndexQueries, project: str | None) -> list[PatternFinding]:
    """Types injecting at least ``HIGH_COUPLING_THRESHOLD`` dependencies."""
    rows = _run(queries, f"""
        SELECT t.type_name, COUNT(*) AS dep_count, p.name
        FROM type_injected_deps tid
        JOIN types t ON tid.type_id = t.id
        {_TYPE_JOINS}
        WHERE 1=1 {{project_filter}}
        GROUP BY t.id
        HAVING COUNT(*) >= {HIGH_COUPLING_THRESHOLD}
        ORDER BY dep_count DESC, t.type_name
    """, project)
    return [
        PatternFinding(rule="high_coupling", type_name=row[0], count=int(row[1]), project_name=row[2])
        for row in rows
    ]


# Registry order is the report order.
PATTERN_RULES: dict[str, PatternRule] = {
    "repository": detect_repositories,
    "decorator": detect_decorators,
    "cqrs": detect_cqrs,
    "factory": detect_factories,
    "event_sourcing": detect_event_sourcing,
    "options": detect_options,
    "service_layer": detect_service_layer,
    "high_coupling": detect_high_coupling,
}


class PatternDetector:
    """Runs every registered rule and groups the findings by rule name."""

    def __init__(
        self,
        queries: IndexQueries,
        rules: dict[str, PatternRule] | None = None,
    ) -> None:
        self._queries = queries
        self._rules = dict(rules) if rules is not None else dict(PATTERN_RULES)

    @property
    def rule_names(self) -> list[str]:
        return list(self._rules)

    def detect(self, project: str | None = None) -> PatternReport:
        """Run all rules, optionally restricted to the already-resolved *project*."""
        report = PatternReport(project_filter=project)
        with self._queries.snapshot():
            for name, rule in self._rules.items():
                report.findings[name] = rule(self._queries, project)
        logger.debug(
            "Pattern detection (%s): %d rule(s) matched",
            project or "all projects", report.patterns_found,
        )
        return report
