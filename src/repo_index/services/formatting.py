"""Markdown rendering for query and analysis results."""
from __future__ import annotations

from src.shared.models.analysis import (
    FlowStep,
    FlowTrace,
    ImpactReport,
    MismatchSeverity,
    PatternFinding,
    PatternReport,
    RelationKind,
    VersionMismatch,
)
from src.shared.models.scan import PullStatus, RepoStatus, ScanSummary, UpdateReport

_MERMAID_REPLACEMENTS = str.maketrans({"<": "_", ">": "_", " ": "_", ".": "_", "-": "_"})


def sanitize_mermaid_id(name: str) -> str:
    """Make *name* usable as a bare mermaid node id."""
    return name.translate(_MERMAID_REPLACEMENTS)


def table_header(*columns: str) -> list[str]:
    """Return the header and separator lines of a markdown table."""
    return [
        "| " + " | ".join(columns) + " |",
        "| " + " | ".join("---" for _ in columns) + " |",
    ]


def table_row(*cells: object) -> str:
    return "| " + " | ".join("" if c is None else str(c) for c in cells) + " |"


def build_markdown_table(lines: list[str], empty_message: str) -> str:
    """Join table lines, or return *empty_message* when only the header is present."""
    if len(lines) == 2:
        return empty_message
    return "\n".join(lines)


def mermaid_block(direction: str, edges: list[str]) -> list[str]:
    return ["```mermaid", f"graph {direction}", *edges, "```"]


# ----------------------------------------------------------------------
# Flow trace
# ----------------------------------------------------------------------


def _render_steps(steps: list[FlowStep], out: list[str]) -> None:
    for step in steps:
        indent = " " * (step.depth * 2)
        if step.relation == RelationKind.IMPLEMENTS:
            out.append(f"{indent}**{step.type_name}** implemented by:")
            arrow = "→"
        else:
            out.append(f"{indent}**{step.type_name}** injected into:")
            arrow = "←"
        for neighbour in step.neighbours:
            out.append(f"{indent}  {arrow} {neighbour.type_name} ({neighbour.project_name})")
            _render_steps(neighbour.steps, out)


def render_flow_trace(trace: FlowTrace) -> str:
    lines = [f"# Flow Trace: {trace.root}", ""]
    _render_steps(trace.steps, lines)
    if not trace.has_connections:
        lines.append("No flow connections found for this type.")
    else:
        edges = [
            f"    {sanitize_mermaid_id(e.source)} -->|{e.label.value}| {sanitize_mermaid_id(e.target)}"
            for e in trace.unique_edges
        ]
        lines += ["", "## Dependency Graph", ""]
        lines += mermaid_block("LR", edges)
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Impact analysis
# ----------------------------------------------------------------------


def render_impact(report: ImpactReport) -> str:
    if not report.found:
        return f"Type '{report.type_name}' not found."

    lines = [f"# Impact Analysis: {report.type_name}", "", "## Defined In"]
    lines += [f"- {project}" for project in report.home_projects]
    lines += ["", "## Directly Affected Types"]
    if report.direct_references:
        lines += table_header("Type", "Project", "Relation")
        lines += [
            table_row(ref.type_name, ref.project_name, ref.relation.value)
            for ref in report.direct_references
        ]
    else:
        lines.append("No direct references found.")
    lines.append("")

    if report.transitive_projects:
        lines += [
            "## Transitively Affected Projects",
            "Projects that depend on directly-affected projects:",
            "",
        ]
        lines += [f"- {project}" for project in report.transitive_projects]
        lines.append("")

    lines += [
        "## Summary",
        f"- **Direct references:** {report.direct_reference_count} types "
        f"across {report.direct_project_count} projects",
        f"- **Transitive impact:** {report.transitive_project_count} additional projects",
        f"- **Total blast radius:** {report.blast_radius} projects",
    ]

    if report.direct_references:
        target = sanitize_mermaid_id(report.type_name)
        seen: set[str] = set()
        edges = [f"    {target}:::source"]
        for ref in report.direct_references:
            edge = f"    {sanitize_mermaid_id(ref.type_name)} -->|{ref.relation.value}| {target}"
            if edge not in seen:
                seen.add(edge)
                edges.append(edge)
        for project in report.transitive_projects:
            edges.append(f"    {sanitize_mermaid_id(project)}[/{project}/] -.->|transitive| {target}")
        lines += ["", "## Impact Graph", ""]
        lines += mermaid_block("TD", edges)
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Version alignment
# ----------------------------------------------------------------------


def render_version_alignment(mismatches: list[VersionMismatch]) -> str:
    if not mismatches:
        return "✅ All packages are version-aligned across projects."

    lines = [
        "# Package Version Alignment Report",
        "",
        f"Found **{len(mismatches)} packages** with version mismatches:",
        "",
    ]
    for mismatch in mismatches:
        icon = "🔴" if mismatch.severity == MismatchSeverity.MAJOR else "🟡"
        lines += [f"### {icon} {mismatch.package_name} ({mismatch.severity.value})", ""]
        lines += [
            f"- **{version}**: {', '.join(projects)}"
            for version, projects in mismatch.versions.items()
        ]
        lines.append("")

    major = sum(1 for m in mismatches if m.severity == MismatchSeverity.MAJOR)
    lines.append(
        f"**Summary:** {major} major mismatches, {len(mismatches) - major} minor mismatches"
    )
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Architecture patterns
# ----------------------------------------------------------------------

_PATTERN_SECTIONS: dict[str, tuple[str, str | None]] = {
    "repository": ("## 📦 Repository Pattern", "Data access abstracted behind repository interfaces:"),
    "decorator": (
        "## 🎀 Decorator Pattern",
        "Types that implement an interface while also injecting it (wrapping behavior):",
    ),
    "cqrs": ("## 📬 CQRS / Mediator Pattern", "Command/query separation with handler types:"),
    "factory": ("## 🏭 Factory Pattern", "Object creation abstracted via factory types:"),
    "event_sourcing": ("## 📡 Event Sourcing / Domain Events", None),
    "options": ("## ⚙️ Options Pattern", "Strongly-typed configuration via `IOptions<T>`:"),
    "service_layer": ("## 🔧 Service Layer Pattern", None),
    "high_coupling": (
        "## ⚠️ High Dependency Count (potential God classes)",
        "Types with 5+ constructor-injected dependencies, consider splitting:",
    ),
}


def _pattern_line(finding: PatternFinding) -> str:
    rule = finding.rule
    if rule == "repository":
        return f"- `{finding.type_name}` implements `{finding.related}` ({finding.project_name})"
    if rule == "decorator":
        return f"- `{finding.type_name}` decorates `{finding.related}` ({finding.project_name})"
    if rule in ("cqrs", "event_sourcing"):
        return f"- `{finding.type_name}` ({finding.kind}, {finding.project_name})"
    if rule == "options":
        return f"- `{finding.type_name}` uses `{finding.related}` ({finding.project_name})"
    if rule == "service_layer":
        return (
            f"Found **{finding.count}** service implementations "
            "(classes implementing `I*Service` interfaces)."
        )
    if rule == "high_coupling":
        return f"- `{finding.type_name}`: **{finding.count} dependencies** ({finding.project_name})"
    return f"- `{finding.type_name}` ({finding.project_name})"


def render_patterns(report: PatternReport) -> str:
    lines = ["# Architecture Patterns Detected", ""]
    if report.project_filter:
        lines += [f"*Scoped to project: {report.project_filter}*", ""]

    for rule, findings in report.findings.items():
        if not findings:
            continue
        title, intro = _PATTERN_SECTIONS.get(rule, (f"## {rule}", None))
        lines += [title, ""]
        if intro:
            lines += [intro, ""]
        lines += [_pattern_line(f) for f in findings]
        lines.append("")

    if report.patterns_found == 0:
        lines.append("No common architecture patterns detected in the scanned codebase.")
    else:
        lines += ["---", f"*{report.patterns_found} pattern(s) detected.*"]
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Repository operations
# ----------------------------------------------------------------------

_PULL_ICONS = {
    PullStatus.SUCCESS: "✅",
    PullStatus.NON_DEFAULT_BRANCH: "⚠️",
    PullStatus.ERROR: "❌",
    PullStatus.CANCELLED: "⏹️",
}


def render_update_report(report: UpdateReport) -> str:
    lines = table_header("Project", "Branch", "Status", "Details")
    for result in report.results:
        lines.append(table_row(result.name, result.branch, _PULL_ICONS[result.status], result.message))

    counts = {status: 0 for status in PullStatus}
    for result in report.results:
        counts[result.status] += 1
    lines += [
        "",
        f"**Summary:** {counts[PullStatus.SUCCESS]} updated, "
        f"{counts[PullStatus.NON_DEFAULT_BRANCH]} skipped (non-default branch), "
        f"{counts[PullStatus.ERROR]} errors, {report.changed_count} changed",
    ]
    if counts[PullStatus.CANCELLED]:
        lines.append(f"{counts[PullStatus.CANCELLED]} repositories not started (cancelled).")

    if report.rescan is not None:
        lines.append("")
        if report.rescan.success:
            lines.append(f"🔄 **Auto-rescan:** {report.rescan.describe()}")
        else:
            lines.append(f"❌ **Auto-rescan failed:** {report.rescan.describe()}")
    elif report.rescan_skipped:
        lines += ["", "🔄 **Auto-rescan:** Skipped (no repos changed)"]
    return "\n".join(lines)


def render_repo_statuses(statuses: list[RepoStatus], allowed_branches: list[str]) -> str:
    lines = table_header("Project", "Branch", "Changes", "Ahead", "Behind")
    for status in statuses:
        changes = "⚠️ dirty" if status.has_uncommitted_changes else "clean"
        lines.append(table_row(status.name, status.branch, changes, status.ahead, status.behind))

    allowed = {b.lower() for b in allowed_branches}
    dirty = sum(1 for s in statuses if s.has_uncommitted_changes)
    off_branch = sum(1 for s in statuses if s.branch.lower() not in allowed)
    lines += [
        "",
        f"**Summary:** {len(statuses)} repos, {dirty} with uncommitted changes, "
        f"{off_branch} not on {'/'.join(allowed_branches)}",
    ]
    return "\n".join(lines)


def render_scan_result(summary: ScanSummary, last_scan_utc: str | None) -> str:
    """Render a scan outcome together with the timestamp of the previous scan."""
    last_scan = f"Last scan: {last_scan_utc}" if last_scan_utc else "No previous scan found"
    if not summary.success:
        return (
            f"❌ Scan failed after {summary.elapsed_seconds:.1f}s\n\n"
            f"{summary.describe()}\n\n{last_scan}"
        )
    return (
        f"✅ Scan completed in {summary.elapsed_seconds:.1f}s\n\n"
        f"{summary.describe()}\n\n{last_scan}"
    )
