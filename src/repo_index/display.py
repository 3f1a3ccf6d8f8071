"""Rich-based terminal output for the repository index CLI.

Uses a module-level :class:`~rich.console.Console` singleton so every
command renders consistently.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.shared.models.scan import PullStatus, RepoStatus, ScanSummary, UpdateReport

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()

_PULL_STYLES = {
    PullStatus.SUCCESS: ("ok", "green"),
    PullStatus.NON_DEFAULT_BRANCH: ("skipped", "yellow"),
    PullStatus.ERROR: ("error", "red"),
    PullStatus.CANCELLED: ("cancelled", "dim"),
}


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_scan_summary(summary: ScanSummary, title: str = "Scan") -> None:
    """Print a panel with the scan totals and a table of failed projects."""
    body = Text()
    body.append("Projects scanned: ", style="bold")
    body.append(f"{summary.project_count}\n", style="cyan")
    body.append("Projects skipped: ", style="bold")
    body.append(f"{summary.skipped_count} (unchanged)\n")
    if summary.pruned_count:
        body.append("Projects removed: ", style="bold")
        body.append(f"{summary.pruned_count}\n")
    body.append("Types indexed: ", style="bold")
    body.append(f"{summary.type_count}\n", style="cyan")
    body.append("Elapsed: ", style="bold")
    body.append(f"{summary.elapsed_seconds:.1f}s")

    style = "green" if summary.success and not summary.failed_projects else "yellow"
    if not summary.success:
        style = "red"
    _console.print(Panel(body, title=f"[bold]{title}[/bold]", border_style=style, expand=False))

    if summary.failed_projects:
        table = Table(title="Failed Projects", show_header=True, header_style="bold red")
        table.add_column("Project", style="cyan")
        table.add_column("Reason")
        for failure in summary.failed_projects:
            table.add_row(failure.project_name, failure.message)
        _console.print(table)


def print_update_report(report: UpdateReport) -> None:
    table = Table(title="Repository Update", show_header=True, header_style="bold magenta")
    table.add_column("Project", style="cyan")
    table.add_column("Branch")
    table.add_column("Status", justify="center")
    table.add_column("Details")
    for result in report.results:
        label, style = _PULL_STYLES[result.status]
        table.add_row(result.name, result.branch, f"[{style}]{label}[/{style}]", result.message)
    _console.print(table)
    _console.print(f"[bold]{report.changed_count}[/bold] repositories changed.")

    if report.rescan is not None:
        print_scan_summary(report.rescan, title="Auto-rescan")
    elif report.rescan_skipped:
        _console.print("[dim]Auto-rescan skipped (no repos changed).[/dim]")


def print_repo_statuses(statuses: list[RepoStatus]) -> None:
    table = Table(title="Repository Status", show_header=True, header_style="bold magenta")
    table.add_column("Project", style="cyan")
    table.add_column("Branch")
    table.add_column("Changes", justify="center")
    table.add_column("Ahead", justify="right")
    table.add_column("Behind", justify="right")
    for status in statuses:
        changes = "[yellow]dirty[/yellow]" if status.has_uncommitted_changes else "clean"
        table.add_row(status.name, status.branch, changes, str(status.ahead), str(status.behind))
    _console.print(table)


def print_error_panel(error: str | Exception) -> None:
    """Print an error message in a red Rich panel."""
    _console.print(
        Panel(
            Text(str(error), style="bold white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            expand=False,
        )
    )
