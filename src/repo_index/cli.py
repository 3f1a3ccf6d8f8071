"""Command-line interface for the repository index.

Usage:
    python -m src.repo_index.cli scan [--incremental]
    python -m src.repo_index.cli rescan PROJECT
    python -m src.repo_index.cli update [--auto-rescan]
    python -m src.repo_index.cli status
"""
from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from src.repo_index.display import (
    print_error_panel,
    print_repo_statuses,
    print_scan_summary,
    print_update_report,
)
from src.repo_index.runtime import RepoIndexRuntime
from src.shared.cancellation import CancellationToken
from src.shared.config import RepoIndexConfig
from src.shared.constants import REPO_INDEX_SERVICE_NAME
from src.shared.errors import AppError, ScanCancelledError
from src.shared.logging import setup_logging
from src.shared.models.scan import ScanSummary

app = typer.Typer(
    name="repo-index",
    help="Cross-repository code index for .NET codebases.",
    add_completion=False,
    no_args_is_help=True,
)


def _runtime(root: Optional[Path], database: Optional[Path]) -> RepoIndexRuntime:
    overrides: dict[str, str] = {}
    if root is not None:
        overrides["root_path"] = str(root)
    if database is not None:
        overrides["database_path"] = str(database)
    config = RepoIndexConfig(**overrides)
    setup_logging(REPO_INDEX_SERVICE_NAME, config.log_level)
    return RepoIndexRuntime(config)


def _install_interrupt(token: CancellationToken) -> Any:
    """Route Ctrl+C to *token* so the scan stops after the current project.

    Returns the previous handler.
    """
    return signal.signal(signal.SIGINT, lambda _signum, _frame: token.cancel())


def _finish_scan(run: Callable[[], ScanSummary], title: str) -> None:
    try:
        summary = run()
    except ScanCancelledError as exc:
        if exc.summary is not None:
            print_scan_summary(exc.summary, title=f"{title} (cancelled)")
        print_error_panel(exc.detail)
        raise typer.Exit(code=130)
    except AppError as exc:
        print_error_panel(exc.detail)
        raise typer.Exit(code=1)

    print_scan_summary(summary, title=title)
    if not summary.success:
        print_error_panel(summary.error or "Scan failed")
        raise typer.Exit(code=1)


_ROOT_OPTION = typer.Option(None, "--root", help="Directory containing the repositories")
_DB_OPTION = typer.Option(None, "--database", help="Index file location")


@app.command()
def scan(
    incremental: bool = typer.Option(False, "--incremental", "-i", help="Only rescan changed projects"),
    root: Optional[Path] = _ROOT_OPTION,
    database: Optional[Path] = _DB_OPTION,
) -> None:
    """Scan every repository under the root and refresh the index."""
    runtime = _runtime(root, database)
    token = CancellationToken()
    previous = _install_interrupt(token)
    try:
        _finish_scan(
            lambda: runtime.scanner.run(incremental=incremental, cancel=token),
            "Incremental Scan" if incremental else "Full Scan",
        )
    finally:
        signal.signal(signal.SIGINT, previous)
        runtime.close()


@app.command()
def rescan(
    project: str = typer.Argument(..., help="Project directory name"),
    root: Optional[Path] = _ROOT_OPTION,
    database: Optional[Path] = _DB_OPTION,
) -> None:
    """Forget one project's fingerprint and run an incremental scan."""
    runtime = _runtime(root, database)
    try:
        _finish_scan(lambda: runtime.scanner.rescan_project(project), f"Rescan {project}")
    finally:
        runtime.close()


@app.command()
def update(
    auto_rescan: bool = typer.Option(False, "--auto-rescan", help="Rescan when anything changed"),
    root: Optional[Path] = _ROOT_OPTION,
    database: Optional[Path] = _DB_OPTION,
) -> None:
    """Fetch and pull every repository on an allowed branch."""
    runtime = _runtime(root, database)
    try:
        report = asyncio.run(runtime.fetcher.update_repos(auto_rescan))
    except AppError as exc:
        print_error_panel(exc.detail)
        raise typer.Exit(code=1)
    finally:
        runtime.close()
    print_update_report(report)


@app.command()
def status(
    root: Optional[Path] = _ROOT_OPTION,
    database: Optional[Path] = _DB_OPTION,
) -> None:
    """Show branch, uncommitted changes and ahead/behind for every repository."""
    runtime = _runtime(root, database)
    try:
        statuses = asyncio.run(runtime.fetcher.status_all())
    finally:
        runtime.close()
    print_repo_statuses(statuses)


if __name__ == "__main__":
    app()
