"""Thin git client used for repository status, fetch and pull.

Every git call goes through :meth:`GitClient.run_sync`, which captures
stdout and stderr and never raises for a failing command: the exit code
is part of the returned :class:`ProcessResult`.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path

from src.shared.constants import DEFAULT_ALLOWED_BRANCHES
from src.shared.models.scan import (
    UP_TO_DATE_MESSAGE,
    UPDATED_MESSAGE,
    ProcessResult,
    PullResult,
    PullStatus,
    RepoStatus,
)
from src.shared.utils import strip_credentials

logger = logging.getLogger(__name__)

UNKNOWN_BRANCH = "unknown"
ERROR_BRANCH = "error"


class GitClient:
    """Runs ``git`` commands inside repository working trees."""

    def __init__(self, executable: str = "git") -> None:
        self.executable = executable

    def run_sync(self, args: list[str], cwd: Path | str) -> ProcessResult:
        """Run a git command synchronously.

        A missing executable or unusable working directory is reported as
        a non-zero exit code rather than an exception.
        """
        cmd = [self.executable, *args]
        logger.debug("Running %s in %s", " ".join(cmd), cwd)
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            logger.warning("Cannot run %s in %s: %s", cmd[0], cwd, exc)
            return ProcessResult(exit_code=-1, stderr=str(exc))

        stdout = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()
        if result.returncode != 0 and stderr:
            logger.warning("Process exited with code %d. Stderr: %s", result.returncode, stderr)
        return ProcessResult(exit_code=result.returncode, stdout=stdout, stderr=stderr)

    async def run(self, args: list[str], cwd: Path | str) -> ProcessResult:
        """Async wrapper around :meth:`run_sync`, executed on a worker thread."""
        return await asyncio.to_thread(self.run_sync, args, cwd)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def current_branch(self, repo_path: Path) -> str:
        result = await self.run(["rev-parse", "--abbrev-ref", "HEAD"], repo_path)
        return result.stdout if result.ok and result.stdout else UNKNOWN_BRANCH

    async def status(self, repo_path: Path) -> RepoStatus:
        """Return branch, dirtiness and ahead/behind counts of a repository."""
        branch = await self.current_branch(repo_path)

        porcelain = await self.run(["status", "--porcelain"], repo_path)
        has_changes = porcelain.ok and bool(porcelain.stdout.strip())

        ahead = behind = 0
        counts = await self.run(
            ["rev-list", "--left-right", "--count", "HEAD...@{upstream}"], repo_path
        )
        if counts.ok and counts.stdout.strip():
            parts = counts.stdout.split()
            if len(parts) == 2 and all(p.isdigit() for p in parts):
                ahead, behind = int(parts[0]), int(parts[1])

        return RepoStatus(
            name=repo_path.name,
            branch=branch,
            has_uncommitted_changes=has_changes,
            ahead=ahead,
            behind=behind,
        )

    async def fetch_and_pull(
        self,
        repo_path: Path,
        allowed_branches: list[str] | None = None,
    ) -> PullResult:
        """Fetch and pull a repository that is on an allowed branch.

        Repositories on any other branch are left untouched.
        """
        allowed = allowed_branches if allowed_branches is not None else DEFAULT_ALLOWED_BRANCHES
        name = repo_path.name
        branch = await self.current_branch(repo_path)

        if branch.lower() not in {b.lower() for b in allowed}:
            return PullResult(
                name=name,
                branch=branch,
                status=PullStatus.NON_DEFAULT_BRANCH,
                message=f"On branch '{branch}', skipped. Switch to {'/'.join(allowed)} first.",
            )

        fetched = await self.run(["fetch", "origin"], repo_path)
        if not fetched.ok:
            logger.warning("Git fetch failed for %s with exit code %d", name, fetched.exit_code)
            return PullResult(
                name=name, branch=branch, status=PullStatus.ERROR,
                message=f"Fetch failed: {fetched.stderr}",
            )

        pulled = await self.run(["pull"], repo_path)
        if not pulled.ok:
            logger.warning("Git pull failed for %s with exit code %d", name, pulled.exit_code)
            return PullResult(
                name=name, branch=branch, status=PullStatus.ERROR,
                message=f"Pull failed: {pulled.stderr}",
            )

        message = UP_TO_DATE_MESSAGE if "Already up to date" in pulled.stdout else UPDATED_MESSAGE
        return PullResult(name=name, branch=branch, status=PullStatus.SUCCESS, message=message)

    def remote_url(self, repo_path: Path) -> str | None:
        """Return the credential-stripped ``origin`` URL, or ``None``."""
        result = self.run_sync(["remote", "get-url", "origin"], repo_path)
        if not result.ok or not result.stdout:
            return None
        return strip_credentials(result.stdout)
