"""Parallel fetch/pull and status collection across every indexed repository."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from src.repo_index.services.git_client import ERROR_BRANCH, UNKNOWN_BRANCH, GitClient
from src.repo_index.services.scan_orchestrator import ScanOrchestrator
from src.shared.cancellation import CancellationToken
from src.shared.config import RepoIndexConfig
from src.shared.constants import GIT_MARKER_DIR
from src.shared.models.scan import PullResult, PullStatus, RepoStatus, UpdateReport

logger = logging.getLogger(__name__)

UNEXPECTED_PULL_ERROR = "Unexpected error during pull."
CANCELLED_MESSAGE = "Cancelled before start."


def repo_directories(root: Path) -> list[Path]:
    """Return non-hidden child directories of *root* that contain ``.git``."""
    if not root.is_dir():
        return []
    return sorted(
        (
            p for p in root.iterdir()
            if p.is_dir() and not p.name.startswith(".") and (p / GIT_MARKER_DIR).is_dir()
        ),
        key=lambda p: p.name,
    )


class FetchOrchestrator:
    """Runs git operations over all repositories with bounded parallelism.

    The semaphore is created inside each call so the orchestrator can be
    shared between event loops.  No task exception ever escapes: failures
    are turned into result rows.
    """

    def __init__(
        self,
        config: RepoIndexConfig,
        git_client: GitClient | None = None,
        scanner: ScanOrchestrator | None = None,
    ) -> None:
        self._config = config
        self._git = git_client or GitClient()
        self._scanner = scanner

    def repositories(self) -> list[Path]:
        return repo_directories(Path(self._config.root_path))

    async def pull_all(self, cancel: CancellationToken | None = None) -> list[PullResult]:
        """Fetch and pull every repository on an allowed branch.

        Returns:
            One result per repository, sorted by status then name.
        """
        repos = self.repositories()
        logger.info("Pulling %d repositories", len(repos))
        semaphore = asyncio.Semaphore(self._config.max_parallelism)

        async def _pull_one(repo: Path) -> PullResult:
            async with semaphore:
                if cancel is not None and cancel.cancelled:
                    return PullResult(
                        name=repo.name, branch=UNKNOWN_BRANCH,
                        status=PullStatus.CANCELLED, message=CANCELLED_MESSAGE,
                    )
                logger.debug("Pulling repo %s", repo.name)
                return await self._git.fetch_and_pull(repo, self._config.allowed_branches)

        outcomes = await asyncio.gather(*(_pull_one(r) for r in repos), return_exceptions=True)

        results: list[PullResult] = []
        for repo, outcome in zip(repos, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Pull of %s failed: %s", repo.name, outcome)
                outcome = PullResult(
                    name=repo.name, branch=UNKNOWN_BRANCH,
                    status=PullStatus.ERROR, message=UNEXPECTED_PULL_ERROR,
                )
            results.append(outcome)
        return sort_pull_results(results)

    async def status_all(self) -> list[RepoStatus]:
        """Collect branch, dirtiness and ahead/behind for every repository."""
        repos = self.repositories()
        logger.info("Getting status for %d repositories", len(repos))
        semaphore = asyncio.Semaphore(self._config.max_parallelism)

        async def _status_one(repo: Path) -> RepoStatus:
            async with semaphore:
                return await self._git.status(repo)

        outcomes = await asyncio.gather(*(_status_one(r) for r in repos), return_exceptions=True)

        statuses: list[RepoStatus] = []
        for repo, outcome in zip(repos, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Status of %s failed: %s", repo.name, outcome)
                outcome = RepoStatus(name=repo.name, branch=ERROR_BRANCH)
            statuses.append(outcome)
        return sorted(statuses, key=lambda s: s.name)

    async def update_repos(
        self,
        auto_rescan: bool = False,
        cancel: CancellationToken | None = None,
    ) -> UpdateReport:
        """Pull every repository and optionally rescan when anything changed."""
        report = UpdateReport(results=await self.pull_all(cancel))
        if not auto_rescan:
            return report
        if report.changed_count == 0 or self._scanner is None:
            report.rescan_skipped = True
            return report
        report.rescan = await asyncio.to_thread(self._scanner.run, True, cancel)
        return report


_STATUS_ORDER = {
    PullStatus.SUCCESS: 0,
    PullStatus.NON_DEFAULT_BRANCH: 1,
    PullStatus.ERROR: 2,
    PullStatus.CANCELLED: 3,
}


def sort_pull_results(results: list[PullResult]) -> list[PullResult]:
    return sorted(results, key=lambda r: (_STATUS_ORDER[r.status], r.name))
