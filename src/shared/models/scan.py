"""Models for scan, fetch and tool-result reporting."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ProjectScanState(str, Enum):
    """Lifecycle of one project directory during a scan."""
    DISCOVERED = "discovered"
    SKIPPED_NOT_REPO = "skipped_not_repo"
    SKIPPED_UNCHANGED = "skipped_unchanged"
    SCANNING = "scanning"
    SCANNED = "scanned"
    FAILED = "failed"


class ProjectFailure(BaseModel):
    """A project whose scan failed, with the reason."""
    project_name: str
    message: str


class ScanSummary(BaseModel):
    """Outcome of one scan run."""
    project_count: int = 0
    type_count: int = 0
    elapsed_seconds: float = 0.0
    success: bool = True
    error: str | None = None
    skipped_count: int = 0
    pruned_count: int = 0
    failed_projects: list[ProjectFailure] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_count(self) -> int:
        return len(self.failed_projects)

    def describe(self) -> str:
        """One-line human summary."""
        if not self.success:
            return f"Scanner failed: {self.error}"
        message = (
            f"Scanned {self.project_count} projects, {self.type_count} types "
            f"in {self.elapsed_seconds:.1f}s"
        )
        if self.skipped_count:
            message += f" ({self.skipped_count} unchanged, skipped)"
        if self.failed_projects:
            names = ", ".join(f.project_name for f in self.failed_projects)
            message += f"; {self.failed_count} failed: {names}"
        if self.cancelled:
            message += "; cancelled before completion"
        return message


class PullStatus(str, Enum):
    """Classified outcome of a fetch/pull task."""
    SUCCESS = "success"
    NON_DEFAULT_BRANCH = "non_default_branch"
    ERROR = "error"
    CANCELLED = "cancelled"


UPDATED_MESSAGE = "Updated."
UP_TO_DATE_MESSAGE = "Already up to date."


class PullResult(BaseModel):
    """Result of fetching and pulling one repository."""
    name: str
    branch: str
    status: PullStatus
    message: str

    @property
    def changed(self) -> bool:
        return self.status == PullStatus.SUCCESS and self.message == UPDATED_MESSAGE


class RepoStatus(BaseModel):
    """Working-tree status of one repository."""
    name: str
    branch: str
    has_uncommitted_changes: bool = False
    ahead: int = 0
    behind: int = 0


class ProcessResult(BaseModel):
    """Exit code and trimmed output of an external command."""
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class UpdateReport(BaseModel):
    """Pull results plus the optional follow-up rescan."""
    results: list[PullResult] = Field(default_factory=list)
    rescan: ScanSummary | None = None
    rescan_skipped: bool = False

    @property
    def changed_count(self) -> int:
        return sum(1 for r in self.results if r.changed)


class ToolResult(BaseModel):
    """Structured envelope around a rendered query result."""
    content: str
    result_count: int = 0
    truncated: bool = False
    query_ms: int = 0
