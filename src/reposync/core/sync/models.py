"""
Data models for the sync engine.

Defines the session lifecycle states and the per-target and per-run results.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from reposync.core.config.models import RepoTarget


class SessionState(str, Enum):
    """Lifecycle of a RepoSession. Steps only ever move forward."""

    UNINITIALIZED = "uninitialized"
    CLONED = "cloned"
    BRANCH_READY = "branch_ready"
    STAGED = "staged"
    COMMITTED = "committed"
    PUSHED = "pushed"


class RepoSyncStatus(str, Enum):
    """Outcome of syncing one target."""

    SYNCED = "synced"
    UP_TO_DATE = "up_to_date"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass
class ModifiedFile:
    """A rule that produced a commit, for the PR description."""

    dest: str
    source: str = ""
    message: str = ""
    use_original_message: bool = False
    commit_message: str = ""


class RepoSyncResult(BaseModel):
    """Result of syncing one target repository."""

    repo: RepoTarget = Field(..., description="Target repository")
    status: RepoSyncStatus = Field(..., description="Outcome")
    pull_request_url: str | None = Field(default=None, description="Created/updated PR")
    pull_request_number: int | None = Field(default=None, description="PR number")
    commits: int = Field(default=0, ge=0, description="Commits pushed")
    modified: list[str] = Field(default_factory=list, description="Destinations that changed")
    error: str | None = Field(default=None, description="Error message when failed")

    @property
    def failed(self) -> bool:
        return self.status == RepoSyncStatus.FAILED


class RunResult(BaseModel):
    """Result of a whole sync run."""

    results: list[RepoSyncResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = Field(default=None)

    @property
    def pull_request_urls(self) -> list[str]:
        return [r.pull_request_url for r in self.results if r.pull_request_url]

    @property
    def failures(self) -> list[RepoSyncResult]:
        return [r for r in self.results if r.failed]

    @property
    def success(self) -> bool:
        return not self.failures
