"""
Configuration data models for reposync.

These models describe the run settings (tokens, commit and PR options) and
the parsed sync configuration (target repositories and their file rules),
with validation and type safety via Pydantic.
"""

import re
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

DEFAULT_BRANCH = "default"
"""Sentinel branch name meaning "the repository's default branch"."""

SOURCE_REPO_PLACEHOLDER = "SOURCE_REPO_NAME"
"""Placeholder in the branch prefix replaced by the source repository name."""


class ConfigError(Exception):
    """Raised when settings or the sync configuration are invalid."""

    pass


class RepoTarget(BaseModel):
    """
    A target repository and branch.

    Parsed from specs like ``user/repo``, ``user/repo@branch`` or
    ``github.com/user/repo@branch``.

    Example:
        >>> target = RepoTarget.from_spec("acme/tools@develop")
        >>> target.full_name, target.branch
        ('github.com/acme/tools', 'develop')
    """

    host: str = Field(default="github.com", description="Git host name")
    user: str = Field(..., description="Repository owner (user or organization)")
    name: str = Field(..., description="Repository name")
    branch: str = Field(
        default=DEFAULT_BRANCH,
        description="Target branch, or 'default' for the repository default branch",
    )

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def full_name(self) -> str:
        """Host-qualified repository name (host/user/name)."""
        return f"{self.host}/{self.user}/{self.name}"

    @computed_field
    @property
    def unique_name(self) -> str:
        """Directory name for this target, unique per repository and branch."""
        name = f"{self.host}/{self.user}/{self.name}@{self.branch}"
        return re.sub(r"[^A-Za-z0-9@._-]", "_", name)

    @property
    def slug(self) -> str:
        """Owner/name as used by the REST API."""
        return f"{self.user}/{self.name}"

    @classmethod
    def from_spec(cls, spec: str) -> "RepoTarget":
        """
        Parse a repository spec.

        Args:
            spec: ``[host/]user/repo[@branch]``

        Returns:
            RepoTarget

        Raises:
            ConfigError: If the spec has no owner or name
        """
        spec = spec.strip()
        branch = DEFAULT_BRANCH
        if "@" in spec:
            spec, branch = spec.split("@", 1)
            branch = branch.strip() or DEFAULT_BRANCH

        parts = [p for p in spec.strip("/").split("/") if p]
        if len(parts) == 2:
            host = "github.com"
            user, name = parts
        elif len(parts) == 3:
            host, user, name = parts
        else:
            raise ConfigError(f"Invalid repository '{spec}', expected [host/]user/repo[@branch]")

        if name.endswith(".git"):
            name = name[: -len(".git")]

        return cls(host=host, user=user, name=name, branch=branch)


class FileRule(BaseModel):
    """
    One file or directory to sync into a target repository.

    Every recognized option is enumerated here with its default, so
    callers never have to check for optional keys.
    """

    source: str = Field(..., description="Path in the source repository")
    dest: str = Field(..., description="Path in the target repository")
    template: Optional[dict[str, Any]] = Field(
        default=None,
        description="Render through the template engine with this context",
    )
    replace: bool = Field(
        default=True,
        description="Overwrite existing destination files",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Source-relative files or directories (trailing slash) to skip",
    )
    exclude_file_patterns: list[str] = Field(
        default_factory=list,
        alias="excludeFilePatterns",
        description="Regular expressions; matching paths are skipped",
    )
    include_file_patterns: list[str] = Field(
        default_factory=list,
        alias="includeFilePatterns",
        description="Regular expressions; when set, only matching paths are copied",
    )
    delete_orphaned: bool = Field(
        default=False,
        alias="deleteOrphaned",
        description="Remove destination files that no longer exist in the source directory",
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("template", mode="before")
    @classmethod
    def validate_template(cls, v: Any) -> Optional[dict[str, Any]]:
        """Accept ``template: true`` as an empty context."""
        if v is None or v is False:
            return None
        if v is True:
            return {}
        return v

    @field_validator("exclude", mode="before")
    @classmethod
    def validate_exclude(cls, v: Any) -> list[str]:
        """Accept a newline-separated string."""
        return split_lines(v)

    @field_validator("exclude_file_patterns", "include_file_patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        """Reject patterns that are not valid regular expressions."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid regular expression '{pattern}': {e}") from e
        return v

    @property
    def is_template(self) -> bool:
        """Whether files are rendered instead of copied."""
        return self.template is not None


class SyncGroup(BaseModel):
    """A target repository with the file rules that apply to it."""

    repo: RepoTarget = Field(..., description="Target repository")
    files: list[FileRule] = Field(default_factory=list, description="File rules")


def split_lines(value: Any) -> list[str]:
    """Normalize a newline-separated string (or list) into a list of entries."""
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    return [str(v) for v in value]


def _default_tmp_dir() -> str:
    return f"tmp-{int(time.time() * 1000)}"


class SyncSettings(BaseModel):
    """
    Run settings for a sync.

    Loaded from environment variables (optionally with the ``INPUT_`` prefix
    used by GitHub Actions), layered ``.env`` files and CLI overrides.

    Example:
        >>> settings = SyncSettings(token="ghp_x", source_repository="acme/templates")
        >>> settings.default_title
        '🔄 synced file(s) with acme/templates'
    """

    # Credentials
    token: str = Field(..., min_length=1, description="GitHub token")
    is_installation_token: bool = Field(
        default=False,
        description="Token is a GitHub App installation token (commits via the API)",
    )
    is_fine_grained: bool = Field(
        default=False,
        description="Token is a fine-grained personal access token",
    )

    # Source
    source_repository: str = Field(
        ...,
        pattern=r"^[^/\s]+/[^/\s]+$",
        description="owner/name of the repository files are synced from",
    )
    server_url: str = Field(default="https://github.com", description="GitHub server URL")
    api_url: str = Field(default="https://api.github.com", description="GitHub REST API URL")
    run_id: str = Field(default="0", description="Workflow run id for the PR footer")

    # Sync configuration
    config_path: str = Field(default=".github/sync.yml", description="Sync config file")
    inline_config: Optional[str] = Field(
        default=None,
        description="Sync config YAML given inline, overrides config_path",
    )

    # Commits
    commit_prefix: str = Field(default="🔄", description="Prefix for commits and PR title")
    commit_body: str = Field(default="", description="Appended to every commit message")
    commit_each_file: bool = Field(default=True, description="One commit per file rule")
    original_message: bool = Field(
        default=False,
        description="Reuse the triggering commit message when the change is identical",
    )
    git_email: Optional[str] = Field(default=None, description="Committer email")
    git_username: Optional[str] = Field(default=None, description="Committer name")

    # Pull requests
    skip_pr: bool = Field(default=False, description="Push to the target branch directly")
    overwrite_existing_pr: bool = Field(
        default=True,
        description="Reuse the sync branch and update its open PR",
    )
    commit_as_pr_title: bool = Field(
        default=False,
        description="Use the original commit message as PR title",
    )
    branch_prefix: str = Field(
        default=f"repo-sync/{SOURCE_REPO_PLACEHOLDER}",
        description="Prefix for the sync branch in target repositories",
    )
    pr_body: str = Field(default="", description="Extra PR description")
    pr_labels: list[str] = Field(default_factory=lambda: ["sync"], description="PR labels")
    assignees: list[str] = Field(default_factory=list, description="PR assignees")
    reviewers: list[str] = Field(default_factory=list, description="Requested reviewers")
    team_reviewers: list[str] = Field(default_factory=list, description="Requested teams")
    fork: Optional[str] = Field(
        default=None,
        description="Account that owns the fork used for a fork-and-PR workflow",
    )

    # Run behavior
    tmp_dir: str = Field(default_factory=_default_tmp_dir, description="Working directory")
    dry_run: bool = Field(default=False, description="Do everything except pushing")
    skip_cleanup: bool = Field(default=False, description="Keep the working directory")

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("server_url", "api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def source_repo_name(self) -> str:
        """Name part of the source repository."""
        return self.source_repository.split("/")[1]

    @property
    def default_title(self) -> str:
        """Default commit message and PR title."""
        return f"{self.commit_prefix} synced file(s) with {self.source_repository}"

    @property
    def pr_enabled(self) -> bool:
        return not self.skip_pr
