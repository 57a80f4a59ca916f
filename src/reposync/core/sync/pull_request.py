"""
Pull request handling for a synced target.

Finds the open sync PR for the session's branch, creates or updates it,
and manages labels, assignees, reviewers and the resync warning banner.
"""

from __future__ import annotations

import logging

from reposync.core.config.models import SyncSettings
from reposync.core.github.client import GitHubClient
from reposync.core.github.models import PullRequest
from reposync.core.sync.models import ModifiedFile
from reposync.core.sync.session import RepoSession

logger = logging.getLogger(__name__)

RESYNC_WARNING = "⚠️ This PR is being automatically resynced ⚠️"


class PullRequestError(Exception):
    """A pull request operation was called without a pull request."""

    pass


def changed_files_summary(modified: list[ModifiedFile]) -> str:
    """
    Collapsible list of the per-file sync messages.

    Returns:
        HTML ``<details>`` block, or "" when nothing was modified
    """
    if not modified:
        return ""
    items = "\n".join(f"<li>{file.message}</li>" for file in modified)
    return f"<details>\n<summary>Changed files</summary>\n<ul>\n{items}\n</ul>\n</details>"


class PullRequestManager:
    """
    Pull request operations for one RepoSession.

    The PR found or created is cached on the manager and used by every
    later call.

    Example:
        >>> prs = PullRequestManager(session, github, settings)
        >>> prs.find_existing()
        >>> pr = prs.create_or_update(changed_files_summary(modified))
        >>> prs.add_labels(["sync"])
    """

    def __init__(self, session: RepoSession, github: GitHubClient, settings: SyncSettings) -> None:
        self.session = session
        self.github = github
        self.settings = settings
        self.existing: PullRequest | None = None

    @property
    def _owner(self) -> str:
        return self.session.require_repo().user

    @property
    def _name(self) -> str:
        return self.session.require_repo().name

    @property
    def head(self) -> str:
        """PR head in ``owner:branch`` form; the fork owner when forking."""
        owner = self.settings.fork or self._owner
        return f"{owner}:{self.session.pr_branch}"

    def _require_pr(self) -> PullRequest:
        if self.existing is None:
            raise PullRequestError("No pull request. Call find_existing() or create_or_update() first.")
        return self.existing

    def find_existing(self) -> PullRequest | None:
        """Look up the open PR for the sync branch and remember it."""
        pulls = self.github.list_pull_requests(self._owner, self._name, head=self.head, state="open")
        self.existing = pulls[0] if pulls else None
        return self.existing

    def build_body(self, changed_files: str = "") -> str:
        """Markdown body: source attribution, custom body, changed files and footer."""
        source = self.settings.source_repository
        server = self.settings.server_url
        run_id = self.settings.run_id

        sections = [f"synced local file(s) with [{source}]({server}/{source})."]
        if self.settings.pr_body:
            sections.append(self.settings.pr_body)
        if changed_files:
            sections.append(changed_files)
        sections.append("---")
        sections.append(
            f"This PR was created automatically by reposync in workflow run "
            f"[#{run_id}]({server}/{source}/actions/runs/{run_id})"
        )
        return "\n\n".join(sections)

    def create_or_update(self, changed_files: str = "", title: str | None = None) -> PullRequest:
        """
        Create the sync PR or refresh the existing one.

        An existing PR gets the new body and its title is reset to the
        default sync title. A new PR is opened from the sync branch against
        the session's base branch.

        Args:
            changed_files: Changed-files summary for the body
            title: Title for a new PR (defaults to the sync title)

        Returns:
            The created or updated PR

        Raises:
            GitHubAPIError: If the API call fails
        """
        body = self.build_body(changed_files)

        if self.existing is not None:
            logger.debug("Overwriting existing PR #%s", self.existing.number)
            self.existing = self.github.update_pull_request(
                self._owner,
                self._name,
                self.existing.number,
                title=self.settings.default_title,
                body=body,
            )
            return self.existing

        logger.debug("Creating new PR from %s into %s", self.head, self.session.base_branch)
        self.existing = self.github.create_pull_request(
            self._owner,
            self._name,
            title=title or self.settings.default_title,
            body=body,
            head=self.head,
            base=str(self.session.base_branch),
        )
        return self.existing

    def set_resync_warning(self) -> None:
        """Prepend the resync banner to the existing PR's body."""
        pr = self._require_pr()
        if RESYNC_WARNING in pr.body:
            logger.debug("PR #%s already carries the resync warning", pr.number)
            return
        logger.debug("Setting resync warning on PR #%s", pr.number)
        self.existing = self.github.update_pull_request(
            self._owner, self._name, pr.number, body=f"{RESYNC_WARNING}\n\n{pr.body}"
        )

    def clear_resync_warning(self) -> None:
        """Remove the resync banner from the existing PR's body."""
        pr = self._require_pr()
        logger.debug("Removing resync warning from PR #%s", pr.number)
        body = pr.body.replace(f"{RESYNC_WARNING}\n\n", "").replace(RESYNC_WARNING, "")
        self.existing = self.github.update_pull_request(self._owner, self._name, pr.number, body=body)

    def add_labels(self, labels: list[str]) -> None:
        self.github.add_labels(self._owner, self._name, self._require_pr().number, labels)

    def add_assignees(self, assignees: list[str]) -> None:
        self.github.add_assignees(self._owner, self._name, self._require_pr().number, assignees)

    def add_reviewers(self, reviewers: list[str]) -> None:
        self.github.request_reviewers(
            self._owner, self._name, self._require_pr().number, reviewers=reviewers
        )

    def add_team_reviewers(self, team_reviewers: list[str]) -> None:
        self.github.request_reviewers(
            self._owner, self._name, self._require_pr().number, team_reviewers=team_reviewers
        )
