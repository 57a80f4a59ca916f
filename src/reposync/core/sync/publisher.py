"""
Verified-commit publishing through the Git Data API.

Commits pushed with ``git push`` by a GitHub App installation token show up
as unverified. Recreating each local commit through the API (blobs, tree,
commit, ref) lets GitHub sign them. Only the changed blobs are uploaded;
every new tree is built on top of its parent tree.
"""

from __future__ import annotations

import base64
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from reposync.core.config.models import SyncSettings
from reposync.core.github.client import GitHubAPIError, GitHubClient
from reposync.core.sync.diff import TreeDiffEntry

if TYPE_CHECKING:
    from reposync.core.sync.session import RepoSession

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_WORKERS = 8


class VerifiedCommitPublisher:
    """
    Replays local commits on GitHub so they are signed.

    Example:
        >>> publisher = VerifiedCommitPublisher(github, settings)
        >>> publisher.publish(session)
    """

    def __init__(
        self,
        github: GitHubClient,
        settings: SyncSettings,
        max_workers: int = DEFAULT_UPLOAD_WORKERS,
    ) -> None:
        """
        Initialize the publisher.

        Args:
            github: API client
            settings: Run settings (PR mode decides which ref is moved)
            max_workers: Concurrent blob uploads per commit
        """
        self.github = github
        self.settings = settings
        self.max_workers = max_workers

    def publish(self, session: RepoSession) -> list[str]:
        """
        Recreate every unpushed commit of a session on GitHub.

        When PRs are enabled the PR branch ref is created first (an existing
        ref is fine). After the replay the branch ref is force-moved to the
        last created commit, and ``session.last_commit_sha`` follows along.

        Args:
            session: Session with local commits on top of ``last_commit_sha``

        Returns:
            Shas of the commits created on GitHub, oldest first

        Raises:
            GitHubAPIError: If any API call fails
            GitError: If reading local objects fails
        """
        repo = session.require_repo()
        owner, name = repo.user, repo.name

        if self.settings.pr_enabled:
            self._ensure_branch_ref(owner, name, f"refs/heads/{session.pr_branch}", str(session.last_commit_sha))

        created: list[str] = []
        for local_sha in session.commits_to_push():
            created.append(self._replay_commit(session, owner, name, local_sha))

        branch = session.pr_branch if self.settings.pr_enabled else session.base_branch
        logger.debug("Updating branch heads/%s to %s", branch, session.last_commit_sha)
        self.github.update_ref(owner, name, f"heads/{branch}", str(session.last_commit_sha), force=True)
        return created

    def _ensure_branch_ref(self, owner: str, name: str, ref: str, sha: str) -> None:
        logger.debug("Creating branch %s", ref)
        try:
            self.github.create_ref(owner, name, ref, sha)
        except GitHubAPIError as e:
            if not e.is_already_exists:
                raise
            logger.debug("Branch %s already exists", ref)

    def _replay_commit(self, session: RepoSession, owner: str, name: str, local_sha: str) -> str:
        # last_commit_sha may already be a replayed commit that only exists on GitHub
        parent = str(session.last_commit_sha)
        tree = session.tree_id(local_sha)
        parent_tree = session.tree_id(f"{local_sha}~1")
        changes = session.tree_diff(tree, parent_tree)

        entries = self.upload_blobs(session, owner, name, changes)

        try:
            new_tree = self.github.create_tree(owner, name, entries, base_tree=parent_tree)
        except GitHubAPIError as e:
            raise GitHubAPIError(
                f"Cannot create a new GitHub Tree: {e}",
                status_code=e.status_code,
                response_body=e.response_body,
            ) from e

        message = session.commit_message(local_sha)
        commit_sha = self.github.create_commit(owner, name, message, new_tree, [parent])
        logger.debug("Replayed %s as %s", local_sha, commit_sha)
        session.last_commit_sha = commit_sha
        return commit_sha

    def upload_blobs(
        self,
        session: RepoSession,
        owner: str,
        name: str,
        changes: list[TreeDiffEntry],
    ) -> list[dict[str, Any]]:
        """
        Upload the new blobs of a tree diff and build the tree entries.

        Deleted paths get ``sha: None`` and keep their previous mode. Entries
        keep the order of ``changes``.

        Returns:
            Tree entries for ``create_tree``
        """
        uploads = [change for change in changes if not change.is_deletion]

        def upload(change: TreeDiffEntry) -> str:
            content = base64.b64encode(session.blob_content(change.new_blob)).decode("ascii")
            return self.github.create_blob(owner, name, content, encoding="base64")

        shas: dict[str, str] = {}
        if uploads:
            workers = min(self.max_workers, len(uploads))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                for change, sha in zip(uploads, executor.map(upload, uploads)):
                    shas[change.path] = sha

        entries: list[dict[str, Any]] = []
        for change in changes:
            if change.is_deletion:
                entries.append(
                    {"path": change.path, "mode": change.previous_mode, "type": "blob", "sha": None}
                )
            else:
                entries.append(
                    {"path": change.path, "mode": change.new_mode, "type": "blob", "sha": shas[change.path]}
                )
        return entries
