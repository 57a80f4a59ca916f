"""
Clone lifecycle for one target repository.

A RepoSession clones a target into its own working directory, prepares the
sync branch, stages and commits the materialized files and publishes the
result. Steps run strictly in order:

    uninitialized -> cloned -> branch_ready -> staged -> committed -> pushed

Any git failure raises GitError and ends the session for that target; the
runner moves on to the next one.
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from urllib.parse import urlsplit

from reposync.core.config.models import DEFAULT_BRANCH, SOURCE_REPO_PLACEHOLDER, RepoTarget, SyncSettings
from reposync.core.github.client import GitHubClient
from reposync.core.github.event import SourceEvent
from reposync.core.sync.diff import TreeDiffEntry, filter_changes, parse_tree_diff, parse_unified_diff
from reposync.core.sync.git import GitRunner
from reposync.core.sync.models import SessionState
from reposync.core.sync.publisher import VerifiedCommitPublisher

logger = logging.getLogger(__name__)

FORK_REMOTE = "fork"

# Used when no identity is configured and none can be looked up
FALLBACK_USERNAME = "github-actions[bot]"
FALLBACK_EMAIL = "41898282+github-actions[bot]@users.noreply.github.com"


class SessionError(RuntimeError):
    """A session method was called before the session was ready for it."""

    pass


class RepoSession:
    """
    Working clone of one target repository.

    Example:
        >>> session = RepoSession(settings, github)
        >>> session.init_repo(RepoTarget.from_spec("acme/tools"))
        >>> session.create_pr_branch()
        >>> session.add(".github/workflows/ci.yml")
        >>> if session.has_changes():
        ...     session.commit()
        ...     session.push()
    """

    def __init__(
        self,
        settings: SyncSettings,
        github: GitHubClient,
        event: SourceEvent | None = None,
        publisher: VerifiedCommitPublisher | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            settings: Run settings
            github: Shared API client
            event: Triggering event of the source repository
            publisher: Publisher for installation-token pushes
        """
        self.settings = settings
        self.github = github
        self.event = event or SourceEvent()
        self.publisher = publisher or VerifiedCommitPublisher(github, settings)
        self._reset()

    def _reset(self) -> None:
        self.repo: RepoTarget | None = None
        self.working_dir: Path | None = None
        self.git_url: str | None = None
        self.base_branch: str | None = None
        self.pr_branch: str | None = None
        self.last_commit_sha: str | None = None
        self.last_commit_changes: dict[str, str] | None = None
        self.state = SessionState.UNINITIALIZED
        self._git: GitRunner | None = None

    @property
    def git(self) -> GitRunner:
        """Git runner bound to the working directory."""
        if self._git is None:
            if self.working_dir is None:
                raise SessionError("Session not initialized. Call init_repo() first.")
            self._git = GitRunner(self.working_dir)
        return self._git

    def require_repo(self) -> RepoTarget:
        if self.repo is None:
            raise SessionError("Session not initialized. Call init_repo() first.")
        return self.repo

    def _advance(self, state: SessionState) -> None:
        order = list(SessionState)
        if order.index(state) > order.index(self.state):
            self.state = state

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def build_git_url(self, repo: RepoTarget) -> str:
        """HTTPS clone URL with the token embedded."""
        prefix = ""
        if self.settings.is_installation_token:
            prefix += "x-access-token:"
        if self.settings.is_fine_grained:
            prefix += "oauth:"
        return f"https://{prefix}{self.settings.token}@{repo.full_name}.git"

    def init_repo(self, repo: RepoTarget) -> None:
        """
        Clone a target and prepare it for syncing.

        Resets all per-repository state, clones at depth 1, configures the
        committer identity and records the base branch and HEAD sha. With a
        fork configured, the fork is created and added as a second remote.

        Raises:
            GitError: If cloning or configuring fails
            GitHubAPIError: If the identity lookup or fork creation fails
        """
        self._reset()
        self.repo = repo
        self.working_dir = Path(self.settings.tmp_dir) / repo.unique_name
        self.git_url = self.build_git_url(repo)

        self.clone()
        self.set_identity()
        self.base_branch = self.git.run(["rev-parse", "--abbrev-ref", "HEAD"])
        self.refresh_last_commit_sha()
        self._advance(SessionState.CLONED)

        if self.settings.fork:
            self.create_fork()
            self.git.run(["remote", "add", FORK_REMOTE, self.fork_url()])

    def clone(self) -> None:
        """Shallow-clone the target into the working directory."""
        repo = self.require_repo()
        if self.working_dir is None or self.git_url is None:
            raise SessionError("Session not initialized. Call init_repo() first.")
        logger.debug("Cloning %s into %s", repo.full_name, self.working_dir)

        self.working_dir.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone", "--depth", "1"]
        if repo.branch != DEFAULT_BRANCH:
            args += ["--branch", repo.branch]
        args += [self.git_url, str(self.working_dir)]
        GitRunner().run(args)

    def set_identity(self) -> None:
        """
        Configure the local committer identity.

        Explicit settings win. Without an email, a personal token falls back
        to its user's login and public email; installation tokens cannot look
        up a user and use the Actions bot identity.
        """
        username = self.settings.git_username
        email = self.settings.git_email

        if email is None and not self.settings.is_installation_token:
            user = self.github.get_authenticated_user()
            email = user.email or f"{user.login}@users.noreply.github.com"
            username = username or user.login

        username = username or FALLBACK_USERNAME
        email = email or FALLBACK_EMAIL

        logger.debug("Setting git user to email: %s, username: %s", email, username)
        self.git.run(["config", "--local", "user.name", username])
        self.git.run(["config", "--local", "user.email", email])

    def refresh_last_commit_sha(self) -> str:
        """Record the current HEAD sha as the base for pushing."""
        self.last_commit_sha = self.git.run(["rev-parse", "HEAD"])
        return self.last_commit_sha

    def fork_url(self) -> str:
        """Push URL of the fork, with the token as user."""
        repo = self.require_repo()
        server = urlsplit(self.settings.server_url)
        return f"{server.scheme}://{self.settings.token}@{server.netloc}/{self.settings.fork}/{repo.name}.git"

    def create_fork(self) -> None:
        """Fork the target. Forking an already forked repository is a no-op on GitHub."""
        repo = self.require_repo()
        logger.debug("Creating fork with OWNER: %s and REPO: %s", repo.user, repo.name)
        self.github.create_fork(repo.user, repo.name)

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def branch_name(self, suffix: str | None = None) -> str:
        """
        Name of the sync branch for this target.

        ``<prefix>/<branch>`` with the source repository name substituted
        into the prefix, e.g. ``repo-sync/tools/main``.
        """
        repo = self.require_repo()
        prefix = self.settings.branch_prefix.replace(
            SOURCE_REPO_PLACEHOLDER, self.settings.source_repo_name
        )
        name = f"{prefix}/{repo.branch}".replace("\\", "/").replace("/.", "/")
        name = re.sub(r"/{2,}", "/", name)
        if suffix:
            name += f"-{suffix}"
        return name

    def create_pr_branch(self, suffix: str | None = None) -> str:
        """
        Create or reuse the sync branch and switch to it.

        When existing PRs are not overwritten, a unix timestamp is appended
        so every run gets a fresh branch. Otherwise the remote branch is
        fetched and reused if it exists, and ``last_commit_sha`` moves to its
        tip.

        Returns:
            The branch name
        """
        branch = self.branch_name(suffix)

        if not self.settings.overwrite_existing_pr:
            branch += f"-{int(time.time())}"
            self.pr_branch = branch
            logger.debug("Creating PR Branch %s", branch)
            self.git.run(["switch", "-c", branch])
            self._advance(SessionState.BRANCH_READY)
            return branch

        self.pr_branch = branch
        logger.debug("Switch/Create PR Branch %s", branch)
        self.git.run(["remote", "set-branches", "origin", "*"])
        self.git.run(["fetch", "-v", "--depth=1"])
        if not self.git.succeeds(["switch", branch]):
            self.git.run(["switch", "-c", branch])

        self.refresh_last_commit_sha()
        self._advance(SessionState.BRANCH_READY)
        return branch

    # ------------------------------------------------------------------
    # Working tree
    # ------------------------------------------------------------------

    def add(self, path: str) -> None:
        """Stage a path, even if it is ignored."""
        self.git.run(["add", "-f", "--", path])
        self._advance(SessionState.STAGED)

    def remove(self, path: str) -> None:
        """Unstage and delete a path."""
        self.git.run(["rm", "-f", "--", path])
        self._advance(SessionState.STAGED)

    def has_changes(self) -> bool:
        """True when ``git status --porcelain`` reports anything."""
        return self.git.run(["status", "--porcelain"]) != ""

    def status(self) -> str:
        return self.git.run(["status"])

    def commit(self, message: str | None = None) -> str:
        """
        Commit the staged changes.

        Args:
            message: Commit message (defaults to "<prefix> synced file(s) with <source>")

        Returns:
            The full commit message used
        """
        if message is None:
            message = self.settings.default_title
        if self.settings.commit_body:
            message += f"\n\n{self.settings.commit_body}"

        self.git.run(["commit", "-m", message])
        self._advance(SessionState.COMMITTED)
        return message

    def changes(self, destination: str) -> list[str]:
        """Diff bodies of the working tree against HEAD for a path, in diff order."""
        output = self.git.run(["-c", "core.quotePath=false", "diff", "HEAD", "--", destination])
        return list(parse_unified_diff(output).values())

    def changes_from_last_commit(self, source: str) -> list[str]:
        """
        Diff bodies the triggering push made to a source path.

        The push's compare diff is fetched once per session and cached.
        """
        if self.last_commit_changes is None:
            diff = self.github.compare_commits_diff(
                self.event.repository_owner,
                self.event.repository_name,
                self.event.before,
                self.event.after,
            )
            self.last_commit_changes = parse_unified_diff(diff)
        return filter_changes(self.last_commit_changes, source)

    def is_one_commit_push(self) -> bool:
        return self.event.is_one_commit_push()

    def original_commit_message(self) -> str:
        return self.event.original_commit_message()

    # ------------------------------------------------------------------
    # Object inspection (used for verified commits)
    # ------------------------------------------------------------------

    def commits_to_push(self) -> list[str]:
        """Commits made since ``last_commit_sha``, oldest first."""
        output = self.git.run(["log", "--format=%H", "--reverse", f"{self.last_commit_sha}..HEAD"])
        return [line for line in output.splitlines() if line]

    def tree_id(self, rev: str) -> str:
        """Tree id of a commit, read from its headers."""
        logger.debug("Getting treeId for commit %s", rev)
        output = self.git.run(["cat-file", "-p", rev])
        for line in output.splitlines():
            if line == "":
                break
            if line.startswith("tree "):
                return line[len("tree ") :]
        raise ValueError(f"No tree header in commit {rev}")

    def tree_diff(self, tree: str, parent_tree: str) -> list[TreeDiffEntry]:
        """Changed blobs between a tree and its parent tree."""
        return parse_tree_diff(self.git.run(["diff-tree", "-r", "-z", tree, parent_tree]))

    def commit_message(self, sha: str) -> str:
        return self.git.run(["log", "-1", "--format=%B", sha])

    def blob_content(self, blob: str) -> bytes:
        """Raw content of a blob."""
        return self.git.run(["cat-file", "-p", blob], raw=True)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def push(self) -> None:
        """
        Publish the local commits.

        - fork configured: force-with-lease push of the PR branch to the fork
        - installation token: replay through the Git Data API (verified commits)
        - otherwise: force-with-lease push of HEAD to origin (the clone URL)
        """
        if self.settings.fork:
            self.git.run(["push", "-u", FORK_REMOTE, str(self.pr_branch), "--force-with-lease"])
        elif self.settings.is_installation_token:
            self.publisher.publish(self)
        else:
            # origin is the clone URL; pushing by remote name gives the lease tracking refs
            self.git.run(["push", "--force-with-lease", "origin", "HEAD"])
        self._advance(SessionState.PUSHED)
