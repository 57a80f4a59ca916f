"""
Sync orchestration.

SyncRunner walks the configured groups one target at a time: clone,
materialize every file rule, commit, push and open or refresh the pull
request. A failure ends only the current target; the run continues with
the next one and the working directories are removed at the end.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path

from jinja2 import TemplateError

from reposync.core.config.models import FileRule, SyncGroup, SyncSettings
from reposync.core.github.client import GitHubAPIError, GitHubClient
from reposync.core.github.event import SourceEvent
from reposync.core.github.models import PullRequest
from reposync.core.sync import files
from reposync.core.sync.git import GitError
from reposync.core.sync.models import ModifiedFile, RepoSyncResult, RepoSyncStatus, RunResult
from reposync.core.sync.pull_request import PullRequestManager, changed_files_summary
from reposync.core.sync.session import RepoSession, SessionError

logger = logging.getLogger(__name__)

# Errors that fail one target without stopping the run
TARGET_ERRORS = (GitError, GitHubAPIError, OSError, TemplateError, ValueError)


def _with_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else f"{path}/"


class SyncRunner:
    """
    Runs a sync over all groups.

    Example:
        >>> with GitHubClient.from_settings(settings) as github:
        ...     result = SyncRunner(settings, groups, github).run()
        >>> result.pull_request_urls
        ['https://github.com/acme/tools/pull/7']
    """

    def __init__(
        self,
        settings: SyncSettings,
        groups: list[SyncGroup],
        github: GitHubClient,
        event: SourceEvent | None = None,
        project_dir: Path | None = None,
        session: RepoSession | None = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            settings: Run settings
            groups: Targets with their file rules
            github: Shared API client
            event: Triggering event (for original commit messages)
            project_dir: Directory rule sources are relative to (defaults to cwd)
            session: Session to reuse for every target
        """
        self.settings = settings
        self.groups = groups
        self.github = github
        self.event = event or SourceEvent()
        self.project_dir = project_dir or Path.cwd()
        self.session = session or RepoSession(settings, github, self.event)

    def run(self) -> RunResult:
        """
        Sync every group in order.

        Returns:
            Per-target results; failed targets carry the error message
        """
        result = RunResult()
        try:
            for group in self.groups:
                logger.info("Repository Info: %s (branch %s)", group.repo.slug, group.repo.branch)
                try:
                    result.results.append(self.sync_group(group))
                except TARGET_ERRORS as e:
                    logger.error("Syncing %s failed: %s", group.repo.full_name, e)
                    result.results.append(
                        RepoSyncResult(repo=group.repo, status=RepoSyncStatus.FAILED, error=str(e))
                    )
        finally:
            if not self.settings.skip_cleanup:
                self.cleanup()

        result.completed_at = datetime.now()
        return result

    def cleanup(self) -> None:
        tmp_dir = Path(self.settings.tmp_dir)
        if tmp_dir.exists():
            logger.debug("Removing temporary directory %s", tmp_dir)
            shutil.rmtree(tmp_dir)

    def sync_group(self, group: SyncGroup) -> RepoSyncResult:
        """
        Sync one target repository.

        Raises:
            GitError: If a git command fails
            GitHubAPIError: If an API call fails
            OSError: If copying files fails
        """
        session = self.session
        session.init_repo(group.repo)

        prs: PullRequestManager | None = None
        if self.settings.pr_enabled:
            prs = PullRequestManager(session, self.github, self.settings)
            session.create_pr_branch()
            if self.settings.overwrite_existing_pr:
                prs.find_existing()
                if prs.existing is not None and not self.settings.dry_run:
                    prs.set_resync_warning()

        modified: list[ModifiedFile] = []
        for rule in group.files:
            entry = self.apply_rule(rule)
            if entry is not None:
                modified.append(entry)

        if self.settings.dry_run:
            logger.warning("Dry run, no changes will be pushed")
            logger.debug("Git Status: %s", session.status())
            return RepoSyncResult(
                repo=group.repo,
                status=RepoSyncStatus.DRY_RUN,
                modified=[file.dest for file in modified],
            )

        has_changes = session.has_changes()
        if not has_changes and not modified:
            logger.info("File(s) already up to date")
            if prs is not None and prs.existing is not None:
                prs.clear_resync_warning()
            return RepoSyncResult(repo=group.repo, status=RepoSyncStatus.UP_TO_DATE)

        if has_changes:
            logger.debug("Creating commit for remaining files")
            session.commit()

        commits = len(session.commits_to_push())
        logger.info("Pushing changes to target repository")
        session.push()

        result = RepoSyncResult(
            repo=group.repo,
            status=RepoSyncStatus.SYNCED,
            commits=commits,
            modified=[file.dest for file in modified],
        )

        if prs is not None:
            pr = self.open_pull_request(prs, modified)
            result.pull_request_url = pr.html_url
            result.pull_request_number = pr.number
            logger.info("Pull Request #%s created/updated: %s", pr.number, pr.html_url)

        return result

    def apply_rule(self, rule: FileRule) -> ModifiedFile | None:
        """
        Materialize one rule into the working copy and stage it.

        With one commit per file, the rule is committed right away and
        returned as a modified file. The commit reuses the triggering
        commit's message when configured and the staged diff equals the
        diff that commit made to the source.

        Returns:
            The modified file when a commit was made, else None
        """
        session = self.session
        if session.working_dir is None:
            raise SessionError("Session not initialized. Call init_repo() first.")

        source_path = self.project_dir / rule.source
        if not source_path.exists():
            logger.warning("Source %s not found", rule.source)
            return None

        dest_path = session.working_dir / rule.dest
        dest_exists = dest_path.exists()
        if dest_exists and not rule.replace:
            logger.warning(
                "File(s) already exist(s) in destination and 'replace' option is set to false"
            )
            return None

        is_directory = source_path.is_dir()
        source = _with_trailing_slash(rule.source) if is_directory else rule.source
        dest = _with_trailing_slash(rule.dest) if is_directory else rule.dest
        if is_directory:
            logger.info("Source is directory")

        files.materialize(source_path, dest_path, is_directory, rule)
        session.add(dest)

        if not self.settings.commit_each_file:
            return None
        if not session.has_changes():
            logger.info("File(s) already up to date")
            return None

        logger.debug("Creating commit for file(s) %s", dest)
        use_original = (
            self.settings.original_message
            and session.is_one_commit_push()
            and session.changes(dest) == session.changes_from_last_commit(source)
        )

        kind = "directory " if is_directory else ""
        prefix = self.settings.commit_prefix
        if dest_exists:
            commit_message = f"{prefix} synced local '{dest}' with remote '{source}'"
            pr_message = f"synced local {kind}<code>{dest}</code> with remote {kind}<code>{source}</code>"
        else:
            commit_message = f"{prefix} created local '{dest}' from remote '{source}'"
            copied = "and copied all sub files/folders " if is_directory else ""
            pr_message = (
                f"created local {kind}<code>{dest}</code> {copied}from remote {kind}<code>{source}</code>"
            )
        if use_original:
            commit_message = session.original_commit_message()

        session.commit(commit_message)
        return ModifiedFile(
            dest=dest,
            source=source,
            message=pr_message,
            use_original_message=bool(use_original),
            commit_message=commit_message,
        )

    def open_pull_request(self, prs: PullRequestManager, modified: list[ModifiedFile]) -> PullRequest:
        """Create or update the PR, then apply labels, assignees and reviewers."""
        changed_files = changed_files_summary(modified) if self.settings.commit_each_file else ""

        title = None
        if (
            self.settings.commit_as_pr_title
            and len(modified) == 1
            and modified[0].use_original_message
        ):
            title = modified[0].commit_message.split("\n", 1)[0].strip()

        pr = prs.create_or_update(changed_files, title=title)

        # Forks cannot label, assign or request reviews on the upstream PR
        if not self.settings.fork:
            if self.settings.pr_labels:
                logger.debug("Adding label(s) %s to PR", ", ".join(self.settings.pr_labels))
                prs.add_labels(self.settings.pr_labels)
            if self.settings.assignees:
                logger.debug("Adding assignee(s) %s to PR", ", ".join(self.settings.assignees))
                prs.add_assignees(self.settings.assignees)
            if self.settings.reviewers:
                logger.debug("Adding reviewer(s) %s to PR", ", ".join(self.settings.reviewers))
                prs.add_reviewers(self.settings.reviewers)
            if self.settings.team_reviewers:
                logger.debug("Adding team reviewer(s) %s to PR", ", ".join(self.settings.team_reviewers))
                prs.add_team_reviewers(self.settings.team_reviewers)

        return pr
