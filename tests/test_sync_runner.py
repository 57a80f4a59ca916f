"""
Tests for SyncRunner.

Targets are local bare repositories, so cloning, committing and pushing are
real; only the GitHub API is mocked.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path
from unittest.mock import Mock

import pytest

from reposync.core.config.models import FileRule, RepoTarget, SyncGroup, SyncSettings
from reposync.core.github.client import GitHubAPIError
from reposync.core.github.event import SourceEvent
from reposync.core.github.models import PullRequest
from reposync.core.sync.models import ModifiedFile, RepoSyncStatus
from reposync.core.sync.pull_request import RESYNC_WARNING
from reposync.core.sync.runner import SyncRunner
from reposync.core.sync.session import RepoSession

PR_BRANCH = "repo-sync/templates/main"


def git(cwd: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    ).stdout.strip()


def remote_subjects(remote: Path, branch: str) -> list[str]:
    return git(remote, "log", "--format=%s", branch).splitlines()


def remote_has_branch(remote: Path, branch: str) -> bool:
    result = subprocess.run(
        ["git", "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
        cwd=remote,
        capture_output=True,
    )
    return result.returncode == 0


@pytest.fixture
def pr() -> PullRequest:
    return PullRequest(number=7, body="body", html_url="https://github.com/acme/tools/pull/7")


@pytest.fixture
def api(github: Mock, pr: PullRequest) -> Mock:
    github.list_pull_requests.return_value = []
    github.create_pull_request.return_value = pr
    github.update_pull_request.return_value = pr
    return github


@pytest.fixture
def make_runner(
    make_session: Callable[..., RepoSession],
    api: Mock,
    source_dir: Path,
) -> Callable[..., SyncRunner]:
    """Factory for runners over the local source checkout."""

    def _make(
        settings: SyncSettings,
        groups: list[SyncGroup],
        event: SourceEvent | None = None,
    ) -> SyncRunner:
        session = make_session(settings, event=event)
        return SyncRunner(
            settings,
            groups,
            api,
            event=event,
            project_dir=source_dir,
            session=session,
        )

    return _make


def group(target: RepoTarget, *rules: FileRule) -> SyncGroup:
    return SyncGroup(repo=target, files=list(rules))


class TestRunSynced:
    """Tests for a target that receives changes."""

    def test_commits_pushes_and_opens_pr(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        remote_repo: Path,
        api: Mock,
    ) -> None:
        runner = make_runner(
            settings,
            [
                group(
                    target,
                    FileRule(source="LICENSE", dest="LICENSE"),
                    FileRule(source="workflows", dest=".github/workflows"),
                )
            ],
        )

        result = runner.run()

        assert result.success
        (repo_result,) = result.results
        assert repo_result.status == RepoSyncStatus.SYNCED
        assert repo_result.commits == 2
        assert repo_result.modified == ["LICENSE", ".github/workflows/"]
        assert repo_result.pull_request_url == "https://github.com/acme/tools/pull/7"
        assert result.pull_request_urls == ["https://github.com/acme/tools/pull/7"]

        assert remote_subjects(remote_repo, PR_BRANCH)[:2] == [
            "🔄 created local '.github/workflows/' from remote 'workflows/'",
            "🔄 created local 'LICENSE' from remote 'LICENSE'",
        ]
        files = git(remote_repo, "ls-tree", "-r", "--name-only", PR_BRANCH).splitlines()
        assert ".github/workflows/ci.yml" in files
        assert ".github/workflows/lint.yml" in files

    def test_pr_body_lists_changed_files(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        api: Mock,
    ) -> None:
        runner = make_runner(
            settings,
            [group(target, FileRule(source="workflows", dest=".github/workflows"))],
        )

        runner.run()

        kwargs = api.create_pull_request.call_args.kwargs
        assert kwargs["head"] == f"acme:{PR_BRANCH}"
        assert kwargs["base"] == "main"
        assert kwargs["title"] == "🔄 synced file(s) with acme/templates"
        assert (
            "<li>created local directory <code>.github/workflows/</code> and copied all sub "
            "files/folders from remote directory <code>workflows/</code></li>"
        ) in kwargs["body"]
        api.add_labels.assert_called_once_with("acme", "tools", 7, ["sync"])

    def test_existing_file_synced_message(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        remote_repo: Path,
        source_dir: Path,
    ) -> None:
        (source_dir / "README.md").write_text("# Tools, synced\n")
        runner = make_runner(settings, [group(target, FileRule(source="README.md", dest="README.md"))])

        runner.run()

        assert remote_subjects(remote_repo, PR_BRANCH)[0] == (
            "🔄 synced local 'README.md' with remote 'README.md'"
        )

    def test_single_commit_without_commit_each_file(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        target: RepoTarget,
        remote_repo: Path,
        api: Mock,
    ) -> None:
        settings = make_settings(commit_each_file=False)
        runner = make_runner(
            settings,
            [
                group(
                    target,
                    FileRule(source="LICENSE", dest="LICENSE"),
                    FileRule(source="workflows", dest=".github/workflows"),
                )
            ],
        )

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.SYNCED
        assert repo_result.commits == 1
        assert repo_result.modified == []
        assert remote_subjects(remote_repo, PR_BRANCH)[0] == "🔄 synced file(s) with acme/templates"
        assert "Changed files" not in api.create_pull_request.call_args.kwargs["body"]

    def test_skip_pr_pushes_to_base_branch(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        target: RepoTarget,
        remote_repo: Path,
        api: Mock,
    ) -> None:
        runner = make_runner(
            make_settings(skip_pr=True),
            [group(target, FileRule(source="LICENSE", dest="LICENSE"))],
        )

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.SYNCED
        assert repo_result.pull_request_url is None
        assert remote_subjects(remote_repo, "main")[0] == "🔄 created local 'LICENSE' from remote 'LICENSE'"
        assert not remote_has_branch(remote_repo, PR_BRANCH)
        api.list_pull_requests.assert_not_called()
        api.create_pull_request.assert_not_called()

    def test_original_commit_message(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        target: RepoTarget,
        remote_repo: Path,
        api: Mock,
    ) -> None:
        event = SourceEvent(
            name="push",
            payload={
                "before": "aaa",
                "after": "bbb",
                "commits": [{"message": "Add MIT license\n\nLegal asked for it."}],
                "repository": {"name": "templates", "owner": {"name": "acme"}},
            },
        )
        api.compare_commits_diff.return_value = (
            "diff --git a/LICENSE b/LICENSE\n"
            "new file mode 100644\n"
            "index 0000000..1a2b3c4\n"
            "--- /dev/null\n"
            "+++ b/LICENSE\n"
            "@@ -0,0 +1 @@\n"
            "+MIT\n"
        )
        settings = make_settings(original_message=True, commit_as_pr_title=True)
        runner = make_runner(
            settings,
            [group(target, FileRule(source="LICENSE", dest="LICENSE"))],
            event=event,
        )

        runner.run()

        assert remote_subjects(remote_repo, PR_BRANCH)[0] == "Add MIT license"
        api.compare_commits_diff.assert_called_once_with("acme", "templates", "aaa", "bbb")
        assert api.create_pull_request.call_args.kwargs["title"] == "Add MIT license"

    def test_original_message_needs_identical_change(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        target: RepoTarget,
        remote_repo: Path,
        api: Mock,
    ) -> None:
        event = SourceEvent(
            name="push",
            payload={"commits": [{"message": "Unrelated change"}], "repository": {"name": "templates"}},
        )
        api.compare_commits_diff.return_value = ""
        runner = make_runner(
            make_settings(original_message=True),
            [group(target, FileRule(source="LICENSE", dest="LICENSE"))],
            event=event,
        )

        runner.run()

        assert remote_subjects(remote_repo, PR_BRANCH)[0] == "🔄 created local 'LICENSE' from remote 'LICENSE'"


class TestRunWithoutChanges:
    """Tests for targets that end up unchanged."""

    def test_up_to_date(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        source_dir: Path,
        api: Mock,
    ) -> None:
        (source_dir / "README.md").write_text("# Tools\n")
        runner = make_runner(settings, [group(target, FileRule(source="README.md", dest="README.md"))])

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.UP_TO_DATE
        api.create_pull_request.assert_not_called()

    def test_up_to_date_clears_resync_warning(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        source_dir: Path,
        api: Mock,
    ) -> None:
        existing = PullRequest(number=7, body="old body")
        warned = PullRequest(number=7, body=f"{RESYNC_WARNING}\n\nold body")
        api.list_pull_requests.return_value = [existing]
        api.update_pull_request.side_effect = [warned, existing]
        (source_dir / "README.md").write_text("# Tools\n")
        runner = make_runner(settings, [group(target, FileRule(source="README.md", dest="README.md"))])

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.UP_TO_DATE
        first, second = api.update_pull_request.call_args_list
        assert first.kwargs["body"] == f"{RESYNC_WARNING}\n\nold body"
        assert second.kwargs["body"] == "old body"

    def test_missing_source_skipped(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
    ) -> None:
        runner = make_runner(settings, [group(target, FileRule(source="missing.txt", dest="missing.txt"))])

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.UP_TO_DATE

    def test_replace_false_keeps_destination(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        source_dir: Path,
        remote_repo: Path,
    ) -> None:
        (source_dir / "README.md").write_text("# Something else\n")
        runner = make_runner(
            settings,
            [group(target, FileRule(source="README.md", dest="README.md", replace=False))],
        )

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.UP_TO_DATE
        assert git(remote_repo, "show", "main:README.md") == "# Tools"

    def test_dry_run_does_not_push(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        target: RepoTarget,
        remote_repo: Path,
        api: Mock,
    ) -> None:
        api.list_pull_requests.return_value = [PullRequest(number=7, body="old body")]
        runner = make_runner(
            make_settings(dry_run=True),
            [group(target, FileRule(source="LICENSE", dest="LICENSE"))],
        )

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.DRY_RUN
        assert repo_result.modified == ["LICENSE"]
        assert not remote_has_branch(remote_repo, PR_BRANCH)
        api.update_pull_request.assert_not_called()
        api.create_pull_request.assert_not_called()


class TestRunFailures:
    """Tests for per-target failure isolation and cleanup."""

    def test_failure_does_not_stop_run(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        api: Mock,
    ) -> None:
        other = RepoTarget.from_spec("acme/other@main")
        api.list_pull_requests.side_effect = [GitHubAPIError("Bad credentials", status_code=401), []]
        runner = make_runner(
            settings,
            [
                group(target, FileRule(source="LICENSE", dest="LICENSE")),
                group(other, FileRule(source="LICENSE", dest="LICENSE")),
            ],
        )

        result = runner.run()

        failed, synced = result.results
        assert failed.status == RepoSyncStatus.FAILED
        assert failed.error == "Bad credentials"
        assert synced.status == RepoSyncStatus.SYNCED
        assert not result.success
        assert result.failures == [failed]

    def test_undecodable_template_does_not_stop_run(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        source_dir: Path,
    ) -> None:
        (source_dir / "tpl").mkdir()
        (source_dir / "tpl" / "logo.bin").write_bytes(b"\xff\xfe\x00bad")
        other = RepoTarget.from_spec("acme/other@main")
        runner = make_runner(
            settings,
            [
                group(target, FileRule(source="tpl", dest="tpl", template={})),
                group(other, FileRule(source="LICENSE", dest="LICENSE")),
            ],
        )

        result = runner.run()

        assert [r.status for r in result.results] == [RepoSyncStatus.FAILED, RepoSyncStatus.SYNCED]
        assert result.results[0].error

    def test_value_error_does_not_stop_run(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        other = RepoTarget.from_spec("acme/other@main")
        runner = make_runner(
            settings,
            [
                group(target, FileRule(source="LICENSE", dest="LICENSE")),
                group(other, FileRule(source="LICENSE", dest="LICENSE")),
            ],
        )
        calls = iter([ValueError("Malformed diff-tree line: 'x'"), None])

        def commits_to_push() -> list[str]:
            error = next(calls)
            if error is not None:
                raise error
            return []

        monkeypatch.setattr(runner.session, "commits_to_push", commits_to_push)

        result = runner.run()

        failed, synced = result.results
        assert failed.status == RepoSyncStatus.FAILED
        assert "Malformed" in str(failed.error)
        assert synced.status == RepoSyncStatus.SYNCED

    def test_working_directory_removed(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
    ) -> None:
        runner = make_runner(settings, [group(target, FileRule(source="LICENSE", dest="LICENSE"))])

        runner.run()

        assert not Path(settings.tmp_dir).exists()

    def test_skip_cleanup_keeps_working_directory(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        target: RepoTarget,
    ) -> None:
        settings = make_settings(skip_cleanup=True)
        runner = make_runner(settings, [group(target, FileRule(source="LICENSE", dest="LICENSE"))])

        runner.run()

        assert (Path(settings.tmp_dir) / target.unique_name / "LICENSE").exists()

    def test_cleanup_after_error(
        self,
        make_runner: Callable[..., SyncRunner],
        settings: SyncSettings,
        target: RepoTarget,
        api: Mock,
    ) -> None:
        api.create_pull_request.side_effect = GitHubAPIError("Validation Failed", status_code=422)
        runner = make_runner(settings, [group(target, FileRule(source="LICENSE", dest="LICENSE"))])

        (repo_result,) = runner.run().results

        assert repo_result.status == RepoSyncStatus.FAILED
        assert not Path(settings.tmp_dir).exists()


class TestOpenPullRequest:
    """Tests for open_pull_request."""

    @pytest.fixture
    def prs(self, pr: PullRequest) -> Mock:
        prs = Mock()
        prs.create_or_update.return_value = pr
        return prs

    def test_extras_applied(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        prs: Mock,
    ) -> None:
        settings = make_settings(
            pr_labels=["sync", "ci"],
            assignees=["octocat"],
            reviewers=["hubot"],
            team_reviewers=["platform"],
        )
        runner = make_runner(settings, [])

        runner.open_pull_request(prs, [])

        prs.add_labels.assert_called_once_with(["sync", "ci"])
        prs.add_assignees.assert_called_once_with(["octocat"])
        prs.add_reviewers.assert_called_once_with(["hubot"])
        prs.add_team_reviewers.assert_called_once_with(["platform"])

    def test_fork_skips_extras(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        prs: Mock,
    ) -> None:
        runner = make_runner(make_settings(fork="sync-bot", assignees=["octocat"]), [])

        runner.open_pull_request(prs, [])

        prs.create_or_update.assert_called_once()
        prs.add_labels.assert_not_called()
        prs.add_assignees.assert_not_called()

    def test_title_needs_single_original_message(
        self,
        make_runner: Callable[..., SyncRunner],
        make_settings: Callable[..., SyncSettings],
        prs: Mock,
    ) -> None:
        runner = make_runner(make_settings(commit_as_pr_title=True), [])
        original = ModifiedFile(
            dest="LICENSE",
            message="m",
            use_original_message=True,
            commit_message="Add MIT license\n\nbody",
        )

        runner.open_pull_request(prs, [original])
        assert prs.create_or_update.call_args.kwargs["title"] == "Add MIT license"

        runner.open_pull_request(prs, [original, ModifiedFile(dest="x", message="n")])
        assert prs.create_or_update.call_args.kwargs["title"] is None
