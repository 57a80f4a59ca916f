"""
Pytest configuration and shared fixtures.

Provides settings factories, a git helper and local bare repositories that
stand in for target repositories on GitHub.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest

from reposync.core.config.models import RepoTarget, SyncSettings
from reposync.core.github.client import GitHubClient
from reposync.core.sync.session import RepoSession


def git(cwd: Path, *args: str) -> str:
    """Run git in a directory and return trimmed stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., SyncSettings]:
    """Factory for SyncSettings with test defaults."""

    def _make(**overrides: Any) -> SyncSettings:
        values: dict[str, Any] = {
            "token": "ghp_test",
            "source_repository": "acme/templates",
            "git_email": "sync@example.com",
            "git_username": "Sync Bot",
            "tmp_dir": str(tmp_path / "work"),
            "run_id": "42",
        }
        values.update(overrides)
        return SyncSettings(**values)

    return _make


@pytest.fixture
def settings(make_settings: Callable[..., SyncSettings]) -> SyncSettings:
    return make_settings()


@pytest.fixture
def github() -> Mock:
    """API client double."""
    return Mock(spec=GitHubClient)


# ==============================================================================
# Repository Fixtures
# ==============================================================================


@pytest.fixture
def remote_repo(tmp_path: Path) -> Path:
    """
    Bare repository acting as the target on GitHub.

    Has one commit on ``main`` containing README.md and docs/guide.md.
    """
    remote = tmp_path / "remotes" / "tools.git"
    remote.mkdir(parents=True)
    git(remote, "init", "--bare")
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")

    seed = tmp_path / "seed"
    seed.mkdir()
    git(seed, "init")
    git(seed, "config", "user.email", "seed@example.com")
    git(seed, "config", "user.name", "Seed")
    git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
    (seed / "README.md").write_text("# Tools\n")
    (seed / "docs").mkdir()
    (seed / "docs" / "guide.md").write_text("guide\n")
    git(seed, "add", ".")
    git(seed, "commit", "-m", "Initial commit")
    git(seed, "push", str(remote), "main")

    return remote


@pytest.fixture
def target() -> RepoTarget:
    return RepoTarget.from_spec("acme/tools@main")


@pytest.fixture
def make_session(
    remote_repo: Path,
    github: Mock,
    monkeypatch: pytest.MonkeyPatch,
) -> Callable[[SyncSettings], RepoSession]:
    """Factory for sessions that clone from the local bare remote."""

    def _make(settings: SyncSettings, **kwargs: Any) -> RepoSession:
        session = RepoSession(settings, github, **kwargs)
        monkeypatch.setattr(session, "build_git_url", lambda repo: str(remote_repo))
        return session

    return _make


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Source repository checkout with a few files to sync."""
    source = tmp_path / "source"
    (source / "workflows").mkdir(parents=True)
    (source / "LICENSE").write_text("MIT\n")
    (source / "workflows" / "ci.yml").write_text("name: ci\n")
    (source / "workflows" / "lint.yml").write_text("name: lint\n")
    return source
