"""
Sync engine: materialize files into target repositories and publish them.
"""

from .diff import TreeDiffEntry, filter_changes, parse_tree_diff, parse_unified_diff
from .git import GitError, GitRunner
from .models import (
    ModifiedFile,
    RepoSyncResult,
    RepoSyncStatus,
    RunResult,
    SessionState,
)
from .publisher import VerifiedCommitPublisher
from .pull_request import PullRequestManager, changed_files_summary
from .runner import SyncRunner
from .session import RepoSession, SessionError

__all__ = [
    "GitError",
    "GitRunner",
    "ModifiedFile",
    "PullRequestManager",
    "RepoSession",
    "RepoSyncResult",
    "RepoSyncStatus",
    "RunResult",
    "SessionError",
    "SessionState",
    "SyncRunner",
    "TreeDiffEntry",
    "VerifiedCommitPublisher",
    "changed_files_summary",
    "filter_changes",
    "parse_tree_diff",
    "parse_unified_diff",
]
