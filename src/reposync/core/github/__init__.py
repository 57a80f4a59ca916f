"""
GitHub integration for reposync.

A single REST client (with retry and rate-limit backoff) shared by the
session, the verified-commit publisher and the pull request manager.
"""

from reposync.core.github.client import GitHubAPIError, GitHubClient
from reposync.core.github.event import SourceEvent
from reposync.core.github.http import RetryConfig
from reposync.core.github.models import AuthenticatedUser, PullRequest

__all__ = [
    "AuthenticatedUser",
    "GitHubAPIError",
    "GitHubClient",
    "PullRequest",
    "RetryConfig",
    "SourceEvent",
]
