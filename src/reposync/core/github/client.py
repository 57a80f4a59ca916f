"""
GitHub REST API client for reposync.

One client (one ``httpx.Client``) is created per run and handed to every
component that talks to GitHub. Retries and rate-limit backoff happen here,
so callers see either a result or a ``GitHubAPIError``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from types import TracebackType
from typing import Any

import httpx

from reposync import __version__
from reposync.core.github.http import RetryConfig, with_retry
from reposync.core.github.models import AuthenticatedUser, PullRequest

logger = logging.getLogger(__name__)

DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"


class GitHubAPIError(Exception):
    """Error from a GitHub API call."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def is_already_exists(self) -> bool:
        """True for the 422 GitHub returns when creating an existing ref."""
        return "Reference already exists" in str(self)


class GitHubClient:
    """
    Client for the GitHub REST and Git Data APIs.

    Example:
        >>> with GitHubClient("ghp_x") as client:
        ...     pr = client.create_pull_request("acme", "tools", "Sync", "", "acme:sync", "main")
        ...     print(pr.html_url)
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        *,
        retry: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize GitHubClient.

        Args:
            token: Personal access or installation token
            api_url: REST API base URL
            retry: Retry/backoff configuration
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (used by tests)
            sleep: Sleep function used between retries
        """
        self.api_url = api_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.api_url,
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": f"reposync/{__version__}",
            },
            timeout=timeout,
            transport=transport,
        )
        self._send = with_retry(retry or RetryConfig(), sleep=sleep)(self._send_once)

    @classmethod
    def from_settings(cls, settings: Any) -> GitHubClient:
        """Create a client from SyncSettings."""
        return cls(settings.token, settings.api_url)

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _send_once(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> httpx.Response:
        headers = {"Accept": accept} if accept else None
        response = self._client.request(method, path, json=json, params=params, headers=headers)
        response.raise_for_status()
        return response

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> httpx.Response:
        """
        Send a request with retry and translate failures.

        Raises:
            GitHubAPIError: On non-2xx responses (after retries) and transport errors
        """
        logger.debug("GitHub API %s %s", method, path)
        try:
            return self._send(method, path, json=json, params=params, accept=accept)
        except httpx.HTTPStatusError as e:
            response = e.response
            body: Any
            try:
                body = response.json()
                message = body.get("message") if isinstance(body, dict) else None
            except ValueError:
                body = response.text
                message = None
            raise GitHubAPIError(
                message or f"{method} {path} failed with status {response.status_code}",
                status_code=response.status_code,
                response_body=body,
            ) from e
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"{method} {path} failed: {e}") from e

    # ------------------------------------------------------------------
    # Users and repositories
    # ------------------------------------------------------------------

    def get_authenticated_user(self) -> AuthenticatedUser:
        """Get the user the token belongs to."""
        data = self._request("GET", "/user").json()
        return AuthenticatedUser(
            login=data["login"], email=data.get("email"), name=data.get("name")
        )

    def create_fork(self, owner: str, repo: str) -> dict[str, Any]:
        """
        Fork a repository into the token owner's account.

        GitHub returns the existing fork when it already exists.
        """
        result: dict[str, Any] = self._request("POST", f"/repos/{owner}/{repo}/forks").json()
        return result

    def compare_commits_diff(self, owner: str, repo: str, base: str, head: str) -> str:
        """Unified diff between two commits."""
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/compare/{base}...{head}",
            accept=DIFF_MEDIA_TYPE,
        )
        return response.text

    # ------------------------------------------------------------------
    # Git Data API
    # ------------------------------------------------------------------

    def create_blob(self, owner: str, repo: str, content: str, encoding: str = "base64") -> str:
        """
        Create a blob.

        Returns:
            Blob sha
        """
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": content, "encoding": encoding},
        ).json()
        return str(data["sha"])

    def create_tree(
        self,
        owner: str,
        repo: str,
        tree: list[dict[str, Any]],
        base_tree: str | None = None,
    ) -> str:
        """
        Create a tree from entries, optionally on top of a base tree.

        Entries with ``sha: None`` remove the path from the base tree.

        Returns:
            Tree sha
        """
        payload: dict[str, Any] = {"tree": tree}
        if base_tree:
            payload["base_tree"] = base_tree
        data = self._request("POST", f"/repos/{owner}/{repo}/git/trees", json=payload).json()
        return str(data["sha"])

    def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree: str,
        parents: list[str],
    ) -> str:
        """
        Create a commit object.

        Returns:
            Commit sha
        """
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        ).json()
        return str(data["sha"])

    def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> None:
        """Create a reference (``refs/heads/<branch>``)."""
        self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": ref, "sha": sha},
        )

    def update_ref(self, owner: str, repo: str, ref: str, sha: str, force: bool = False) -> None:
        """Move a reference (``heads/<branch>``) to a commit."""
        self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/{ref}",
            json={"sha": sha, "force": force},
        )

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def list_pull_requests(
        self, owner: str, repo: str, head: str, state: str = "open"
    ) -> list[PullRequest]:
        """List pull requests for a head (``owner:branch``)."""
        data = self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"state": state, "head": head},
        ).json()
        return [PullRequest.from_api(item) for item in data]

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequest:
        """Open a pull request."""
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        ).json()
        return PullRequest.from_api(data)

    def update_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        *,
        title: str | None = None,
        body: str | None = None,
    ) -> PullRequest:
        """Update the title and/or body of a pull request."""
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        data = self._request(
            "PATCH", f"/repos/{owner}/{repo}/pulls/{number}", json=payload
        ).json()
        return PullRequest.from_api(data)

    def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None:
        """Add labels to an issue or pull request."""
        self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{number}/labels",
            json={"labels": labels},
        )

    def add_assignees(self, owner: str, repo: str, number: int, assignees: list[str]) -> None:
        """Assign users to an issue or pull request."""
        self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{number}/assignees",
            json={"assignees": assignees},
        )

    def request_reviewers(
        self,
        owner: str,
        repo: str,
        number: int,
        *,
        reviewers: list[str] | None = None,
        team_reviewers: list[str] | None = None,
    ) -> None:
        """Request reviews from users and/or teams."""
        payload: dict[str, Any] = {}
        if reviewers:
            payload["reviewers"] = reviewers
        if team_reviewers:
            payload["team_reviewers"] = team_reviewers
        self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{number}/requested_reviewers",
            json=payload,
        )
