"""
GitHub data models for reposync.

Defines Pydantic models for the API objects the sync engine keeps around.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PullRequest(BaseModel):
    """
    A pull request handle.

    Fetched or created once per target and reused for body updates,
    labels and reviewers.
    """

    number: int = Field(..., description="Pull request number")
    title: str = Field(default="", description="Title")
    body: str = Field(default="", description="Body (markdown)")
    html_url: str = Field(default="", description="HTML URL")
    head_ref: str = Field(default="", description="Head branch name")
    base_ref: str = Field(default="", description="Base branch name")
    state: str = Field(default="open", description="open/closed")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> PullRequest:
        """
        Create a PullRequest from a REST API response.

        Args:
            data: JSON object from the pulls endpoints

        Returns:
            PullRequest instance
        """
        head = data.get("head") or {}
        base = data.get("base") or {}
        return cls(
            number=int(data.get("number", 0)),
            title=str(data.get("title") or ""),
            body=str(data.get("body") or ""),
            html_url=str(data.get("html_url") or ""),
            head_ref=str(head.get("ref") or "") if isinstance(head, dict) else "",
            base_ref=str(base.get("ref") or "") if isinstance(base, dict) else "",
            state=str(data.get("state") or "open"),
        )


class AuthenticatedUser(BaseModel):
    """The user a personal access token belongs to."""

    login: str = Field(..., description="User login")
    email: str | None = Field(default=None, description="Public profile email")
    name: str | None = Field(default=None, description="Display name")
