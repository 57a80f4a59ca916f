"""
Workflow event of the source repository.

When the sync runs from a push, the event payload tells us which commits
triggered it. That is what lets a synced file reuse the original commit
message when its change is identical to the pushed one.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SourceEvent(BaseModel):
    """The event that triggered the run (usually a push)."""

    name: str = Field(default="", description="Event name, e.g. 'push'")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event payload")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SourceEvent:
        """
        Load the event from ``GITHUB_EVENT_NAME`` / ``GITHUB_EVENT_PATH``.

        A missing or unreadable payload yields an empty event.
        """
        if env is None:
            env = os.environ
        name = env.get("GITHUB_EVENT_NAME", "")
        payload: dict[str, Any] = {}

        event_path = env.get("GITHUB_EVENT_PATH")
        if event_path:
            try:
                data = json.loads(Path(event_path).read_text())
                if isinstance(data, dict):
                    payload = data
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to read event payload %s: %s", event_path, e)

        return cls(name=name, payload=payload)

    @property
    def commits(self) -> list[dict[str, Any]]:
        commits = self.payload.get("commits")
        return commits if isinstance(commits, list) else []

    def is_one_commit_push(self) -> bool:
        """True when the run was triggered by a push of exactly one commit."""
        return self.name == "push" and len(self.commits) == 1

    def original_commit_message(self) -> str:
        """Message of the first pushed commit."""
        return str(self.commits[0].get("message", "")) if self.commits else ""

    @property
    def repository_owner(self) -> str:
        owner = (self.payload.get("repository") or {}).get("owner") or {}
        return str(owner.get("name") or owner.get("login") or "")

    @property
    def repository_name(self) -> str:
        return str((self.payload.get("repository") or {}).get("name") or "")

    @property
    def before(self) -> str:
        return str(self.payload.get("before") or "")

    @property
    def after(self) -> str:
        return str(self.payload.get("after") or "")
