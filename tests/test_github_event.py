"""Tests for the triggering event of the source repository."""

import json
from pathlib import Path

from reposync.core.github.event import SourceEvent

PUSH_PAYLOAD = {
    "before": "a1",
    "after": "b2",
    "repository": {"name": "templates", "owner": {"name": "acme", "login": "acme-login"}},
    "commits": [{"id": "b2", "message": "Update CI workflow\n\nDetails"}],
}


class TestSourceEvent:
    """Tests for SourceEvent."""

    def test_from_env(self, tmp_path: Path) -> None:
        event_file = tmp_path / "event.json"
        event_file.write_text(json.dumps(PUSH_PAYLOAD))

        event = SourceEvent.from_env(
            {"GITHUB_EVENT_NAME": "push", "GITHUB_EVENT_PATH": str(event_file)}
        )

        assert event.name == "push"
        assert event.repository_owner == "acme"
        assert event.repository_name == "templates"
        assert event.before == "a1"
        assert event.after == "b2"

    def test_from_env_without_payload(self) -> None:
        event = SourceEvent.from_env({})

        assert event.name == ""
        assert event.commits == []
        assert event.is_one_commit_push() is False
        assert event.original_commit_message() == ""

    def test_unreadable_payload_is_empty(self, tmp_path: Path) -> None:
        event_file = tmp_path / "event.json"
        event_file.write_text("{not json")

        event = SourceEvent.from_env(
            {"GITHUB_EVENT_NAME": "push", "GITHUB_EVENT_PATH": str(event_file)}
        )

        assert event.payload == {}

    def test_one_commit_push(self) -> None:
        event = SourceEvent(name="push", payload=PUSH_PAYLOAD)

        assert event.is_one_commit_push() is True
        assert event.original_commit_message() == "Update CI workflow\n\nDetails"

    def test_multiple_commits(self) -> None:
        payload = {**PUSH_PAYLOAD, "commits": [{"message": "one"}, {"message": "two"}]}

        assert SourceEvent(name="push", payload=payload).is_one_commit_push() is False

    def test_not_a_push(self) -> None:
        event = SourceEvent(name="workflow_dispatch", payload=PUSH_PAYLOAD)

        assert event.is_one_commit_push() is False

    def test_owner_login_fallback(self) -> None:
        payload = {"repository": {"name": "templates", "owner": {"login": "acme"}}}

        assert SourceEvent(name="push", payload=payload).repository_owner == "acme"
