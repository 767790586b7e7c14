"""Tests for the Discord to GitHub sync engine."""

import asyncio
import logging

import pytest

from github_bridge.engine import SyncEngine
from github_bridge.errors import NoClientAvailable, TrackerError
from github_bridge.links import DISCORD_MESSAGE_LINK_RE, decode_message_link
from github_bridge.models import ChatAttachment, ForumTagInfo, SyncStatus, Thread
from github_bridge.permissions import PermissionCheck
from github_bridge.retry import BackoffPolicy

from conftest import CHANNEL_ID, make_message, png


class DenyingGate:

    def __init__(self):
        self.checks = 0

    async def check_permissions(self):
        self.checks += 1
        return PermissionCheck(granted=False, permissions={"issues": "read"})


@pytest.fixture
def delays():
    return []


@pytest.fixture
def engine(tracker, store, settings, delays):
    async def sleep(seconds):
        delays.append(seconds)

    return SyncEngine(tracker, store, settings, policy=BackoffPolicy(sleep=sleep))


def synced_thread(**kwargs):
    defaults = dict(id=CHANNEL_ID, title="Button broken", number=7, node_id="I_node7")
    defaults.update(kwargs)
    return Thread(**defaults)


def run(coro):
    return asyncio.run(coro)


class TestCreateIssue:

    def test_creates_issue_and_records_identity(self, engine, tracker, store):
        store.set_available_tags([ForumTagInfo(1, "bug"), ForumTagInfo(2, "ui")])
        thread = Thread(id=CHANNEL_ID, title="Button broken", applied_tags=[1, 2])
        attachments = [png(), ChatAttachment(url="https://cdn/log.txt", filename="log.txt", content_type="text/plain")]

        result = run(engine.create_issue(thread, make_message(attachments=attachments)))

        assert result.ok
        assert result.url == "https://github.com/octo/forum/issues/42"
        name, title, body, labels = tracker.calls[0]
        assert name == "create_issue"
        assert title == "Button broken"
        assert labels == ["bug", "ui", "triage", "urgent"]
        assert len({m.groups() for m in DISCORD_MESSAGE_LINK_RE.finditer(body)}) == 1
        assert decode_message_link(body).channel_id == CHANNEL_ID
        assert "![screenshot.png]" in body
        assert "log.txt" not in body
        assert thread.number == 42
        assert thread.node_id == "I_node42"
        assert thread.body == body

    def test_logs_created(self, engine, caplog):
        thread = Thread(id=CHANNEL_ID, title="Button broken")
        with caplog.at_level(logging.INFO, logger="red.github_bridge"):
            run(engine.create_issue(thread, make_message()))
        assert "Discord | Created | https://github.com/octo/forum/issues/42" in caplog.text

    def test_never_creates_twice(self, engine, tracker, caplog):
        thread = synced_thread()
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.create_issue(thread, make_message()))
        assert result.status is SyncStatus.SKIPPED
        assert tracker.calls == []
        assert "already has an issue number" in caplog.text

    def test_failure_with_message(self, engine, tracker, caplog):
        tracker.fail_with["create_issue"] = TrackerError("Validation Failed")
        thread = Thread(id=CHANNEL_ID, title="Button broken")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.create_issue(thread, make_message()))
        assert result.status is SyncStatus.FAILED
        assert result.message == "Validation Failed"
        assert thread.number is None
        assert "Failed to create issue: Validation Failed" in caplog.text

    def test_failure_without_message(self, engine, tracker, caplog):
        tracker.fail_with["create_issue"] = RuntimeError()
        thread = Thread(id=CHANNEL_ID, title="Button broken")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.create_issue(thread, make_message()))
        assert result.status is SyncStatus.UNKNOWN_ERROR
        assert "Failed to create issue due to an unknown error" in caplog.text


class TestPreconditions:

    @pytest.mark.parametrize("operation", ["close_issue", "open_issue", "lock_issue", "unlock_issue"])
    def test_state_changes_need_issue_number(self, engine, tracker, caplog, operation):
        thread = Thread(id=CHANNEL_ID, title="Never mirrored")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(getattr(engine, operation)(thread))
        assert result.status is SyncStatus.SKIPPED
        assert tracker.calls == []
        assert "Thread does not have an issue number" in caplog.text

    def test_comment_needs_issue_number(self, engine, tracker, caplog):
        thread = Thread(id=CHANNEL_ID, title="Never mirrored")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.create_comment(thread, make_message(message_id=5)))
        assert result.status is SyncStatus.SKIPPED
        assert tracker.calls == []
        assert thread.comments == []
        assert "Thread does not have an issue number" in caplog.text

    def test_delete_comment_needs_issue_number(self, engine, tracker, caplog):
        thread = Thread(id=CHANNEL_ID, title="Never mirrored")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.delete_comment(thread, 5))
        assert result.status is SyncStatus.SKIPPED
        assert tracker.calls == []
        assert "Thread does not have an issue number" in caplog.text

    def test_delete_issue_needs_node_id(self, engine, tracker, caplog):
        thread = Thread(id=CHANNEL_ID, title="Never mirrored")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.delete_issue(thread))
        assert result.status is SyncStatus.SKIPPED
        assert tracker.calls == []
        assert "Thread does not have a node ID" in caplog.text


class TestStateChanges:

    def test_close_and_reopen(self, engine, tracker):
        thread = synced_thread()
        assert run(engine.close_issue(thread)).ok
        assert thread.archived
        assert run(engine.open_issue(thread)).ok
        assert not thread.archived
        assert tracker.calls == [("update_issue_state", 7, "closed"), ("update_issue_state", 7, "open")]

    def test_lock_and_unlock(self, engine, tracker):
        thread = synced_thread()
        assert run(engine.lock_issue(thread)).ok
        assert thread.locked
        assert run(engine.unlock_issue(thread)).ok
        assert not thread.locked
        assert tracker.call_names() == ["lock_issue", "unlock_issue"]

    def test_close_failure_keeps_state(self, engine, tracker, caplog):
        tracker.fail_with["update_issue_state"] = TrackerError("Not Found")
        thread = synced_thread()
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.close_issue(thread))
        assert result.status is SyncStatus.FAILED
        assert not thread.archived
        assert "Failed to close issue: Not Found | https://github.com/octo/forum/issues/7" in caplog.text


class TestComments:

    def test_create_comment_links_message(self, engine, tracker):
        thread = synced_thread()
        result = run(engine.create_comment(thread, make_message(message_id=5, content="me too")))
        assert result.ok
        assert tracker.calls[0][:2] == ("create_comment", 7)
        assert "me too" in tracker.calls[0][2]
        assert [(c.id, c.git_id) for c in thread.comments] == [(5, 9000)]

    def test_same_message_not_mirrored_twice(self, engine, tracker):
        thread = synced_thread()
        thread.add_comment(5, 8000)
        result = run(engine.create_comment(thread, make_message(message_id=5)))
        assert result.status is SyncStatus.SKIPPED
        assert tracker.calls == []

    def test_delete_comment(self, engine, tracker):
        thread = synced_thread()
        thread.add_comment(5, 9000)
        thread.add_comment(6, 9001)
        assert run(engine.delete_comment(thread, 5)).ok
        assert tracker.calls == [("delete_comment", 7, 9000)]
        assert [c.id for c in thread.comments] == [6]

    def test_delete_unlinked_comment(self, engine, tracker):
        thread = synced_thread()
        result = run(engine.delete_comment(thread, 5))
        assert result.status is SyncStatus.SKIPPED
        assert tracker.calls == []

    def test_delete_comment_failure_keeps_link(self, engine, tracker):
        tracker.fail_with["delete_comment"] = TrackerError("Not Found")
        thread = synced_thread()
        thread.add_comment(5, 9000)
        assert run(engine.delete_comment(thread, 5)).status is SyncStatus.FAILED
        assert thread.find_comment(5) is not None


class TestDeleteIssue:

    def test_deletes_by_node_id(self, engine, tracker):
        thread = synced_thread()
        result = run(engine.delete_issue(thread))
        assert result.ok
        assert tracker.call_names() == ["get_installation", "delete_issue"]
        assert tracker.calls[1] == ("delete_issue", "I_node7")

    def test_permission_gate_refuses(self, tracker, store, settings, caplog):
        gate = DenyingGate()
        engine = SyncEngine(tracker, store, settings, gate=gate)
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.delete_issue(synced_thread()))
        assert result.status is SyncStatus.INSUFFICIENT_PERMISSIONS
        assert gate.checks == 1
        assert "delete_issue" not in tracker.call_names()
        assert "lacks required permissions" in caplog.text

    def test_missing_issue_write_permission(self, engine, tracker):
        tracker.installation = {"permissions": {"issues": "read", "administration": "write"}}
        result = run(engine.delete_issue(synced_thread()))
        assert result.status is SyncStatus.INSUFFICIENT_PERMISSIONS
        assert "delete_issue" not in tracker.call_names()

    def test_not_authorized(self, engine, tracker, delays, caplog):
        tracker.fail_with["delete_issue"] = TrackerError("octo-bot is not authorized to delete issues")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.delete_issue(synced_thread()))
        assert result.status is SyncStatus.UNAUTHORIZED
        assert tracker.call_names().count("delete_issue") == 1
        assert delays == []
        assert "not authorized to delete issues" in caplog.text

    def test_rate_limited_then_gives_up(self, engine, tracker, delays, caplog):
        tracker.fail_with["delete_issue"] = TrackerError("API rate limit exceeded")
        with caplog.at_level(logging.ERROR, logger="red.github_bridge"):
            result = run(engine.delete_issue(synced_thread()))
        assert result.status is SyncStatus.FAILED
        assert tracker.call_names().count("delete_issue") == 3
        assert delays == [2.0, 4.0]
        assert "Failed to delete issue: API rate limit exceeded" in caplog.text

    def test_no_client(self, engine, tracker):
        tracker.fail_with["delete_issue"] = NoClientAvailable("Failed to get installation token")
        result = run(engine.delete_issue(synced_thread()))
        assert result.status is SyncStatus.NO_CLIENT
        assert tracker.call_names().count("delete_issue") == 1
