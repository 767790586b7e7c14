"""
Discord to GitHub synchronisation.

Every public coroutine maps one Discord thread event to one GitHub operation,
records what GitHub assigned on the :class:`Thread` and returns a
:class:`SyncResult`. Failures end in a log line and a result, never in an
exception, so a broken sync cannot take down the event listener that called it.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

import logging

from .config import BridgeSettings
from .errors import AuthorizationFailure, NoClientAvailable, error_message
from .formatting import issue_url, render_message
from .helpers import build_labels
from .models import ChatMessage, SyncResult, SyncStatus, Thread
from .permissions import PermissionGate
from .retry import BackoffPolicy
from .store import ThreadStore

log = logging.getLogger("red.github_bridge.engine")

TRIGGERER = "Discord"


class Actions(str, Enum):
    CREATED = "Created"
    COMMENTED = "Commented"
    CLOSED = "Closed"
    REOPENED = "Reopened"
    LOCKED = "Locked"
    UNLOCKED = "Unlocked"
    DELETED = "Deleted"
    DELETED_COMMENT = "DeletedComment"


class SyncEngine:
    def __init__(
        self,
        client,
        store: ThreadStore,
        settings: BridgeSettings,
        *,
        gate: Optional[PermissionGate] = None,
        policy: Optional[BackoffPolicy] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings
        self.gate = gate or PermissionGate(client)
        self.policy = policy or BackoffPolicy()

    # ----------------------
    # Logging helpers
    # ----------------------
    def issue_url(self, thread: Thread) -> str:
        return issue_url(self.settings.owner, self.settings.repo, thread.number)

    def _info(self, action: Actions, thread: Thread) -> SyncResult:
        url = self.issue_url(thread)
        log.info("%s | %s | %s", TRIGGERER, action.value, url)
        return SyncResult.success(url)

    def _error(self, text: str, thread: Optional[Thread] = None) -> None:
        if thread is None:
            log.error("%s | %s", TRIGGERER, text)
        else:
            log.error("%s | %s | %s", TRIGGERER, text, self.issue_url(thread))

    def _failure(self, err: BaseException, what: str, thread: Thread) -> SyncResult:
        message = error_message(err)
        if message:
            self._error(f"Failed to {what}: {message}", thread)
            return SyncResult.failed(message, url=self.issue_url(thread))
        self._error(f"Failed to {what} due to an unknown error", thread)
        return SyncResult.unknown(url=self.issue_url(thread))

    def _missing_number(self, thread: Thread) -> Optional[SyncResult]:
        if thread.number is None:
            self._error("Thread does not have an issue number", thread)
            return SyncResult.skipped("Thread does not have an issue number")
        return None

    # ----------------------
    # Issues
    # ----------------------
    async def create_issue(self, thread: Thread, message: ChatMessage) -> SyncResult:
        if thread.number is not None:
            self._error("Thread already has an issue number", thread)
            return SyncResult.skipped("Thread already has an issue number")

        labels = build_labels(thread.applied_tags, self.store.available_tags, self.settings.additional_labels)
        body = render_message(message)
        try:
            issue = await self.client.create_issue(title=thread.title, body=body, labels=labels)
        except Exception as err:
            return self._failure(err, "create issue", thread)

        if issue is None or issue.number is None:
            self._error("Failed to create issue - No response data", thread)
            return SyncResult.failed("No response data")

        thread.number = issue.number
        thread.node_id = issue.node_id
        thread.body = issue.body
        return self._info(Actions.CREATED, thread)

    async def _set_state(self, thread: Thread, state: str, action: Actions, verb: str) -> SyncResult:
        skipped = self._missing_number(thread)
        if skipped:
            return skipped
        try:
            await self.client.update_issue_state(thread.number, state)
        except Exception as err:
            return self._failure(err, f"{verb} issue", thread)
        thread.archived = state == "closed"
        return self._info(action, thread)

    async def close_issue(self, thread: Thread) -> SyncResult:
        return await self._set_state(thread, "closed", Actions.CLOSED, "close")

    async def open_issue(self, thread: Thread) -> SyncResult:
        return await self._set_state(thread, "open", Actions.REOPENED, "open")

    async def lock_issue(self, thread: Thread) -> SyncResult:
        skipped = self._missing_number(thread)
        if skipped:
            return skipped
        try:
            await self.client.lock_issue(thread.number)
        except Exception as err:
            return self._failure(err, "lock issue", thread)
        thread.locked = True
        return self._info(Actions.LOCKED, thread)

    async def unlock_issue(self, thread: Thread) -> SyncResult:
        skipped = self._missing_number(thread)
        if skipped:
            return skipped
        try:
            await self.client.unlock_issue(thread.number)
        except Exception as err:
            return self._failure(err, "unlock issue", thread)
        thread.locked = False
        return self._info(Actions.UNLOCKED, thread)

    async def delete_issue(self, thread: Thread) -> SyncResult:
        """
        Delete the GitHub issue through the GraphQL API.

        The installation must hold issue write permission; rate limited
        attempts are retried by the backoff policy.
        """
        if not thread.node_id:
            self._error("Thread does not have a node ID", thread)
            return SyncResult.skipped("Thread does not have a node ID")

        check = await self.gate.check_permissions()
        if not check.granted:
            self._error("GitHub App lacks required permissions to delete issues", thread)
            return SyncResult(
                SyncStatus.INSUFFICIENT_PERMISSIONS,
                message="GitHub App lacks required permissions to delete issues",
                url=self.issue_url(thread),
            )

        node_id = thread.node_id
        try:
            await self.policy.run(lambda: self.client.delete_issue(node_id))
        except AuthorizationFailure as err:
            self._error("GitHub App is not authorized to delete issues. Please check permissions.", thread)
            return SyncResult(SyncStatus.UNAUTHORIZED, message=str(err), url=self.issue_url(thread))
        except NoClientAvailable as err:
            self._error(f"Error deleting issue: {err}", thread)
            return SyncResult(SyncStatus.NO_CLIENT, message=str(err), url=self.issue_url(thread))
        except Exception as err:
            return self._failure(err, "delete issue", thread)
        return self._info(Actions.DELETED, thread)

    # ----------------------
    # Comments
    # ----------------------
    async def create_comment(self, thread: Thread, message: ChatMessage) -> SyncResult:
        skipped = self._missing_number(thread)
        if skipped:
            return skipped
        if thread.find_comment(message.id):
            log.warning("Message %s is already mirrored on %s", message.id, self.issue_url(thread))
            return SyncResult.skipped("Message is already mirrored")

        body = render_message(message)
        try:
            comment = await self.client.create_comment(thread.number, body)
        except Exception as err:
            return self._failure(err, "create comment", thread)

        if comment is None:
            self._error("Failed to create comment - No response data", thread)
            return SyncResult.failed("No response data")

        thread.add_comment(message.id, comment.id)
        return self._info(Actions.COMMENTED, thread)

    async def delete_comment(self, thread: Thread, message_id: int) -> SyncResult:
        skipped = self._missing_number(thread)
        if skipped:
            return skipped
        comment = thread.find_comment(message_id)
        if comment is None:
            log.warning("Message %s is not mirrored on %s", message_id, self.issue_url(thread))
            return SyncResult.skipped("Message is not mirrored as a comment")

        try:
            await self.client.delete_comment(thread.number, comment.git_id)
        except Exception as err:
            return self._failure(err, "delete comment", thread)
        thread.remove_comment(message_id)
        return self._info(Actions.DELETED_COMMENT, thread)
