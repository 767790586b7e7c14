from typing import Dict, List

import logging

from .links import decode_message_link
from .models import Thread

log = logging.getLogger("red.github_bridge.reconcile")


class ReconciliationScanner:
    """Rebuilds the mirrored threads from the issues and comments on GitHub."""

    def __init__(self, client) -> None:
        self.client = client

    async def load_all(self) -> List[Thread]:
        try:
            issues = await self.client.list_issues()
        except Exception:
            log.exception("Failed to get issues")
            return []

        threads: Dict[int, Thread] = {}
        for issue in issues:
            link = decode_message_link(issue.body)
            if link is None:
                continue
            threads[link.channel_id] = Thread(
                id=link.channel_id,
                title=issue.title,
                body=issue.body,
                number=issue.number,
                node_id=issue.node_id,
                locked=issue.locked,
                archived=issue.state == "closed",
            )

        try:
            comments = await self.client.list_comments()
        except Exception:
            log.exception("Failed to load comments")
            comments = []

        attached = 0
        for comment in comments:
            link = decode_message_link(comment.body)
            if link is None:
                continue
            thread = threads.get(link.channel_id)
            if thread is None:
                # TODO: queue orphaned comments for a later pass once their thread is mirrored.
                log.debug("Dropping comment %s, no mirrored thread for channel %s", comment.id, link.channel_id)
                continue
            if thread.add_comment(link.message_id, comment.id):
                attached += 1

        log.info("Loaded %d mirrored threads with %d comments from GitHub", len(threads), attached)
        return list(threads.values())
