"""
Data types shared by the GitHub bridge.

None of these depend on discord.py or PyGithub; the cog converts library
objects into them at the edges (see ``helpers.py`` and ``client.py``).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass
class CommentLink:
    """A Discord message mirrored as a GitHub issue comment."""

    id: int  # Discord message id
    git_id: int  # GitHub comment id


@dataclass
class Thread:
    """
    A Discord forum post mirrored to a GitHub issue.

    ``number`` and ``node_id`` are None until the issue has been created.
    The REST API addresses issues by number while the GraphQL ``deleteIssue``
    mutation needs the node id, so both are kept.
    """

    id: int
    title: str
    body: Optional[str] = None
    number: Optional[int] = None
    node_id: Optional[str] = None
    locked: bool = False
    archived: bool = False
    applied_tags: List[int] = field(default_factory=list)
    comments: List[CommentLink] = field(default_factory=list)

    def find_comment(self, message_id: int) -> Optional[CommentLink]:
        for comment in self.comments:
            if comment.id == message_id:
                return comment
        return None

    def add_comment(self, message_id: int, git_id: int) -> bool:
        """Append a comment link. Returns False if either id is already linked."""
        for comment in self.comments:
            if comment.id == message_id or comment.git_id == git_id:
                return False
        self.comments.append(CommentLink(id=message_id, git_id=git_id))
        return True

    def remove_comment(self, message_id: int) -> Optional[CommentLink]:
        comment = self.find_comment(message_id)
        if comment is not None:
            self.comments.remove(comment)
        return comment


@dataclass(frozen=True)
class ForumTagInfo:
    id: int
    name: str


@dataclass(frozen=True)
class ChatAuthor:
    id: int
    display_name: str
    avatar: Optional[str] = None  # avatar hash, None for the default avatar


@dataclass(frozen=True)
class ChatAttachment:
    url: str
    filename: str
    content_type: Optional[str] = None


@dataclass(frozen=True)
class ChatMessage:
    guild_id: int
    channel_id: int
    id: int
    author: ChatAuthor
    content: str = ""
    attachments: List[ChatAttachment] = field(default_factory=list)


@dataclass(frozen=True)
class IssueRecord:
    number: int
    node_id: str
    title: str
    body: Optional[str]
    state: str
    locked: bool = False
    html_url: Optional[str] = None


@dataclass(frozen=True)
class CommentRecord:
    id: int
    body: Optional[str]


@dataclass(frozen=True)
class RateLimitStatus:
    remaining: int
    limit: int
    reset: Optional[str] = None


class SyncStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    UNKNOWN_ERROR = "unknown_error"
    UNAUTHORIZED = "unauthorized"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"
    NO_CLIENT = "no_client"


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one bridge operation."""

    status: SyncStatus
    message: Optional[str] = None
    url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.SUCCESS

    @classmethod
    def success(cls, url: Optional[str] = None) -> "SyncResult":
        return cls(SyncStatus.SUCCESS, url=url)

    @classmethod
    def skipped(cls, reason: str) -> "SyncResult":
        return cls(SyncStatus.SKIPPED, message=reason)

    @classmethod
    def failed(cls, message: str, url: Optional[str] = None) -> "SyncResult":
        return cls(SyncStatus.FAILED, message=message, url=url)

    @classmethod
    def unknown(cls, url: Optional[str] = None) -> "SyncResult":
        return cls(SyncStatus.UNKNOWN_ERROR, url=url)
