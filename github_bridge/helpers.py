from typing import Iterable, List, Optional, Sequence
import discord

from .models import ChatAttachment, ChatAuthor, ChatMessage, ForumTagInfo, Thread


def build_labels(
    applied: Sequence[int], available: Iterable[ForumTagInfo], additional: Sequence[str] = ()
) -> List[str]:
    """GitHub labels for a new issue: applied forum tag names, then the configured extras."""
    names = {tag.id: tag.name for tag in available}
    result: List[str] = []
    for tag_id in applied:
        name = (names.get(tag_id) or "").strip()
        if name:
            result.append(name)
    for label in additional:
        label = label.strip()
        if label:
            result.append(label)
    return result


def forum_tags(forum: Optional[discord.ForumChannel]) -> List[ForumTagInfo]:
    if not isinstance(forum, discord.ForumChannel):
        return []
    return [ForumTagInfo(id=tag.id, name=tag.name) for tag in forum.available_tags]


def thread_from_discord(thread: discord.Thread) -> Thread:
    return Thread(
        id=thread.id,
        title=thread.name,
        locked=thread.locked,
        archived=thread.archived,
        applied_tags=[tag.id for tag in thread.applied_tags],
    )


def message_from_discord(message: discord.Message) -> ChatMessage:
    author = message.author
    return ChatMessage(
        guild_id=message.guild.id if message.guild else 0,
        channel_id=message.channel.id,
        id=message.id,
        author=ChatAuthor(
            id=author.id,
            display_name=author.global_name or author.display_name,
            avatar=author.avatar.key if author.avatar else None,
        ),
        content=message.content,
        attachments=[
            ChatAttachment(url=a.url, filename=a.filename, content_type=a.content_type)
            for a in message.attachments
        ],
    )
