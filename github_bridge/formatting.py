from typing import Iterable, Optional

from .links import encode_message_link
from .models import ChatAttachment, ChatAuthor, ChatMessage

DISCORD_CDN = "https://cdn.discordapp.com"
GITHUB_URL = "https://github.com"

INLINE_IMAGE_TYPES = {"image/png", "image/jpeg"}


def avatar_url(author: ChatAuthor) -> str:
    if author.avatar:
        return f"{DISCORD_CDN}/avatars/{author.id}/{author.avatar}.webp?size=40"
    # Default avatars for accounts on the new username system
    return f"{DISCORD_CDN}/embed/avatars/{(author.id >> 22) % 6}.png"


def _content_type(attachment: ChatAttachment) -> Optional[str]:
    if not attachment.content_type:
        return None
    return attachment.content_type.split(";", 1)[0].strip().lower()


def attachments_to_markdown(attachments: Iterable[ChatAttachment]) -> str:
    """Inline image attachments; anything else is left out."""
    md = ""
    for attachment in attachments:
        if _content_type(attachment) in INLINE_IMAGE_TYPES:
            md += f'![{attachment.filename}]({attachment.url} "{attachment.filename}")'
    return md


def render_message(message: ChatMessage) -> str:
    """Render a Discord message as the body of a GitHub issue or comment."""
    author = message.author
    link = encode_message_link(message.guild_id, message.channel_id, message.id)
    header = (
        f"<kbd>[![{author.display_name}]({avatar_url(author)})]({link})</kbd> "
        f"[{author.display_name}]({link})  `BOT`"
    )
    return f"{header}\n\n{message.content}\n{attachments_to_markdown(message.attachments)}\n"


def issue_url(owner: str, repo: str, number: Optional[int]) -> str:
    if number is None:
        return f"{GITHUB_URL}/{owner}/{repo}/issues"
    return f"{GITHUB_URL}/{owner}/{repo}/issues/{number}"
