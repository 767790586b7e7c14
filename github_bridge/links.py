"""
Discord message links embedded in mirrored GitHub bodies.

The link is the only thing tying a GitHub issue or comment back to the Discord
message it was created from, so it has to survive any round trip through GitHub.
"""
import re
from typing import NamedTuple, Optional

DISCORD_CHANNELS_URL = "https://discord.com/channels"

# Only links used as a markdown target count, which keeps links that users paste
# into their message text from being mistaken for the header link.
DISCORD_MESSAGE_LINK_RE = re.compile(r"https://discord\.com/channels/(\d+)/(\d+)/(\d+)(?=\))")


class MessageLink(NamedTuple):
    guild_id: int
    channel_id: int
    message_id: int


def encode_message_link(guild_id: int, channel_id: int, message_id: int) -> str:
    return f"{DISCORD_CHANNELS_URL}/{guild_id}/{channel_id}/{message_id}"


def decode_message_link(body: Optional[str]) -> Optional[MessageLink]:
    """Return the first Discord message link found in ``body``, or None."""
    if not body:
        return None
    match = DISCORD_MESSAGE_LINK_RE.search(body)
    if not match:
        return None
    guild_id, channel_id, message_id = match.groups()
    return MessageLink(int(guild_id), int(channel_id), int(message_id))
