"""
Default configuration and resolved settings for the GitHub bridge cog.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigurationError, NotConfigured

# Default global configuration
DEFAULT_GLOBAL_CONFIG = {
    # GitHub App credentials
    "app_id": None,
    "private_key": None,  # PEM text
    "installation_id": None,
    "client_id": None,
    "client_secret": None,

    # Target repository and issue options
    "repository": None,  # "owner/repo"
    "additional_labels": "",  # comma separated, added to every created issue
    "lock_reason": "resolved",

    # Discord side
    "forum_channel": None,  # forum channel id mirrored to GitHub
}

REQUIRED_KEYS = ("app_id", "private_key", "installation_id", "repository")


def parse_repository(spec: Optional[str]) -> Tuple[str, str]:
    """Split ``owner/repo`` into its two parts."""
    parts = (spec or "").strip().split("/")
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise ConfigurationError('GitHub repository must be in the format "owner/repo"')
    return parts[0].strip(), parts[1].strip()


def parse_additional_labels(raw: Optional[str]) -> Tuple[str, ...]:
    return tuple(label.strip() for label in (raw or "").split(",") if label.strip())


@dataclass(frozen=True)
class BridgeSettings:
    """Everything the bridge needs, resolved once from Red's Config."""

    app_id: int
    private_key: str
    installation_id: int
    owner: str
    repo: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    additional_labels: Tuple[str, ...] = ()
    lock_reason: str = "resolved"
    forum_channel: Optional[int] = None

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_config(cls, data: Dict[str, Any]) -> "BridgeSettings":
        # The repository is validated first: a malformed value is fatal even
        # when the credentials are not set up yet.
        if data.get("repository"):
            owner, repo = parse_repository(data["repository"])
        missing = [key for key in REQUIRED_KEYS if not data.get(key)]
        if missing:
            raise NotConfigured(f"GitHub bridge is not configured, missing: {', '.join(missing)}")
        try:
            app_id = int(data["app_id"])
            installation_id = int(data["installation_id"])
        except (TypeError, ValueError):
            raise ConfigurationError("GitHub app id and installation id must be numbers")
        forum_channel = data.get("forum_channel")
        return cls(
            app_id=app_id,
            private_key=data["private_key"],
            installation_id=installation_id,
            owner=owner,
            repo=repo,
            client_id=data.get("client_id"),
            client_secret=data.get("client_secret"),
            additional_labels=parse_additional_labels(data.get("additional_labels")),
            lock_reason=data.get("lock_reason") or "resolved",
            forum_channel=int(forum_channel) if forum_channel else None,
        )
