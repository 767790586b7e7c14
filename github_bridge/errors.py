"""
Exceptions raised by the GitHub bridge and helpers for classifying failures.
"""
from typing import Optional

from github import GithubException


class BridgeError(Exception):
    """Base class for GitHub bridge errors."""


class ConfigurationError(BridgeError):
    """The bridge settings are missing or malformed."""


class NotConfigured(ConfigurationError):
    """Required settings have not been set yet."""


class TrackerError(BridgeError):
    """GitHub answered a request with an error."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class NoClientAvailable(BridgeError):
    """No installation token could be obtained, so no request was sent."""


class AuthorizationFailure(BridgeError):
    """GitHub refused the operation because the app is not authorized."""


def error_message(err: BaseException) -> Optional[str]:
    """
    Best-effort human readable message for a failed GitHub call.

    Returns None when the failure carries nothing useful, which callers report
    as an unknown error.
    """
    if isinstance(err, TrackerError):
        return err.message or None
    if isinstance(err, GithubException):
        data = err.data
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        if getattr(err, "message", None):
            return err.message
        return f"HTTP {err.status}" if err.status else None
    text = str(err).strip()
    return text or None


def is_rate_limit_error(err: BaseException) -> bool:
    message = error_message(err)
    return bool(message) and "rate limit" in message.lower()


def is_not_authorized_error(err: BaseException) -> bool:
    message = error_message(err)
    return bool(message) and "not authorized" in message.lower()
