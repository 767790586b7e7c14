"""
Permission gate for destructive GitHub operations and the startup self-check.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import logging

log = logging.getLogger("red.github_bridge.permissions")


@dataclass(frozen=True)
class PermissionCheck:
    granted: bool
    permissions: Optional[Dict[str, str]] = None
    has_admin: bool = False
    repository_selection: Optional[str] = None
    target_type: Optional[str] = None


@dataclass(frozen=True)
class Readiness:
    authenticated: bool
    permissions_granted: bool = False
    rate_limit_ok: bool = False
    app_name: Optional[str] = None
    permissions: Optional[Dict[str, str]] = field(default=None)

    @property
    def ready(self) -> bool:
        return self.authenticated and self.permissions_granted


class PermissionGate:
    """Checks that the GitHub App installation may write issues."""

    def __init__(self, client) -> None:
        self.client = client

    async def check_permissions(self) -> PermissionCheck:
        try:
            installation: Dict[str, Any] = await self.client.get_installation()
        except Exception:
            log.exception("Failed to check GitHub App permissions")
            return PermissionCheck(granted=False)

        permissions = installation.get("permissions") or {}
        check = PermissionCheck(
            granted=permissions.get("issues") == "write",
            permissions=permissions,
            has_admin=permissions.get("administration") == "write",
            repository_selection=installation.get("repository_selection"),
            target_type=installation.get("target_type"),
        )
        log.debug(
            "Permissions check: issues_write=%s admin=%s repository=%s target=%s",
            check.granted, check.has_admin, check.repository_selection, check.target_type,
        )
        return check


async def check_rate_limit(client) -> bool:
    try:
        status = await client.get_rate_limit()
    except Exception:
        log.exception("Failed to check GitHub rate limit")
        return False
    log.info("GitHub rate limit: %d/%d remaining, resets at %s", status.remaining, status.limit, status.reset)
    return status.remaining > 0


async def initialize(client, gate: PermissionGate) -> Readiness:
    """
    Verify the app credentials, its permissions and the rate limit once.

    Failures are logged and reported in the returned :class:`Readiness`; none
    of them raise. When authentication fails the remaining checks are skipped
    since they would fail for the same reason.
    """
    try:
        app_name = await client.get_authenticated_app()
    except Exception:
        log.exception("Failed to authenticate with GitHub App. Please check your credentials.")
        return Readiness(authenticated=False)
    log.info("Successfully authenticated as GitHub App: %s", app_name)

    check = await gate.check_permissions()
    if not check.granted:
        log.error("GitHub App lacks required permissions! Current permissions: %s", check.permissions)
        log.error(
            "Please update the GitHub App permissions to include Issues: Read & Write, "
            "then reinstall the app at https://github.com/settings/installations"
        )

    rate_limit_ok = await check_rate_limit(client)
    return Readiness(
        authenticated=True,
        permissions_granted=check.granted,
        rate_limit_ok=rate_limit_ok,
        app_name=app_name,
        permissions=check.permissions,
    )
