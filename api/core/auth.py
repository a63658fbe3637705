"""Caller identity and authorization dependencies.

The hosting platform authenticates the caller and forwards who they are in
request headers:
- X-Community-Id: the community (challenge) the request is scoped to
- X-User-Id:      stable user identifier
- X-Username:     username, used for the moderator allowlist

Provides:
- Identity resolution from headers
- FastAPI dependencies for authenticated, moderator-only and dev-tool routes
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from core.config import get_settings
from core.logger import bind_contextvars, get_logger

logger = get_logger(__name__)

COMMUNITY_HEADER = "x-community-id"
USER_HEADER = "x-user-id"
USERNAME_HEADER = "x-username"


@dataclass(frozen=True)
class Identity:
    """Who is calling, as resolved by the platform."""

    community_id: str
    user_id: str
    username: str | None
    is_moderator: bool


def normalize_username(value: str) -> str:
    """Lowercase, trim and drop a leading "u/"."""
    trimmed = value.strip().lower()
    if trimmed.startswith("u/"):
        return trimmed[2:]
    return trimmed


def is_moderator_username(username: str | None) -> bool:
    if not username:
        return False
    normalized = normalize_username(username)
    return bool(normalized) and normalized in get_settings().moderator_username_set


def _header(request: Request, name: str) -> str | None:
    value = request.headers.get(name, "").strip()
    return value or None


def get_community_id(request: Request) -> str:
    """Resolve the community scope. Raises 401 if missing."""
    community_id = _header(request, COMMUNITY_HEADER)
    if not community_id:
        raise HTTPException(status_code=401, detail="Community context is required")
    bind_contextvars(community_id=community_id)
    return community_id


def get_optional_identity(
    request: Request,
    community_id: Annotated[str, Depends(get_community_id)],
) -> Identity | None:
    """Identity if a user is signed in, None for anonymous readers."""
    user_id = _header(request, USER_HEADER)
    if not user_id:
        return None

    username = _header(request, USERNAME_HEADER)
    bind_contextvars(user_id=user_id)
    return Identity(
        community_id=community_id,
        user_id=user_id,
        username=username,
        is_moderator=is_moderator_username(username),
    )


def require_identity(
    identity: Annotated[Identity | None, Depends(get_optional_identity)],
) -> Identity:
    """FastAPI dependency that raises 401 if not authenticated."""
    if identity is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return identity


def require_moderator(
    identity: Annotated[Identity, Depends(require_identity)],
) -> Identity:
    """Raises 401 without a username, 403 for non-moderators."""
    if not identity.username:
        raise HTTPException(status_code=401, detail="Username is required")
    if not identity.is_moderator:
        logger.warning(
            "auth.moderator.denied",
            community_id=identity.community_id,
            user_id=identity.user_id,
        )
        raise HTTPException(status_code=403, detail="Moderator access required")
    return identity


def require_dev_tools() -> None:
    """Dev endpoints are invisible (404) unless DEV_TOOLS_ENABLED is set."""
    if not get_settings().dev_tools_enabled:
        raise HTTPException(status_code=404, detail="Not found")


CommunityId = Annotated[str, Depends(get_community_id)]
OptionalIdentity = Annotated[Identity | None, Depends(get_optional_identity)]
CurrentIdentity = Annotated[Identity, Depends(require_identity)]
ModeratorIdentity = Annotated[Identity, Depends(require_moderator)]
DevTools = Annotated[None, Depends(require_dev_tools)]
