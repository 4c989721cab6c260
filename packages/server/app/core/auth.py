"""
Authentication and group-scoped authorization.

Identity (login, password reset) belongs to the external identity provider.
This module only:
- Verifies the provider's HS256 bearer JWT and extracts the user id
- Resolves the caller's capabilities for the group in the path
- Offers role-check dependencies (require_group_member, require_group_leader)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.models.group import Group
from app.models.group_member import GroupMember
from app.services.roles import Capabilities, resolve_capabilities

log = structlog.get_logger()
settings = get_settings()

bearer_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    email: Optional[str] = None,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT shaped like the identity provider's. Returns (token, jti).

    Used by local tooling and tests; production tokens come from the provider.
    """
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """The principal handed to us by the identity provider."""

    def __init__(self, user_id: uuid.UUID, email: Optional[str] = None):
        self.user_id = user_id
        self.email = email


class GroupAuth:
    """Authenticated user + their capabilities in one group."""

    def __init__(self, user: AuthenticatedUser, capabilities: Capabilities):
        self.user = user
        self.capabilities = capabilities
        self.user_id = user.user_id
        self.group_id = capabilities.group_id

    @property
    def is_leader_or_admin(self) -> bool:
        return self.capabilities.is_leader_or_admin


async def get_authenticated_user(
    request: Request,
    authorization: Optional[str] = Depends(bearer_header),
) -> AuthenticatedUser:
    """Main authentication dependency: ``Authorization: Bearer <jwt>``."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")

    token = authorization[7:].strip()
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = AuthenticatedUser(user_id=user_id, email=payload.get("email"))
    request.state.auth = user
    structlog.contextvars.bind_contextvars(user_id=str(user_id))
    return user


async def get_group_auth(
    group_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
) -> GroupAuth:
    capabilities = await resolve_capabilities(session, user.user_id, group_id)
    return GroupAuth(user=user, capabilities=capabilities)


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_group_member(
    auth: GroupAuth = Depends(get_group_auth),
) -> GroupAuth:
    """Group members and global admins. Non-members see the group as missing."""
    if not auth.capabilities.is_member and not auth.capabilities.is_global_admin:
        raise HTTPException(status_code=404, detail="Group not found")
    return auth


async def require_group_leader(
    auth: GroupAuth = Depends(require_group_member),
) -> GroupAuth:
    """Requires leader/admin in this group, or the global admin flag."""
    if not auth.is_leader_or_admin:
        raise HTTPException(status_code=403, detail="Leader access required")
    return auth


async def _is_creator_of_memberless_group(
    session: AsyncSession, group_id: uuid.UUID, user_id: uuid.UUID
) -> bool:
    group = await session.get(Group, group_id)
    if group is None or group.created_by != user_id:
        return False
    result = await session.execute(
        select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
    )
    return result.scalar_one() == 0


async def require_group_deleter(
    auth: GroupAuth = Depends(get_group_auth),
    session: AsyncSession = Depends(get_session),
) -> GroupAuth:
    """Leader/admin, or the creator finishing an interrupted group deletion.

    Group deletion removes memberships before the group row, so a run that
    failed after that step leaves a group nobody belongs to.
    """
    if auth.capabilities.is_member or auth.capabilities.is_global_admin:
        return await require_group_leader(auth)
    if await _is_creator_of_memberless_group(session, auth.group_id, auth.user_id):
        log.info("auth.group_deletion_resumed", group_id=str(auth.group_id))
        return auth
    raise HTTPException(status_code=404, detail="Group not found")
