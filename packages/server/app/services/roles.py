"""
Identity & role resolution: what a user may do inside one group.

Capabilities are resolved per request and passed explicitly to every
decision; nothing here reads process-wide state. Lookups fail closed: a
store error never elevates, it degrades the caller to a plain member.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.assignments import TaskAssignment
from app.models.group_member import GroupMember
from app.models.task import Task
from app.models.user_role import UserRole
from studygroup_shared.schemas.common import ELEVATED_ROLES, GroupRole

log = structlog.get_logger()

GLOBAL_ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Capabilities:
    user_id: uuid.UUID
    group_id: uuid.UUID
    group_role: Optional[GroupRole] = None
    is_global_admin: bool = False
    assigned_task_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)

    @property
    def is_member(self) -> bool:
        return self.group_role is not None

    @property
    def is_leader_or_admin(self) -> bool:
        return self.is_global_admin or self.group_role in ELEVATED_ROLES

    def is_assignee(self, task_id: uuid.UUID) -> bool:
        return task_id in self.assigned_task_ids


def parse_group_role(raw: Optional[str]) -> Optional[GroupRole]:
    """Map a stored role string to GroupRole; unknown values demote to member."""
    if raw is None:
        return None
    try:
        return GroupRole(raw)
    except ValueError:
        return GroupRole.MEMBER


async def _lookup_roles(
    session: AsyncSession, user_id: uuid.UUID, group_id: uuid.UUID
) -> tuple[Optional[GroupRole], bool]:
    result = await session.execute(
        select(GroupMember.role).where(
            GroupMember.user_id == user_id,
            GroupMember.group_id == group_id,
        )
    )
    group_role = parse_group_role(result.scalars().first())

    result = await session.execute(
        select(UserRole.id).where(
            UserRole.user_id == user_id,
            UserRole.role == GLOBAL_ADMIN_ROLE,
        )
    )
    is_global_admin = result.first() is not None
    return group_role, is_global_admin


async def _lookup_assignments(
    session: AsyncSession, user_id: uuid.UUID, group_id: uuid.UUID
) -> frozenset[uuid.UUID]:
    result = await session.execute(
        select(TaskAssignment.task_id)
        .join(Task, Task.id == TaskAssignment.task_id)
        .where(TaskAssignment.user_id == user_id, Task.group_id == group_id)
    )
    return frozenset(result.scalars().all())


async def resolve_capabilities(
    session: AsyncSession, user_id: uuid.UUID, group_id: uuid.UUID
) -> Capabilities:
    """Resolve the capability set of ``user_id`` within ``group_id``."""
    try:
        group_role, is_global_admin = await _lookup_roles(session, user_id, group_id)
    except SQLAlchemyError as exc:
        log.warning(
            "roles.lookup_failed",
            user_id=str(user_id),
            group_id=str(group_id),
            error=str(exc),
        )
        await session.rollback()
        group_role, is_global_admin = GroupRole.MEMBER, False

    try:
        assigned = await _lookup_assignments(session, user_id, group_id)
    except SQLAlchemyError as exc:
        log.warning(
            "roles.assignment_lookup_failed",
            user_id=str(user_id),
            group_id=str(group_id),
            error=str(exc),
        )
        await session.rollback()
        assigned = frozenset()

    return Capabilities(
        user_id=user_id,
        group_id=group_id,
        group_role=group_role,
        is_global_admin=is_global_admin,
        assigned_task_ids=assigned,
    )
