"""
Group-level endpoints: ordered group deletion and the activity feed.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.deps import get_deletion_orchestrator
from app.core.auth import GroupAuth, require_group_deleter, require_group_member
from app.core.database import get_session, get_session_factory
from app.models.group import Group
from app.services import activity
from app.services.deletion import DeletionOrchestrator, raise_for_outcome
from studygroup_shared.schemas.activity import ActivityLogRead
from studygroup_shared.schemas.common import ActivityAction
from studygroup_shared.schemas.tasks import DeletionOutcome

log = structlog.get_logger()

router = APIRouter()


@router.delete("", response_model=DeletionOutcome)
async def delete_group_endpoint(
    group_id: uuid.UUID,
    auth: GroupAuth = Depends(require_group_deleter),
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    orchestrator: DeletionOrchestrator = Depends(get_deletion_orchestrator),
):
    """Delete the group with its tasks, stages, members and activity.

    Leader/admin only. A failed step returns 500 naming the step; already
    completed steps stay deleted and the call can simply be repeated. Once
    the memberships are gone, the group's creator may still repeat it.
    """
    group = await session.get(Group, auth.group_id)
    group_name = group.name if group is not None else None
    user_name = await activity.display_name(session, auth.user_id, auth.user.email)

    outcome = raise_for_outcome(await orchestrator.delete_group(auth.group_id))
    log.info("group.deleted", group_id=str(auth.group_id), by=str(auth.user_id))

    if group_name is not None:
        await activity.append_best_effort(
            session_factory,
            activity.group_deleted_entry(
                user_id=auth.user_id,
                user_name=user_name,
                group_id=auth.group_id,
                group_name=group_name,
            ),
        )
    return outcome


@router.get("/activity", response_model=List[ActivityLogRead])
async def list_activity_endpoint(
    group_id: uuid.UUID,
    action: Optional[ActivityAction] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    auth: GroupAuth = Depends(require_group_member),
    session: AsyncSession = Depends(get_session),
):
    """Group activity feed, newest first."""
    return await activity.list_group_activity(
        session, auth.group_id, action=action, limit=limit, offset=offset
    )
