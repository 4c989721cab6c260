"""
Activity audit log: human-readable, append-only history of what happened.

The lifecycle engine only appends here; reading is for the activity viewer.
Descriptions keep the wording the group UI shows to students.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.models.activity_log import ActivityLog
from app.models.base import as_utc
from app.models.profile import Profile
from app.services.authorization import SubmissionDecision
from app.services.ledger import UNKNOWN_USER
from studygroup_shared.schemas.activity import ActivityLogRead
from studygroup_shared.schemas.common import ActivityAction, TaskStatus

log = structlog.get_logger()

ACTION_TYPE_TASK = "task"
ACTION_TYPE_GROUP = "group"


async def display_name(
    session: AsyncSession, user_id: uuid.UUID, fallback: Optional[str] = None
) -> str:
    """Name to denormalize into log rows: profile name, then email, then Unknown."""
    result = await session.execute(select(Profile.full_name).where(Profile.id == user_id))
    name = result.scalars().first()
    return name or fallback or UNKNOWN_USER


def describe_submission(task_title: str, decision: SubmissionDecision) -> str:
    if decision.is_submitting_on_behalf:
        suffix = f" (trễ {decision.late_hours} giờ)" if decision.is_overdue else ""
        return f'Leader nộp thay cho task "{task_title}"{suffix}'
    if decision.is_overdue:
        return f'Nộp bài trễ {decision.late_hours} giờ cho task "{task_title}"'
    return f'Nộp bài đúng hạn cho task "{task_title}"'


def submission_entry(
    *,
    user_id: uuid.UUID,
    user_name: str,
    task_id: uuid.UUID,
    task_title: str,
    group_id: uuid.UUID,
    deadline: Optional[datetime],
    decision: SubmissionDecision,
) -> ActivityLog:
    action = ActivityAction.LATE_SUBMISSION if decision.is_overdue else ActivityAction.SUBMISSION
    deadline = as_utc(deadline)
    return ActivityLog(
        user_id=user_id,
        user_name=user_name,
        action=action.value,
        action_type=ACTION_TYPE_TASK,
        description=describe_submission(task_title, decision),
        group_id=group_id,
        meta={
            "task_id": str(task_id),
            "task_title": task_title,
            "deadline": deadline.isoformat() if deadline else None,
            "is_late": decision.is_overdue,
            "late_hours": decision.late_hours,
            "submitted_by_leader": decision.is_submitting_on_behalf,
        },
    )


def status_change_entry(
    *,
    user_id: uuid.UUID,
    user_name: str,
    task_id: uuid.UUID,
    task_title: str,
    group_id: uuid.UUID,
    from_status: TaskStatus,
    to_status: TaskStatus,
    decision: SubmissionDecision,
) -> ActivityLog:
    return ActivityLog(
        user_id=user_id,
        user_name=user_name,
        action=ActivityAction.STATUS_CHANGE.value,
        action_type=ACTION_TYPE_TASK,
        description=f'Cập nhật trạng thái task "{task_title}": {from_status.value} → {to_status.value}',
        group_id=group_id,
        meta={
            "task_id": str(task_id),
            "task_title": task_title,
            "from_status": from_status.value,
            "to_status": to_status.value,
            "is_late": decision.is_overdue,
        },
    )


def task_deleted_entry(
    *, user_id: uuid.UUID, user_name: str, task_id: uuid.UUID, task_title: str, group_id: uuid.UUID
) -> ActivityLog:
    return ActivityLog(
        user_id=user_id,
        user_name=user_name,
        action=ActivityAction.DELETE_TASK.value,
        action_type=ACTION_TYPE_TASK,
        description=f'Xóa task "{task_title}"',
        group_id=group_id,
        meta={"task_id": str(task_id), "task_title": task_title},
    )


def group_deleted_entry(
    *, user_id: uuid.UUID, user_name: str, group_id: uuid.UUID, group_name: str
) -> ActivityLog:
    # The group row is gone by now, so the entry is not linked to it.
    return ActivityLog(
        user_id=user_id,
        user_name=user_name,
        action=ActivityAction.DELETE_GROUP.value,
        action_type=ACTION_TYPE_GROUP,
        description=f'Xóa nhóm "{group_name}"',
        group_id=None,
        meta={"group_id": str(group_id), "group_name": group_name},
    )


async def append(session: AsyncSession, entry: ActivityLog) -> ActivityLog:
    session.add(entry)
    await session.flush()
    return entry


async def append_best_effort(
    session_factory: async_sessionmaker[AsyncSession], entry: ActivityLog
) -> Optional[uuid.UUID]:
    """Append in a session of its own. Failures are logged, not raised."""
    try:
        async with session_factory() as session:
            await append(session, entry)
            await session.commit()
            return entry.id
    except SQLAlchemyError as exc:
        log.warning("activity.append_failed", action=entry.action, error=str(exc))
        return None


def to_read(entry: ActivityLog) -> ActivityLogRead:
    meta: dict[str, Any] = entry.meta or {}
    return ActivityLogRead(
        id=entry.id,
        user_id=entry.user_id,
        user_name=entry.user_name,
        action=entry.action,
        action_type=entry.action_type,
        description=entry.description,
        group_id=entry.group_id,
        metadata=meta,
        created_at=as_utc(entry.created_at),
    )


async def list_group_activity(
    session: AsyncSession,
    group_id: uuid.UUID,
    *,
    action: Optional[ActivityAction] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ActivityLogRead]:
    stmt = select(ActivityLog).where(ActivityLog.group_id == group_id)
    if action:
        stmt = stmt.where(ActivityLog.action == action.value)
    stmt = stmt.order_by(ActivityLog.created_at.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return [to_read(e) for e in result.scalars().all()]

