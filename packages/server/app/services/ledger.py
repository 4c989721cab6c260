"""
Submission history ledger.

The ledger is the source of truth for what was submitted and by whom. It
only ever grows: there is no update path, and rows disappear only through
the deletion orchestrator when their task is purged.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.base import as_utc
from app.models.profile import Profile
from app.models.submission_history import SubmissionHistory
from app.models.task import Task
from app.services.links import decode_links
from studygroup_shared.schemas.tasks import SubmissionHistoryRead

UNKNOWN_USER = "Unknown"


async def append_entry(
    session: AsyncSession,
    *,
    task_id: uuid.UUID,
    user_id: uuid.UUID,
    links: list[dict[str, str]],
    note: Optional[str],
    submitted_at: datetime,
) -> SubmissionHistory:
    """Insert one immutable entry. Each call is an independent insert."""
    entry = SubmissionHistory(
        task_id=task_id,
        user_id=user_id,
        submission_links=links,
        note=note,
        submitted_at=submitted_at,
    )
    session.add(entry)
    await session.flush()
    return entry


async def list_entries(session: AsyncSession, task_id: uuid.UUID) -> Sequence[SubmissionHistory]:
    """All entries for a task, newest first."""
    result = await session.execute(
        select(SubmissionHistory)
        .where(SubmissionHistory.task_id == task_id)
        .order_by(SubmissionHistory.submitted_at.desc(), SubmissionHistory.id)
    )
    return result.scalars().all()


async def history_for_task(session: AsyncSession, task: Task) -> list[SubmissionHistoryRead]:
    """Ledger entries with submitter names and a late flag against the current deadline."""
    entries = await list_entries(session, task.id)
    user_ids = {e.user_id for e in entries}
    names: dict[uuid.UUID, str] = {}
    if user_ids:
        result = await session.execute(
            select(Profile.id, Profile.full_name).where(Profile.id.in_(user_ids))
        )
        names = {pid: name for pid, name in result.all()}

    deadline = as_utc(task.deadline)
    return [
        SubmissionHistoryRead(
            id=e.id,
            task_id=e.task_id,
            user_id=e.user_id,
            user_name=names.get(e.user_id, UNKNOWN_USER),
            submission_links=decode_links(e.submission_links),
            note=e.note,
            submitted_at=as_utc(e.submitted_at),
            is_late=deadline is not None and as_utc(e.submitted_at) > deadline,
        )
        for e in entries
    ]
