"""
Task store: leader-side task CRUD and read models.

Handles:
- Task creation and metadata edits (title, description, deadline, stage)
- Assignee set management
- Enrichment of task rows for API responses

Status and submission links are not edited here; they only change through
the submission gate in ``app.services.submissions``.
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFound
from app.models.assignments import TaskAssignment
from app.models.base import as_utc
from app.models.stage import Stage
from app.models.task import Task
from app.services.links import decode_links
from studygroup_shared.schemas.common import TaskStatus
from studygroup_shared.schemas.tasks import TaskCreate, TaskRead, TaskUpdate


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_task_or_404(
    session: AsyncSession, task_id: uuid.UUID, group_id: uuid.UUID
) -> Task:
    task = await session.get(Task, task_id)
    if not task or task.group_id != group_id:
        raise NotFound("Task not found", task_id=str(task_id))
    return task


async def _check_stage(
    session: AsyncSession, stage_id: Optional[uuid.UUID], group_id: uuid.UUID
) -> None:
    if stage_id is None:
        return
    stage = await session.get(Stage, stage_id)
    if not stage or stage.group_id != group_id:
        raise NotFound("Stage not found", stage_id=str(stage_id))


async def _get_assignee_ids(session: AsyncSession, task_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(TaskAssignment.user_id)
        .where(TaskAssignment.task_id == task_id)
        .order_by(TaskAssignment.assigned_at)
    )
    return list(result.scalars().all())


async def enrich_task(session: AsyncSession, task: Task) -> TaskRead:
    """Convert a Task ORM object to a TaskRead with its assignees."""
    assignee_ids = await _get_assignee_ids(session, task.id)

    return TaskRead(
        id=task.id,
        group_id=task.group_id,
        stage_id=task.stage_id,
        title=task.title,
        description=task.description,
        status=task.status,
        deadline=as_utc(task.deadline),
        submission_links=decode_links(task.submission_links),
        assignee_ids=assignee_ids,
        created_by=task.created_by,
        created_at=as_utc(task.created_at),
        updated_at=as_utc(task.updated_at),
    )


async def enrich_tasks(session: AsyncSession, tasks: Sequence[Task]) -> list[TaskRead]:
    return [await enrich_task(session, t) for t in tasks]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def list_tasks(
    session: AsyncSession,
    group_id: uuid.UUID,
    *,
    status: Optional[TaskStatus] = None,
    stage_id: Optional[uuid.UUID] = None,
    assignee_id: Optional[uuid.UUID] = None,
) -> list[Task]:
    stmt = select(Task).where(Task.group_id == group_id)
    if status:
        stmt = stmt.where(Task.status == status)
    if stage_id:
        stmt = stmt.where(Task.stage_id == stage_id)
    if assignee_id:
        stmt = stmt.join(
            TaskAssignment,
            TaskAssignment.task_id == Task.id,
        ).where(TaskAssignment.user_id == assignee_id)

    stmt = stmt.order_by(Task.deadline, Task.created_at)
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_task(
    session: AsyncSession,
    task_in: TaskCreate,
    group_id: uuid.UUID,
    creator_id: uuid.UUID,
) -> Task:
    await _check_stage(session, task_in.stage_id, group_id)

    task = Task(
        group_id=group_id,
        stage_id=task_in.stage_id,
        title=task_in.title,
        description=task_in.description,
        status=TaskStatus.TODO,
        deadline=task_in.deadline,
        submission_links=[],
        created_by=creator_id,
    )
    session.add(task)
    await session.flush()

    for uid in dict.fromkeys(task_in.assignee_ids):
        session.add(TaskAssignment(task_id=task.id, user_id=uid))

    await session.flush()
    return task


async def update_task(
    session: AsyncSession,
    task: Task,
    task_in: TaskUpdate,
) -> Task:
    data = task_in.model_dump(exclude_unset=True)

    if "stage_id" in data:
        await _check_stage(session, data["stage_id"], task.group_id)

    for key, value in data.items():
        if key == "title" and value is None:
            continue
        setattr(task, key, value)

    session.add(task)
    await session.flush()
    return task


async def replace_assignees(
    session: AsyncSession,
    task: Task,
    assignee_ids: Sequence[uuid.UUID],
) -> list[uuid.UUID]:
    """Replace the assignee set; returns the new ids in request order."""
    existing = await session.execute(
        select(TaskAssignment).where(TaskAssignment.task_id == task.id)
    )
    for a in existing.scalars().all():
        await session.delete(a)
    await session.flush()

    wanted = list(dict.fromkeys(assignee_ids))
    for uid in wanted:
        session.add(TaskAssignment(task_id=task.id, user_id=uid))
    await session.flush()
    return wanted
