"""
Task endpoints: CRUD, submissions, status changes, deletion.

All routes are group-scoped under /groups/{group_id}/tasks.
- Task CRUD and assignee management are leader-only.
- Submissions and status changes go through the submission gate; the
  outcome decides the HTTP status (200 accepted, 207 partial, 4xx rejected).
- Deletion runs the ordered orchestrator and is idempotent.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.deps import get_deletion_orchestrator, get_submission_service
from app.core.auth import GroupAuth, require_group_leader, require_group_member
from app.core.database import get_session, get_session_factory
from app.core.errors import NotFound, error_response, http_status_for
from app.models.task import Task
from app.services import activity
from app.services.deletion import DeletionOrchestrator, raise_for_outcome
from app.services.submissions import SubmissionService
from app.services.tasks import (
    create_task,
    enrich_task,
    enrich_tasks,
    get_task_or_404,
    list_tasks,
    replace_assignees,
    update_task,
)
from studygroup_shared.schemas.common import APIError, TaskStatus
from studygroup_shared.schemas.tasks import (
    AssigneesReplace,
    DeletionOutcome,
    StatusChange,
    SubmissionHistoryRead,
    SubmissionOutcome,
    SubmissionPermissions,
    SubmissionRequest,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)

router = APIRouter()


def _outcome_response(outcome: SubmissionOutcome):
    if outcome.status == "rejected":
        return error_response(
            APIError(
                code=outcome.reason or "REJECTED",
                message=outcome.message or "Request rejected",
                status=http_status_for(outcome.reason or ""),
            )
        )
    if outcome.status == "partial":
        return JSONResponse(status_code=207, content=outcome.model_dump(mode="json"))
    return outcome


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[TaskRead])
async def list_tasks_endpoint(
    group_id: uuid.UUID,
    status: Optional[TaskStatus] = None,
    stage_id: Optional[uuid.UUID] = None,
    assignee_id: Optional[uuid.UUID] = None,
    auth: GroupAuth = Depends(require_group_member),
    session: AsyncSession = Depends(get_session),
):
    """List the group's tasks, optionally filtered by status, stage or assignee."""
    tasks = await list_tasks(
        session, auth.group_id, status=status, stage_id=stage_id, assignee_id=assignee_id
    )
    return await enrich_tasks(session, tasks)


@router.post("/", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    group_id: uuid.UUID,
    task_in: TaskCreate,
    auth: GroupAuth = Depends(require_group_leader),
    session: AsyncSession = Depends(get_session),
):
    """Create a task in TODO with optional assignees."""
    task = await create_task(session, task_in, auth.group_id, auth.user_id)
    await session.commit()
    await session.refresh(task)
    return await enrich_task(session, task)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    auth: GroupAuth = Depends(require_group_member),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, task_id, auth.group_id)
    return await enrich_task(session, task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    auth: GroupAuth = Depends(require_group_leader),
    session: AsyncSession = Depends(get_session),
):
    """Update task metadata (title, description, deadline, stage)."""
    task = await get_task_or_404(session, task_id, auth.group_id)
    task = await update_task(session, task, task_in)
    await session.commit()
    await session.refresh(task)
    return await enrich_task(session, task)


@router.put("/{task_id}/assignees", response_model=TaskRead)
async def replace_assignees_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    body: AssigneesReplace,
    auth: GroupAuth = Depends(require_group_leader),
    session: AsyncSession = Depends(get_session),
):
    """Replace the task's assignee set."""
    task = await get_task_or_404(session, task_id, auth.group_id)
    await replace_assignees(session, task, body.assignee_ids)
    await session.commit()
    return await enrich_task(session, task)


# ---------------------------------------------------------------------------
# Submission gate
# ---------------------------------------------------------------------------


@router.get("/{task_id}/permissions", response_model=SubmissionPermissions)
async def task_permissions_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    auth: GroupAuth = Depends(require_group_member),
    service: SubmissionService = Depends(get_submission_service),
):
    """What the caller may do with this task right now."""
    return await service.evaluate(task_id, auth.capabilities)


@router.post("/{task_id}/submissions", response_model=SubmissionOutcome)
async def submit_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    body: SubmissionRequest,
    auth: GroupAuth = Depends(require_group_member),
    service: SubmissionService = Depends(get_submission_service),
):
    """Submit deliverable links, optionally moving the task to a new status."""
    outcome = await service.submit(
        task_id,
        auth.capabilities,
        links=body.links,
        note=body.note,
        status=body.status,
        actor_email=auth.user.email,
    )
    return _outcome_response(outcome)


@router.get("/{task_id}/submissions", response_model=List[SubmissionHistoryRead])
async def submission_history_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    auth: GroupAuth = Depends(require_group_member),
    service: SubmissionService = Depends(get_submission_service),
):
    """Submission ledger for the task, newest first."""
    return await service.history(task_id, auth.capabilities)


@router.post("/{task_id}/status", response_model=SubmissionOutcome)
async def change_status_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    body: StatusChange,
    auth: GroupAuth = Depends(require_group_member),
    service: SubmissionService = Depends(get_submission_service),
):
    """Change status without a deliverable. VERIFIED is leader-only."""
    outcome = await service.change_status(
        task_id, auth.capabilities, body.status, actor_email=auth.user.email
    )
    return _outcome_response(outcome)


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


@router.delete("/{task_id}", response_model=DeletionOutcome)
async def delete_task_endpoint(
    group_id: uuid.UUID,
    task_id: uuid.UUID,
    auth: GroupAuth = Depends(require_group_leader),
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    orchestrator: DeletionOrchestrator = Depends(get_deletion_orchestrator),
):
    """Delete the task and its dependents. Deleting a missing task succeeds."""
    task = await session.get(Task, task_id)
    if task is not None and task.group_id != auth.group_id:
        raise NotFound("Task not found", task_id=str(task_id))
    task_title = task.title if task is not None else None

    outcome = raise_for_outcome(await orchestrator.delete_task(task_id))

    if task_title is not None:
        user_name = await activity.display_name(session, auth.user_id, auth.user.email)
        await activity.append_best_effort(
            session_factory,
            activity.task_deleted_entry(
                user_id=auth.user_id,
                user_name=user_name,
                task_id=task_id,
                task_title=task_title,
                group_id=auth.group_id,
            ),
        )
    return outcome
