"""
Ordered deletion of a task, or of a whole group, and everything hanging off it.

The schema declares no ON DELETE CASCADE, so children are removed before
their parents, one committed step at a time. If a step fails the run stops
there: later steps are not attempted and earlier ones are not rolled back.
Every step is a plain ``DELETE ... WHERE``, so re-running after a failure
(or after a success) is safe and simply removes whatever is still left.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Literal, Sequence

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import Executable
from sqlmodel import select

from app.core.errors import PartialDeletionFailure
from app.models.activity_log import ActivityLog
from app.models.assignments import TaskAssignment
from app.models.group import Group
from app.models.group_member import GroupMember
from app.models.pending_approval import PendingApproval
from app.models.scores import MemberStageScore, TaskScore
from app.models.stage import Stage
from app.models.submission_history import SubmissionHistory
from app.models.task import Task
from studygroup_shared.schemas.tasks import DeletionOutcome, DeletionStepRead

log = structlog.get_logger()

TASK_STEPS = ("task_assignments", "task_scores", "submission_history", "task")
GROUP_STEPS = (
    "task_assignments",
    "task_scores",
    "submission_history",
    "tasks",
    "member_stage_scores",
    "stages",
    "pending_approvals",
    "group_members",
    "activity_logs",
    "group",
)


@dataclass(frozen=True)
class DeletionStep:
    name: str
    statement: Executable


def _delete(model, *criteria) -> Executable:
    return delete(model).where(*criteria).execution_options(synchronize_session=False)


class DeletionOrchestrator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # -----------------------------------------------------------------------
    # Plans
    # -----------------------------------------------------------------------

    def task_steps(self, task_id: uuid.UUID) -> list[DeletionStep]:
        statements = (
            _delete(TaskAssignment, TaskAssignment.task_id == task_id),
            _delete(TaskScore, TaskScore.task_id == task_id),
            _delete(SubmissionHistory, SubmissionHistory.task_id == task_id),
            _delete(Task, Task.id == task_id),
        )
        return [DeletionStep(name, stmt) for name, stmt in zip(TASK_STEPS, statements)]

    def group_steps(self, group_id: uuid.UUID) -> list[DeletionStep]:
        group_tasks = select(Task.id).where(Task.group_id == group_id)
        group_stages = select(Stage.id).where(Stage.group_id == group_id)
        statements = (
            _delete(TaskAssignment, TaskAssignment.task_id.in_(group_tasks)),
            _delete(TaskScore, TaskScore.task_id.in_(group_tasks)),
            _delete(SubmissionHistory, SubmissionHistory.task_id.in_(group_tasks)),
            _delete(Task, Task.group_id == group_id),
            _delete(MemberStageScore, MemberStageScore.stage_id.in_(group_stages)),
            _delete(Stage, Stage.group_id == group_id),
            _delete(PendingApproval, PendingApproval.group_id == group_id),
            _delete(GroupMember, GroupMember.group_id == group_id),
            _delete(ActivityLog, ActivityLog.group_id == group_id),
            _delete(Group, Group.id == group_id),
        )
        return [DeletionStep(name, stmt) for name, stmt in zip(GROUP_STEPS, statements)]

    # -----------------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------------

    async def _run_step(self, step: DeletionStep) -> int:
        """Execute and commit one step. Returns the number of rows removed."""
        async with self._session_factory() as session:
            result = await session.execute(step.statement)
            await session.commit()
            return max(result.rowcount or 0, 0)

    async def _run(
        self,
        target: Literal["task", "group"],
        target_id: uuid.UUID,
        steps: Sequence[DeletionStep],
    ) -> DeletionOutcome:
        completed: list[DeletionStepRead] = []
        for step in steps:
            try:
                rows = await self._run_step(step)
            except SQLAlchemyError as exc:
                failure = PartialDeletionFailure(
                    step.name,
                    [s.name for s in completed],
                    f"Deletion of the {target} stopped at step '{step.name}'. "
                    "Try again to finish removing it.",
                )
                log.error(
                    "deletion.step_failed",
                    target=target,
                    target_id=str(target_id),
                    step=step.name,
                    completed=failure.completed,
                    error=str(exc),
                )
                return DeletionOutcome(
                    target=target,
                    target_id=target_id,
                    deleted=False,
                    completed_steps=completed,
                    failed_step=step.name,
                    message=failure.message,
                )
            completed.append(DeletionStepRead(name=step.name, rows=rows))

        log.info(
            "deletion.completed",
            target=target,
            target_id=str(target_id),
            rows={s.name: s.rows for s in completed},
        )
        return DeletionOutcome(
            target=target,
            target_id=target_id,
            deleted=True,
            completed_steps=completed,
        )

    async def delete_task(self, task_id: uuid.UUID) -> DeletionOutcome:
        return await self._run("task", task_id, self.task_steps(task_id))

    async def delete_group(self, group_id: uuid.UUID) -> DeletionOutcome:
        return await self._run("group", group_id, self.group_steps(group_id))


def raise_for_outcome(outcome: DeletionOutcome) -> DeletionOutcome:
    """Turn a failed outcome back into PartialDeletionFailure for the API layer."""
    if not outcome.deleted and outcome.failed_step:
        raise PartialDeletionFailure(
            outcome.failed_step,
            [s.name for s in outcome.completed_steps],
            outcome.message,
        )
    return outcome
