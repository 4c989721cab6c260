"""
Submission service: the single gate for deliverables and status changes.

Handles:
- Permission evaluation for the UI (what to offer the user)
- Submissions: authorize, validate payload, then three independent writes
  (task projection, ledger entry, audit entry)
- Status-only changes through the same deadline/role gate
- Ledger reads

The three writes are not wrapped in one transaction. Each one gets its own
session and commit, so a failure in one never stops the others from being
attempted; the outcome reports exactly which writes landed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import EmptyPayload, NotFound, StoreWriteFailure, SubmissionLifecycleError
from app.models.base import utcnow
from app.models.task import Task
from app.services import activity, ledger
from app.services.authorization import (
    ON_BEHALF_NOTE,
    SubmissionDecision,
    authorize_submission,
    decide_submission,
)
from app.services.links import encode_links, non_blank_links
from app.services.roles import Capabilities
from studygroup_shared.schemas.common import TaskStatus
from studygroup_shared.schemas.tasks import (
    SubmissionHistoryRead,
    SubmissionLink,
    SubmissionOutcome,
    SubmissionPermissions,
    WriteFailure,
)

log = structlog.get_logger()

# User-facing text per write; driver errors only go to the log.
_WRITE_FAILED = {
    "task": "Could not update the task",
    "history": "Could not record the submission in the task history",
    "activity": "Could not record the activity log entry",
}
TASK_GONE = "The task was deleted before the submission could be saved"


@dataclass(frozen=True)
class _TaskSnapshot:
    id: uuid.UUID
    group_id: uuid.UUID
    title: str
    status: TaskStatus
    deadline: Optional[datetime]


class SubmissionService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def _load(self, task_id: uuid.UUID, capabilities: Capabilities) -> _TaskSnapshot:
        async with self._session_factory() as session:
            task = await session.get(Task, task_id)
            if task is None or task.group_id != capabilities.group_id:
                raise NotFound("Task not found", task_id=str(task_id))
            return _TaskSnapshot(
                id=task.id,
                group_id=task.group_id,
                title=task.title,
                status=TaskStatus(task.status),
                deadline=task.deadline,
            )

    def _decide(
        self, task: _TaskSnapshot, capabilities: Capabilities, now: datetime
    ) -> SubmissionDecision:
        return decide_submission(
            now=now,
            deadline=task.deadline,
            is_assignee=capabilities.is_assignee(task.id),
            is_leader_or_admin=capabilities.is_leader_or_admin,
        )

    async def evaluate(
        self,
        task_id: uuid.UUID,
        capabilities: Capabilities,
        *,
        now: Optional[datetime] = None,
    ) -> SubmissionPermissions:
        """What the caller may do with the task right now. Raises NotFound."""
        task = await self._load(task_id, capabilities)
        decision = self._decide(task, capabilities, now or utcnow())
        return SubmissionPermissions(
            task_id=task.id,
            is_assignee=decision.is_assignee,
            is_leader_or_admin=decision.is_leader_or_admin,
            is_overdue=decision.is_overdue,
            can_submit=decision.can_submit,
            can_verify=decision.can_verify,
            is_submitting_on_behalf=decision.is_submitting_on_behalf,
            late_hours=decision.late_hours,
            label=decision.label,
        )

    async def history(
        self, task_id: uuid.UUID, capabilities: Capabilities
    ) -> list[SubmissionHistoryRead]:
        async with self._session_factory() as session:
            task = await session.get(Task, task_id)
            if task is None or task.group_id != capabilities.group_id:
                raise NotFound("Task not found", task_id=str(task_id))
            return await ledger.history_for_task(session, task)

    # -----------------------------------------------------------------------
    # Independent writes
    # -----------------------------------------------------------------------

    async def _attempt(
        self,
        write: str,
        operation: Callable[[AsyncSession], Awaitable[Any]],
        failures: list[WriteFailure],
    ) -> tuple[bool, Any]:
        """Run one write in its own session; record a StoreWriteFailure instead of raising."""
        try:
            async with self._session_factory() as session:
                value = await operation(session)
                await session.commit()
                return True, value
        except SQLAlchemyError as exc:
            failure = StoreWriteFailure(write, _WRITE_FAILED[write])
            log.error("submission.write_failed", write=write, error=str(exc))
            failures.append(WriteFailure(write=write, message=failure.message))
            return False, None

    async def _update_projection(
        self,
        session: AsyncSession,
        task_id: uuid.UUID,
        values: dict[str, Any],
    ) -> bool:
        """Overwrite the task's current state. False when the row is gone."""
        # Blind overwrite: last writer wins, no version check.
        result = await session.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def _write_projection(
        self,
        task_id: uuid.UUID,
        values: dict[str, Any],
        failures: list[WriteFailure],
    ) -> tuple[bool, bool]:
        """Returns (written, vanished)."""
        ok, matched = await self._attempt(
            "task", lambda s: self._update_projection(s, task_id, values), failures
        )
        if ok and not matched:
            log.warning("submission.task_vanished", task_id=str(task_id))
            failures.append(WriteFailure(write="task", message=TASK_GONE))
            return False, True
        return ok, False

    async def _append_history(
        self,
        session: AsyncSession,
        *,
        task_id: uuid.UUID,
        user_id: uuid.UUID,
        links: list[dict[str, str]],
        note: Optional[str],
        submitted_at: datetime,
    ) -> uuid.UUID:
        entry = await ledger.append_entry(
            session,
            task_id=task_id,
            user_id=user_id,
            links=links,
            note=note,
            submitted_at=submitted_at,
        )
        return entry.id

    async def _append_activity(self, session: AsyncSession, entry) -> uuid.UUID:
        entry = await activity.append(session, entry)
        return entry.id

    async def _actor_name(self, user_id: uuid.UUID, fallback: Optional[str]) -> str:
        try:
            async with self._session_factory() as session:
                return await activity.display_name(session, user_id, fallback)
        except SQLAlchemyError as exc:
            log.warning("submission.actor_name_failed", user_id=str(user_id), error=str(exc))
            return fallback or ledger.UNKNOWN_USER

    @staticmethod
    def _rejected(task_id: uuid.UUID, error: SubmissionLifecycleError) -> SubmissionOutcome:
        return SubmissionOutcome(
            status="rejected",
            task_id=task_id,
            reason=error.code,
            message=error.message,
        )

    # -----------------------------------------------------------------------
    # Submission
    # -----------------------------------------------------------------------

    async def submit(
        self,
        task_id: uuid.UUID,
        capabilities: Capabilities,
        *,
        links: Sequence[SubmissionLink],
        note: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        actor_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SubmissionOutcome:
        """Accept a deliverable. Returns accepted, partial or rejected; never raises for store errors."""
        now = now or utcnow()
        try:
            task = await self._load(task_id, capabilities)
            decision = self._decide(task, capabilities, now)
            new_status = status or task.status
            authorize_submission(decision, new_status)
            valid_links = non_blank_links(links)
            if not valid_links:
                raise EmptyPayload("Add at least one submission link")
        except SubmissionLifecycleError as exc:
            log.info(
                "submission.rejected",
                task_id=str(task_id),
                user_id=str(capabilities.user_id),
                reason=exc.code,
            )
            return self._rejected(task_id, exc)
        except SQLAlchemyError as exc:
            log.error("submission.load_failed", task_id=str(task_id), error=str(exc))
            return self._rejected(task_id, StoreWriteFailure("task", "Could not load task"))

        payload = encode_links(valid_links)
        note = (note or "").strip() or (ON_BEHALF_NOTE if decision.is_submitting_on_behalf else None)
        user_name = await self._actor_name(capabilities.user_id, actor_email)
        failures: list[WriteFailure] = []

        task_ok, vanished = await self._write_projection(
            task.id, {"submission_links": payload, "status": new_status}, failures
        )
        history_ok, history_id = False, None
        activity_ok, activity_id = False, None
        # A deleted task keeps no ledger or audit rows.
        if not vanished:
            history_ok, history_id = await self._attempt(
                "history",
                lambda s: self._append_history(
                    s,
                    task_id=task.id,
                    user_id=capabilities.user_id,
                    links=payload,
                    note=note,
                    submitted_at=now,
                ),
                failures,
            )
            entry = activity.submission_entry(
                user_id=capabilities.user_id,
                user_name=user_name,
                task_id=task.id,
                task_title=task.title,
                group_id=task.group_id,
                deadline=task.deadline,
                decision=decision,
            )
            entry.created_at = now
            activity_ok, activity_id = await self._attempt(
                "activity", lambda s: self._append_activity(s, entry), failures
            )

        outcome = SubmissionOutcome(
            status="partial" if failures else "accepted",
            task_id=task.id,
            label=decision.label,
            is_late=decision.is_overdue,
            late_hours=decision.late_hours,
            history_id=history_id,
            activity_id=activity_id,
            writes={"task": task_ok, "history": history_ok, "activity": activity_ok},
            failures=failures,
        )
        log.info(
            "submission.accepted",
            task_id=str(task.id),
            user_id=str(capabilities.user_id),
            label=decision.label.value,
            late_hours=decision.late_hours,
            links=len(payload),
            partial=bool(failures),
        )
        return outcome

    # -----------------------------------------------------------------------
    # Status-only change
    # -----------------------------------------------------------------------

    async def change_status(
        self,
        task_id: uuid.UUID,
        capabilities: Capabilities,
        status: TaskStatus,
        *,
        actor_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SubmissionOutcome:
        """Move a task between statuses without attaching a deliverable."""
        now = now or utcnow()
        try:
            task = await self._load(task_id, capabilities)
            decision = self._decide(task, capabilities, now)
            authorize_submission(decision, status)
        except SubmissionLifecycleError as exc:
            log.info(
                "status_change.rejected",
                task_id=str(task_id),
                user_id=str(capabilities.user_id),
                reason=exc.code,
            )
            return self._rejected(task_id, exc)
        except SQLAlchemyError as exc:
            log.error("status_change.load_failed", task_id=str(task_id), error=str(exc))
            return self._rejected(task_id, StoreWriteFailure("task", "Could not load task"))

        user_name = await self._actor_name(capabilities.user_id, actor_email)
        failures: list[WriteFailure] = []

        task_ok, vanished = await self._write_projection(task.id, {"status": status}, failures)
        activity_ok, activity_id = False, None
        if not vanished:
            entry = activity.status_change_entry(
                user_id=capabilities.user_id,
                user_name=user_name,
                task_id=task.id,
                task_title=task.title,
                group_id=task.group_id,
                from_status=task.status,
                to_status=TaskStatus(status),
                decision=decision,
            )
            entry.created_at = now
            activity_ok, activity_id = await self._attempt(
                "activity", lambda s: self._append_activity(s, entry), failures
            )

        log.info(
            "status_change.accepted",
            task_id=str(task.id),
            from_status=task.status.value,
            to_status=TaskStatus(status).value,
            partial=bool(failures),
        )
        return SubmissionOutcome(
            status="partial" if failures else "accepted",
            task_id=task.id,
            label=decision.label,
            is_late=decision.is_overdue,
            late_hours=decision.late_hours,
            activity_id=activity_id,
            writes={"task": task_ok, "activity": activity_ok},
            failures=failures,
        )
