"""Task-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import UUID4

from .common import SubmissionLabel, TaskStatus


# ---------------------------------------------------------------------------
# Submission links
# ---------------------------------------------------------------------------

class SubmissionLink(BaseModel):
    """One deliverable link. Blank URLs are accepted here and filtered on submit."""
    title: str = ""
    url: str = ""

    @field_validator("title", "url", mode="before")
    @classmethod
    def _strip(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    stage_id: Optional[UUID4] = None
    assignee_ids: List[UUID4] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    """Leader metadata edit. Status and links go through the submission gate."""
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    stage_id: Optional[UUID4] = None


class AssigneesReplace(BaseModel):
    assignee_ids: List[UUID4] = Field(default_factory=list)


class TaskRead(BaseModel):
    id: UUID4
    group_id: UUID4
    stage_id: Optional[UUID4] = None
    title: str
    description: Optional[str] = None
    status: TaskStatus
    deadline: Optional[datetime] = None
    submission_links: List[SubmissionLink] = Field(default_factory=list)
    assignee_ids: List[UUID4] = Field(default_factory=list)
    created_by: UUID4
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class SubmissionRequest(BaseModel):
    """Request body for POST /tasks/{taskId}/submissions.

    ``status`` of None keeps the task's current status.
    """
    links: List[SubmissionLink] = Field(default_factory=list)
    note: Optional[str] = None
    status: Optional[TaskStatus] = None


class StatusChange(BaseModel):
    """Request body for POST /tasks/{taskId}/status."""
    status: TaskStatus


class SubmissionPermissions(BaseModel):
    """What the acting user may do with a task right now."""
    task_id: UUID4
    is_assignee: bool
    is_leader_or_admin: bool
    is_overdue: bool
    can_submit: bool
    can_verify: bool
    is_submitting_on_behalf: bool
    late_hours: int
    label: SubmissionLabel


class WriteFailure(BaseModel):
    write: Literal["task", "history", "activity"]
    message: str


class SubmissionOutcome(BaseModel):
    """Result of a submission or status change.

    ``partial`` means the request was authorized but at least one of the
    independent writes failed; ``writes`` tells which ones landed.
    """
    status: Literal["accepted", "partial", "rejected"]
    task_id: UUID4
    reason: Optional[str] = None
    message: Optional[str] = None
    label: Optional[SubmissionLabel] = None
    is_late: bool = False
    late_hours: int = 0
    history_id: Optional[UUID4] = None
    activity_id: Optional[UUID4] = None
    writes: Dict[str, bool] = Field(default_factory=dict)
    failures: List[WriteFailure] = Field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.status != "rejected"


class SubmissionHistoryRead(BaseModel):
    id: UUID4
    task_id: UUID4
    user_id: UUID4
    user_name: str
    submission_links: List[SubmissionLink] = Field(default_factory=list)
    note: Optional[str] = None
    submitted_at: datetime
    is_late: bool = False


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

class DeletionStepRead(BaseModel):
    name: str
    rows: int


class DeletionOutcome(BaseModel):
    """Result of an ordered delete. Completed steps are never rolled back."""
    target: Literal["task", "group"]
    target_id: UUID4
    deleted: bool
    completed_steps: List[DeletionStepRead] = Field(default_factory=list)
    failed_step: Optional[str] = None
    message: Optional[str] = None

    def rows_for(self, step: str) -> int:
        for s in self.completed_steps:
            if s.name == step:
                return s.rows
        return 0
