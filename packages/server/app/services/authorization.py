"""
Submission authorization engine.

Pure decision functions, no I/O. Given the clock, the task deadline and the
actor's capabilities, decide whether a submission or status change is
allowed and how it must be labelled in the ledger and audit trail:

1. overdue        = deadline set and now > deadline
2. can_submit     = leader/admin or (assignee and not overdue)
3. on_behalf      = leader/admin and not assignee and overdue
4. not can_submit -> NotAuthorized
5. VERIFIED       -> leader/admin only
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.errors import NotAuthorized
from app.models.base import as_utc
from studygroup_shared.schemas.common import SubmissionLabel, TaskStatus

ON_BEHALF_NOTE = "Leader nộp thay"

# Which target statuses need leader/admin. Must name every TaskStatus.
_LEADER_ONLY_STATUS: dict[TaskStatus, bool] = {
    TaskStatus.TODO: False,
    TaskStatus.IN_PROGRESS: False,
    TaskStatus.DONE: False,
    TaskStatus.VERIFIED: True,
}
if set(_LEADER_ONLY_STATUS) != set(TaskStatus):
    raise RuntimeError("status gate must cover every TaskStatus")


@dataclass(frozen=True)
class SubmissionDecision:
    is_assignee: bool
    is_leader_or_admin: bool
    is_overdue: bool
    can_submit: bool
    is_submitting_on_behalf: bool
    late_hours: int

    @property
    def can_verify(self) -> bool:
        return self.is_leader_or_admin

    @property
    def label(self) -> SubmissionLabel:
        if self.is_submitting_on_behalf:
            return SubmissionLabel.ON_BEHALF
        if self.is_overdue:
            return SubmissionLabel.LATE
        return SubmissionLabel.NORMAL


def is_overdue(deadline: Optional[datetime], now: datetime) -> bool:
    if deadline is None:
        return False
    return as_utc(now) > as_utc(deadline)


def late_hours(deadline: Optional[datetime], now: datetime) -> int:
    """Whole hours past the deadline, rounded half up; 0 when not late."""
    if not is_overdue(deadline, now):
        return 0
    hours = (as_utc(now) - as_utc(deadline)).total_seconds() / 3600
    return max(0, math.floor(hours + 0.5))


def decide_submission(
    *,
    now: datetime,
    deadline: Optional[datetime],
    is_assignee: bool,
    is_leader_or_admin: bool,
) -> SubmissionDecision:
    overdue = is_overdue(deadline, now)
    return SubmissionDecision(
        is_assignee=is_assignee,
        is_leader_or_admin=is_leader_or_admin,
        is_overdue=overdue,
        can_submit=is_leader_or_admin or (is_assignee and not overdue),
        is_submitting_on_behalf=is_leader_or_admin and not is_assignee and overdue,
        late_hours=late_hours(deadline, now),
    )


def status_requires_leader(status: TaskStatus) -> bool:
    try:
        return _LEADER_ONLY_STATUS[TaskStatus(status)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown task status: {status!r}")


def authorize_status(status: TaskStatus, *, is_leader_or_admin: bool) -> None:
    """Rule 5 on its own; also used for leader metadata edits."""
    if status_requires_leader(status) and not is_leader_or_admin:
        raise NotAuthorized(
            f"Only a leader or admin may set status {TaskStatus(status).value}",
            status=TaskStatus(status).value,
        )


def authorize_submission(decision: SubmissionDecision, status: TaskStatus) -> None:
    """Rules 4 and 5. Raises NotAuthorized."""
    if not decision.can_submit:
        if decision.is_overdue and decision.is_assignee:
            message = "The deadline has passed; only a leader can submit on your behalf"
        else:
            message = "You are not allowed to submit for this task"
        raise NotAuthorized(message, is_overdue=decision.is_overdue)
    authorize_status(status, is_leader_or_admin=decision.is_leader_or_admin)
