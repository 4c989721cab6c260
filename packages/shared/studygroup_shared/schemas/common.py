from enum import Enum
from typing import Optional
from pydantic import BaseModel

class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    VERIFIED = "VERIFIED"

class GroupRole(str, Enum):
    MEMBER = "member"
    LEADER = "leader"
    ADMIN = "admin"

# Group roles that carry leader capability
ELEVATED_ROLES: frozenset["GroupRole"] = frozenset({GroupRole.LEADER, GroupRole.ADMIN})

class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class ActivityAction(str, Enum):
    SUBMISSION = "SUBMISSION"
    LATE_SUBMISSION = "LATE_SUBMISSION"
    STATUS_CHANGE = "STATUS_CHANGE"
    DELETE_TASK = "DELETE_TASK"
    DELETE_GROUP = "DELETE_GROUP"

class SubmissionLabel(str, Enum):
    NORMAL = "normal"
    ON_BEHALF = "on_behalf"
    LATE = "late"

class APIError(BaseModel):
    code: str
    message: str
    status: int
    detail: Optional[dict] = None
