# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .profile import Profile  # noqa: F401
from .user_role import UserRole  # noqa: F401
from .group import Group  # noqa: F401
from .group_member import GroupMember  # noqa: F401
from .stage import Stage  # noqa: F401
from .task import Task  # noqa: F401
from .assignments import TaskAssignment  # noqa: F401
from .scores import TaskScore, MemberStageScore  # noqa: F401
from .submission_history import SubmissionHistory  # noqa: F401
from .activity_log import ActivityLog  # noqa: F401
from .pending_approval import PendingApproval  # noqa: F401
