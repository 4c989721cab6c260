"""Join requests awaiting a leader's decision."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from studygroup_shared.schemas.common import ApprovalStatus

from .base import UUIDMixin, utcnow


class PendingApproval(UUIDMixin, SQLModel, table=True):
    __tablename__ = "pending_approvals"

    user_id: uuid.UUID = Field(nullable=False, index=True)
    group_id: uuid.UUID = Field(foreign_key="groups.id", nullable=False, index=True)
    status: str = Field(nullable=False, default=ApprovalStatus.PENDING.value)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    processed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    processed_by: Optional[uuid.UUID] = None
