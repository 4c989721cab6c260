"""Task assignment join table. Defines who counts as an assignee."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class TaskAssignment(UUIDMixin, SQLModel, table=True):
    __tablename__ = "task_assignments"
    __table_args__ = (sa.UniqueConstraint("task_id", "user_id"),)

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(nullable=False, index=True)
    assigned_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
