"""Group membership (join table). Role is per group."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class GroupMember(UUIDMixin, SQLModel, table=True):
    __tablename__ = "group_members"
    __table_args__ = (sa.UniqueConstraint("group_id", "user_id"),)

    group_id: uuid.UUID = Field(foreign_key="groups.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(nullable=False, index=True)
    role: str = Field(nullable=False, default="member")  # member | leader | admin
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
