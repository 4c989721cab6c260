"""Global (not group-scoped) roles. An ``admin`` row overrides every group check."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class UserRole(UUIDMixin, SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (sa.UniqueConstraint("user_id", "role"),)

    user_id: uuid.UUID = Field(nullable=False, index=True)
    role: str = Field(nullable=False)  # admin | leader | member
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
