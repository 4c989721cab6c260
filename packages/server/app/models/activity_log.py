"""Activity log (append-only, immutable)."""

from datetime import datetime
from typing import Any, Dict, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class ActivityLog(UUIDMixin, SQLModel, table=True):
    __tablename__ = "activity_logs"

    user_id: uuid.UUID = Field(nullable=False, index=True)
    user_name: str = Field(nullable=False)  # denormalized at write time
    action: str = Field(nullable=False)  # SUBMISSION | LATE_SUBMISSION | ...
    action_type: str = Field(nullable=False)  # task | group
    description: Optional[str] = None
    group_id: Optional[uuid.UUID] = Field(default=None, foreign_key="groups.id", index=True)
    # "metadata" is reserved on declarative classes.
    meta: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", sa.JSON, nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        sa_type=sa.DateTime(timezone=True),
    )
