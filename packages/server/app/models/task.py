"""Task model.

``status`` and ``submission_links`` are the mutable projection of the
submission ledger: last write wins, there is no version column.
"""

from datetime import datetime
from typing import Any, List, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from studygroup_shared.schemas.common import TaskStatus

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    group_id: uuid.UUID = Field(foreign_key="groups.id", nullable=False, index=True)
    stage_id: Optional[uuid.UUID] = Field(default=None, foreign_key="stages.id", index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    status: TaskStatus = Field(default=TaskStatus.TODO, nullable=False)
    deadline: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    # Ordered [{"title", "url"}]; older rows may hold a bare URL string.
    submission_links: List[Any] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    created_by: uuid.UUID = Field(nullable=False)
