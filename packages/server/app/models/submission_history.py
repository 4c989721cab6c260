"""Submission ledger (append-only, immutable).

No foreign key to ``tasks``: the ledger is tied to a task logically and is
purged only by the deletion orchestrator.
"""

from datetime import datetime
from typing import Any, List, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class SubmissionHistory(UUIDMixin, SQLModel, table=True):
    __tablename__ = "submission_history"

    task_id: uuid.UUID = Field(nullable=False, index=True)
    user_id: uuid.UUID = Field(nullable=False, index=True)  # actual submitter
    submission_links: List[Any] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    note: Optional[str] = None
    submitted_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        sa_type=sa.DateTime(timezone=True),
    )
