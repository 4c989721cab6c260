"""Profile model (mirror of the identity provider's user record)."""

from datetime import datetime
import uuid
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    # Same id as the identity provider's user; never generated here.
    id: uuid.UUID = Field(primary_key=True, nullable=False)
    full_name: str = Field(nullable=False)
    email: str = Field(nullable=False, index=True)
    student_id: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
