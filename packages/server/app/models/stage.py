"""Stage model (ordered phases of a group project)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Stage(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "stages"

    group_id: uuid.UUID = Field(foreign_key="groups.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    order_index: int = Field(default=0, nullable=False)
    start_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    end_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
