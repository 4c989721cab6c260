"""Group model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Group(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "groups"

    name: str = Field(nullable=False, index=True)
    description: Optional[str] = None
    class_code: Optional[str] = None
    created_by: uuid.UUID = Field(nullable=False)
