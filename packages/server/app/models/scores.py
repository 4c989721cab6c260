"""Grading tables. Written by the scoring feature, purged by the deletion orchestrator."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class TaskScore(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "task_scores"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(nullable=False, index=True)
    base_score: float = Field(default=100, nullable=False)
    late_penalty: float = Field(default=0, nullable=False)
    review_count: int = Field(default=0, nullable=False)
    review_penalty: float = Field(default=0, nullable=False)
    early_bonus: bool = Field(default=False, nullable=False)
    bug_hunter_bonus: bool = Field(default=False, nullable=False)
    final_score: Optional[float] = None


class MemberStageScore(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "member_stage_scores"

    stage_id: uuid.UUID = Field(foreign_key="stages.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(nullable=False, index=True)
    average_score: Optional[float] = None
    k_coefficient: Optional[float] = None
    adjusted_score: Optional[float] = None
    late_task_count: int = Field(default=0, nullable=False)
    early_submission_bonus: bool = Field(default=False, nullable=False)
    bug_hunter_bonus: bool = Field(default=False, nullable=False)
    final_stage_score: Optional[float] = None
