"""Initial study group schema.

No ON DELETE CASCADE anywhere: dependents are removed explicitly, in order,
by the deletion orchestrator. The submission ledger and the activity log
carry no foreign key to tasks.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)
TASK_STATUS = sa.Enum("TODO", "IN_PROGRESS", "DONE", "VERIFIED", name="taskstatus")


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.text("now()"),
    )


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Identity mirror
    # -----------------------------------------------------------------------

    op.create_table(
        "profiles",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("student_id", sa.Text(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "user_roles",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("user_id", "role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    # -----------------------------------------------------------------------
    # 2. Groups
    # -----------------------------------------------------------------------

    op.create_table(
        "groups",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("class_code", sa.Text(), nullable=True),
        sa.Column("created_by", UUID, nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_groups_name", "groups", ["name"])

    op.create_table(
        "group_members",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        _ts("joined_at"),
        sa.UniqueConstraint("group_id", "user_id"),
    )
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])

    op.create_table(
        "stages",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        _ts("start_date", nullable=True),
        _ts("end_date", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_stages_group_id", "stages", ["group_id"])

    op.create_table(
        "pending_approvals",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        _ts("created_at"),
        _ts("processed_at", nullable=True),
        sa.Column("processed_by", UUID, nullable=True),
    )
    op.create_index("ix_pending_approvals_group_id", "pending_approvals", ["group_id"])
    op.create_index("ix_pending_approvals_user_id", "pending_approvals", ["user_id"])

    # -----------------------------------------------------------------------
    # 3. Tasks
    # -----------------------------------------------------------------------

    op.create_table(
        "tasks",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("stage_id", UUID, sa.ForeignKey("stages.id"), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", TASK_STATUS, nullable=False, server_default="TODO"),
        _ts("deadline", nullable=True),
        sa.Column("submission_links", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("created_by", UUID, nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_tasks_group_id", "tasks", ["group_id"])
    op.create_index("ix_tasks_stage_id", "tasks", ["stage_id"])

    op.create_table(
        "task_assignments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        _ts("assigned_at"),
        sa.UniqueConstraint("task_id", "user_id"),
    )
    op.create_index("ix_task_assignments_task_id", "task_assignments", ["task_id"])
    op.create_index("ix_task_assignments_user_id", "task_assignments", ["user_id"])

    # -----------------------------------------------------------------------
    # 4. Scores
    # -----------------------------------------------------------------------

    op.create_table(
        "task_scores",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("base_score", sa.Float(), nullable=False, server_default="100"),
        sa.Column("late_penalty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("review_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("review_penalty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("early_bonus", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("bug_hunter_bonus", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("final_score", sa.Float(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_task_scores_task_id", "task_scores", ["task_id"])
    op.create_index("ix_task_scores_user_id", "task_scores", ["user_id"])

    op.create_table(
        "member_stage_scores",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("stage_id", UUID, sa.ForeignKey("stages.id"), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("average_score", sa.Float(), nullable=True),
        sa.Column("k_coefficient", sa.Float(), nullable=True),
        sa.Column("adjusted_score", sa.Float(), nullable=True),
        sa.Column("late_task_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("early_submission_bonus", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("bug_hunter_bonus", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("final_stage_score", sa.Float(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_member_stage_scores_stage_id", "member_stage_scores", ["stage_id"])
    op.create_index("ix_member_stage_scores_user_id", "member_stage_scores", ["user_id"])

    # -----------------------------------------------------------------------
    # 5. Ledger and audit (append-only, no FK to tasks)
    # -----------------------------------------------------------------------

    op.create_table(
        "submission_history",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("task_id", UUID, nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("submission_links", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("note", sa.Text(), nullable=True),
        _ts("submitted_at"),
    )
    op.create_index("ix_submission_history_task_id", "submission_history", ["task_id"])
    op.create_index("ix_submission_history_user_id", "submission_history", ["user_id"])
    op.create_index("ix_submission_history_submitted_at", "submission_history", ["submitted_at"])

    op.create_table(
        "activity_logs",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("user_name", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("action_type", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id"), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_group_id", "activity_logs", ["group_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in (
        "activity_logs",
        "submission_history",
        "member_stage_scores",
        "task_scores",
        "task_assignments",
        "tasks",
        "pending_approvals",
        "stages",
        "group_members",
        "groups",
        "user_roles",
        "profiles",
    ):
        op.drop_table(table)
    TASK_STATUS.drop(op.get_bind(), checkfirst=True)
