"""
Shared fixtures: a throwaway SQLite database per test, seed helpers, and an
HTTP client wired to that database.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

# Settings are cached on first import, so the environment must be set first.
os.environ.setdefault("SG_DATABASE_URL", "sqlite+aiosqlite:///./test-default.db")
os.environ.setdefault("SG_SECRET_KEY", "test-secret-key-for-unit-tests-only-min-32-chars")
os.environ.setdefault("SG_LOG_FORMAT", "text")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

import app.models as models  # noqa: F401
from app.core.auth import create_jwt
from app.core.database import get_session, get_session_factory
from app.main import app
from app.models.activity_log import ActivityLog
from app.models.assignments import TaskAssignment
from app.models.group import Group
from app.models.group_member import GroupMember
from app.models.profile import Profile
from app.models.task import Task
from app.models.user_role import UserRole
from app.services.roles import Capabilities
from studygroup_shared.schemas.common import GroupRole, TaskStatus

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine(tmp_path):
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )
    async with db_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


@dataclass
class Seeder:
    session_factory: async_sessionmaker[AsyncSession]

    async def add(self, *rows):
        async with self.session_factory() as s:
            for row in rows:
                s.add(row)
            await s.commit()
        return rows[0] if len(rows) == 1 else rows

    async def user(self, name: str = "Nguyễn Văn A", *, global_admin: bool = False) -> uuid.UUID:
        user_id = uuid.uuid4()
        rows = [Profile(id=user_id, full_name=name, email=f"{user_id.hex[:8]}@example.edu")]
        if global_admin:
            rows.append(UserRole(user_id=user_id, role="admin"))
        await self.add(*rows)
        return user_id

    async def group(self, name: str = "Nhóm 1", *, leader_id: Optional[uuid.UUID] = None) -> Group:
        creator = leader_id or uuid.uuid4()
        group = Group(name=name, created_by=creator)
        await self.add(group)
        if leader_id:
            await self.member(group.id, leader_id, GroupRole.LEADER)
        return group

    async def member(
        self, group_id: uuid.UUID, user_id: uuid.UUID, role: GroupRole = GroupRole.MEMBER
    ) -> GroupMember:
        return await self.add(GroupMember(group_id=group_id, user_id=user_id, role=role.value))

    async def task(
        self,
        group_id: uuid.UUID,
        *,
        title: str = "Báo cáo tuần 1",
        deadline: Optional[datetime] = None,
        assignees: Sequence[uuid.UUID] = (),
        status: TaskStatus = TaskStatus.TODO,
        submission_links=None,
    ) -> Task:
        task = Task(
            group_id=group_id,
            title=title,
            deadline=deadline,
            status=status,
            submission_links=submission_links if submission_links is not None else [],
            created_by=uuid.uuid4(),
        )
        await self.add(task)
        for uid in assignees:
            await self.add(TaskAssignment(task_id=task.id, user_id=uid))
        return task


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


def caps(
    user_id: uuid.UUID,
    group_id: uuid.UUID,
    *,
    role: Optional[GroupRole] = GroupRole.MEMBER,
    assigned: Sequence[uuid.UUID] = (),
    global_admin: bool = False,
) -> Capabilities:
    return Capabilities(
        user_id=user_id,
        group_id=group_id,
        group_role=role,
        is_global_admin=global_admin,
        assigned_task_ids=frozenset(assigned),
    )


def hours_ago(hours: float, now: datetime = NOW) -> datetime:
    return now - timedelta(hours=hours)


async def count_rows(session_factory, model, *criteria) -> int:
    async with session_factory() as s:
        result = await s.execute(select(func.count()).select_from(model).where(*criteria))
        return result.scalar_one()


async def activity_rows(session_factory, *criteria) -> list[ActivityLog]:
    async with session_factory() as s:
        result = await s.execute(select(ActivityLog).where(*criteria))
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user_id: uuid.UUID, email: Optional[str] = None) -> dict[str, str]:
    token, _ = create_jwt(user_id, email=email)
    return {"Authorization": f"Bearer {token}"}
