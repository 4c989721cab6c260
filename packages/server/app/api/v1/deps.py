"""Service dependencies shared by the group-scoped routers."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.services.deletion import DeletionOrchestrator
from app.services.submissions import SubmissionService


def get_submission_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SubmissionService:
    return SubmissionService(session_factory)


def get_deletion_orchestrator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> DeletionOrchestrator:
    return DeletionOrchestrator(session_factory)
