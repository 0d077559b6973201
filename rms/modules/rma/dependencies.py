"""FastAPI dependency wiring for the RMA lifecycle service."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rms.database.session import get_session_factory
from rms.modules.rma.service import RmaLifecycleService


def get_lifecycle_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RmaLifecycleService:
    return RmaLifecycleService(session_factory)
