"""FastAPI dependency injection functions."""

import logging
from typing import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.runtime import AutomationRuntime

logger = logging.getLogger(__name__)


def get_runtime(request: Request) -> AutomationRuntime:
    """The engine wired up by the application lifespan."""
    return request.app.state.runtime


async def get_db(runtime: AutomationRuntime = Depends(get_runtime)) -> AsyncIterator[AsyncSession]:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with runtime.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise
