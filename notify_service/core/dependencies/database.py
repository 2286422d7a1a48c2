"""Database dependencies for FastAPI route handlers.

Two session getters share one session factory:

1. ``get_db_session()`` (this module): FastAPI dependency, session lifecycle
   tied to the HTTP request.
2. ``get_async_session()`` (infra.database): framework-agnostic context
   manager for CLI commands, taskiq tasks and the scheduler.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from notify_service.infra.database import get_async_session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency for database session.

    Yields:
        Database session that is automatically closed after request.

    Example:
        @router.get("/users/{user_id}/notifications/history")
        async def history(session: AsyncSession = Depends(get_db_session)):
            ...
    """
    async with get_async_session() as session:
        yield session
