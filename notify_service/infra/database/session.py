"""Database session management with the SQLAlchemy async engine."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from notify_service.core.database import Base
from notify_service.core.settings import get_app_settings, get_db_settings
from notify_service.infra.metrics.prometheus import database_query_duration_seconds
from notify_service.infra.metrics.tracking import track_slow_query
from notify_service.utils.retry import retry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

logger = logging.getLogger(__name__)

db_settings = get_db_settings()
app_settings = get_app_settings()

_engine_kwargs = db_settings.sqlalchemy_engine_kwargs()
_engine_kwargs["echo"] = _engine_kwargs.get("echo", False) or app_settings.debug

engine = create_async_engine(db_settings.get_sqlalchemy_url(), **_engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)

_SQL_OPERATIONS = ("SELECT", "INSERT", "UPDATE", "DELETE", "BEGIN", "COMMIT", "ROLLBACK")


@event.listens_for(engine.sync_engine, "before_cursor_execute")
def _before_cursor_execute(
    conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
) -> None:
    """Record query start time before execution."""
    _ = conn, cursor, statement, parameters, executemany
    context._query_start_time = time.perf_counter()


@event.listens_for(engine.sync_engine, "after_cursor_execute")
def _after_cursor_execute(
    conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
) -> None:
    """Record query duration and link to current trace via exemplar."""
    _ = conn, cursor, parameters, executemany
    duration = time.perf_counter() - context._query_start_time

    operation = "UNKNOWN"
    if statement:
        statement_upper = statement.lstrip().upper()
        for candidate in _SQL_OPERATIONS:
            if statement_upper.startswith(candidate):
                operation = candidate
                break

    span = trace.get_current_span()
    trace_id = None
    if span and span.get_span_context().is_valid:
        trace_id = format(span.get_span_context().trace_id, "032x")

    if trace_id:
        database_query_duration_seconds.labels(operation=operation).observe(
            duration, exemplar={"trace_id": trace_id}
        )
    else:
        database_query_duration_seconds.labels(operation=operation).observe(duration)

    if duration > 1.0:
        track_slow_query(operation)


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Yields:
        Database session that is automatically closed.

    Example:
        async with get_async_session() as session:
            entries = await repository.find_due(session, now=now, limit=50, max_attempts=3)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@retry(
    "database.connect",
    max_attempts=db_settings.startup_retry_attempts,
    initial_delay=db_settings.startup_retry_delay,
    max_delay=30.0,
    exponential_base=2.0,
    jitter=True,
    stop_after_delay=db_settings.startup_retry_timeout,
)
async def init_database() -> None:
    """Initialize database connection with retry logic.

    Retries with exponential backoff so the service survives a database
    that is still starting (containerized environments). When PostgreSQL
    is not configured the SQLite fallback is used and the queue table is
    created in place.

    Raises:
        RetryError: If unable to connect after all retry attempts.
    """
    logger.info(
        "Initializing database connection with retry",
        extra={
            "max_attempts": db_settings.startup_retry_attempts,
            "initial_delay": db_settings.startup_retry_delay,
        },
    )

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        if not db_settings.is_configured:
            await create_tables()

        logger.info(
            "Database connection established successfully",
            extra={"driver": engine.dialect.driver, "configured": db_settings.is_configured},
        )
    except Exception as e:
        logger.error(
            "Failed to connect to database",
            extra={"driver": engine.dialect.driver, "error": str(e)},
        )
        raise


async def create_tables() -> None:
    """Create all mapped tables that do not exist yet."""
    # Register models on the shared metadata
    import notify_service.features.notifications.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_database() -> None:
    """Close database connection and cleanup resources.

    This should be called during application shutdown.
    """
    logger.info("Closing database connection")

    try:
        await engine.dispose()
        logger.info("Database connection closed successfully")
    except Exception as e:
        logger.exception("Error closing database connection", extra={"error": str(e)})


__all__ = [
    "AsyncSessionLocal",
    "SessionFactory",
    "close_database",
    "create_tables",
    "engine",
    "get_async_session",
    "init_database",
]
