"""Application lifespan management.

Startup Order:
1. Core (logging, application metrics)
2. Database (PostgreSQL, or SQLite with table creation)
3. Notification engine components (directories, gateway, scheduler, processor)
4. Background sweeps (Taskiq broker + APScheduler), when enabled

Shutdown Order: Reverse of startup (what starts first, shuts down last)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from notify_service.core.settings import (
    get_app_settings,
    get_db_settings,
    get_logging_settings,
)
from notify_service.features.notifications.container import build_components
from notify_service.infra.database.session import close_database, get_async_session, init_database
from notify_service.infra.logging.config import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)


async def _startup_database() -> None:
    """Initialize database connection."""
    db = get_db_settings()
    try:
        await init_database()
        logger.info("Database connection initialized", extra={"postgres": db.is_configured})
    except Exception as e:
        if db.startup_require_db:
            logger.exception(
                "Database required but unavailable, failing startup",
                extra={"error": str(e), "startup_require_db": True},
            )
            raise
        logger.warning(
            "Database unavailable, continuing in degraded mode",
            extra={"error": str(e), "startup_require_db": False},
        )


async def _startup_sweeps() -> bool:
    """Start the Taskiq broker and register the APScheduler timers."""
    from notify_service.infra.tasks import broker as taskiq_module
    from notify_service.infra.tasks import scheduler as scheduler_module

    await taskiq_module.start_taskiq()
    scheduler_module.setup_scheduled_jobs()
    await scheduler_module.start_scheduler()
    return True


async def _shutdown_sweeps() -> None:
    from notify_service.infra.tasks import broker as taskiq_module
    from notify_service.infra.tasks import scheduler as scheduler_module

    await scheduler_module.stop_scheduler()
    await taskiq_module.stop_taskiq()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the service and tear it down in reverse order.

    The engine components are stored on ``app.state.notifications`` for
    the request dependencies.
    """
    app_settings = get_app_settings()

    setup_logging(log_settings=get_logging_settings(), force=True)
    logger.info(
        "Application starting",
        extra={"service": app_settings.service_name, "environment": app_settings.environment},
    )

    await _startup_database()

    components = build_components(session_factory=get_async_session)
    app.state.notifications = components

    sweeps_started = False
    if app_settings.scheduler_enabled:
        sweeps_started = await _startup_sweeps()
    else:
        logger.info("In-process scheduler disabled; sweeps run through the cron routes only")

    logger.info("Application startup complete")
    try:
        yield
    finally:
        logger.info("Application shutting down")
        if sweeps_started:
            await _shutdown_sweeps()
        await components.aclose()
        await close_database()
        logger.info("Application shutdown complete")
