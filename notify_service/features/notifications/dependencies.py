"""FastAPI dependencies for the notifications feature.

Components are built once in the application lifespan and stored on
``app.state.notifications``; route handlers reach them through these
Annotated aliases. Tests override ``get_notification_components``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from notify_service.core.dependencies.database import get_db_session
from notify_service.core.exceptions import ServiceUnavailableException
from notify_service.features.notifications.container import NotificationComponents
from notify_service.features.notifications.scheduler import NotificationScheduler
from notify_service.features.notifications.service import NotificationService

# Database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_notification_components(request: Request) -> NotificationComponents:
    """Components wired during application startup."""
    components = getattr(request.app.state, "notifications", None)
    if components is None:
        raise ServiceUnavailableException(
            detail="Notification engine is not initialized",
            type="engine-not-initialized",
        )
    return components


ComponentsDep = Annotated[NotificationComponents, Depends(get_notification_components)]


def get_notification_service(components: ComponentsDep) -> NotificationService:
    return components.service


def get_notification_scheduler(components: ComponentsDep) -> NotificationScheduler:
    return components.scheduler


NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
NotificationSchedulerDep = Annotated[NotificationScheduler, Depends(get_notification_scheduler)]

__all__ = [
    "ComponentsDep",
    "NotificationSchedulerDep",
    "NotificationServiceDep",
    "SessionDep",
    "get_notification_components",
    "get_notification_scheduler",
    "get_notification_service",
]
