"""Construction of the notification engine components.

Nothing in the engine is a module-level singleton: the API lifespan, the
taskiq worker and the CLI each call ``build_components`` once and close
what they built. Tests pass fakes for the directories and gateway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from notify_service.core.settings import (
    get_directory_settings,
    get_notification_settings,
    get_whatsapp_settings,
)
from notify_service.features.notifications.directories import HttpTaskDirectory, HttpUserDirectory
from notify_service.features.notifications.gateway import WhatsAppGateway
from notify_service.features.notifications.localtime import utc_now
from notify_service.features.notifications.processor import QueueProcessor
from notify_service.features.notifications.scheduler import NotificationScheduler
from notify_service.features.notifications.service import NotificationService

if TYPE_CHECKING:
    from notify_service.core.settings import NotificationSettings
    from notify_service.features.notifications.directories import TaskDirectory, UserDirectory
    from notify_service.features.notifications.localtime import Clock
    from notify_service.infra.database.session import SessionFactory

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationComponents:
    """Everything a sweep, route or command needs, wired together."""

    settings: NotificationSettings
    session_factory: SessionFactory
    users: UserDirectory
    tasks: TaskDirectory
    gateway: WhatsAppGateway
    scheduler: NotificationScheduler
    processor: QueueProcessor
    service: NotificationService

    async def aclose(self) -> None:
        """Wait for detached status-change sends, then release HTTP clients."""
        await self.scheduler.drain()
        await self.gateway.close()
        for directory in (self.users, self.tasks):
            close = getattr(directory, "close", None)
            if close is not None:
                await close()


def build_components(
    *,
    session_factory: SessionFactory,
    settings: NotificationSettings | None = None,
    users: UserDirectory | None = None,
    tasks: TaskDirectory | None = None,
    gateway: WhatsAppGateway | None = None,
    clock: Clock = utc_now,
) -> NotificationComponents:
    """Wire scheduler, processor and service around shared collaborators.

    Missing collaborators are built from environment settings: httpx
    directory clients and the Twilio gateway.
    """
    settings = settings or get_notification_settings()
    if users is None or tasks is None:
        directory_settings = get_directory_settings()
        users = users or HttpUserDirectory(directory_settings)
        tasks = tasks or HttpTaskDirectory(directory_settings)
    if gateway is None:
        gateway = WhatsAppGateway(get_whatsapp_settings())
    if not gateway.is_configured:
        logger.warning("Twilio credentials not configured; WhatsApp delivery is disabled")

    common = {
        "session_factory": session_factory,
        "users": users,
        "tasks": tasks,
        "gateway": gateway,
        "settings": settings,
        "clock": clock,
    }
    return NotificationComponents(
        settings=settings,
        session_factory=session_factory,
        users=users,
        tasks=tasks,
        gateway=gateway,
        scheduler=NotificationScheduler(**common),
        processor=QueueProcessor(**common),
        service=NotificationService(users=users, gateway=gateway, settings=settings, clock=clock),
    )
