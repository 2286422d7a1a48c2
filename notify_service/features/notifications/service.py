"""User-facing notification operations: history, test message, retention."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from notify_service.core.exceptions import (
    BadGatewayException,
    BadRequestException,
    NotFoundException,
    ServiceUnavailableException,
)
from notify_service.core.services.base import BaseService
from notify_service.features.notifications.localtime import utc_now
from notify_service.features.notifications.messages import TEST_MESSAGE
from notify_service.features.notifications.repository import get_queue_repository
from notify_service.features.notifications.schemas import (
    NotificationHistoryResponse,
    PaginationInfo,
    PurgeResult,
    QueueEntryResponse,
    TestNotificationResponse,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from notify_service.core.settings import NotificationSettings
    from notify_service.features.notifications.directories import UserDirectory
    from notify_service.features.notifications.gateway import WhatsAppGateway
    from notify_service.features.notifications.localtime import Clock
    from notify_service.features.notifications.repository import NotificationQueueRepository


class NotificationService(BaseService):
    """Service for the notification history and test endpoints.

    Raises ``AppException`` subclasses so the HTTP layer turns failures
    into problem-detail responses without extra mapping.
    """

    def __init__(
        self,
        *,
        users: UserDirectory,
        gateway: WhatsAppGateway,
        settings: NotificationSettings,
        repository: NotificationQueueRepository | None = None,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__()
        self.users = users
        self.gateway = gateway
        self.settings = settings
        self.repository = repository or get_queue_repository()
        self.clock = clock

    async def get_history(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 20,
    ) -> NotificationHistoryResponse:
        """A page of the user's queue entries, newest first."""
        result = await self.repository.list_for_user(
            session,
            user_id,
            limit=limit,
            offset=(page - 1) * limit,
        )
        self._lazy.debug(lambda: f"History for {user_id}: page {page}, {len(result.items)} items")
        return NotificationHistoryResponse(
            notifications=[QueueEntryResponse.model_validate(entry) for entry in result.items],
            pagination=PaginationInfo(
                current_page=page,
                total_pages=result.pages if result.total else 0,
                total_count=result.total,
                limit=limit,
            ),
        )

    async def send_test(self, user_id: str) -> TestNotificationResponse:
        """Send the fixed test message to the user's verified address.

        Raises:
            NotFoundException: Unknown user
            BadRequestException: No verified address on file
            ServiceUnavailableException: Gateway credentials missing
            BadGatewayException: The provider rejected or failed the send
        """
        profile = await self.users.get_user(user_id)
        if profile is None:
            raise NotFoundException(
                detail="User not found",
                type="user-not-found",
                extra={"user_id": user_id},
            )
        if not profile.phone_verified or not profile.channel_address:
            raise BadRequestException(
                detail="Phone number not verified. Please verify your phone number first.",
                type="phone-not-verified",
            )
        if not self.gateway.is_configured:
            raise ServiceUnavailableException(
                detail="WhatsApp notifications are not configured",
                type="gateway-not-configured",
            )

        result = await self.gateway.send(profile.channel_address, TEST_MESSAGE)
        if not result.success:
            raise BadGatewayException(
                detail=result.reason or "Failed to send test notification",
                type="delivery-failed",
                extra={"permanent": result.permanent},
            )

        self.logger.info("Test notification sent", extra={"user_id": user_id})
        return TestNotificationResponse(message_sid=result.message_sid)

    async def purge_expired(self, session: AsyncSession) -> PurgeResult:
        """Delete entries older than the retention period, whatever their state."""
        cutoff = self.clock() - timedelta(days=self.settings.retention_days)
        deleted = await self.repository.purge_created_before(session, cutoff)
        await session.commit()
        return PurgeResult(deleted=deleted, cutoff=cutoff)
