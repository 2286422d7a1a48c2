"""Per-user daily delivery ceiling.

The count is derived from the queue on every check (entries in state
``sent`` whose ``sent_at`` falls in the user's local calendar day); there
is no separately maintained counter to drift.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, time, timedelta
from typing import TYPE_CHECKING

import pytz

from notify_service.features.notifications.localtime import get_timezone, local_day_bounds, localize

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from notify_service.features.notifications.quiet_hours import QuietWindowEvaluator
    from notify_service.features.notifications.repository import NotificationQueueRepository
    from notify_service.features.notifications.schemas import UserNotificationProfile

logger = logging.getLogger(__name__)


class DailyPacingCounter:
    """Enforces at most ``daily_limit`` sent notifications per user per local day."""

    def __init__(
        self,
        repository: NotificationQueueRepository,
        evaluator: QuietWindowEvaluator,
        *,
        daily_limit: int = 10,
        deferral_hour: int = 8,
        default_timezone: str = "UTC",
    ) -> None:
        self.repository = repository
        self.evaluator = evaluator
        self.daily_limit = daily_limit
        self.deferral_hour = deferral_hour
        self.default_timezone = default_timezone

    def timezone_for(self, profile: UserNotificationProfile) -> pytz.BaseTzInfo:
        """Resolve the user's zone, falling back to the default on bad names."""
        try:
            return get_timezone(profile.timezone, self.default_timezone)
        except pytz.UnknownTimeZoneError:
            logger.warning(
                "Unknown time zone, using default",
                extra={"user_id": profile.user_id, "default_timezone": self.default_timezone},
            )
            return get_timezone(self.default_timezone)

    async def count_sent_today(
        self,
        session: AsyncSession,
        profile: UserNotificationProfile,
        now: datetime,
    ) -> int:
        start, end = local_day_bounds(now, self.timezone_for(profile))
        return await self.repository.count_sent_between(session, profile.user_id, start, end)

    async def has_capacity(
        self,
        session: AsyncSession,
        profile: UserNotificationProfile,
        now: datetime,
        *,
        reserved: int = 0,
    ) -> bool:
        """Whether one more send fits under today's limit.

        ``reserved`` counts sends already in flight for the user (entries
        leased by other processor passes); they take up capacity before
        they are marked sent.
        """
        count = await self.count_sent_today(session, profile, now)
        if count + reserved >= self.daily_limit:
            logger.info(
                "Daily notification limit reached",
                extra={
                    "user_id": profile.user_id,
                    "sent_today": count,
                    "in_flight": reserved,
                    "daily_limit": self.daily_limit,
                },
            )
            return False
        return True

    def next_day_slot(self, profile: UserNotificationProfile, now: datetime) -> datetime:
        """Tomorrow at the deferral hour in the user's zone, outside quiet hours.

        Returns a UTC instant.
        """
        tz = self.timezone_for(profile)
        tomorrow = now.astimezone(tz).date() + timedelta(days=1)
        slot = localize(tz, tomorrow, time(self.deferral_hour)).astimezone(UTC)
        if self.evaluator.is_quiet(profile, slot):
            return self.evaluator.next_eligible(profile, slot)
        return slot
