"""Queue processor: drains due entries through the delivery gateway.

One pass selects up to ``batch_size`` pending entries whose
``scheduled_for`` has passed, oldest first, and handles them one at a
time. Each entry is first claimed with a conditional UPDATE that sets a
short lease (``claimed_until``); a pass that loses the claim skips the
entry, so overlapping passes never deliver the same entry twice. The
claimed entry is re-validated against the user's current profile, gated
by the quiet window and the daily ceiling, then sent. Entries other
passes hold for the same user count against the ceiling. The outcome is
committed, and the lease released, before the next entry is looked at.

Retry schedule after a failed attempt: ``2^attempts * base`` minutes
(10, 20, 40 with the defaults) until ``max_attempts`` is reached.
"""

from __future__ import annotations

import time
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from notify_service.core.services.base import BaseService
from notify_service.features.notifications.localtime import utc_now
from notify_service.features.notifications.metrics import (
    notification_deferred_total,
    notification_last_batch_size,
    notification_processed_total,
    notification_sweep_duration_seconds,
)
from notify_service.features.notifications.models import NotificationKind, QueueEntry, QueueState
from notify_service.features.notifications.pacing import DailyPacingCounter
from notify_service.features.notifications.quiet_hours import QuietWindowEvaluator
from notify_service.features.notifications.repository import get_queue_repository
from notify_service.features.notifications.schemas import ProcessQueueResult

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from notify_service.core.settings import NotificationSettings
    from notify_service.features.notifications.directories import TaskDirectory, UserDirectory
    from notify_service.features.notifications.gateway import WhatsAppGateway
    from notify_service.features.notifications.localtime import Clock
    from notify_service.features.notifications.repository import NotificationQueueRepository
    from notify_service.infra.database.session import SessionFactory

USER_NOT_FOUND = "User not found"
NOTIFICATIONS_DISABLED = "Notifications disabled"
TASK_NOT_FOUND = "Task not found"

_LAST_ERROR_MAX_LENGTH = 1000


class EntryOutcome(StrEnum):
    """Result of handling one queue entry."""

    SENT = "sent"
    FAILED = "failed"
    RETRY = "retry"
    DEFERRED = "deferred"


class QueueProcessor(BaseService):
    """Consumes due queue entries and applies the delivery state machine.

    Args:
        session_factory: Opens a database session (async context manager)
        users: User directory, re-read for every entry
        tasks: Task directory, used to confirm reminder tasks still exist
        gateway: Delivery gateway
        settings: Retry ceiling, backoff base, batch size and pacing policy
        repository: Queue repository (defaults to the shared instance)
        clock: Source of "now"; tests pass a fixed clock
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        users: UserDirectory,
        tasks: TaskDirectory,
        gateway: WhatsAppGateway,
        settings: NotificationSettings,
        repository: NotificationQueueRepository | None = None,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__()
        self.session_factory = session_factory
        self.users = users
        self.tasks = tasks
        self.gateway = gateway
        self.settings = settings
        self.repository = repository or get_queue_repository()
        self.clock = clock
        self.evaluator = QuietWindowEvaluator(settings.default_timezone)
        self.pacing = DailyPacingCounter(
            self.repository,
            self.evaluator,
            daily_limit=settings.daily_limit,
            deferral_hour=settings.deferral_hour,
            default_timezone=settings.default_timezone,
        )

    def retry_delay(self, attempts: int) -> timedelta:
        """Backoff before the next attempt after ``attempts`` failures."""
        return timedelta(minutes=(2**attempts) * self.settings.retry_base_delay_minutes)

    async def process_due(self) -> ProcessQueueResult:
        """Run one processor pass."""
        result = ProcessQueueResult()
        if not self.gateway.is_configured:
            self.logger.warning("WhatsApp gateway not configured; due entries left untouched")
            result.skipped_unconfigured = True
            return result

        started = time.perf_counter()
        async with self.session_factory() as session:
            entries = await self.repository.find_due(
                session,
                now=self.clock(),
                max_attempts=self.settings.max_attempts,
                limit=self.settings.batch_size,
            )
            notification_last_batch_size.set(len(entries))
            self.logger.info("Queue pass started", extra={"due_entries": len(entries)})

            for entry_id in [entry.id for entry in entries]:
                if not await self._claim(session, entry_id):
                    continue
                # Re-read the row this pass now owns; a rollback also expires loaded entries
                entry = await session.get(QueueEntry, entry_id)
                if entry is None:
                    continue
                await session.refresh(entry)
                kind = entry.kind
                try:
                    outcome = await self._process_entry(session, entry)
                    entry.claimed_until = None
                    await session.commit()
                except Exception as e:
                    outcome = await self._record_unexpected_error(session, entry, e)
                    if outcome is None:
                        continue

                result.processed += 1
                notification_processed_total.labels(kind=kind, outcome=outcome).inc()
                match outcome:
                    case EntryOutcome.SENT:
                        result.sent += 1
                    case EntryOutcome.FAILED:
                        result.failed += 1
                    case EntryOutcome.RETRY:
                        result.retried += 1
                    case EntryOutcome.DEFERRED:
                        result.deferred += 1

        notification_sweep_duration_seconds.labels(job="process-queue").observe(
            time.perf_counter() - started
        )
        self.logger.info("Queue pass completed", extra=result.model_dump())
        return result

    async def _claim(self, session: AsyncSession, entry_id: UUID) -> bool:
        """Lease ``entry_id`` for this pass, committing the lease at once.

        Another pass that loaded the same entry loses the claim and skips it.
        """
        now = self.clock()
        claimed = await self.repository.claim(
            session,
            entry_id,
            now=now,
            lease_until=now + timedelta(seconds=self.settings.claim_lease_seconds),
            max_attempts=self.settings.max_attempts,
        )
        await session.commit()
        if not claimed:
            self._lazy.debug(lambda: f"Entry {entry_id} claimed by another pass")
        return claimed

    async def _process_entry(self, session: AsyncSession, entry: QueueEntry) -> EntryOutcome:
        profile = await self.users.get_user(entry.user_id)
        if profile is None:
            return self._mark_failed(entry, USER_NOT_FOUND)
        if not profile.can_receive:
            return self._mark_failed(entry, NOTIFICATIONS_DISABLED)

        match entry.kind:
            case NotificationKind.REMINDER:
                if entry.related_task_id is not None:
                    task = await self.tasks.get_task(entry.related_task_id)
                    if task is None:
                        return self._mark_failed(entry, TASK_NOT_FOUND)
            case NotificationKind.STATUS_CHANGE | NotificationKind.DAILY_DIGEST:
                pass
            case _:
                return self._mark_failed(entry, f"Unknown notification kind: {entry.kind}")

        now = self.clock()
        if self.evaluator.is_quiet(profile, now):
            entry.scheduled_for = self.evaluator.next_eligible(profile, now)
            notification_deferred_total.labels(reason="quiet_hours").inc()
            self._log_deferral(entry, "quiet_hours")
            return EntryOutcome.DEFERRED

        in_flight = await self.repository.count_claimed_for_user(
            session, entry.user_id, now=now, exclude_id=entry.id
        )
        if not await self.pacing.has_capacity(session, profile, now, reserved=in_flight):
            entry.scheduled_for = self.pacing.next_day_slot(profile, now)
            notification_deferred_total.labels(reason="daily_limit").inc()
            self._log_deferral(entry, "daily_limit")
            return EntryOutcome.DEFERRED

        delivery = await self.gateway.send(profile.channel_address, entry.payload)
        if delivery.success:
            entry.state = QueueState.SENT
            entry.sent_at = now
            self.logger.info(
                "Notification sent",
                extra={
                    "entry_id": str(entry.id),
                    "user_id": entry.user_id,
                    "kind": entry.kind,
                    "message_sid": delivery.message_sid,
                },
            )
            return EntryOutcome.SENT

        return self._record_failed_attempt(
            entry,
            delivery.reason or "Delivery failed",
            permanent=delivery.permanent,
            now=now,
        )

    def _mark_failed(self, entry: QueueEntry, reason: str) -> EntryOutcome:
        entry.state = QueueState.FAILED
        entry.last_error = reason
        self.logger.info(
            "Notification failed",
            extra={"entry_id": str(entry.id), "user_id": entry.user_id, "reason": reason},
        )
        return EntryOutcome.FAILED

    def _record_failed_attempt(
        self,
        entry: QueueEntry,
        reason: str,
        *,
        permanent: bool,
        now: datetime,
    ) -> EntryOutcome:
        entry.attempts += 1
        entry.last_error = reason[:_LAST_ERROR_MAX_LENGTH]
        if permanent or entry.attempts >= self.settings.max_attempts:
            entry.state = QueueState.FAILED
            self.logger.warning(
                "Notification failed permanently",
                extra={
                    "entry_id": str(entry.id),
                    "user_id": entry.user_id,
                    "attempts": entry.attempts,
                    "permanent": permanent,
                    "reason": reason,
                },
            )
            return EntryOutcome.FAILED

        entry.scheduled_for = now + self.retry_delay(entry.attempts)
        self.logger.info(
            "Notification rescheduled for retry",
            extra={
                "entry_id": str(entry.id),
                "attempts": entry.attempts,
                "scheduled_for": entry.scheduled_for.isoformat(),
            },
        )
        return EntryOutcome.RETRY

    async def _record_unexpected_error(
        self,
        session: AsyncSession,
        entry: QueueEntry,
        error: Exception,
    ) -> EntryOutcome | None:
        """Roll back the entry's changes and count the error as a failed attempt."""
        entry_id = entry.id
        self.logger.exception("Error processing notification", extra={"entry_id": str(entry_id)})
        await session.rollback()
        try:
            await session.refresh(entry)
            outcome = self._record_failed_attempt(
                entry,
                str(error) or type(error).__name__,
                permanent=False,
                now=self.clock(),
            )
            entry.claimed_until = None
            await session.commit()
        except Exception:
            await session.rollback()
            self.logger.exception(
                "Could not record failed attempt",
                extra={"entry_id": str(entry_id)},
            )
            return None
        return outcome

    def _log_deferral(self, entry: QueueEntry, reason: str) -> None:
        self.logger.info(
            "Notification deferred",
            extra={
                "entry_id": str(entry.id),
                "user_id": entry.user_id,
                "reason": reason,
                "scheduled_for": entry.scheduled_for.isoformat(),
            },
        )
