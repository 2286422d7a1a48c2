"""Producers that populate the notification queue.

Three producers share one ``NotificationScheduler``:

- ``schedule_task_reminders``: hourly scan of tasks due within the lookahead
- ``schedule_daily_digests``: one summary per eligible user per local day
- ``handle_status_change``: synchronous hook for task status transitions,
  sending immediately when the user is reachable now and queueing otherwise

Every producer isolates failures per task or user so one bad record never
aborts a sweep.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from notify_service.core.services.base import BaseService
from notify_service.features.notifications.localtime import local_day_bounds, utc_now
from notify_service.features.notifications.messages import MessageRenderer
from notify_service.features.notifications.metrics import (
    notification_deferred_total,
    notification_enqueued_total,
    notification_immediate_total,
    notification_sweep_duration_seconds,
)
from notify_service.features.notifications.models import NotificationKind
from notify_service.features.notifications.pacing import DailyPacingCounter
from notify_service.features.notifications.quiet_hours import QuietWindowEvaluator
from notify_service.features.notifications.repository import get_queue_repository
from notify_service.features.notifications.schemas import (
    DigestSweepResult,
    ReminderSweepResult,
    TaskStatus,
    TaskSummary,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from notify_service.core.settings import NotificationSettings
    from notify_service.features.notifications.directories import TaskDirectory, UserDirectory
    from notify_service.features.notifications.gateway import WhatsAppGateway
    from notify_service.features.notifications.localtime import Clock
    from notify_service.features.notifications.repository import NotificationQueueRepository
    from notify_service.features.notifications.schemas import (
        TaskSnapshot,
        UserNotificationProfile,
    )
    from notify_service.infra.database.session import SessionFactory

NOTIFIABLE_TRANSITIONS = frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED})


class ProduceOutcome(StrEnum):
    """What a producer did for one task, user or event."""

    SCHEDULED = "scheduled"
    DEFERRED = "deferred"
    SKIPPED = "skipped"
    SENT_IMMEDIATELY = "sent_immediately"
    IMMEDIATE_FAILED = "immediate_failed"


def summarize_tasks(
    tasks: Iterable[TaskSnapshot],
    day_start: datetime,
    day_end: datetime,
) -> TaskSummary:
    """Count a user's tasks for the digest.

    Due today and overdue only count tasks that are not completed;
    overdue means the deadline is before the start of the local day.
    """
    summary = TaskSummary()
    for task in tasks:
        summary.total += 1
        match task.status:
            case TaskStatus.PENDING:
                summary.pending += 1
            case TaskStatus.IN_PROGRESS:
                summary.in_progress += 1
            case TaskStatus.COMPLETED:
                summary.completed += 1
        if task.status == TaskStatus.COMPLETED or task.deadline is None:
            continue
        if day_start <= task.deadline < day_end:
            summary.due_today += 1
        elif task.deadline < day_start:
            summary.overdue += 1
    return summary


class NotificationScheduler(BaseService):
    """Decides when notifications should be attempted and writes queue entries.

    Args:
        session_factory: Opens a database session (async context manager)
        users: User directory
        tasks: Task directory
        gateway: Delivery gateway, used by the immediate status-change path
        settings: Pacing, lookahead and rendering policy
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
        self.renderer = MessageRenderer(settings.frontend_url, settings.description_max_length)
        self._background: set[asyncio.Task[None]] = set()

    # ──────────────────────────────────────────────────────────────
    # Reminder producer
    # ──────────────────────────────────────────────────────────────

    async def schedule_task_reminders(self) -> ReminderSweepResult:
        """Queue one reminder per non-completed task due within the lookahead."""
        started = time.perf_counter()
        now = self.clock()
        window_end = now + timedelta(hours=self.settings.reminder_lookahead_hours)

        tasks = await self.tasks.find_tasks_due_within(now, window_end)
        result = ReminderSweepResult(tasks_found=len(tasks))
        self.logger.info("Reminder sweep started", extra={"tasks_found": len(tasks)})

        async with self.session_factory() as session:
            for task in tasks:
                if (
                    task.status == TaskStatus.COMPLETED
                    or task.deadline is None
                    or not (now <= task.deadline <= window_end)
                ):
                    result.skipped += 1
                    continue
                try:
                    outcome = await self._schedule_reminder(session, task, now)
                    await session.commit()
                except IntegrityError:
                    # Another sweep queued the same reminder between the check and the insert
                    await session.rollback()
                    result.skipped += 1
                    self.logger.info(
                        "Task reminder already queued",
                        extra={"task_id": task.id, "user_id": task.user_id},
                    )
                    continue
                except Exception:
                    await session.rollback()
                    result.errors += 1
                    self.logger.exception(
                        "Failed to schedule task reminder",
                        extra={"task_id": task.id, "user_id": task.user_id},
                    )
                    continue

                match outcome:
                    case ProduceOutcome.SCHEDULED:
                        result.scheduled += 1
                    case ProduceOutcome.DEFERRED:
                        result.deferred += 1
                    case _:
                        result.skipped += 1

        notification_sweep_duration_seconds.labels(job="task-reminders").observe(
            time.perf_counter() - started
        )
        self.logger.info("Reminder sweep completed", extra=result.model_dump())
        return result

    async def _schedule_reminder(
        self,
        session: AsyncSession,
        task: TaskSnapshot,
        now: datetime,
    ) -> ProduceOutcome:
        profile = await self.users.get_user(task.user_id)
        if profile is None or not profile.enabled or not profile.reminders_enabled:
            self._lazy.debug(lambda: f"Reminder skipped for task {task.id}: user not eligible")
            return ProduceOutcome.SKIPPED

        if await self.repository.has_pending_reminder(session, profile.user_id, task.id):
            self._lazy.debug(lambda: f"Reminder skipped for task {task.id}: already pending")
            return ProduceOutcome.SKIPPED

        if await self.pacing.has_capacity(session, profile, now):
            scheduled_for = self.evaluator.schedule_time(profile, now)
            outcome = ProduceOutcome.SCHEDULED
        else:
            scheduled_for = self.pacing.next_day_slot(profile, now)
            notification_deferred_total.labels(reason="daily_limit").inc()
            outcome = ProduceOutcome.DEFERRED

        entry = await self.repository.enqueue(
            session,
            user_id=profile.user_id,
            kind=NotificationKind.REMINDER,
            related_task_id=task.id,
            payload=self.renderer.reminder(task, now),
            scheduled_for=scheduled_for,
            created_at=now,
        )
        notification_enqueued_total.labels(kind=NotificationKind.REMINDER).inc()
        self.logger.info(
            "Task reminder queued",
            extra={
                "entry_id": str(entry.id),
                "user_id": profile.user_id,
                "task_id": task.id,
                "scheduled_for": scheduled_for.isoformat(),
                "deferred": outcome == ProduceOutcome.DEFERRED,
            },
        )
        return outcome

    # ──────────────────────────────────────────────────────────────
    # Digest producer
    # ──────────────────────────────────────────────────────────────

    async def schedule_daily_digests(self) -> DigestSweepResult:
        """Queue today's task summary for every user who opted in."""
        started = time.perf_counter()
        now = self.clock()

        profiles = await self.users.list_users_with_digest_enabled()
        result = DigestSweepResult(users_found=len(profiles))
        self.logger.info("Digest sweep started", extra={"users_found": len(profiles)})

        async with self.session_factory() as session:
            for profile in profiles:
                if not (profile.enabled and profile.digest_enabled):
                    result.skipped += 1
                    continue
                try:
                    outcome = await self._schedule_digest(session, profile, now)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    result.errors += 1
                    self.logger.exception(
                        "Failed to schedule daily digest",
                        extra={"user_id": profile.user_id},
                    )
                    continue

                if outcome == ProduceOutcome.SCHEDULED:
                    result.scheduled += 1
                else:
                    result.skipped += 1

        notification_sweep_duration_seconds.labels(job="daily-summaries").observe(
            time.perf_counter() - started
        )
        self.logger.info("Digest sweep completed", extra=result.model_dump())
        return result

    async def _schedule_digest(
        self,
        session: AsyncSession,
        profile: UserNotificationProfile,
        now: datetime,
    ) -> ProduceOutcome:
        day_start, day_end = local_day_bounds(now, self.pacing.timezone_for(profile))

        if await self.repository.has_digest_created_between(
            session, profile.user_id, day_start, day_end
        ):
            self._lazy.debug(lambda: f"Digest already created today for user {profile.user_id}")
            return ProduceOutcome.SKIPPED

        if not await self.pacing.has_capacity(session, profile, now):
            self.logger.info(
                "Daily digest skipped: daily limit reached",
                extra={"user_id": profile.user_id},
            )
            return ProduceOutcome.SKIPPED

        tasks = await self.tasks.list_tasks_for_user(profile.user_id)
        summary = summarize_tasks(tasks, day_start, day_end)
        scheduled_for = self.evaluator.schedule_time(profile, now)

        entry = await self.repository.enqueue(
            session,
            user_id=profile.user_id,
            kind=NotificationKind.DAILY_DIGEST,
            payload=self.renderer.daily_digest(profile.display_name, summary),
            scheduled_for=scheduled_for,
            created_at=now,
        )
        notification_enqueued_total.labels(kind=NotificationKind.DAILY_DIGEST).inc()
        self.logger.info(
            "Daily digest queued",
            extra={
                "entry_id": str(entry.id),
                "user_id": profile.user_id,
                "scheduled_for": scheduled_for.isoformat(),
            },
        )
        return ProduceOutcome.SCHEDULED

    # ──────────────────────────────────────────────────────────────
    # Status-change producer
    # ──────────────────────────────────────────────────────────────

    async def handle_status_change(
        self,
        user_id: str,
        task_id: str,
        old_status: str,
        new_status: str,
    ) -> ProduceOutcome:
        """Notify a user that one of their tasks moved to in-progress or completed.

        Sends through the gateway right away when the user can be reached
        within the immediate window; otherwise queues a ``status_change``
        entry for the processor. Immediate failures are logged and dropped.
        """
        if new_status not in NOTIFIABLE_TRANSITIONS:
            return ProduceOutcome.SKIPPED

        profile = await self.users.get_user(user_id)
        if (
            profile is None
            or not profile.can_receive
            or not profile.status_updates_enabled
        ):
            self._lazy.debug(lambda: f"Status change skipped for user {user_id}: not eligible")
            return ProduceOutcome.SKIPPED

        now = self.clock()
        async with self.session_factory() as session:
            if not await self.pacing.has_capacity(session, profile, now):
                return ProduceOutcome.SKIPPED

            task = await self.tasks.get_task(task_id)
            if task is None:
                self.logger.warning(
                    "Status change skipped: task not found",
                    extra={"user_id": user_id, "task_id": task_id},
                )
                return ProduceOutcome.SKIPPED

            payload = self.renderer.status_change(task, old_status, new_status)
            scheduled_for = self.evaluator.schedule_time(profile, now)

            if scheduled_for - now <= timedelta(seconds=self.settings.immediate_window_seconds):
                return await self._send_immediately(profile, task_id, payload)

            entry = await self.repository.enqueue(
                session,
                user_id=profile.user_id,
                kind=NotificationKind.STATUS_CHANGE,
                related_task_id=task_id,
                payload=payload,
                scheduled_for=scheduled_for,
                created_at=now,
            )
            await session.commit()

        notification_enqueued_total.labels(kind=NotificationKind.STATUS_CHANGE).inc()
        notification_deferred_total.labels(reason="quiet_hours").inc()
        self.logger.info(
            "Status change queued",
            extra={
                "entry_id": str(entry.id),
                "user_id": user_id,
                "task_id": task_id,
                "scheduled_for": scheduled_for.isoformat(),
            },
        )
        return ProduceOutcome.SCHEDULED

    async def _send_immediately(
        self,
        profile: UserNotificationProfile,
        task_id: str,
        payload: str,
    ) -> ProduceOutcome:
        result = await self.gateway.send(profile.channel_address, payload)
        if result.success:
            notification_immediate_total.labels(outcome="sent").inc()
            self.logger.info(
                "Status change sent immediately",
                extra={"user_id": profile.user_id, "task_id": task_id},
            )
            return ProduceOutcome.SENT_IMMEDIATELY

        notification_immediate_total.labels(outcome="failed").inc()
        self.logger.warning(
            "Immediate status change delivery failed",
            extra={"user_id": profile.user_id, "task_id": task_id, "reason": result.reason},
        )
        return ProduceOutcome.IMMEDIATE_FAILED

    def notify_status_change(
        self,
        user_id: str,
        task_id: str,
        old_status: str,
        new_status: str,
    ) -> asyncio.Task[None]:
        """Run ``handle_status_change`` as a detached task.

        The caller never waits on or sees the notification outcome. The task
        is held in ``_background`` until it finishes.
        """
        task = asyncio.create_task(
            self._status_change_boundary(user_id, task_id, old_status, new_status),
            name=f"status-change:{task_id}",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _status_change_boundary(
        self,
        user_id: str,
        task_id: str,
        old_status: str,
        new_status: str,
    ) -> None:
        try:
            await self.handle_status_change(user_id, task_id, old_status, new_status)
        except Exception:
            self.logger.exception(
                "Status change notification failed",
                extra={"user_id": user_id, "task_id": task_id},
            )

    async def drain(self) -> None:
        """Wait for detached status-change tasks (used at shutdown)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
