"""The periodic jobs, runnable from HTTP, taskiq, APScheduler or the CLI."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from notify_service.infra.logging import remove_from_log_context, set_log_context
from notify_service.infra.metrics.tracking import track_job_run

if TYPE_CHECKING:
    from notify_service.features.notifications.container import NotificationComponents

logger = logging.getLogger(__name__)


class JobName(StrEnum):
    """Periodic jobs and their default schedules."""

    TASK_REMINDERS = "task-reminders"  # hourly
    DAILY_SUMMARIES = "daily-summaries"  # daily 08:00 UTC
    PROCESS_QUEUE = "process-queue"  # every 5 minutes
    PURGE_EXPIRED = "purge-expired"  # daily 03:00 UTC


async def run_job(job: JobName, components: NotificationComponents) -> dict[str, Any]:
    """Run one job to completion and return its counters as JSON-ready data.

    Raises:
        Exception: Whatever the job raised; the failure is logged and counted.
    """
    set_log_context(job=str(job))
    logger.info("Job started")
    try:
        match job:
            case JobName.TASK_REMINDERS:
                result = await components.scheduler.schedule_task_reminders()
            case JobName.DAILY_SUMMARIES:
                result = await components.scheduler.schedule_daily_digests()
            case JobName.PROCESS_QUEUE:
                result = await components.processor.process_due()
            case JobName.PURGE_EXPIRED:
                async with components.session_factory() as session:
                    result = await components.service.purge_expired(session)
    except Exception:
        track_job_run(job, success=False)
        logger.exception("Job failed")
        raise
    else:
        track_job_run(job, success=True)
        logger.info("Job completed")
        return result.model_dump(mode="json")
    finally:
        remove_from_log_context("job")
