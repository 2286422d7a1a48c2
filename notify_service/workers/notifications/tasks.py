"""Taskiq tasks for the periodic notification sweeps.

Scheduled by APScheduler (see ``notify_service.infra.tasks.scheduler``):

- task_reminders_task: hourly
- daily_summaries_task: daily at 08:00 UTC
- process_queue_task: every 5 minutes
- purge_expired_task: daily at 03:00 UTC

Example:
    from notify_service.workers.notifications import process_queue_task

    task = await process_queue_task.kiq()
    result = await task.wait_result()
"""

from __future__ import annotations

import logging
from typing import Any

from notify_service.features.cron.jobs import JobName, run_job
from notify_service.features.notifications.container import build_components
from notify_service.infra.database.session import get_async_session
from notify_service.infra.tasks.broker import broker

logger = logging.getLogger(__name__)


async def _run_with_components(job: JobName) -> dict[str, Any]:
    components = build_components(session_factory=get_async_session)
    try:
        return await run_job(job, components)
    finally:
        await components.aclose()


@broker.task(task_name="notifications.task_reminders")
async def task_reminders_task() -> dict[str, Any]:
    """Enqueue reminders for tasks due within the lookahead window."""
    return await _run_with_components(JobName.TASK_REMINDERS)


@broker.task(task_name="notifications.daily_summaries")
async def daily_summaries_task() -> dict[str, Any]:
    """Enqueue one daily digest per opted-in user."""
    return await _run_with_components(JobName.DAILY_SUMMARIES)


@broker.task(task_name="notifications.process_queue")
async def process_queue_task() -> dict[str, Any]:
    """Deliver due queue entries."""
    return await _run_with_components(JobName.PROCESS_QUEUE)


@broker.task(task_name="notifications.purge_expired")
async def purge_expired_task() -> dict[str, Any]:
    """Delete queue entries older than the retention period."""
    return await _run_with_components(JobName.PURGE_EXPIRED)


JOB_TASKS = {
    JobName.TASK_REMINDERS: task_reminders_task,
    JobName.DAILY_SUMMARIES: daily_summaries_task,
    JobName.PROCESS_QUEUE: process_queue_task,
    JobName.PURGE_EXPIRED: purge_expired_task,
}
