"""APScheduler integration for the periodic notification sweeps.

APScheduler triggers each sweep on its timer and hands it to Taskiq:

    APScheduler (in-process) -> Taskiq kiq() -> RabbitMQ or in-memory -> run_job
"""

from __future__ import annotations

import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from notify_service.features.cron.jobs import JobName
from notify_service.workers.notifications.tasks import JOB_TASKS

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(
    timezone="UTC",
    job_defaults={
        "coalesce": True,  # Combine multiple pending executions into one
        "max_instances": 1,  # Only one instance of each job at a time
        "misfire_grace_time": 60,
    },
)

JOB_TRIGGERS: dict[JobName, Any] = {
    JobName.TASK_REMINDERS: IntervalTrigger(hours=1),
    JobName.DAILY_SUMMARIES: CronTrigger(hour=8, minute=0),
    JobName.PROCESS_QUEUE: IntervalTrigger(minutes=5),
    JobName.PURGE_EXPIRED: CronTrigger(hour=3, minute=0),
}


async def _enqueue(job: JobName) -> None:
    """Send one sweep to the Taskiq broker."""
    task = await JOB_TASKS[job].kiq()
    logger.debug("Sweep enqueued", extra={"job": str(job), "task_id": task.task_id})


def setup_scheduled_jobs() -> None:
    """Register every sweep with APScheduler.

    Call during application startup AFTER the Taskiq broker is started.
    """
    logger.info("Setting up scheduled jobs with APScheduler")
    for job, trigger in JOB_TRIGGERS.items():
        # Jobs added before start() are held as pending and never replaced
        if scheduler.get_job(str(job)) is not None:
            scheduler.remove_job(str(job))
        scheduler.add_job(
            func=_enqueue,
            trigger=trigger,
            args=[job],
            id=str(job),
            name=f"Notification sweep: {job}",
            replace_existing=True,
        )
    logger.info(f"Scheduled {len(scheduler.get_jobs())} jobs")


async def start_scheduler() -> None:
    """Start the APScheduler.

    Call during application startup after setup_scheduled_jobs().
    """
    if not scheduler.running:
        logger.info("Starting APScheduler")
        scheduler.start()
        logger.info(f"APScheduler started with {len(scheduler.get_jobs())} jobs")
    else:
        logger.warning("APScheduler is already running")


async def stop_scheduler() -> None:
    """Stop the APScheduler gracefully.

    Call during application shutdown.
    """
    if scheduler.running:
        logger.info("Stopping APScheduler")
        scheduler.shutdown(wait=False)
        logger.info("APScheduler stopped")
    else:
        logger.debug("APScheduler is not running")


def get_job_status() -> list[dict]:
    """Get status of all scheduled jobs.

    Returns:
        List of job information dictionaries.
    """
    jobs = []
    for job in scheduler.get_jobs():
        # Jobs added before start() have no next_run_time yet.
        next_run = getattr(job, "next_run_time", None)
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            }
        )
    return jobs
