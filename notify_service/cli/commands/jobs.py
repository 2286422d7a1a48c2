"""Periodic job commands.

Run a sweep once, in this process, against the configured database:

\b
  notify jobs reminders
  notify jobs digests
  notify jobs process
  notify jobs purge
  notify jobs list
"""

from __future__ import annotations

import json
import sys

import click

from notify_service.cli.utils import coro, error, header, info, success
from notify_service.features.cron.jobs import JobName, run_job


async def _run(job: JobName) -> None:
    from notify_service.features.notifications.container import build_components
    from notify_service.infra.database.session import (
        close_database,
        get_async_session,
        init_database,
    )

    header(f"Running {job}")
    await init_database()
    components = build_components(session_factory=get_async_session)
    try:
        result = await run_job(job, components)
    except Exception as e:
        error(f"Job {job} failed: {e}")
        sys.exit(1)
    finally:
        await components.aclose()
        await close_database()

    click.echo(json.dumps(result, indent=2))
    success(f"Job {job} completed")


@click.group(name="jobs")
def jobs() -> None:
    """Run the notification sweeps by hand."""


@jobs.command(name="reminders")
@coro
async def reminders() -> None:
    """Enqueue reminders for tasks due within the lookahead window."""
    await _run(JobName.TASK_REMINDERS)


@jobs.command(name="digests")
@coro
async def digests() -> None:
    """Enqueue today's digest for every opted-in user."""
    await _run(JobName.DAILY_SUMMARIES)


@jobs.command(name="process")
@coro
async def process() -> None:
    """Deliver due queue entries."""
    await _run(JobName.PROCESS_QUEUE)


@jobs.command(name="purge")
@coro
async def purge() -> None:
    """Delete queue entries older than the retention period."""
    await _run(JobName.PURGE_EXPIRED)


@jobs.command(name="list")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
def list_jobs(output_format: str) -> None:
    """List the sweeps and their schedules."""
    from notify_service.infra.tasks.scheduler import get_job_status, setup_scheduled_jobs

    setup_scheduled_jobs()
    scheduled = get_job_status()

    if output_format == "json":
        click.echo(json.dumps(scheduled, indent=2))
        return

    header("Scheduled Jobs")
    id_width = max(len(j["id"]) for j in scheduled) + 2
    click.echo(f"{'ID':<{id_width}} {'Trigger':<40}")
    click.echo("-" * (id_width + 40))
    for job in scheduled:
        click.echo(f"{job['id']:<{id_width}} {job['trigger']:<40}")
    click.echo()
    info("The API process runs these timers when APP_SCHEDULER_ENABLED=true")
    success(f"Total: {len(scheduled)} scheduled jobs")
