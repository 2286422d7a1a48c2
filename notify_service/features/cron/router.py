"""HTTP triggers for the periodic jobs.

Meant for external schedulers (cron-job.org, CI workflows, Kubernetes
CronJobs). Every trigger requires the shared secret in the
``x-cron-secret`` header; ``GET /cron/health`` is public.
"""

from __future__ import annotations

import hmac
import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request

from notify_service.core.exceptions import InternalServerException, UnauthorizedException
from notify_service.core.settings import get_notification_settings, get_whatsapp_settings
from notify_service.features.cron.jobs import JobName, run_job
from notify_service.features.notifications.dependencies import ComponentsDep
from notify_service.features.notifications.schemas import CronHealthResponse, CronJobResponse

logger = logging.getLogger(__name__)


async def verify_cron_secret(
    request: Request,
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Reject the call unless it carries the configured cron secret.

    Raises:
        InternalServerException: No secret configured on this service
        UnauthorizedException: Header missing or wrong
    """
    settings = get_notification_settings()
    if not settings.cron_configured:
        logger.error("Cron secret not configured; refusing cron trigger")
        raise InternalServerException(
            detail="Cron jobs not configured: NOTIFY_CRON_SECRET is missing",
            type="cron-not-configured",
        )
    expected = settings.cron_secret.get_secret_value()
    if x_cron_secret is None or not hmac.compare_digest(x_cron_secret, expected):
        logger.warning(
            "Unauthorized cron trigger attempt",
            extra={"client": request.client.host if request.client else None},
        )
        raise UnauthorizedException(
            detail="Invalid or missing x-cron-secret header",
            type="invalid-cron-secret",
        )


router = APIRouter(prefix="/cron", tags=["cron"])
protected = APIRouter(dependencies=[Depends(verify_cron_secret)])


async def _trigger(job: JobName, components: ComponentsDep) -> CronJobResponse:
    try:
        result = await run_job(job, components)
    except Exception as e:
        raise InternalServerException(
            detail=f"Job execution failed: {e}",
            type="job-failed",
            extra={"job": str(job)},
        ) from e
    return CronJobResponse(job=job, timestamp=datetime.now(UTC), result=result)


@protected.post("/task-reminders", response_model=CronJobResponse, summary="Run task reminders")
async def trigger_task_reminders(components: ComponentsDep) -> CronJobResponse:
    return await _trigger(JobName.TASK_REMINDERS, components)


@protected.post("/daily-summaries", response_model=CronJobResponse, summary="Run daily digests")
async def trigger_daily_summaries(components: ComponentsDep) -> CronJobResponse:
    return await _trigger(JobName.DAILY_SUMMARIES, components)


@protected.post("/process-queue", response_model=CronJobResponse, summary="Process due entries")
async def trigger_process_queue(components: ComponentsDep) -> CronJobResponse:
    return await _trigger(JobName.PROCESS_QUEUE, components)


@protected.post("/purge-expired", response_model=CronJobResponse, summary="Purge old entries")
async def trigger_purge_expired(components: ComponentsDep) -> CronJobResponse:
    return await _trigger(JobName.PURGE_EXPIRED, components)


@router.get("/health", response_model=CronHealthResponse, summary="Cron readiness")
async def cron_health() -> CronHealthResponse:
    return CronHealthResponse(
        cron_jobs_configured=get_notification_settings().cron_configured,
        gateway_configured=get_whatsapp_settings().is_configured,
        timestamp=datetime.now(UTC),
    )


router.include_router(protected)
