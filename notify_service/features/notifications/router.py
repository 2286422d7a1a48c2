"""API router for the notifications feature.

Endpoints:
- POST /notifications/status-changes - Task status transition hook (202)
- GET /users/{user_id}/notifications/history - Paginated queue history
- POST /users/{user_id}/notifications/test - Send the test message

Callers are trusted internal services; authenticating end users happens
upstream and the resolved user id arrives in the path.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status

from notify_service.features.notifications.dependencies import (
    NotificationSchedulerDep,
    NotificationServiceDep,
    SessionDep,
)
from notify_service.features.notifications.schemas import (
    NotificationHistoryResponse,
    StatusChangeAccepted,
    StatusChangeEvent,
    TestNotificationResponse,
)

router = APIRouter(tags=["notifications"])


@router.post(
    "/notifications/status-changes",
    response_model=StatusChangeAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Report a task status change",
    description="""
Called by the task-update flow after a task's status changed.

Transitions to `in-progress` and `completed` notify the user, immediately
when they can be reached now, otherwise through the queue. The request
returns before the notification is attempted; its outcome is never
reported back.
""",
)
async def report_status_change(
    event: StatusChangeEvent,
    scheduler: NotificationSchedulerDep,
) -> StatusChangeAccepted:
    scheduler.notify_status_change(
        event.user_id,
        event.task_id,
        event.old_status,
        event.new_status,
    )
    return StatusChangeAccepted(task_id=event.task_id)


@router.get(
    "/users/{user_id}/notifications/history",
    response_model=NotificationHistoryResponse,
    summary="Notification history",
    description="All of a user's queue entries (pending, sent and failed), newest first.",
)
async def get_notification_history(
    user_id: str,
    session: SessionDep,
    service: NotificationServiceDep,
    page: Annotated[int, Query(ge=1, description="Page number (1-indexed)")] = 1,
    limit: Annotated[int, Query(ge=1, le=100, description="Page size")] = 20,
) -> NotificationHistoryResponse:
    return await service.get_history(session, user_id, page=page, limit=limit)


@router.post(
    "/users/{user_id}/notifications/test",
    response_model=TestNotificationResponse,
    summary="Send a test notification",
    responses={
        404: {"description": "User not found"},
        400: {"description": "Phone number not verified"},
        502: {"description": "Provider rejected or failed the message"},
        503: {"description": "WhatsApp delivery not configured"},
    },
)
async def send_test_notification(
    user_id: str,
    service: NotificationServiceDep,
) -> TestNotificationResponse:
    return await service.send_test(user_id)
