"""User and task directories consumed by the notification engine.

The engine never owns users or tasks. It reads them through two narrow
protocols; production wiring uses the httpx clients below against the
core API, tests plug in in-memory fakes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from notify_service.features.notifications.schemas import TaskSnapshot, UserNotificationProfile
from notify_service.utils.retry import retry

if TYPE_CHECKING:
    from datetime import datetime

    from notify_service.core.settings import DirectorySettings

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


class UserDirectory(Protocol):
    """Source of user notification profiles."""

    async def get_user(self, user_id: str) -> UserNotificationProfile | None: ...

    async def list_users_with_digest_enabled(self) -> list[UserNotificationProfile]: ...


class TaskDirectory(Protocol):
    """Source of task snapshots."""

    async def find_tasks_due_within(self, start: datetime, end: datetime) -> list[TaskSnapshot]: ...

    async def get_task(self, task_id: str) -> TaskSnapshot | None: ...

    async def list_tasks_for_user(self, user_id: str) -> list[TaskSnapshot]: ...


class DirectoryClient:
    """Shared httpx plumbing for the directory API.

    Requests are retried on network errors and timeouts. A 404 on a
    single-resource lookup means "missing" and is returned as None; any
    other error status propagates as ``httpx.HTTPStatusError``.
    """

    def __init__(
        self,
        settings: DirectorySettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=httpx.Timeout(settings.timeout),
            headers={"Accept": "application/json", **settings.auth_headers},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client and release connections."""
        await self.client.aclose()

    async def __aenter__(self) -> DirectoryClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        allow_missing: bool = False,
    ) -> Any:
        @retry(
            "directory.get",
            max_attempts=self.settings.max_retries,
            initial_delay=0.5,
            max_delay=5.0,
            retry_on=_TRANSIENT_ERRORS,
        )
        async def _request() -> httpx.Response:
            return await self.client.get(path, params=params)

        response = await _request()
        logger.debug(
            "Directory response",
            extra={"path": path, "status_code": response.status_code},
        )
        if allow_missing and response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()
        return response.json()


class HttpUserDirectory(DirectoryClient):
    """User directory backed by the core API."""

    async def get_user(self, user_id: str) -> UserNotificationProfile | None:
        data = await self._get_json(f"/users/{user_id}/notification-profile", allow_missing=True)
        if data is None:
            return None
        return UserNotificationProfile.model_validate(data)

    async def list_users_with_digest_enabled(self) -> list[UserNotificationProfile]:
        data = await self._get_json(
            "/users/notification-profiles",
            params={"enabled": "true", "digest_enabled": "true"},
        )
        return [UserNotificationProfile.model_validate(item) for item in data]


class HttpTaskDirectory(DirectoryClient):
    """Task directory backed by the core API."""

    async def find_tasks_due_within(self, start: datetime, end: datetime) -> list[TaskSnapshot]:
        data = await self._get_json(
            "/tasks/due",
            params={"start": start.isoformat(), "end": end.isoformat(), "exclude_status": "completed"},
        )
        return [TaskSnapshot.model_validate(item) for item in data]

    async def get_task(self, task_id: str) -> TaskSnapshot | None:
        data = await self._get_json(f"/tasks/{task_id}", allow_missing=True)
        if data is None:
            return None
        return TaskSnapshot.model_validate(data)

    async def list_tasks_for_user(self, user_id: str) -> list[TaskSnapshot]:
        data = await self._get_json(f"/users/{user_id}/tasks")
        return [TaskSnapshot.model_validate(item) for item in data]
