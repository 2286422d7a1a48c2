"""Tests for the httpx user and task directory clients."""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest

from notify_service.core.settings import DirectorySettings
from notify_service.features.notifications.directories import HttpTaskDirectory, HttpUserDirectory
from notify_service.features.notifications.schemas import TaskStatus


@pytest.fixture
def directory_settings() -> DirectorySettings:
    return DirectorySettings(base_url="http://core.test/internal", service_token="svc", max_retries=2)


def _transport(routes: dict[str, httpx.Response], seen: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return routes.get(request.url.path, httpx.Response(404, json={"detail": "not found"}))

    return httpx.MockTransport(handler)


class TestHttpUserDirectory:
    async def test_get_user_parses_profile(self, directory_settings) -> None:
        seen: list[httpx.Request] = []
        routes = {
            "/internal/users/u1/notification-profile": httpx.Response(
                200,
                json={
                    "user_id": "u1",
                    "display_name": "Ada",
                    "channel_address": "+15551234567",
                    "phone_verified": True,
                    "enabled": True,
                    "quiet_start": "22:00",
                    "quiet_end": "07:00",
                    "timezone": "Europe/London",
                },
            )
        }

        async with HttpUserDirectory(directory_settings, transport=_transport(routes, seen)) as users:
            profile = await users.get_user("u1")

        assert profile.display_name == "Ada"
        assert profile.can_receive
        assert profile.quiet_start == "22:00"
        assert "+15551234567" not in repr(profile)
        assert seen[0].headers["authorization"] == "Bearer svc"

    async def test_missing_user_is_none(self, directory_settings) -> None:
        async with HttpUserDirectory(directory_settings, transport=_transport({}, [])) as users:
            assert await users.get_user("ghost") is None

    async def test_lists_digest_users(self, directory_settings) -> None:
        seen: list[httpx.Request] = []
        routes = {
            "/internal/users/notification-profiles": httpx.Response(
                200,
                json=[{"user_id": "u1", "enabled": True}, {"user_id": "u2", "enabled": True}],
            )
        }

        async with HttpUserDirectory(directory_settings, transport=_transport(routes, seen)) as users:
            profiles = await users.list_users_with_digest_enabled()

        assert [p.user_id for p in profiles] == ["u1", "u2"]
        assert seen[0].url.params["digest_enabled"] == "true"

    async def test_server_error_propagates(self, directory_settings) -> None:
        routes = {"/internal/users/notification-profiles": httpx.Response(500)}

        async with HttpUserDirectory(directory_settings, transport=_transport(routes, [])) as users:
            with pytest.raises(httpx.HTTPStatusError):
                await users.list_users_with_digest_enabled()


class TestHttpTaskDirectory:
    async def test_find_tasks_due_within(self, directory_settings) -> None:
        seen: list[httpx.Request] = []
        routes = {
            "/internal/tasks/due": httpx.Response(
                200,
                json=[
                    {
                        "id": "t1",
                        "user_id": "u1",
                        "title": "Report",
                        "status": "in-progress",
                        "deadline": "2025-01-15T18:00:00",
                    }
                ],
            )
        }
        start = datetime(2025, 1, 15, 14, tzinfo=UTC)
        end = datetime(2025, 1, 16, 14, tzinfo=UTC)

        async with HttpTaskDirectory(directory_settings, transport=_transport(routes, seen)) as tasks:
            found = await tasks.find_tasks_due_within(start, end)

        assert found[0].status == TaskStatus.IN_PROGRESS
        assert found[0].deadline == datetime(2025, 1, 15, 18, tzinfo=UTC)
        params = seen[0].url.params
        assert params["start"] == start.isoformat()
        assert params["exclude_status"] == "completed"

    async def test_missing_task_is_none(self, directory_settings) -> None:
        async with HttpTaskDirectory(directory_settings, transport=_transport({}, [])) as tasks:
            assert await tasks.get_task("gone") is None
