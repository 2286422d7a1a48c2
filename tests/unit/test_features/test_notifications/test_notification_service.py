"""Tests for the history, test-message and retention operations."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from notify_service.core.exceptions import (
    BadGatewayException,
    BadRequestException,
    NotFoundException,
    ServiceUnavailableException,
)
from notify_service.features.notifications.messages import TEST_MESSAGE
from notify_service.features.notifications.models import NotificationKind, QueueState
from notify_service.features.notifications.service import NotificationService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def _seed(session: AsyncSession, repository, clock, count: int, user_id: str = "user-1") -> None:
    for i in range(count):
        await repository.enqueue(
            session,
            user_id=user_id,
            kind=NotificationKind.REMINDER,
            related_task_id=f"t{i}",
            payload=f"reminder {i}",
            scheduled_for=clock.now,
            created_at=clock.now - timedelta(minutes=count - i),
        )
    await session.commit()


class TestHistory:
    async def test_paginates_newest_first(self, components, db_session, queue_repository, clock) -> None:
        await _seed(db_session, queue_repository, clock, 5)
        await _seed(db_session, queue_repository, clock, 2, user_id="user-2")

        page = await components.service.get_history(db_session, "user-1", page=2, limit=2)

        assert page.message == "Notification history fetched successfully"
        assert [n.related_task_id for n in page.notifications] == ["t2", "t1"]
        assert page.pagination.model_dump() == {
            "current_page": 2,
            "total_pages": 3,
            "total_count": 5,
            "limit": 2,
        }

    async def test_includes_every_state(self, components, db_session, queue_repository, clock) -> None:
        await _seed(db_session, queue_repository, clock, 3)
        entries = await queue_repository.list_for_user(db_session, "user-1")
        entries.items[0].state = QueueState.SENT
        entries.items[1].state = QueueState.FAILED
        await db_session.commit()

        page = await components.service.get_history(db_session, "user-1")

        assert {n.state for n in page.notifications} == {"pending", "sent", "failed"}

    async def test_empty_history(self, components, db_session) -> None:
        page = await components.service.get_history(db_session, "nobody")

        assert page.notifications == []
        assert page.pagination.total_count == 0
        assert page.pagination.total_pages == 0


class TestSendTest:
    async def test_sends_fixed_message(self, components, users, twilio) -> None:
        users.add()
        twilio.queue(201, json={"sid": "SM-test"})

        response = await components.service.send_test("user-1")

        assert response.message_sid == "SM-test"
        assert twilio.form()["Body"] == TEST_MESSAGE

    async def test_unknown_user(self, components) -> None:
        with pytest.raises(NotFoundException):
            await components.service.send_test("ghost")

    async def test_unverified_phone(self, components, users, twilio) -> None:
        users.add(phone_verified=False)

        with pytest.raises(BadRequestException):
            await components.service.send_test("user-1")

        assert twilio.requests == []

    async def test_gateway_not_configured(self, users, unconfigured_gateway, notification_settings) -> None:
        users.add()
        service = NotificationService(users=users, gateway=unconfigured_gateway, settings=notification_settings)

        with pytest.raises(ServiceUnavailableException):
            await service.send_test("user-1")

    async def test_provider_rejection(self, components, users, twilio) -> None:
        users.add()
        twilio.queue(400, json={"code": 21608, "message": "unverified"})

        with pytest.raises(BadGatewayException) as exc_info:
            await components.service.send_test("user-1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.extra == {"permanent": True}
        assert "trial account" in exc_info.value.detail


class TestPurge:
    async def test_deletes_entries_past_retention(self, components, db_session, queue_repository, clock) -> None:
        for days, state in ((45, QueueState.SENT), (31, QueueState.PENDING), (29, QueueState.FAILED)):
            entry = await queue_repository.enqueue(
                db_session,
                user_id="user-1",
                kind=NotificationKind.REMINDER,
                payload=f"{days} days old",
                scheduled_for=clock.now,
                created_at=clock.now - timedelta(days=days),
            )
            entry.state = state
        await db_session.commit()

        result = await components.service.purge_expired(db_session)

        assert result.deleted == 2
        assert result.cutoff == clock.now - timedelta(days=30)
        remaining = await queue_repository.list_for_user(db_session, "user-1")
        assert [e.payload for e in remaining.items] == ["29 days old"]
