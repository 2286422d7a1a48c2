"""Pytest configuration and shared fixtures.

Organization:
    - Database Fixtures: in-memory SQLite engine, session and session factory
    - Directory Fixtures: in-memory user and task directories
    - Gateway Fixtures: Twilio stub behind ``httpx.MockTransport``
    - Engine Fixtures: fixed clock, settings and wired components
    - Application Fixtures: FastAPI app and HTTP client

The notification engine only talks to the outside world through the
directories, the gateway and the database, so every test runs without
network access or external infrastructure.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from notify_service.features.notifications.schemas import (
        TaskSnapshot,
        UserNotificationProfile,
    )

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_ROOT_PATH", "")
os.environ.setdefault("APP_SCHEDULER_ENABLED", "false")
os.environ.setdefault("DB_ENABLED", "false")
os.environ.setdefault("RABBIT_ENABLED", "false")

FIXED_NOW = datetime(2025, 1, 15, 14, 0, tzinfo=UTC)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Create async SQLAlchemy engine with in-memory SQLite.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create async database session with automatic table creation and cleanup."""
    import notify_service.features.notifications.models  # noqa: F401
    from notify_service.core.database import Base

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory(db_session: AsyncSession):
    """Session factory handing out the test session.

    Matches the ``async with session_factory() as session`` shape the
    scheduler, processor and jobs use; the session stays open for the test.
    """

    @asynccontextmanager
    async def factory() -> AsyncGenerator[AsyncSession]:
        yield db_session

    return factory


# ============================================================================
# Directory Fixtures
# ============================================================================


class FakeUserDirectory:
    """In-memory user directory."""

    def __init__(self) -> None:
        self.profiles: dict[str, UserNotificationProfile] = {}

    def add(self, user_id: str = "user-1", **overrides: Any) -> UserNotificationProfile:
        from notify_service.features.notifications.schemas import UserNotificationProfile

        fields: dict[str, Any] = {
            "user_id": user_id,
            "display_name": "Ada",
            "channel_address": "+15551234567",
            "phone_verified": True,
            "enabled": True,
        }
        fields.update(overrides)
        profile = UserNotificationProfile(**fields)
        self.profiles[user_id] = profile
        return profile

    async def get_user(self, user_id: str) -> UserNotificationProfile | None:
        return self.profiles.get(user_id)

    async def list_users_with_digest_enabled(self) -> list[UserNotificationProfile]:
        return [p for p in self.profiles.values() if p.digest_enabled]


class FakeTaskDirectory:
    """In-memory task directory."""

    def __init__(self) -> None:
        self.tasks: dict[str, TaskSnapshot] = {}

    def add(self, task_id: str = "task-1", user_id: str = "user-1", **overrides: Any) -> TaskSnapshot:
        from notify_service.features.notifications.schemas import TaskSnapshot

        fields: dict[str, Any] = {"id": task_id, "user_id": user_id, "title": "Write report"}
        fields.update(overrides)
        task = TaskSnapshot(**fields)
        self.tasks[task_id] = task
        return task

    async def find_tasks_due_within(self, start: datetime, end: datetime) -> list[TaskSnapshot]:
        return [
            t
            for t in self.tasks.values()
            if t.deadline is not None and start <= t.deadline <= end and t.status != "completed"
        ]

    async def get_task(self, task_id: str) -> TaskSnapshot | None:
        return self.tasks.get(task_id)

    async def list_tasks_for_user(self, user_id: str) -> list[TaskSnapshot]:
        return [t for t in self.tasks.values() if t.user_id == user_id]


@pytest.fixture
def users() -> FakeUserDirectory:
    return FakeUserDirectory()


@pytest.fixture
def tasks() -> FakeTaskDirectory:
    return FakeTaskDirectory()


# ============================================================================
# Gateway Fixtures
# ============================================================================


class TwilioStub:
    """Stand-in for the Twilio Messages endpoint.

    Queued responses are returned in order; once the queue is empty every
    request gets ``default`` (a 201 with a fresh SID unless overridden).
    Queue an exception instance to simulate a transport failure.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.queued: list[httpx.Response | Exception] = []
        self.default: httpx.Response | None = None

    def queue(self, status_code: int = 201, json: dict[str, Any] | None = None) -> None:
        self.queued.append(httpx.Response(status_code, json=json))

    def fail_with(self, status_code: int, json: dict[str, Any] | None = None) -> None:
        self.default = httpx.Response(status_code, json=json or {"message": "error"})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.queued:
            item = self.queued.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        if self.default is not None:
            return httpx.Response(self.default.status_code, content=self.default.content)
        return httpx.Response(201, json={"sid": f"SM{len(self.requests):032d}"})

    def form(self, index: int = -1) -> dict[str, str]:
        """Decoded form body of a recorded request."""
        parsed = parse_qs(self.requests[index].content.decode())
        return {key: values[0] for key, values in parsed.items()}


@pytest.fixture
def twilio() -> TwilioStub:
    return TwilioStub()


@pytest.fixture
def whatsapp_settings():
    from notify_service.core.settings import WhatsAppSettings

    return WhatsAppSettings(
        account_sid="AC123",
        auth_token="secret-token",
        whatsapp_number="whatsapp:+14155238886",
        retry_initial_delay=0,
    )


@pytest.fixture
async def gateway(whatsapp_settings, twilio: TwilioStub):
    from notify_service.features.notifications.gateway import WhatsAppGateway

    gw = WhatsAppGateway(whatsapp_settings, transport=httpx.MockTransport(twilio.handler))
    try:
        yield gw
    finally:
        await gw.close()


@pytest.fixture
async def unconfigured_gateway(twilio: TwilioStub):
    from notify_service.core.settings import WhatsAppSettings
    from notify_service.features.notifications.gateway import WhatsAppGateway

    gw = WhatsAppGateway(
        WhatsAppSettings(account_sid=None, auth_token=None, whatsapp_number=None),
        transport=httpx.MockTransport(twilio.handler),
    )
    try:
        yield gw
    finally:
        await gw.close()


# ============================================================================
# Engine Fixtures
# ============================================================================


class FakeClock:
    """Mutable clock passed wherever the engine asks for "now"."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2025-01-15 14:00 UTC (a Wednesday)."""
    return FakeClock(FIXED_NOW)


@pytest.fixture
def notification_settings():
    from notify_service.core.settings import NotificationSettings

    return NotificationSettings(
        daily_limit=10,
        deferral_hour=8,
        default_timezone="UTC",
        max_attempts=3,
        retry_base_delay_minutes=5,
        frontend_url="https://snaptask.app",
        cron_secret=None,
    )


@pytest.fixture
def queue_repository():
    from notify_service.features.notifications.repository import NotificationQueueRepository

    return NotificationQueueRepository()


@pytest.fixture
async def components(
    session_factory,
    notification_settings,
    users: FakeUserDirectory,
    tasks: FakeTaskDirectory,
    gateway,
    clock: FakeClock,
):
    """Scheduler, processor and service wired around the fakes."""
    from notify_service.features.notifications.container import build_components

    built = build_components(
        session_factory=session_factory,
        settings=notification_settings,
        users=users,
        tasks=tasks,
        gateway=gateway,
        clock=clock,
    )
    try:
        yield built
    finally:
        await built.scheduler.drain()


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
async def app(components, db_session: AsyncSession):
    """FastAPI application with the test components and session wired in.

    The lifespan is not run; components are attached the way it would
    attach them.
    """
    from notify_service.app.main import create_app
    from notify_service.core.dependencies.database import get_db_session

    application = create_app()
    application.state.notifications = components

    async def override_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    application.dependency_overrides[get_db_session] = override_session
    return application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client for the application."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
