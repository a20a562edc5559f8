"""Shared fixtures: a throwaway SQLite database per test, a hand-driven clock
and fakes for the attendance service and the Telegram log chat."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from attendbot.db.base import Base
from attendbot.db import models  # noqa: F401
from attendbot.db.models import Course
from attendbot.db.session import unit_of_work
from attendbot.engine.engine import ConversationEngine
from attendbot.services.attendance.client import AttendanceResult, StudentAttendance
from attendbot.services.catalog.service import CourseCatalog
from attendbot.services.entitlements.service import EntitlementService
from attendbot.services.referrals.service import ReferralService

T0 = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeAttendance:
    """Stands in for AttendanceClient; records every lookup."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.result = AttendanceResult(
            True, data=StudentAttendance(name="Asha Patel", attended=40, total=50, percentage=80.0)
        )
        self.error: Exception | None = None

    async def fetch_attendance(self, course_external_id: str, phone_number: str) -> AttendanceResult:
        self.calls.append((course_external_id, phone_number))
        if self.error is not None:
            raise self.error
        return self.result


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[str] = []
        self.queries: list[str] = []

    async def log_event(self, text: str) -> None:
        self.events.append(text)

    async def forward_query(self, text: str) -> bool:
        self.queries.append(text)
        return True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(sessionmaker):
    async with unit_of_work(sessionmaker) as s:
        yield s


@pytest.fixture
def entitlements(clock) -> EntitlementService:
    return EntitlementService(clock=clock)


@pytest.fixture
def referrals(entitlements, clock) -> ReferralService:
    return ReferralService(entitlements, clock=clock)


@pytest.fixture
def attendance() -> FakeAttendance:
    return FakeAttendance()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def courses(sessionmaker) -> list[Course]:
    rows = [
        Course(ordinal=1, name="FYBSC CS - Division A", external_id="101"),
        Course(ordinal=2, name="FYBSC IT - Division A", external_id="102"),
        Course(ordinal=3, name="SYBAF - Division B", external_id="203"),
    ]
    async with unit_of_work(sessionmaker) as s:
        for row in rows:
            await s.put(row)
    return rows


@pytest.fixture
def engine(sessionmaker, attendance, sink, entitlements, referrals) -> ConversationEngine:
    return ConversationEngine(
        attendance=attendance,
        sink=sink,
        entitlements=entitlements,
        referrals=referrals,
        catalog=CourseCatalog(per_page=2),
        uow=lambda: unit_of_work(sessionmaker),
        bot_username="attend_check_bot",
    )
