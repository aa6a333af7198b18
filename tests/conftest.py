"""
Shared test fixtures for the attendance engine test suite.

Every test gets its own in-memory aiosqlite database; the app's DB session,
auth guards and provider client are swapped out through dependency overrides.
"""

import os
from collections.abc import AsyncGenerator, Callable
from datetime import date

import pytest

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["TIMEZONE"] = "Asia/Kolkata"
os.environ["SCHEDULER_ENABLED"] = "false"

import httpx
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from attendance_engine.api.v1.deps import (get_current_active_user, get_db,
                                           get_provider_client, require_admin,
                                           require_manager)
from attendance_engine.db.base import Base
from attendance_engine.main import app
from attendance_engine.models.employee import Employee
from attendance_engine.models.identity_mapping import IdentityMapping
from attendance_engine.models.user import User
from attendance_engine.services.policy import AttendancePolicy
from attendance_engine.services.provider import ProviderClient


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Raw database session for seeding and direct queries in tests."""
    async with session_factory() as session:
        yield session


# ── Provider stub ───────────────────────────────────────────────────
@pytest.fixture
def provider_handler() -> dict:
    """Mutable holder for the MockTransport handler used by API tests."""
    return {"handler": lambda request: httpx.Response(200, json={"Error": False, "InOutPunchData": []})}


# ── App client ──────────────────────────────────────────────────────
_ADMIN = User(id=1, email="admin@example.com", is_active=True, role="admin")


async def _override_current_user() -> User:
    return _ADMIN


@pytest.fixture
async def async_client(session_factory, provider_handler) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the app, logged in as an admin."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _override_provider() -> AsyncGenerator[ProviderClient, None]:
        transport = httpx.MockTransport(lambda request: provider_handler["handler"](request))
        async with ProviderClient(
            base_url="https://provider.test/api",
            corp_id="corp",
            username="user",
            password="secret",
            transport=transport,
        ) as client:
            yield client

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_provider_client] = _override_provider
    app.dependency_overrides[get_current_active_user] = _override_current_user
    app.dependency_overrides[require_admin] = _override_current_user
    app.dependency_overrides[require_manager] = _override_current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Domain helpers ──────────────────────────────────────────────────
@pytest.fixture
def policy() -> AttendancePolicy:
    """The default rules: 10:30 start, 15 min grace, 17:00 auto checkout."""
    return AttendancePolicy()


@pytest.fixture
def make_employee(db_session: AsyncSession) -> Callable:
    async def _make(name: str, code: str | None = None, **kwargs) -> Employee:
        employee = Employee(name=name, **kwargs)
        db_session.add(employee)
        await db_session.commit()
        await db_session.refresh(employee)
        if code is not None:
            db_session.add(
                IdentityMapping(
                    external_code=code,
                    external_name=name,
                    employee_id=employee.id,
                    match_score=1.0,
                    match_method="manual",
                )
            )
            await db_session.commit()
        return employee

    return _make


def _provider_row(code: str, day: date, in_time: str, out_time: str = "--:--", **extra) -> dict:
    row = {
        "Empcode": code,
        "Name": extra.pop("Name", f"Employee {code}"),
        "INTime": in_time,
        "OUTTime": out_time,
        "WorkTime": "00:00",
        "OverTime": "00:00",
        "BreakTime": "00:00",
        "Status": "P",
        "DateString": day.strftime("%d/%m/%Y"),
        "Remark": "",
        "Erl_Out": "00:00",
        "Late_In": "00:00",
    }
    row.update(extra)
    return row


@pytest.fixture
def provider_row() -> Callable[..., dict]:
    """Builds a provider in/out row as the API sends it."""
    return _provider_row
