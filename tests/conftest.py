"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("LOG_JSON", "false")

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from timeoff.common.constants import CompanyMode, DayPart, LeaveStatus
from timeoff.config import settings
from timeoff.database import Base, commit, get_db
from timeoff.main import create_app

# Import ALL model modules so every table is on Base.metadata
import timeoff.allowance.models  # noqa: F401
import timeoff.calendar.models  # noqa: F401
import timeoff.company.models  # noqa: F401
import timeoff.leave.models  # noqa: F401
import timeoff.notifications.models  # noqa: F401
import timeoff.schedule.models  # noqa: F401

from timeoff.company.models import Company, Department, User
from timeoff.leave.models import Leave, LeaveType
from timeoff.notifications.service import LogTransport, set_transports


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from timeoff.common.rate_limit import limiter
    limiter.reset()
    yield


@pytest.fixture(autouse=True)
def _reset_transports():
    """Tests may swap notification transports; put the default back."""
    yield
    set_transports([LogTransport()])


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await commit(session)
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_company(
    *,
    name: str = "Acme Ltd",
    carry_over: int = 0,
    mode: CompanyMode = CompanyMode.normal,
    tz: str = "Europe/London",
) -> Company:
    return Company(
        id=uuid.uuid4(),
        name=name,
        timezone=tz,
        mode=mode,
        date_format="%Y-%m-%d",
        carry_over=carry_over,
    )


def _make_department(company: Company, *, name: str = "Sales") -> Department:
    return Department(id=uuid.uuid4(), company_id=company.id, name=name)


def _make_user(
    company: Company,
    department: Department,
    *,
    name: str = "Jane",
    lastname: str = "Doe",
    email: Optional[str] = None,
    start_date: date = date(2020, 1, 1),
    end_date: Optional[date] = None,
    is_admin: bool = False,
    auto_approve: bool = False,
) -> User:
    return User(
        id=uuid.uuid4(),
        company_id=company.id,
        department_id=department.id,
        email=email or f"{name}.{lastname}.{uuid.uuid4().hex[:6]}@acme.test".lower(),
        name=name,
        lastname=lastname,
        start_date=start_date,
        end_date=end_date,
        is_admin=is_admin,
        auto_approve=auto_approve,
    )


def _make_leave_type(
    company: Company,
    *,
    name: str = "Holiday",
    annual_allowance: int = 20,
    use_allowance: bool = True,
) -> LeaveType:
    return LeaveType(
        id=uuid.uuid4(),
        company_id=company.id,
        name=name,
        color="#22AA66",
        use_allowance=use_allowance,
        annual_allowance=annual_allowance,
    )


def _make_leave(
    user: User,
    leave_type: LeaveType,
    date_start: date,
    date_end: date,
    *,
    status: LeaveStatus = LeaveStatus.approved,
    approver: Optional[User] = None,
    day_part_start: DayPart = DayPart.all_day,
    day_part_end: DayPart = DayPart.all_day,
) -> Leave:
    return Leave(
        id=uuid.uuid4(),
        user_id=user.id,
        leave_type_id=leave_type.id,
        approver_id=approver.id if approver else None,
        status=status,
        date_start=date_start,
        day_part_start=day_part_start,
        date_end=date_end,
        day_part_end=day_part_end,
        created_at=datetime.now(timezone.utc),
    )


@dataclass
class Org:
    company: Company
    sales: Department
    management: Department
    admin: User
    manager: User
    employee: User
    holiday: LeaveType
    sick: LeaveType


async def _seed_org(db: AsyncSession, **company_kwargs) -> Org:
    """Company with an admin, a Sales manager and one Sales employee.

    Holiday (20 days, deducted) and Sick (not deducted) leave types. No
    schedule rows: the resolver creates the Mon–Fri default on first use.
    """
    company = _make_company(**company_kwargs)
    db.add(company)
    await db.flush()

    management = _make_department(company, name="Management")
    sales = _make_department(company, name="Sales")
    db.add_all([management, sales])
    await db.flush()

    admin = _make_user(company, management, name="Ada", lastname="Admin", is_admin=True)
    manager = _make_user(company, sales, name="Mark", lastname="Manager")
    employee = _make_user(company, sales, name="Jane", lastname="Doe")
    db.add_all([admin, manager, employee])
    await db.flush()

    management.manager_id = admin.id
    sales.manager_id = manager.id

    holiday = _make_leave_type(company, name="Holiday", annual_allowance=20)
    sick = _make_leave_type(company, name="Sick", annual_allowance=0, use_allowance=False)
    db.add_all([holiday, sick])
    await db.commit()

    return Org(
        company=company,
        sales=sales,
        management=management,
        admin=admin,
        manager=manager,
        employee=employee,
        holiday=holiday,
        sick=sick,
    )


@pytest.fixture
async def org(db) -> Org:
    return await _seed_org(db)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(user_id: uuid.UUID, expired: bool = False) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
