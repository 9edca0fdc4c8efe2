"""Company ORM models: Company, Department, DepartmentSupervisor, User.

Models carry no ORM relationships; services load related rows with
explicit queries so nothing lazy-loads under the async session.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from timeoff.common.constants import DEFAULT_TIMEZONE, CompanyMode
from timeoff.common.types import IntEnumType
from timeoff.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Company
# ═════════════════════════════════════════════════════════════════════


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    timezone: Mapped[str] = mapped_column(
        sa.String(64), default=DEFAULT_TIMEZONE, nullable=False,
    )
    mode: Mapped[CompanyMode] = mapped_column(
        IntEnumType(CompanyMode), default=CompanyMode.normal, nullable=False,
    )
    date_format: Mapped[str] = mapped_column(
        sa.String(20), default="%Y-%m-%d", nullable=False,
    )
    # Maximum days carried from one year into the next.
    carry_over: Mapped[int] = mapped_column(sa.Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )

    @property
    def zone(self) -> ZoneInfo:
        """Company time zone; the default zone when the stored name is unknown."""
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo(DEFAULT_TIMEZONE)

    def today(self) -> date:
        return datetime.now(self.zone).date()


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class Department(Base):
    __tablename__ = "departments"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "name", name="uq_department_company_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("companies.id"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid,
        sa.ForeignKey("users.id", name="fk_department_manager", use_alter=True),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )


class DepartmentSupervisor(Base):
    """Secondary supervisor of a department (besides its manager)."""

    __tablename__ = "department_supervisors"
    __table_args__ = (
        sa.UniqueConstraint("department_id", "user_id", name="uq_department_supervisor"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    department_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("departments.id"), nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )


# ═════════════════════════════════════════════════════════════════════
# User (employee)
# ═════════════════════════════════════════════════════════════════════


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("companies.id"), nullable=False, index=True,
    )
    department_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("departments.id"), nullable=False, index=True,
    )
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    lastname: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # NULL while still employed
    end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_admin: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    auto_approve: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.lastname}"

    def is_active_between(self, start: date, end: date) -> bool:
        if self.start_date > end:
            return False
        return self.end_date is None or self.end_date >= start
