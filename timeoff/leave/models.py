"""Leave ORM models: LeaveType, Leave, Comment."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from timeoff.common.constants import DayPart, LeaveStatus
from timeoff.common.types import IntEnumType
from timeoff.company.models import utcnow
from timeoff.database import Base

_day_part_type = sa.Enum(
    DayPart,
    name="day_part",
    native_enum=False,
    values_callable=lambda e: [m.value for m in e],
    length=16,
)


class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "name", name="uq_leave_type_company_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("companies.id"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    color: Mapped[str] = mapped_column(sa.String(20), default="#22AA66", nullable=False)
    use_allowance: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    annual_allowance: Mapped[int] = mapped_column(sa.Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )


class Leave(Base):
    __tablename__ = "leaves"
    __table_args__ = (
        sa.CheckConstraint("date_end >= date_start", name="ck_leave_date_range"),
        sa.Index("ix_leaves_user_dates", "user_id", "date_start", "date_end"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("users.id"), nullable=False,
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_types.id"), nullable=False,
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("users.id"),
    )
    status: Mapped[LeaveStatus] = mapped_column(
        IntEnumType(LeaveStatus), default=LeaveStatus.new, nullable=False,
    )
    date_start: Mapped[date] = mapped_column(sa.Date, nullable=False)
    day_part_start: Mapped[DayPart] = mapped_column(
        _day_part_type, default=DayPart.all_day, nullable=False,
    )
    date_end: Mapped[date] = mapped_column(sa.Date, nullable=False)
    day_part_end: Mapped[DayPart] = mapped_column(
        _day_part_type, default=DayPart.all_day, nullable=False,
    )
    employee_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    decided_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )

    def overlaps(self, start: date, end: date) -> bool:
        return self.date_start <= end and self.date_end >= start


class Comment(Base):
    """Free-text note on a leave. Never drives the lifecycle."""

    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("companies.id"), nullable=False,
    )
    leave_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leaves.id"), nullable=False, index=True,
    )
    by_user_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("users.id"), nullable=False,
    )
    comment: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
