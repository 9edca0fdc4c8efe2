"""Schedule ORM models: Schedule (working weekdays), BankHoliday."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from timeoff.company.models import utcnow
from timeoff.database import Base

WEEKDAY_COLUMNS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class Schedule(Base):
    """Working weekdays, scoped to a company (shared) or to one user.

    Exactly one of ``company_id`` / ``user_id`` is set, so the unique
    indexes on both columns allow one company-wide row per company and one
    personal row per user (NULLs never collide).
    """

    __tablename__ = "schedules"
    __table_args__ = (
        sa.CheckConstraint(
            "(company_id IS NULL) <> (user_id IS NULL)",
            name="ck_schedule_single_scope",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("companies.id"), index=True, unique=True,
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("users.id"), index=True, unique=True,
    )
    monday: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    tuesday: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    wednesday: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    thursday: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    friday: Mapped[bool] = mapped_column(sa.Boolean, default=True, nullable=False)
    saturday: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    sunday: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )

    @property
    def is_user_specific(self) -> bool:
        return self.user_id is not None

    @property
    def working_weekdays(self) -> frozenset[int]:
        """Monday=0 … Sunday=6."""
        return frozenset(
            idx for idx, col in enumerate(WEEKDAY_COLUMNS) if getattr(self, col)
        )


class BankHoliday(Base):
    __tablename__ = "bank_holidays"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "date", name="uq_bank_holiday_company_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("companies.id"), nullable=False, index=True,
    )
    day: Mapped[date] = mapped_column("date", sa.Date, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
