"""Allowance ORM model: AllowanceAdjustment (append-only)."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from timeoff.company.models import utcnow
from timeoff.database import Base


class AllowanceAdjustment(Base):
    """Signed manual correction to one user's entitlement for a year.

    Rows are never updated; a wrong adjustment is fixed by adding another.
    """

    __tablename__ = "allowance_adjustments"
    __table_args__ = (
        sa.Index("ix_adjustment_user_type_year", "user_id", "leave_type_id", "year"),
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
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    delta: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("users.id"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
