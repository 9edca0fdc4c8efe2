"""Entitlement engine — allowance, consumption and remaining balance.

    allowance = prorated base + carried over + Σ adjustments
    consumed  = Σ weights of expanded day units of counted leaves in the year
    remaining = allowance - consumed        (may be negative)

The arithmetic lives in ``calculate_balance`` and only needs preloaded
rows, so bulk callers (team view, reports) load once and compute for many
employees without touching the session again.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.allowance.models import AllowanceAdjustment
from timeoff.allowance.schemas import AdjustmentCreate, AllowanceBreakdown
from timeoff.auth.permissions import ensure_can_manage
from timeoff.common.constants import COUNTED_STATUSES
from timeoff.common.exceptions import (
    ForbiddenException,
    LeaveTypeMismatch,
    NotFoundException,
)
from timeoff.company.models import Company, User
from timeoff.leave.expander import expand
from timeoff.leave.models import Leave, LeaveType
from timeoff.schedule.service import ScheduleCache, ScheduleResolver, WorkCalendar

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
_HALF_STEP = Decimal("1")


# ═════════════════════════════════════════════════════════════════════
# Pure arithmetic
# ═════════════════════════════════════════════════════════════════════


def year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def round_half_day(value: Decimal) -> Decimal:
    """Round to the nearest 0.5."""
    return (value * 2).quantize(_HALF_STEP, rounding=ROUND_HALF_UP) / 2


def prorate(base: Decimal, user: User, year: int) -> Decimal:
    """Scale *base* by the share of *year* the user was employed."""
    first, last = year_bounds(year)
    active_from = max(first, user.start_date)
    active_to = min(last, user.end_date) if user.end_date else last
    if active_from > active_to:
        return ZERO
    days_in_year = (last - first).days + 1
    active_days = (active_to - active_from).days + 1
    if active_days == days_in_year:
        return base
    return round_half_day(base * active_days / days_in_year)


def consumed_days(
    leaves: Iterable[Leave],
    calendar: WorkCalendar,
    year: int,
) -> Decimal:
    """Σ day-unit weights inside *year* of the leaves in a counted status."""
    first, last = year_bounds(year)
    total = ZERO
    for leave in leaves:
        if leave.status not in COUNTED_STATUSES:
            continue
        if not leave.overlaps(first, last):
            continue
        total += expand(leave, calendar, window_start=first, window_end=last).total()
    return total


@dataclass
class BalanceInputs:
    """Rows ``calculate_balance`` needs, preloaded for a set of users."""

    year: int
    leaves: dict[tuple[uuid.UUID, uuid.UUID], list[Leave]] = field(
        default_factory=lambda: defaultdict(list)
    )
    adjustments: dict[tuple[uuid.UUID, uuid.UUID, int], Decimal] = field(
        default_factory=lambda: defaultdict(Decimal)
    )

    def leaves_of(self, user_id: uuid.UUID, leave_type_id: uuid.UUID) -> list[Leave]:
        return self.leaves.get((user_id, leave_type_id), [])

    def adjustment(self, user_id: uuid.UUID, leave_type_id: uuid.UUID, year: int) -> Decimal:
        return self.adjustments.get((user_id, leave_type_id, year), ZERO)


def calculate_balance(
    user: User,
    leave_type: LeaveType,
    year: int,
    *,
    carry_over_cap: int,
    calendar: WorkCalendar,
    inputs: BalanceInputs,
) -> AllowanceBreakdown:
    if leave_type.company_id != user.company_id:
        raise LeaveTypeMismatch(leave_type.id)

    base = Decimal(leave_type.annual_allowance)
    leaves = inputs.leaves_of(user.id, leave_type.id)
    prorated = prorate(base, user, year)
    adjustments = inputs.adjustment(user.id, leave_type.id, year)
    consumed = consumed_days(leaves, calendar, year)

    carried = ZERO
    prev_first, prev_last = year_bounds(year - 1)
    if (
        leave_type.use_allowance
        and carry_over_cap > 0
        and user.is_active_between(prev_first, prev_last)
    ):
        unused = (
            prorate(base, user, year - 1)
            + inputs.adjustment(user.id, leave_type.id, year - 1)
            - consumed_days(leaves, calendar, year - 1)
        )
        carried = min(max(unused, ZERO), Decimal(carry_over_cap))

    allowance = prorated + carried + adjustments
    return AllowanceBreakdown(
        user_id=user.id,
        leave_type_id=leave_type.id,
        year=year,
        base=base,
        prorated=prorated,
        carried_over=carried,
        adjustments=adjustments,
        allowance=allowance,
        consumed=consumed,
        remaining=allowance - consumed,
    )


# ═════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════


class AllowanceService:
    """Async entitlement operations."""

    @staticmethod
    async def load_inputs(
        db: AsyncSession,
        user_ids: Iterable[uuid.UUID],
        year: int,
        *,
        leave_type_ids: Optional[Iterable[uuid.UUID]] = None,
    ) -> BalanceInputs:
        """Leaves and adjustments for *year* and the year before it."""
        user_ids = list(user_ids)
        inputs = BalanceInputs(year=year)
        if not user_ids:
            return inputs

        first, _ = year_bounds(year - 1)
        _, last = year_bounds(year)
        leave_q = select(Leave).where(
            Leave.user_id.in_(user_ids),
            Leave.date_start <= last,
            Leave.date_end >= first,
        )
        adj_q = (
            select(
                AllowanceAdjustment.user_id,
                AllowanceAdjustment.leave_type_id,
                AllowanceAdjustment.year,
                sa.func.sum(AllowanceAdjustment.delta),
            )
            .where(
                AllowanceAdjustment.user_id.in_(user_ids),
                AllowanceAdjustment.year.in_([year - 1, year]),
            )
            .group_by(
                AllowanceAdjustment.user_id,
                AllowanceAdjustment.leave_type_id,
                AllowanceAdjustment.year,
            )
        )
        if leave_type_ids is not None:
            type_ids = list(leave_type_ids)
            leave_q = leave_q.where(Leave.leave_type_id.in_(type_ids))
            adj_q = adj_q.where(AllowanceAdjustment.leave_type_id.in_(type_ids))

        for leave in (await db.execute(leave_q.order_by(Leave.date_start))).scalars():
            inputs.leaves[(leave.user_id, leave.leave_type_id)].append(leave)
        for user_id, leave_type_id, adj_year, total in (await db.execute(adj_q)).all():
            inputs.adjustments[(user_id, leave_type_id, adj_year)] = Decimal(total or 0)
        return inputs

    @staticmethod
    async def compute_balance(
        db: AsyncSession,
        user: User,
        leave_type: LeaveType,
        year: int,
        cache: Optional[ScheduleCache] = None,
    ) -> AllowanceBreakdown:
        """Balance of *user* for *leave_type* in *year*, recomputed from rows."""
        if leave_type.company_id != user.company_id:
            raise LeaveTypeMismatch(leave_type.id)

        company = await db.get(Company, user.company_id)
        calendar = await ScheduleResolver.resolve(db, user, cache)
        inputs = await AllowanceService.load_inputs(
            db, [user.id], year, leave_type_ids=[leave_type.id],
        )
        return calculate_balance(
            user,
            leave_type,
            year,
            carry_over_cap=company.carry_over if company else 0,
            calendar=calendar,
            inputs=inputs,
        )

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
        year: int,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> list[AllowanceBreakdown]:
        """Balances for every leave type of the user's company (or just one)."""
        user = await db.get(User, user_id)
        if user is None or user.company_id != actor.company_id:
            raise NotFoundException("User", user_id)
        if user.id != actor.id:
            await ensure_can_manage(db, actor, user)

        query = select(LeaveType).where(LeaveType.company_id == user.company_id)
        if leave_type_id is not None:
            leave_type = await db.get(LeaveType, leave_type_id)
            if leave_type is None or leave_type.company_id != user.company_id:
                raise LeaveTypeMismatch(leave_type_id)
            query = query.where(LeaveType.id == leave_type_id)
        leave_types = (await db.execute(query.order_by(LeaveType.name))).scalars().all()

        company = await db.get(Company, user.company_id)
        calendar = await ScheduleResolver.resolve(db, user)
        inputs = await AllowanceService.load_inputs(db, [user.id], year)
        return [
            calculate_balance(
                user,
                lt,
                year,
                carry_over_cap=company.carry_over,
                calendar=calendar,
                inputs=inputs,
            )
            for lt in leave_types
        ]

    @staticmethod
    async def add_adjustment(
        db: AsyncSession,
        actor: User,
        data: AdjustmentCreate,
    ) -> AllowanceAdjustment:
        """Record an immutable, signed correction. Admins only."""
        if not actor.is_admin:
            raise ForbiddenException("Only administrators can adjust allowances.")

        user = await db.get(User, data.user_id)
        if user is None or user.company_id != actor.company_id:
            raise NotFoundException("User", data.user_id)
        leave_type = await db.get(LeaveType, data.leave_type_id)
        if leave_type is None or leave_type.company_id != actor.company_id:
            raise LeaveTypeMismatch(data.leave_type_id)

        adjustment = AllowanceAdjustment(
            user_id=user.id,
            leave_type_id=leave_type.id,
            year=data.year,
            delta=data.delta,
            reason=data.reason,
            created_by=actor.id,
        )
        db.add(adjustment)
        await db.flush()
        logger.info(
            "Allowance adjustment %s of %s days for user %s (%s, %s) by %s",
            adjustment.id, data.delta, user.id, leave_type.name, data.year, actor.id,
        )
        return adjustment
