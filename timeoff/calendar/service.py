"""Team view aggregator — per employee, per day leave matrix.

Composition of the schedule resolver, the date-range expander and
(optionally) the entitlement engine across the employees an actor may see.

All rows are loaded up front on the request session; the per-employee
composition is pure and runs through ``bounded_gather`` so result order
follows the employee order.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.allowance.service import AllowanceService, BalanceInputs, calculate_balance
from timeoff.auth.permissions import managed_users
from timeoff.calendar.schemas import (
    DayRecord,
    EmployeeBrief,
    EmployeeRow,
    EmployeeStatistics,
    TeamViewOut,
)
from timeoff.common.concurrency import bounded_gather
from timeoff.common.constants import COUNTED_STATUSES
from timeoff.common.exceptions import ValidationException
from timeoff.company.models import Company, User
from timeoff.config import settings
from timeoff.leave.expander import expand
from timeoff.leave.models import Leave, LeaveType
from timeoff.schedule.service import ScheduleCache, ScheduleResolver, WorkCalendar

logger = logging.getLogger(__name__)

MAX_VIEW_DAYS = 366


def _validate_window(start: date, end: date) -> None:
    if end < start:
        raise ValidationException({"end": ["end must be on or after start."]})
    if (end - start).days >= MAX_VIEW_DAYS:
        raise ValidationException(
            {"end": [f"The window cannot exceed {MAX_VIEW_DAYS} days."]}
        )


def compose_days(
    calendar: WorkCalendar,
    leaves: Sequence[Leave],
    start: date,
    end: date,
) -> list[DayRecord]:
    """One ``DayRecord`` per date in [start, end] for a single employee."""
    records: dict[date, DayRecord] = {}
    day = start
    while day <= end:
        records[day] = DayRecord(date=day, is_working_day=calendar.is_working_day(day))
        day += timedelta(days=1)

    for leave in leaves:
        for unit in expand(leave, calendar, window_start=start, window_end=end):
            record = records[unit.date]
            record.is_leave_morning = record.is_leave_morning or unit.is_morning_off
            record.is_leave_afternoon = record.is_leave_afternoon or unit.is_afternoon_off
            if record.leave_id is None:
                record.leave_id = leave.id
                record.leave_type_id = leave.leave_type_id
                record.status = leave.status
    return list(records.values())


def compose_statistics(
    user: User,
    leaves: Sequence[Leave],
    calendar: WorkCalendar,
    start: date,
    end: date,
    *,
    leave_types: Sequence[LeaveType],
    carry_over_cap: int,
    inputs: BalanceInputs,
) -> EmployeeStatistics:
    types_by_id = {lt.id: lt for lt in leave_types}
    breakdown: dict[str, Decimal] = defaultdict(Decimal)
    deducted = Decimal("0")
    for leave in leaves:
        leave_type = types_by_id.get(leave.leave_type_id)
        if leave_type is None:
            continue
        days = expand(leave, calendar, window_start=start, window_end=end).total()
        breakdown[leave_type.name] += days
        if leave_type.use_allowance:
            deducted += days

    remaining = {
        lt.name: calculate_balance(
            user,
            lt,
            inputs.year,
            carry_over_cap=carry_over_cap,
            calendar=calendar,
            inputs=inputs,
        ).remaining
        for lt in leave_types
    }
    return EmployeeStatistics(
        leave_type_breakdown=dict(breakdown),
        deducted_days=deducted,
        remaining=remaining,
    )


class TeamViewService:
    """Async team view operations."""

    @staticmethod
    async def build_view(
        db: AsyncSession,
        actor: User,
        start: date,
        end: date,
        *,
        department_id: Optional[uuid.UUID] = None,
        with_statistics: bool = False,
        cache: Optional[ScheduleCache] = None,
    ) -> TeamViewOut:
        """Rows for everyone *actor* may see: the company for admins, the
        supervised departments plus self for supervisors, self otherwise.
        """
        _validate_window(start, end)
        users = await managed_users(db, actor, department_id=department_id)
        rows = await TeamViewService.build_rows(
            db, users, start, end, with_statistics=with_statistics, cache=cache,
        )
        return TeamViewOut(start=start, end=end, rows=rows)

    @staticmethod
    async def load_leaves(
        db: AsyncSession,
        user_ids: Sequence[uuid.UUID],
        start: date,
        end: date,
    ) -> dict[uuid.UUID, list[Leave]]:
        """Active leaves overlapping [start, end], grouped by user."""
        by_user: dict[uuid.UUID, list[Leave]] = defaultdict(list)
        if not user_ids:
            return by_user
        result = await db.execute(
            select(Leave)
            .where(
                Leave.user_id.in_(list(user_ids)),
                Leave.status.in_(list(COUNTED_STATUSES)),
                Leave.date_start <= end,
                Leave.date_end >= start,
            )
            .order_by(Leave.date_start, Leave.created_at)
        )
        for leave in result.scalars():
            by_user[leave.user_id].append(leave)
        return by_user

    @staticmethod
    async def build_rows(
        db: AsyncSession,
        users: Sequence[User],
        start: date,
        end: date,
        *,
        with_statistics: bool = False,
        cache: Optional[ScheduleCache] = None,
    ) -> list[EmployeeRow]:
        _validate_window(start, end)
        users = [u for u in users if u.is_active_between(start, end)]
        if not users:
            return []

        cache = cache if cache is not None else ScheduleCache()
        calendars = await ScheduleResolver.resolve_many(db, users, cache)
        user_ids = [u.id for u in users]
        leaves = await TeamViewService.load_leaves(db, user_ids, start, end)

        leave_types: list[LeaveType] = []
        carry_over: dict[uuid.UUID, int] = {}
        inputs: Optional[BalanceInputs] = None
        if with_statistics:
            company_ids = list({u.company_id for u in users})
            leave_types = list((await db.execute(
                select(LeaveType)
                .where(LeaveType.company_id.in_(company_ids))
                .order_by(LeaveType.name)
            )).scalars().all())
            companies = (await db.execute(
                select(Company).where(Company.id.in_(company_ids))
            )).scalars().all()
            carry_over = {c.id: c.carry_over for c in companies}
            inputs = await AllowanceService.load_inputs(db, user_ids, start.year)

        async def _row(user: User) -> EmployeeRow:
            calendar = calendars[user.id]
            user_leaves = leaves.get(user.id, [])
            statistics = None
            if with_statistics:
                statistics = compose_statistics(
                    user,
                    user_leaves,
                    calendar,
                    start,
                    end,
                    leave_types=[lt for lt in leave_types if lt.company_id == user.company_id],
                    carry_over_cap=carry_over.get(user.company_id, 0),
                    inputs=inputs,
                )
            return EmployeeRow(
                user=EmployeeBrief.model_validate(user),
                days=compose_days(calendar, user_leaves, start, end),
                statistics=statistics,
            )

        rows = await bounded_gather(users, _row, settings.FANOUT_CONCURRENCY)
        logger.debug("Team view %s..%s composed for %d employees", start, end, len(rows))
        return rows
