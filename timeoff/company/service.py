"""Company service — employee removal and the company summary export."""

from __future__ import annotations

import csv
import io
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.allowance.models import AllowanceAdjustment
from timeoff.auth.permissions import load_supervised_department_ids
from timeoff.calendar.models import UserFeed
from timeoff.calendar.service import TeamViewService
from timeoff.common.concurrency import bounded_gather
from timeoff.common.exceptions import (
    BusinessRuleViolation,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from timeoff.company.models import Company, Department, DepartmentSupervisor, User
from timeoff.company.schemas import (
    CompanySummary,
    SummaryDepartment,
    SummaryLeave,
    SummaryLeaveType,
    SummaryUser,
)
from timeoff.config import settings
from timeoff.leave.expander import expand
from timeoff.leave.models import Comment, Leave, LeaveType
from timeoff.notifications.models import NotificationAudit
from timeoff.schedule.models import Schedule
from timeoff.schedule.service import ScheduleCache, ScheduleResolver

logger = logging.getLogger(__name__)


SUMMARY_CSV_HEADER = (
    "Department",
    "Lastname",
    "Name",
    "Email address",
    "Type of absence",
    "Status",
    "Started at",
    "Ended at",
    "Days",
    "Deducted days",
)


def summary_csv(summary: CompanySummary) -> str:
    """One row per leave, dates in the company's date format."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(SUMMARY_CSV_HEADER)
    for user in summary.users:
        for leave in user.leaves:
            writer.writerow([
                user.department,
                user.lastname,
                user.name,
                user.email,
                leave.leave_type,
                leave.status,
                leave.date_start.strftime(summary.date_format),
                leave.date_end.strftime(summary.date_format),
                leave.days,
                leave.deducted_days,
            ])
    return buffer.getvalue()


class CompanyService:
    """Company-wide admin operations."""

    # ─────────────────────────────────────────────────────────────────
    # Removal
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def remove_user(
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
    ) -> dict[str, int]:
        """Hard-delete an employee and everything that belongs to them.

        Refused for admins and for anyone who still supervises a
        department. Leaves of other employees the user decided are
        re-attributed to *actor* so approved leaves keep an approver.
        Returns the number of rows removed per table.
        """
        if not actor.is_admin:
            raise ForbiddenException("Only company admins can remove employees.")

        target = await db.get(User, user_id)
        if target is None or target.company_id != actor.company_id:
            raise NotFoundException("User", user_id)
        if target.id == actor.id:
            raise BusinessRuleViolation("You cannot remove yourself.")
        if target.is_admin:
            raise BusinessRuleViolation("Cannot remove an administrator.")
        if await load_supervised_department_ids(db, target):
            raise BusinessRuleViolation(
                "Cannot remove a department supervisor; reassign their departments first."
            )

        removed: dict[str, int] = {}
        async with db.begin_nested():
            own_leave_ids = select(Leave.id).where(Leave.user_id == target.id)

            result = await db.execute(
                delete(DepartmentSupervisor).where(DepartmentSupervisor.user_id == target.id)
            )
            removed["department_supervisors"] = result.rowcount

            result = await db.execute(
                delete(Comment).where(
                    or_(
                        Comment.by_user_id == target.id,
                        Comment.leave_id.in_(own_leave_ids),
                    )
                )
            )
            removed["comments"] = result.rowcount

            await db.execute(
                update(Leave)
                .where(Leave.approver_id == target.id, Leave.user_id != target.id)
                .values(approver_id=actor.id)
            )
            result = await db.execute(delete(Leave).where(Leave.user_id == target.id))
            removed["leaves"] = result.rowcount

            result = await db.execute(delete(Schedule).where(Schedule.user_id == target.id))
            removed["schedules"] = result.rowcount

            result = await db.execute(delete(UserFeed).where(UserFeed.user_id == target.id))
            removed["feeds"] = result.rowcount

            await db.execute(
                update(AllowanceAdjustment)
                .where(
                    AllowanceAdjustment.created_by == target.id,
                    AllowanceAdjustment.user_id != target.id,
                )
                .values(created_by=None)
            )
            result = await db.execute(
                delete(AllowanceAdjustment).where(AllowanceAdjustment.user_id == target.id)
            )
            removed["allowance_adjustments"] = result.rowcount

            result = await db.execute(
                delete(NotificationAudit).where(NotificationAudit.user_id == target.id)
            )
            removed["notification_audit"] = result.rowcount

            await db.delete(target)
            await db.flush()

        logger.info(
            "User %s removed from company %s by %s: %s",
            user_id, actor.company_id, actor.id, removed,
        )
        return removed

    # ─────────────────────────────────────────────────────────────────
    # Export
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def export_summary(
        db: AsyncSession,
        actor: User,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> CompanySummary:
        """Departments, leave types and every user with their active leaves.

        Former employees are included. Leaves are those overlapping
        [start, end] (the whole history by default); their day counts cover
        the full leave, not only the part inside the window.
        """
        if not actor.is_admin:
            raise ForbiddenException("Only company admins can export company data.")
        start = start or date.min
        end = end or date.max
        if end < start:
            raise ValidationException({"end_date": ["end_date must be on or after start_date."]})

        company = await db.get(Company, actor.company_id)
        departments = (await db.execute(
            select(Department)
            .where(Department.company_id == company.id)
            .order_by(Department.name)
        )).scalars().all()
        leave_types = (await db.execute(
            select(LeaveType)
            .where(LeaveType.company_id == company.id)
            .order_by(LeaveType.name)
        )).scalars().all()
        users = (await db.execute(
            select(User)
            .where(User.company_id == company.id)
            .order_by(User.lastname, User.name)
        )).scalars().all()

        calendars = await ScheduleResolver.resolve_many(db, users, ScheduleCache())
        leaves = await TeamViewService.load_leaves(db, [u.id for u in users], start, end)

        department_names = {d.id: d.name for d in departments}
        types_by_id = {lt.id: lt for lt in leave_types}

        def _leave(user: User, leave: Leave) -> SummaryLeave:
            leave_type = types_by_id[leave.leave_type_id]
            days = expand(leave, calendars[user.id]).total()
            return SummaryLeave(
                id=leave.id,
                leave_type=leave_type.name,
                status=leave.status.label,
                date_start=leave.date_start,
                day_part_start=leave.day_part_start,
                date_end=leave.date_end,
                day_part_end=leave.day_part_end,
                days=days,
                deducted_days=days if leave_type.use_allowance else Decimal("0"),
            )

        async def _user(user: User) -> SummaryUser:
            return SummaryUser(
                id=user.id,
                email=user.email,
                name=user.name,
                lastname=user.lastname,
                department=department_names.get(user.department_id, ""),
                start_date=user.start_date,
                end_date=user.end_date,
                is_admin=user.is_admin,
                leaves=[_leave(user, lv) for lv in leaves.get(user.id, [])],
            )

        summary = CompanySummary(
            id=company.id,
            name=company.name,
            timezone=company.timezone,
            date_format=company.date_format,
            departments=[SummaryDepartment.model_validate(d) for d in departments],
            leave_types=[SummaryLeaveType.model_validate(lt) for lt in leave_types],
            users=await bounded_gather(users, _user, settings.FANOUT_CONCURRENCY),
        )
        logger.info(
            "Company %s exported by %s: %d users, %d leaves",
            company.id, actor.id, len(summary.users),
            sum(len(u.leaves) for u in summary.users),
        )
        return summary
