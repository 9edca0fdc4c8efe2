"""Integration reports — read-only projections for one company.

  - allowance by team: per employee leave-type breakdown and deducted days
  - absence listing: per employee normalized leave records
  - notification audit: outbound messages, newest first, paginated
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.permissions import managed_users
from timeoff.calendar.service import TeamViewService
from timeoff.common.concurrency import bounded_gather
from timeoff.common.constants import DATE_FORMAT
from timeoff.common.exceptions import ValidationException
from timeoff.common.pagination import PaginatedResponse, PaginationParams, paginate
from timeoff.company.models import Department, User
from timeoff.config import settings
from timeoff.leave.expander import expand
from timeoff.leave.models import Comment, Leave, LeaveType
from timeoff.notifications.models import NotificationAudit
from timeoff.reports.schemas import (
    AbsenceLeave,
    AbsenceReportRow,
    AbsenceUser,
    AllowanceReportRow,
    NotificationAuditOut,
)
from timeoff.schedule.service import ScheduleCache, ScheduleResolver

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


class ReportService:
    """Async report builders. Callers must be company admins."""

    # ─────────────────────────────────────────────────────────────────
    # Allowance by team
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def allowance_report(
        db: AsyncSession,
        admin: User,
        start: date,
        end: date,
        department_id: Optional[uuid.UUID] = None,
    ) -> list[AllowanceReportRow]:
        view = await TeamViewService.build_view(
            db, admin, start, end,
            department_id=department_id,
            with_statistics=True,
        )
        return [
            AllowanceReportRow(
                user_id=row.user.id,
                email=row.user.email,
                lastname=row.user.lastname,
                name=row.user.name,
                leave_type_breakdown=row.statistics.leave_type_breakdown,
                deducted_days=row.statistics.deducted_days,
            )
            for row in view.rows
        ]

    # ─────────────────────────────────────────────────────────────────
    # Absence listing
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def absence_report(
        db: AsyncSession,
        admin: User,
        start: date,
        end: date,
        department_id: Optional[uuid.UUID] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> list[AbsenceReportRow]:
        if end < start:
            raise ValidationException({"end_date": ["end_date must be on or after start_date."]})

        users = [
            u for u in await managed_users(db, admin, department_id=department_id)
            if u.is_active_between(start, end)
        ]
        if not users:
            return []

        # ── Bulk loads (sequential, shared session) ─────────────────
        cache = ScheduleCache()
        calendars = await ScheduleResolver.resolve_many(db, users, cache)
        leaves = await TeamViewService.load_leaves(db, [u.id for u in users], start, end)

        leave_types = {
            lt.id: lt
            for lt in (await db.execute(
                select(LeaveType).where(LeaveType.company_id == admin.company_id)
            )).scalars()
        }
        departments = {
            d.id: d
            for d in (await db.execute(
                select(Department).where(Department.company_id == admin.company_id)
            )).scalars()
        }
        people = {
            u.id: u
            for u in (await db.execute(
                select(User).where(User.company_id == admin.company_id)
            )).scalars()
        }

        leave_ids = [lv.id for group in leaves.values() for lv in group]
        comments: dict[uuid.UUID, list[str]] = defaultdict(list)
        if leave_ids:
            result = await db.execute(
                select(Comment.leave_id, Comment.comment)
                .where(Comment.leave_id.in_(leave_ids))
                .order_by(Comment.created_at)
            )
            for leave_id, text in result.all():
                comments[leave_id].append(text)

        # ── Per-employee composition (pure) ─────────────────────────
        def _leave_object(user: User, leave: Leave) -> AbsenceLeave:
            leave_type = leave_types.get(leave.leave_type_id)
            department = departments.get(user.department_id)
            approver = people.get(leave.approver_id) if leave.approver_id else None
            deducted = Decimal("0")
            if leave_type is not None and leave_type.use_allowance:
                deducted = expand(leave, calendars[user.id]).total()
            return AbsenceLeave(
                start_date=leave.date_start.strftime(DATE_FORMAT),
                end_date=leave.date_end.strftime(DATE_FORMAT),
                day_part_start=leave.day_part_start,
                day_part_end=leave.day_part_end,
                type=leave_type.name if leave_type else NOT_AVAILABLE,
                deducted_days=deducted,
                approver=approver.full_name if approver else NOT_AVAILABLE,
                approver_id=leave.approver_id,
                status=leave.status.label,
                id=leave.id,
                employee_id=user.id,
                employee_full_name=user.full_name,
                employee_last_name=user.lastname,
                department_id=user.department_id,
                department_name=department.name if department else NOT_AVAILABLE,
                type_id=leave.leave_type_id,
                created_at=leave.created_at.strftime(DATE_FORMAT),
                comment=". ".join(comments.get(leave.id, [])),
            )

        async def _row(user: User) -> AbsenceReportRow:
            department = departments.get(user.department_id)
            user_leaves = [
                lv for lv in leaves.get(user.id, [])
                if leave_type_id is None or lv.leave_type_id == leave_type_id
            ]
            return AbsenceReportRow(
                user=AbsenceUser(
                    id=user.id,
                    department=department.name if department else NOT_AVAILABLE,
                    email=user.email,
                    full_name=user.full_name,
                ),
                leaves=[_leave_object(user, lv) for lv in user_leaves],
            )

        return await bounded_gather(users, _row, settings.FANOUT_CONCURRENCY)

    # ─────────────────────────────────────────────────────────────────
    # Notification audit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def notification_audit(
        db: AsyncSession,
        admin: User,
        pagination: PaginationParams,
        *,
        user_id: Optional[uuid.UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> PaginatedResponse[NotificationAuditOut]:
        """Outbound messages of the admin's company, newest first."""
        query = select(NotificationAudit).where(
            NotificationAudit.company_id == admin.company_id,
        )
        if user_id is not None:
            query = query.where(NotificationAudit.user_id == user_id)
        if start_date is not None:
            since = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
            query = query.where(NotificationAudit.created_at >= since)
        if end_date is not None:
            until = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
            query = query.where(NotificationAudit.created_at < until)

        rows, meta = await paginate(
            db, query, pagination,
            model=NotificationAudit,
            sortable=("created_at", "subject", "recipient"),
        )
        return PaginatedResponse[NotificationAuditOut](
            data=[NotificationAuditOut.model_validate(row) for row in rows],
            meta=meta,
        )
