"""Leave service layer — request submission and lifecycle transitions.

Business logic:
  - Submission with working-day expansion, overlap and balance checks
  - Approve / reject / cancel / revoke through the state machine in
    ``timeoff.leave.workflow``
  - Fresh balance returned with every result for the caller to show

Every handler validates first, writes ``status`` as its last mutation and
flushes once. Notifications follow and can never undo the transition.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.allowance.schemas import AllowanceBreakdown
from timeoff.allowance.service import AllowanceService, year_bounds
from timeoff.auth.permissions import (
    ensure_can_manage,
    load_supervised_department_ids,
)
from timeoff.common.constants import COUNTED_STATUSES, LeaveAction, LeaveStatus
from timeoff.common.exceptions import (
    LeaveTypeMismatch,
    NotFoundException,
    ValidationException,
)
from timeoff.company.models import User
from timeoff.leave.expander import LeaveLike, expand
from timeoff.leave.models import Comment, Leave, LeaveType
from timeoff.leave.schemas import LeaveCreate, LeaveOut, TransitionResult
from timeoff.leave.workflow import apply_transition, check_actor, next_status
from timeoff.notifications.service import (
    notify_leave_cancel,
    notify_leave_decision,
    notify_leave_request,
    notify_leave_revoke,
)
from timeoff.schedule.service import ScheduleCache, ScheduleResolver, WorkCalendar

logger = logging.getLogger(__name__)


def _half_days(leave: LeaveLike, calendar: WorkCalendar) -> set[tuple]:
    taken = set()
    for unit in expand(leave, calendar):
        if unit.is_morning_off:
            taken.add((unit.date, "am"))
        if unit.is_afternoon_off:
            taken.add((unit.date, "pm"))
    return taken


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave request operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def to_out(leave: Leave, deducted_days: Optional[Decimal] = None) -> LeaveOut:
        out = LeaveOut.model_validate(leave)
        out.status_label = leave.status.label
        out.deducted_days = deducted_days
        return out

    @staticmethod
    async def _load_leave(db: AsyncSession, actor: User, leave_id: uuid.UUID) -> tuple[Leave, User]:
        leave = await db.get(Leave, leave_id)
        if leave is None:
            raise NotFoundException("Leave", leave_id)
        requester = await db.get(User, leave.user_id)
        if requester is None or requester.company_id != actor.company_id:
            raise NotFoundException("Leave", leave_id)
        return leave, requester

    @staticmethod
    async def _balances_for(
        db: AsyncSession,
        leave: Leave,
        requester: User,
        leave_type: LeaveType,
        cache: ScheduleCache,
    ) -> list[AllowanceBreakdown]:
        """One balance per calendar year the leave touches."""
        return [
            await AllowanceService.compute_balance(db, requester, leave_type, year, cache)
            for year in range(leave.date_start.year, leave.date_end.year + 1)
        ]

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_leave(
        db: AsyncSession,
        actor: User,
        data: LeaveCreate,
    ) -> TransitionResult:
        """Submit a leave request for the actor or, as a supervisor, for a report.

        - Leave type must belong to the employee's company
        - Range must fall inside employment and hold at least one working day
        - No overlap with another active leave of the employee
        - Self-service requests of an allowance type must fit the balance;
          supervisors booking on behalf may push it negative
        - Booked on behalf → Approved by the actor; auto-approve employee →
          Approved by themself; otherwise New
        """
        # ── Employee ────────────────────────────────────────────────
        if data.user_id is None or data.user_id == actor.id:
            employee = actor
        else:
            employee = await db.get(User, data.user_id)
            if employee is None or employee.company_id != actor.company_id:
                raise NotFoundException("User", data.user_id)
            await ensure_can_manage(db, actor, employee)
        on_behalf = employee.id != actor.id

        # ── Leave type ──────────────────────────────────────────────
        leave_type = await db.get(LeaveType, data.leave_type_id)
        if leave_type is None or leave_type.company_id != employee.company_id:
            raise LeaveTypeMismatch(data.leave_type_id)

        errors: dict[str, list[str]] = {}

        # ── Employment window ───────────────────────────────────────
        if data.date_start < employee.start_date:
            errors.setdefault("date_start", []).append(
                "Leave cannot start before the employee's start date."
            )
        if employee.end_date is not None and data.date_end > employee.end_date:
            errors.setdefault("date_end", []).append(
                "Leave cannot end after the employee's end date."
            )

        # ── Working days ────────────────────────────────────────────
        cache = ScheduleCache()
        calendar = await ScheduleResolver.resolve(db, employee, cache)
        requested = expand(data, calendar).total()
        if requested == 0:
            errors.setdefault("date_end", []).append(
                "The selected range contains no working days."
            )

        # ── Overlap ─────────────────────────────────────────────────
        result = await db.execute(
            select(Leave).where(
                Leave.user_id == employee.id,
                Leave.status.in_(list(COUNTED_STATUSES)),
                Leave.date_start <= data.date_end,
                Leave.date_end >= data.date_start,
            )
        )
        existing = result.scalars().all()
        if existing:
            wanted = _half_days(data, calendar)
            if any(wanted & _half_days(other, calendar) for other in existing):
                errors.setdefault("date_start", []).append(
                    "The employee already has leave booked overlapping these dates."
                )

        # ── Balance ─────────────────────────────────────────────────
        if leave_type.use_allowance and not on_behalf and requested > 0:
            for year in range(data.date_start.year, data.date_end.year + 1):
                first, last = year_bounds(year)
                in_year = expand(
                    data, calendar, window_start=first, window_end=last,
                ).total()
                if in_year == 0:
                    continue
                balance = await AllowanceService.compute_balance(
                    db, employee, leave_type, year, cache,
                )
                if in_year > balance.remaining:
                    errors.setdefault("leave_type_id", []).append(
                        f"Requested {in_year} day(s) in {year} but only "
                        f"{balance.remaining} remain."
                    )

        if errors:
            raise ValidationException(errors)

        # ── Persist ─────────────────────────────────────────────────
        if on_behalf:
            status, approver_id = LeaveStatus.approved, actor.id
        elif employee.auto_approve:
            status, approver_id = LeaveStatus.approved, employee.id
        else:
            status, approver_id = LeaveStatus.new, None

        leave = Leave(
            user_id=employee.id,
            leave_type_id=leave_type.id,
            approver_id=approver_id,
            date_start=data.date_start,
            day_part_start=data.day_part_start,
            date_end=data.date_end,
            day_part_end=data.day_part_end,
            employee_comment=data.comment,
            status=status,
        )
        db.add(leave)
        await db.flush()
        if data.comment:
            db.add(Comment(
                company_id=employee.company_id,
                leave_id=leave.id,
                by_user_id=actor.id,
                comment=data.comment,
            ))
            await db.flush()

        logger.info(
            "Leave %s submitted for user %s by %s: %s day(s), status %s",
            leave.id, employee.id, actor.id, requested, status.label,
        )

        balances = await LeaveService._balances_for(db, leave, employee, leave_type, cache)

        # ── Notify (never raises) ───────────────────────────────────
        if status is LeaveStatus.new:
            await notify_leave_request(db, leave, employee, leave_type)
        else:
            await notify_leave_decision(db, leave, employee, leave_type, actor=actor)

        return TransitionResult(
            leave=LeaveService.to_out(leave, deducted_days=requested),
            balance=balances[0],
            balances=balances,
        )

    # ─────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def transition(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        action: LeaveAction,
        *,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        """Run one lifecycle action. Raises before any write when refused."""
        leave, requester = await LeaveService._load_leave(db, actor, leave_id)
        supervised = await load_supervised_department_ids(db, actor)

        check_actor(action, actor, requester, supervised)
        old_status = leave.status
        target = next_status(action, old_status, auto_approve=requester.auto_approve)

        leave_type = await db.get(LeaveType, leave.leave_type_id)
        cache = ScheduleCache()
        await ScheduleResolver.resolve(db, requester, cache)

        if comment:
            db.add(Comment(
                company_id=requester.company_id,
                leave_id=leave.id,
                by_user_id=actor.id,
                comment=comment,
            ))

        apply_transition(leave, action, target, actor)
        await db.flush()

        logger.info(
            "Leave %s: %s by %s, %s -> %s",
            leave.id, action.value, actor.id, old_status.label, target.label,
        )

        balances = await LeaveService._balances_for(db, leave, requester, leave_type, cache)
        if action is LeaveAction.approve:
            for balance in balances:
                if balance.remaining < 0:
                    logger.warning(
                        "Leave %s approved past allowance: user %s has %s day(s) remaining in %s",
                        leave.id, requester.id, balance.remaining, balance.year,
                    )

        # ── Notify (never raises) ───────────────────────────────────
        if action is LeaveAction.cancel:
            await notify_leave_cancel(db, leave, requester, leave_type)
        elif action is LeaveAction.request_revoke:
            await notify_leave_revoke(db, leave, requester, leave_type, actor=actor)
        else:
            await notify_leave_decision(db, leave, requester, leave_type, actor=actor)

        return TransitionResult(
            leave=LeaveService.to_out(leave), balance=balances[0], balances=balances,
        )

    @staticmethod
    async def approve(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        """New → Approved, or PendedRevoke → Revoked. Never blocked by balance."""
        return await LeaveService.transition(
            db, actor, leave_id, LeaveAction.approve, comment=comment,
        )

    @staticmethod
    async def reject(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        """New → Rejected, or PendedRevoke → Approved (the revoke is declined)."""
        return await LeaveService.transition(
            db, actor, leave_id, LeaveAction.reject, comment=comment,
        )

    @staticmethod
    async def cancel(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        return await LeaveService.transition(
            db, actor, leave_id, LeaveAction.cancel, comment=comment,
        )

    @staticmethod
    async def request_revoke(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        return await LeaveService.transition(
            db, actor, leave_id, LeaveAction.request_revoke, comment=comment,
        )
