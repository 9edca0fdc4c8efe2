"""Leave router — submit, lifecycle actions, balances, adjustments.

All endpoints require authentication. Supervisor checks happen in the
service, against the requester of each leave.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.allowance.schemas import AdjustmentCreate, AdjustmentOut, AllowanceBreakdown
from timeoff.allowance.service import AllowanceService
from timeoff.auth.dependencies import get_current_user, require_admin
from timeoff.company.models import Company, User
from timeoff.database import get_db
from timeoff.leave.schemas import LeaveCreate, LeaveDecisionRequest, TransitionResult
from timeoff.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


def _comment(body: Optional[LeaveDecisionRequest]) -> Optional[str]:
    return body.comment if body else None


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=TransitionResult, status_code=201)
async def create_leave(
    body: LeaveCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Request leave for yourself, or book it for someone you supervise."""
    return await LeaveService.create_leave(db, user, body)


# ── POST /requests/{id}/approve ─────────────────────────────────────

@router.post("/requests/{leave_id}/approve", response_model=TransitionResult)
async def approve_leave(
    leave_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a new request, or approve a pending revoke."""
    return await LeaveService.approve(db, user, leave_id, _comment(body))


# ── POST /requests/{id}/reject ──────────────────────────────────────

@router.post("/requests/{leave_id}/reject", response_model=TransitionResult)
async def reject_leave(
    leave_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reject a new request, or decline a pending revoke."""
    return await LeaveService.reject(db, user, leave_id, _comment(body))


# ── POST /requests/{id}/cancel ──────────────────────────────────────

@router.post("/requests/{leave_id}/cancel", response_model=TransitionResult)
async def cancel_leave(
    leave_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.cancel(db, user, leave_id, _comment(body))


# ── POST /requests/{id}/revoke ──────────────────────────────────────

@router.post("/requests/{leave_id}/revoke", response_model=TransitionResult)
async def revoke_leave(
    leave_id: uuid.UUID,
    body: Optional[LeaveDecisionRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Ask to revoke an approved leave (immediate for auto-approve employees)."""
    return await LeaveService.request_revoke(db, user, leave_id, _comment(body))


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=list[AllowanceBreakdown])
async def get_balance(
    user_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Allowance, consumed and remaining days per leave type.

    *year* defaults to the current year in the company's time zone.
    """
    if year is None:
        company = await db.get(Company, user.company_id)
        year = company.today().year
    return await AllowanceService.get_balances(
        db, user, user_id or user.id, year, leave_type_id,
    )


# ── POST /adjustments ───────────────────────────────────────────────

@router.post("/adjustments", response_model=AdjustmentOut, status_code=201)
async def add_adjustment(
    body: AdjustmentCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Record a signed allowance correction (admin only)."""
    return await AllowanceService.add_adjustment(db, admin, body)
