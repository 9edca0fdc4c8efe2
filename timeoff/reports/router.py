"""Integration router — machine-readable reports for company admins."""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.dependencies import require_admin
from timeoff.common.pagination import PaginatedResponse, PaginationParams
from timeoff.company.models import User
from timeoff.database import get_db
from timeoff.reports.schemas import (
    AbsenceReportRow,
    AllowanceReportRow,
    NotificationAuditOut,
)
from timeoff.reports.service import ReportService

router = APIRouter(prefix="", tags=["integration"])


# ── GET /report/allowance ───────────────────────────────────────────

@router.get("/report/allowance", response_model=list[AllowanceReportRow])
async def allowance_report(
    start_date: Optional[date] = Query(None, description="Defaults to today"),
    end_date: Optional[date] = Query(None, description="Defaults to today"),
    department_id: Optional[uuid.UUID] = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Leave-type breakdown and deducted days per employee for a window."""
    today = date.today()
    return await ReportService.allowance_report(
        db, admin, start_date or today, end_date or today, department_id,
    )


# ── GET /report/absence ─────────────────────────────────────────────

@router.get("/report/absence", response_model=list[AbsenceReportRow])
async def absence_report(
    start_date: Optional[date] = Query(None, description="Defaults to today"),
    end_date: Optional[date] = Query(None, description="Defaults to today"),
    department_id: Optional[uuid.UUID] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Leave records per employee for a window."""
    today = date.today()
    return await ReportService.absence_report(
        db,
        admin,
        start_date or today,
        end_date or today,
        department_id,
        leave_type_id,
    )


# ── GET /audit ──────────────────────────────────────────────────────

@router.get("/audit", response_model=PaginatedResponse[NotificationAuditOut])
async def notification_audit(
    user_id: Optional[uuid.UUID] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(PaginationParams),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Outbound notification records, newest first."""
    return await ReportService.notification_audit(
        db,
        admin,
        pagination,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )
