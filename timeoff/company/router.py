"""Users router — company export and employee removal (admin only)."""


import uuid
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.dependencies import require_admin
from timeoff.company.models import User
from timeoff.company.schemas import CompanySummary
from timeoff.company.service import CompanyService, summary_csv
from timeoff.database import get_db

router = APIRouter(prefix="", tags=["users"])


# ── GET /export ─────────────────────────────────────────────────────

@router.get("/export", response_model=CompanySummary)
async def export_company(
    format: Literal["json", "csv"] = Query("json"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Company summary: departments, leave types and every user's leaves."""
    summary = await CompanyService.export_summary(db, admin, start_date, end_date)
    if format == "csv":
        return Response(
            content=summary_csv(summary),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": "attachment; filename=company-summary.csv"},
        )
    return summary


# ── DELETE /{user_id} ───────────────────────────────────────────────

@router.delete("/{user_id}", status_code=204)
async def remove_user(
    user_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Remove an employee together with their leaves, feeds and history."""
    await CompanyService.remove_user(db, admin, user_id)
