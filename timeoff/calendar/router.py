"""Calendar routers — authenticated team view and token-addressed feeds."""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.dependencies import get_current_user
from timeoff.calendar.feed import FeedService
from timeoff.calendar.schemas import FeedCreate, FeedOut, TeamViewOut
from timeoff.calendar.service import TeamViewService
from timeoff.common.rate_limit import limiter
from timeoff.company.models import User
from timeoff.config import settings
from timeoff.database import get_db

router = APIRouter(prefix="", tags=["calendar"])
feeds_router = APIRouter(prefix="", tags=["feeds"])

ICS_MEDIA_TYPE = "text/calendar; charset=utf-8"


# ── GET /team-view ──────────────────────────────────────────────────

@router.get("/team-view", response_model=TeamViewOut)
async def team_view(
    start: date = Query(..., description="First day of the window"),
    end: date = Query(..., description="Last day of the window (inclusive)"),
    department_id: Optional[uuid.UUID] = Query(None),
    with_statistics: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Per-employee, per-day leave matrix for everyone the caller may see."""
    return await TeamViewService.build_view(
        db,
        user,
        start,
        end,
        department_id=department_id,
        with_statistics=with_statistics,
    )


# ── GET /feeds ─────────────────────────────────────────────────────

@router.get("/feeds", response_model=list[FeedOut])
async def list_feeds(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await FeedService.list_feeds(db, user)


# ── POST /feeds ────────────────────────────────────────────────────

@router.post("/feeds", response_model=FeedOut, status_code=status.HTTP_201_CREATED)
async def issue_feed(
    body: FeedCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Issue the caller's feed of the given type; an existing feed gets a new token."""
    return await FeedService.issue_feed(db, user, body.type, body.name)


# ── GET /feeds/{token}/ical.ics ─────────────────────────────────────

@feeds_router.get("/{token}/ical.ics")
@limiter.limit(settings.RATE_LIMIT_FEEDS)
async def leave_feed(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
):
    owner = await FeedService.get_owner(db, token)
    if owner is None:
        return PlainTextResponse("N/A", status_code=404)
    body = await FeedService.leave_feed(db, owner)
    return Response(content=body, media_type=ICS_MEDIA_TYPE)


# ── GET /feeds/{token}/anniversary.ics ──────────────────────────────

@feeds_router.get("/{token}/anniversary.ics")
@limiter.limit(settings.RATE_LIMIT_FEEDS)
async def anniversary_feed(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
):
    owner = await FeedService.get_owner(db, token, allow_readonly=True)
    if owner is None:
        return PlainTextResponse("N/A", status_code=404)
    body = await FeedService.anniversary_feed(db, owner)
    return Response(content=body, media_type=ICS_MEDIA_TYPE)
