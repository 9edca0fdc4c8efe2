"""Auth dependencies — JWT validation, admin enforcement.

Token issuance lives outside this service; we only verify the bearer
token and load the principal it names.
"""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.exceptions import ForbiddenException
from timeoff.company.models import User
from timeoff.config import settings
from timeoff.database import get_db


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate JWT and return the authenticated, still-employed User."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()
    if user is None or (user.end_date is not None and user.end_date < date.today()):
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    return user


# ── Admin dependency ────────────────────────────────────────────────

async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Company-scoped admin principal (reports, user removal, adjustments)."""
    if not user.is_admin:
        raise ForbiddenException(detail="Administrator rights are required.")
    return user
