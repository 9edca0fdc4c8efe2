"""Allowance Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AllowanceBreakdown(BaseModel):
    """Balance of one user / leave type / year. Computed, never stored."""

    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    base: Decimal = Field(..., description="Annual allowance of the leave type")
    prorated: Decimal = Field(..., description="Base scaled to the employed part of the year")
    carried_over: Decimal = Decimal("0")
    adjustments: Decimal = Decimal("0")
    allowance: Decimal
    consumed: Decimal
    remaining: Decimal


class AdjustmentCreate(BaseModel):
    """Payload for a manual allowance correction."""

    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int = Field(..., ge=2000, le=2100)
    delta: Decimal = Field(..., max_digits=5, decimal_places=1)
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("delta")
    @classmethod
    def validate_delta(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("delta must not be zero.")
        if (v * 2) % 1 != 0:
            raise ValueError("delta must be a multiple of half a day.")
        return v


class AdjustmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    delta: Decimal
    reason: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
