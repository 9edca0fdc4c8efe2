"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from timeoff.allowance.schemas import AllowanceBreakdown
from timeoff.common.constants import MAX_LEAVE_SPAN_DAYS, DayPart, LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Leave — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveCreate(BaseModel):
    """Payload for requesting leave, for oneself or on behalf of a report."""

    user_id: Optional[uuid.UUID] = Field(
        None, description="Employee the leave is for; defaults to the caller"
    )
    leave_type_id: uuid.UUID
    date_start: date = Field(..., description="First day (inclusive)")
    day_part_start: DayPart = DayPart.all_day
    date_end: date = Field(..., description="Last day (inclusive)")
    day_part_end: DayPart = DayPart.all_day
    comment: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveCreate":
        if self.date_start > self.date_end:
            raise ValueError("date_start must be on or before date_end.")
        if (self.date_end - self.date_start).days > MAX_LEAVE_SPAN_DAYS:
            raise ValueError(
                f"Leave request cannot span more than {MAX_LEAVE_SPAN_DAYS} days."
            )
        return self


class LeaveDecisionRequest(BaseModel):
    """Optional note attached to approve / reject / cancel / revoke."""

    comment: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Leave — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    approver_id: Optional[uuid.UUID] = None
    status: LeaveStatus
    date_start: date
    day_part_start: DayPart
    date_end: date
    day_part_end: DayPart
    employee_comment: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime

    # Filled by service
    status_label: str = ""
    deducted_days: Optional[Decimal] = None


class TransitionResult(BaseModel):
    """Leave after a lifecycle action, with the requester's fresh balances.

    ``balances`` holds one entry per calendar year the leave touches and
    ``balance`` repeats the first of them. Both are informational: approval
    never blocks on them and ``remaining`` may be negative.
    """

    leave: LeaveOut
    balance: Optional[AllowanceBreakdown] = None
    balances: list[AllowanceBreakdown] = Field(default_factory=list)
