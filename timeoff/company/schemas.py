"""Company summary (export) Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from timeoff.common.constants import DayPart


class SummaryDepartment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    manager_id: Optional[uuid.UUID] = None


class SummaryLeaveType(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    use_allowance: bool
    annual_allowance: int


class SummaryLeave(BaseModel):
    id: uuid.UUID
    leave_type: str
    status: str
    date_start: date
    day_part_start: DayPart
    date_end: date
    day_part_end: DayPart
    days: Decimal = Field(..., description="Working days covered")
    deducted_days: Decimal = Field(..., description="Days counted against the allowance")


class SummaryUser(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    lastname: str
    department: str
    start_date: date
    end_date: Optional[date] = None
    is_admin: bool
    leaves: list[SummaryLeave] = Field(default_factory=list)


class CompanySummary(BaseModel):
    """Whole-company snapshot: departments, leave types, users and their leaves."""

    id: uuid.UUID
    name: str
    timezone: str
    date_format: str
    departments: list[SummaryDepartment]
    leave_types: list[SummaryLeaveType]
    users: list[SummaryUser]
