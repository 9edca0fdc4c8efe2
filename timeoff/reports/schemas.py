"""Integration report Pydantic v2 schemas.

Field names on the wire are camelCase to stay compatible with existing
report consumers; Python code uses the snake_case names.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from timeoff.common.constants import DayPart, NotificationChannel


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ═════════════════════════════════════════════════════════════════════
# Allowance by team
# ═════════════════════════════════════════════════════════════════════


class AllowanceReportRow(_CamelModel):
    user_id: uuid.UUID
    email: str = Field(..., alias="userEmail")
    lastname: str = Field(..., alias="userLastname")
    name: str = Field(..., alias="userName")
    leave_type_breakdown: dict[str, Decimal] = Field(
        default_factory=dict, alias="leaveTypeBreakDown",
    )
    deducted_days: Decimal = Field(Decimal("0"), alias="deductedDays")


# ═════════════════════════════════════════════════════════════════════
# Absence listing
# ═════════════════════════════════════════════════════════════════════


class AbsenceLeave(_CamelModel):
    """Normalized leave record."""

    start_date: str = Field(..., alias="startDate")
    end_date: str = Field(..., alias="endDate")
    day_part_start: DayPart = Field(..., alias="dayPartStart")
    day_part_end: DayPart = Field(..., alias="dayPartEnd")
    type: str
    deducted_days: Decimal = Field(..., alias="deductedDays")
    approver: str
    approver_id: Optional[uuid.UUID] = Field(None, alias="approverId")
    status: str
    id: uuid.UUID
    employee_id: uuid.UUID = Field(..., alias="employeeId")
    employee_full_name: str = Field(..., alias="employeeFullName")
    employee_last_name: str = Field(..., alias="employeeLastName")
    department_id: uuid.UUID = Field(..., alias="departmentId")
    department_name: str = Field(..., alias="departmentName")
    type_id: uuid.UUID = Field(..., alias="typeId")
    created_at: str = Field(..., alias="createdAt")
    comment: str = ""


class AbsenceUser(_CamelModel):
    id: uuid.UUID
    department: str
    email: str
    full_name: str = Field(..., alias="fullName")


class AbsenceReportRow(_CamelModel):
    user: AbsenceUser
    leaves: list[AbsenceLeave]


# ═════════════════════════════════════════════════════════════════════
# Notification audit
# ═════════════════════════════════════════════════════════════════════


class NotificationAuditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    channel: NotificationChannel
    recipient: str
    subject: str
    body: str
    created_at: datetime
