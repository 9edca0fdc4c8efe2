"""Team view Pydantic v2 schemas."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from timeoff.common.constants import FeedType, LeaveStatus


class EmployeeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    lastname: str
    email: str
    department_id: uuid.UUID


class DayRecord(BaseModel):
    """One employee on one date."""

    date: dt.date
    is_working_day: bool
    is_leave_morning: bool = False
    is_leave_afternoon: bool = False
    leave_id: Optional[uuid.UUID] = None
    leave_type_id: Optional[uuid.UUID] = None
    status: Optional[LeaveStatus] = None

    @property
    def is_leave(self) -> bool:
        return self.is_leave_morning or self.is_leave_afternoon


class EmployeeStatistics(BaseModel):
    leave_type_breakdown: dict[str, Decimal] = Field(
        default_factory=dict, description="Leave type name → days in the window",
    )
    deducted_days: Decimal = Field(
        Decimal("0"), description="Days in the window of allowance-using types",
    )
    remaining: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Leave type name → remaining days in the window's start year",
    )


class EmployeeRow(BaseModel):
    user: EmployeeBrief
    days: list[DayRecord]
    statistics: Optional[EmployeeStatistics] = None


class TeamViewOut(BaseModel):
    start: dt.date
    end: dt.date
    rows: list[EmployeeRow]


class FeedCreate(BaseModel):
    type: FeedType = FeedType.calendar
    name: Optional[str] = Field(None, min_length=1, max_length=100)


class FeedOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    type: FeedType
    feed_token: str
    created_at: dt.datetime
