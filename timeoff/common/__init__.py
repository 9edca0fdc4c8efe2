"""Common module — shared utilities for the time-off service."""

from timeoff.common.constants import (
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    DayPart,
    LeaveAction,
    LeaveStatus,
)
from timeoff.common.exceptions import (
    AppException,
    BusinessRuleViolation,
    ForbiddenException,
    InvalidTransition,
    LeaveTypeMismatch,
    NotFoundException,
    ScheduleInconsistency,
    ValidationException,
    register_exception_handlers,
)
from timeoff.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Constants / Enums
    "DayPart",
    "LeaveAction",
    "LeaveStatus",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "BusinessRuleViolation",
    "ForbiddenException",
    "InvalidTransition",
    "LeaveTypeMismatch",
    "NotFoundException",
    "ScheduleInconsistency",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
