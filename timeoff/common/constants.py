"""Enums and constants for the time-off service — stable persisted codes."""

from __future__ import annotations

import enum


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(enum.IntEnum):
    """Persisted as a small integer. Never renumber these."""

    new = 1
    approved = 2
    rejected = 3
    pended_revoke = 4
    canceled = 5
    revoked = 6

    @property
    def label(self) -> str:
        return LEAVE_STATUS_LABELS[self]


LEAVE_STATUS_LABELS: dict[LeaveStatus, str] = {
    LeaveStatus.new: "New",
    LeaveStatus.approved: "Approved",
    LeaveStatus.rejected: "Rejected",
    LeaveStatus.pended_revoke: "Pended Revoke",
    LeaveStatus.canceled: "Canceled",
    LeaveStatus.revoked: "Revoked",
}

# Statuses whose days are reserved against the balance.
COUNTED_STATUSES: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.new,
    LeaveStatus.approved,
    LeaveStatus.pended_revoke,
})

TERMINAL_STATUSES: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.rejected,
    LeaveStatus.canceled,
    LeaveStatus.revoked,
})


class DayPart(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"
    all_day = "all_day"

    @property
    def is_half(self) -> bool:
        return self is not DayPart.all_day


class LeaveAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    cancel = "cancel"
    request_revoke = "request_revoke"


# ── Company ─────────────────────────────────────────────────────────

class CompanyMode(enum.IntEnum):
    normal = 1
    readonly_holidays = 2


# ── Feeds / notifications ───────────────────────────────────────────

class FeedType(str, enum.Enum):
    calendar = "calendar"
    teamview = "teamview"


class NotificationChannel(str, enum.Enum):
    email = "email"
    chat = "chat"


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%Y-%m-%d"
DEFAULT_TIMEZONE = "Europe/London"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
MAX_LEAVE_SPAN_DAYS = 365
# Monday=0 … Sunday=6
DEFAULT_WORKING_WEEKDAYS: frozenset[int] = frozenset({0, 1, 2, 3, 4})
