"""Date-range expansion: a leave request → the working day units it covers.

Pure functions of (leave, calendar); no I/O. Anything with
``date_start``, ``day_part_start``, ``date_end`` and ``day_part_end``
attributes can be expanded, ORM rows and request schemas alike.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator, Optional, Protocol

from timeoff.common.constants import DayPart
from timeoff.schedule.service import WorkCalendar

FULL_DAY = Decimal("1")
HALF_DAY = Decimal("0.5")


class LeaveLike(Protocol):
    date_start: date
    day_part_start: DayPart
    date_end: date
    day_part_end: DayPart


@dataclass(frozen=True)
class DayUnit:
    date: date
    is_morning_off: bool
    is_afternoon_off: bool

    @property
    def weight(self) -> Decimal:
        if self.is_morning_off and self.is_afternoon_off:
            return FULL_DAY
        return HALF_DAY

    @classmethod
    def for_part(cls, day: date, part: DayPart) -> DayUnit:
        return cls(
            date=day,
            is_morning_off=part is not DayPart.afternoon,
            is_afternoon_off=part is not DayPart.morning,
        )


def single_day_part(start_part: DayPart, end_part: DayPart) -> DayPart:
    """Day part of a one-day request.

    Any half on either side makes it exactly one half day; the start's half
    takes precedence when the two disagree.
    """
    if start_part.is_half:
        return start_part
    return end_part


class LeaveDays:
    """Lazy, finite, restartable sequence of ``DayUnit``.

    Every ``iter()`` walks the range again, so the same object can be
    summed and then listed.
    """

    def __init__(
        self,
        leave: LeaveLike,
        calendar: WorkCalendar,
        *,
        window_start: Optional[date] = None,
        window_end: Optional[date] = None,
    ) -> None:
        self.leave = leave
        self.calendar = calendar
        self.window_start = window_start
        self.window_end = window_end

    def _part_for(self, day: date) -> DayPart:
        leave = self.leave
        if leave.date_start == leave.date_end:
            return single_day_part(leave.day_part_start, leave.day_part_end)
        if day == leave.date_start:
            return leave.day_part_start
        if day == leave.date_end:
            return leave.day_part_end
        return DayPart.all_day

    def __iter__(self) -> Iterator[DayUnit]:
        first = self.leave.date_start
        last = self.leave.date_end
        if self.window_start is not None and self.window_start > first:
            first = self.window_start
        if self.window_end is not None and self.window_end < last:
            last = self.window_end

        day = first
        while day <= last:
            if self.calendar.is_working_day(day):
                yield DayUnit.for_part(day, self._part_for(day))
            day += timedelta(days=1)

    def total(self) -> Decimal:
        return sum((unit.weight for unit in self), Decimal("0"))

    def __repr__(self) -> str:
        return (
            f"LeaveDays({self.leave.date_start}..{self.leave.date_end}, "
            f"window={self.window_start}..{self.window_end})"
        )


def expand(
    leave: LeaveLike,
    calendar: WorkCalendar,
    *,
    window_start: Optional[date] = None,
    window_end: Optional[date] = None,
) -> LeaveDays:
    """Day units of *leave* on the working days of *calendar*.

    The optional window clips the walk (year boundaries, view ranges)
    without changing which day part applies to the leave's own first and
    last dates.
    """
    return LeaveDays(leave, calendar, window_start=window_start, window_end=window_end)
