"""Schedule resolver: which calendar dates are working days for a user.

Each user resolves to exactly one effective schedule:

* no stored schedule for the user or the company → a Mon–Fri company
  schedule is created and used;
* one row → it is used;
* two rows → the user-specific one wins.

Anything else is an inconsistency in the stored data. The resolved
weekdays are combined with the company's bank holidays into an immutable
``WorkCalendar``. Results are memoized only in the ``ScheduleCache``
the caller passes in, which lives for one request.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import DEFAULT_WORKING_WEEKDAYS
from timeoff.common.exceptions import ScheduleInconsistency
from timeoff.company.models import User
from timeoff.schedule.models import WEEKDAY_COLUMNS, BankHoliday, Schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkCalendar:
    working_weekdays: frozenset[int]
    holidays: frozenset[date] = frozenset()

    def is_working_day(self, day: date) -> bool:
        return day.weekday() in self.working_weekdays and day not in self.holidays


@dataclass
class ScheduleCache:
    """Request-scoped memo of resolved schedules and company holidays.

    Create one per request (or per logical operation) and pass it down;
    never keep it across requests.
    """

    weekdays: dict[uuid.UUID, frozenset[int]] = field(default_factory=dict)
    holidays: dict[uuid.UUID, frozenset[date]] = field(default_factory=dict)

    def calendar_for(self, user: User) -> WorkCalendar:
        return WorkCalendar(
            working_weekdays=self.weekdays[user.id],
            holidays=self.holidays[user.company_id],
        )


def pick_schedule(user_id: uuid.UUID, rows: list[Schedule]) -> Optional[Schedule]:
    """Apply the resolution policy to the rows matching one user.

    Returns None when a default has to be created.
    """
    if not rows:
        return None
    if len(rows) == 1:
        return rows[0]
    if len(rows) == 2:
        personal = [r for r in rows if r.is_user_specific]
        if len(personal) == 1:
            return personal[0]
    raise ScheduleInconsistency(user_id, len(rows))


class ScheduleResolver:
    """Async schedule resolution."""

    @staticmethod
    async def resolve(
        db: AsyncSession,
        user: User,
        cache: Optional[ScheduleCache] = None,
    ) -> WorkCalendar:
        calendars = await ScheduleResolver.resolve_many(db, [user], cache)
        return calendars[user.id]

    @staticmethod
    async def resolve_many(
        db: AsyncSession,
        users: Iterable[User],
        cache: Optional[ScheduleCache] = None,
    ) -> dict[uuid.UUID, WorkCalendar]:
        """Resolve several users with one schedule query and one holiday query."""
        cache = cache if cache is not None else ScheduleCache()
        users = list(users)

        missing = [u for u in users if u.id not in cache.weekdays]
        if missing:
            await ScheduleResolver._load_weekdays(db, missing, cache)

        companies = {u.company_id for u in users} - set(cache.holidays)
        if companies:
            await ScheduleResolver._load_holidays(db, companies, cache)

        return {u.id: cache.calendar_for(u) for u in users}

    @staticmethod
    async def _load_weekdays(
        db: AsyncSession,
        users: list[User],
        cache: ScheduleCache,
    ) -> None:
        user_ids = [u.id for u in users]
        company_ids = list({u.company_id for u in users})
        result = await db.execute(
            select(Schedule).where(
                sa.or_(
                    Schedule.user_id.in_(user_ids),
                    Schedule.company_id.in_(company_ids),
                )
            )
        )
        rows = list(result.scalars().all())

        for user in users:
            matching = [
                r for r in rows
                if r.user_id == user.id or r.company_id == user.company_id
            ]
            chosen = pick_schedule(user.id, matching)
            if chosen is None:
                chosen = await ScheduleResolver._create_default(db, user.company_id)
                rows.append(chosen)
            cache.weekdays[user.id] = chosen.working_weekdays

    @staticmethod
    async def _create_default(db: AsyncSession, company_id: uuid.UUID) -> Schedule:
        """Insert the Mon-Fri company schedule, or return the row a concurrent
        request inserted first."""
        schedule = Schedule(
            company_id=company_id,
            **{
                col: idx in DEFAULT_WORKING_WEEKDAYS
                for idx, col in enumerate(WEEKDAY_COLUMNS)
            },
        )
        try:
            async with db.begin_nested():
                db.add(schedule)
                await db.flush()
        except IntegrityError:
            logger.info("Default schedule for company %s already exists", company_id)
            result = await db.execute(
                select(Schedule).where(
                    Schedule.company_id == company_id,
                    Schedule.user_id.is_(None),
                )
            )
            return result.scalar_one()

        logger.info("Created default Mon-Fri schedule for company %s", company_id)
        return schedule

    @staticmethod
    async def _load_holidays(
        db: AsyncSession,
        company_ids: set[uuid.UUID],
        cache: ScheduleCache,
    ) -> None:
        result = await db.execute(
            select(BankHoliday.company_id, BankHoliday.day).where(
                BankHoliday.company_id.in_(list(company_ids)),
            )
        )
        found: dict[uuid.UUID, set[date]] = {cid: set() for cid in company_ids}
        for company_id, day in result.all():
            found[company_id].add(day)
        for company_id, days in found.items():
            cache.holidays[company_id] = frozenset(days)
