"""Schedule resolver — default creation, precedence, holidays, cache."""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.exceptions import ScheduleInconsistency
from timeoff.schedule.models import BankHoliday, Schedule
from timeoff.schedule.service import ScheduleCache, ScheduleResolver, pick_schedule
from tests.conftest import Org


def _schedule(*, company_id=None, user_id=None, **days) -> Schedule:
    return Schedule(id=uuid.uuid4(), company_id=company_id, user_id=user_id, **days)


class TestPickSchedule:

    def test_no_rows(self):
        assert pick_schedule(uuid.uuid4(), []) is None

    def test_single_row(self):
        row = _schedule(company_id=uuid.uuid4())
        assert pick_schedule(uuid.uuid4(), [row]) is row

    def test_user_specific_wins(self):
        user_id = uuid.uuid4()
        company_row = _schedule(company_id=uuid.uuid4())
        user_row = _schedule(user_id=user_id)
        assert pick_schedule(user_id, [company_row, user_row]) is user_row

    def test_two_company_rows_is_inconsistent(self):
        company_id = uuid.uuid4()
        rows = [_schedule(company_id=company_id), _schedule(company_id=company_id)]
        with pytest.raises(ScheduleInconsistency):
            pick_schedule(uuid.uuid4(), rows)

    def test_three_rows_is_inconsistent(self):
        user_id = uuid.uuid4()
        rows = [
            _schedule(company_id=uuid.uuid4()),
            _schedule(user_id=user_id),
            _schedule(user_id=user_id),
        ]
        with pytest.raises(ScheduleInconsistency) as exc_info:
            pick_schedule(user_id, rows)
        assert exc_info.value.show_to_user is False


class TestResolve:

    async def test_default_schedule_created(self, db: AsyncSession, org: Org):
        calendar = await ScheduleResolver.resolve(db, org.employee)
        await db.commit()

        assert calendar.working_weekdays == frozenset({0, 1, 2, 3, 4})
        count = (await db.execute(
            select(func.count()).select_from(Schedule)
            .where(Schedule.company_id == org.company.id)
        )).scalar_one()
        assert count == 1

    async def test_default_created_once_for_many_users(self, db: AsyncSession, org: Org):
        calendars = await ScheduleResolver.resolve_many(
            db, [org.admin, org.manager, org.employee],
        )
        await db.commit()

        assert set(calendars) == {org.admin.id, org.manager.id, org.employee.id}
        count = (await db.execute(select(func.count()).select_from(Schedule))).scalar_one()
        assert count == 1

    async def test_user_schedule_overrides_company(self, db: AsyncSession, org: Org):
        db.add(_schedule(company_id=org.company.id))
        db.add(_schedule(
            user_id=org.employee.id,
            monday=False, saturday=True,
        ))
        await db.commit()

        employee = await ScheduleResolver.resolve(db, org.employee)
        manager = await ScheduleResolver.resolve(db, org.manager)
        assert employee.working_weekdays == frozenset({1, 2, 3, 4, 5})
        assert manager.working_weekdays == frozenset({0, 1, 2, 3, 4})

    async def test_second_company_schedule_refused(self, db: AsyncSession, org: Org):
        db.add(_schedule(company_id=org.company.id))
        await db.commit()

        db.add(_schedule(company_id=org.company.id, friday=False))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

    async def test_second_personal_schedule_refused(self, db: AsyncSession, org: Org):
        db.add(_schedule(user_id=org.employee.id))
        await db.commit()

        db.add(_schedule(user_id=org.employee.id, monday=False))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

    async def test_default_reuses_row_created_concurrently(self, db: AsyncSession, org: Org):
        """Another request inserted the default between our read and our insert."""
        existing = _schedule(company_id=org.company.id, saturday=True)
        db.add(existing)
        await db.commit()

        schedule = await ScheduleResolver._create_default(db, org.company.id)
        await db.commit()

        assert schedule.id == existing.id
        count = (await db.execute(
            select(func.count()).select_from(Schedule)
            .where(Schedule.company_id == org.company.id)
        )).scalar_one()
        assert count == 1

    async def test_bank_holidays_are_non_working(self, db: AsyncSession, org: Org):
        db.add(BankHoliday(
            id=uuid.uuid4(), company_id=org.company.id,
            day=date(2024, 12, 25), name="Christmas",
        ))
        await db.commit()

        calendar = await ScheduleResolver.resolve(db, org.employee)
        assert calendar.is_working_day(date(2024, 12, 25)) is False
        assert calendar.is_working_day(date(2024, 12, 24)) is True

    async def test_cache_reused_within_request(self, db: AsyncSession, org: Org):
        cache = ScheduleCache()
        first = await ScheduleResolver.resolve(db, org.employee, cache)

        # Rows added after the first resolution are not seen through the cache
        db.add(_schedule(user_id=org.employee.id, friday=False))
        await db.flush()
        second = await ScheduleResolver.resolve(db, org.employee, cache)
        fresh = await ScheduleResolver.resolve(db, org.employee)

        assert first == second
        assert fresh.working_weekdays == frozenset({0, 1, 2, 3})
