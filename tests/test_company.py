"""Employee removal (guards, explicit cascade) and the company export."""

from __future__ import annotations

import csv
import io
import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.allowance.models import AllowanceAdjustment
from timeoff.calendar.models import UserFeed
from timeoff.common.constants import DayPart, FeedType, LeaveStatus, NotificationChannel
from timeoff.common.exceptions import (
    BusinessRuleViolation,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from timeoff.company.models import DepartmentSupervisor, User
from timeoff.company.service import SUMMARY_CSV_HEADER, CompanyService, summary_csv
from timeoff.leave.models import Comment, Leave
from timeoff.notifications.models import NotificationAudit
from timeoff.schedule.models import Schedule
from tests.conftest import Org, _make_leave, _make_user, auth_headers


async def _count(db: AsyncSession, model, *criteria) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    return (await db.execute(query)).scalar_one()


async def _seed_history(db: AsyncSession, org: Org) -> Leave:
    """Everything the employee owns, plus one comment on a colleague's leave."""
    leave = _make_leave(org.employee, org.holiday, date(2024, 6, 3), date(2024, 6, 7))
    colleague_leave = _make_leave(org.manager, org.holiday, date(2024, 7, 1), date(2024, 7, 1))
    db.add_all([leave, colleague_leave])
    await db.flush()
    db.add_all([
        Comment(
            id=uuid.uuid4(), company_id=org.company.id, leave_id=leave.id,
            by_user_id=org.manager.id, comment="On a leave of the employee",
        ),
        Comment(
            id=uuid.uuid4(), company_id=org.company.id, leave_id=colleague_leave.id,
            by_user_id=org.employee.id, comment="By the employee",
        ),
        Schedule(id=uuid.uuid4(), user_id=org.employee.id, friday=False),
        UserFeed(id=uuid.uuid4(), user_id=org.employee.id, name="Mine", type=FeedType.calendar),
        AllowanceAdjustment(
            id=uuid.uuid4(), user_id=org.employee.id, leave_type_id=org.holiday.id,
            year=2024, delta=Decimal("1"), created_by=org.admin.id,
        ),
        NotificationAudit(
            id=uuid.uuid4(), company_id=org.company.id, user_id=org.employee.id,
            channel=NotificationChannel.email, recipient=org.employee.email,
            subject="Hello", body="Hello",
        ),
    ])
    await db.commit()
    return colleague_leave


class TestRemoveUser:

    async def test_cascade(self, db: AsyncSession, org: Org):
        colleague_leave = await _seed_history(db, org)

        removed = await CompanyService.remove_user(db, org.admin, org.employee.id)
        await db.commit()

        assert removed["leaves"] == 1
        assert removed["comments"] == 2
        assert await _count(db, User, User.id == org.employee.id) == 0
        assert await _count(db, Leave, Leave.user_id == org.employee.id) == 0
        assert await _count(db, Comment) == 0
        assert await _count(db, Schedule, Schedule.user_id == org.employee.id) == 0
        assert await _count(db, UserFeed) == 0
        assert await _count(db, AllowanceAdjustment) == 0
        assert await _count(db, NotificationAudit) == 0
        # colleague data survives
        assert await _count(db, Leave, Leave.id == colleague_leave.id) == 1
        assert await _count(db, User) == 2

    async def test_decisions_reattributed_to_actor(self, db: AsyncSession, org: Org):
        """A former supervisor's approvals move to the admin removing them."""
        leave = _make_leave(
            org.employee, org.holiday, date(2024, 6, 3), date(2024, 6, 7),
            approver=org.manager,
        )
        db.add(leave)
        org.sales.manager_id = org.admin.id
        await db.commit()

        await CompanyService.remove_user(db, org.admin, org.manager.id)
        await db.commit()

        refreshed = await db.get(Leave, leave.id, populate_existing=True)
        assert refreshed.approver_id == org.admin.id

    async def test_admin_cannot_be_removed(self, db: AsyncSession, org: Org):
        other_admin = _make_user(org.company, org.management, name="Bo", is_admin=True)
        db.add(other_admin)
        await db.commit()

        with pytest.raises(BusinessRuleViolation):
            await CompanyService.remove_user(db, org.admin, other_admin.id)

    async def test_manager_cannot_be_removed(self, db: AsyncSession, org: Org):
        with pytest.raises(BusinessRuleViolation):
            await CompanyService.remove_user(db, org.admin, org.manager.id)
        assert await _count(db, User, User.id == org.manager.id) == 1

    async def test_secondary_supervisor_cannot_be_removed(self, db: AsyncSession, org: Org):
        db.add(DepartmentSupervisor(
            id=uuid.uuid4(), department_id=org.management.id, user_id=org.employee.id,
        ))
        await db.commit()

        with pytest.raises(BusinessRuleViolation):
            await CompanyService.remove_user(db, org.admin, org.employee.id)

    async def test_only_admins_remove(self, db: AsyncSession, org: Org):
        with pytest.raises(ForbiddenException):
            await CompanyService.remove_user(db, org.manager, org.employee.id)

    async def test_unknown_user(self, db: AsyncSession, org: Org):
        with pytest.raises(NotFoundException):
            await CompanyService.remove_user(db, org.admin, uuid.uuid4())


class TestRemoveUserAPI:

    async def test_delete(self, client, db: AsyncSession, org: Org):
        await _seed_history(db, org)

        resp = await client.delete(
            f"/api/v1/users/{org.employee.id}", headers=auth_headers(org.admin),
        )
        assert resp.status_code == 204
        assert await _count(db, User, User.id == org.employee.id) == 0
        assert await _count(db, Leave, Leave.user_id == org.employee.id) == 0

    async def test_refusal_is_409(self, client, org: Org):
        resp = await client.delete(
            f"/api/v1/users/{org.manager.id}", headers=auth_headers(org.admin),
        )
        assert resp.status_code == 409
        assert resp.json()["title"] == "Operation Not Allowed"

    async def test_requires_admin(self, client, org: Org):
        resp = await client.delete(
            f"/api/v1/users/{org.employee.id}", headers=auth_headers(org.manager),
        )
        assert resp.status_code == 403


async def _seed_export(db: AsyncSession, org: Org) -> None:
    db.add_all([
        _make_leave(org.employee, org.holiday, date(2024, 6, 3), date(2024, 6, 7)),
        _make_leave(
            org.employee, org.sick, date(2024, 6, 10), date(2024, 6, 11),
            day_part_end=DayPart.morning,
        ),
        _make_leave(
            org.employee, org.holiday, date(2024, 7, 1), date(2024, 7, 1),
            status=LeaveStatus.rejected,
        ),
        _make_leave(org.manager, org.holiday, date(2023, 12, 27), date(2023, 12, 28)),
    ])
    org.manager.end_date = date(2024, 1, 31)
    await db.commit()


class TestExport:

    async def test_summary(self, db: AsyncSession, org: Org):
        await _seed_export(db, org)

        summary = await CompanyService.export_summary(db, org.admin)

        assert summary.name == "Acme Ltd"
        assert [d.name for d in summary.departments] == ["Management", "Sales"]
        assert [(lt.name, lt.use_allowance) for lt in summary.leave_types] == [
            ("Holiday", True), ("Sick", False),
        ]
        assert [u.lastname for u in summary.users] == ["Admin", "Doe", "Manager"]

        jane = summary.users[1]
        assert jane.department == "Sales"
        by_type = {lv.leave_type: lv for lv in jane.leaves}
        assert len(jane.leaves) == 2
        assert by_type["Holiday"].days == Decimal("5")
        assert by_type["Holiday"].deducted_days == Decimal("5")
        assert by_type["Sick"].days == Decimal("1.5")
        assert by_type["Sick"].deducted_days == Decimal("0")

        # Former employees stay in the export with their history
        mark = summary.users[2]
        assert mark.end_date == date(2024, 1, 31)
        assert [lv.status for lv in mark.leaves] == ["Approved"]

    async def test_window(self, db: AsyncSession, org: Org):
        await _seed_export(db, org)

        summary = await CompanyService.export_summary(
            db, org.admin, date(2024, 6, 7), date(2024, 6, 30),
        )

        leaves = [lv for u in summary.users for lv in u.leaves]
        assert sorted(lv.date_start for lv in leaves) == [date(2024, 6, 3), date(2024, 6, 10)]
        # counts cover the whole leave, not the clipped part
        assert next(lv for lv in leaves if lv.leave_type == "Holiday").days == Decimal("5")

    async def test_reversed_window(self, db: AsyncSession, org: Org):
        with pytest.raises(ValidationException):
            await CompanyService.export_summary(
                db, org.admin, date(2024, 6, 30), date(2024, 6, 1),
            )

    async def test_only_admins_export(self, db: AsyncSession, org: Org):
        with pytest.raises(ForbiddenException):
            await CompanyService.export_summary(db, org.manager)

    async def test_csv_rows(self, db: AsyncSession, org: Org):
        await _seed_export(db, org)
        summary = await CompanyService.export_summary(db, org.admin)

        rows = list(csv.reader(io.StringIO(summary_csv(summary))))

        assert tuple(rows[0]) == SUMMARY_CSV_HEADER
        assert len(rows) == 4
        assert rows[1] == [
            "Sales", "Doe", "Jane", org.employee.email, "Holiday", "Approved",
            "2024-06-03", "2024-06-07", "5", "5",
        ]
        assert rows[2][4:] == ["Sick", "Approved", "2024-06-10", "2024-06-11", "1.5", "0"]


class TestExportAPI:

    async def test_json(self, client, db: AsyncSession, org: Org):
        await _seed_export(db, org)

        resp = await client.get("/api/v1/users/export", headers=auth_headers(org.admin))
        assert resp.status_code == 200
        body = resp.json()
        assert body["timezone"] == "Europe/London"
        assert len(body["users"]) == 3
        jane = next(u for u in body["users"] if u["email"] == org.employee.email)
        assert {lv["leave_type"] for lv in jane["leaves"]} == {"Holiday", "Sick"}

    async def test_csv(self, client, db: AsyncSession, org: Org):
        await _seed_export(db, org)

        resp = await client.get(
            "/api/v1/users/export",
            params={"format": "csv", "start_date": "2024-01-01"},
            headers=auth_headers(org.admin),
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "company-summary.csv" in resp.headers["content-disposition"]
        lines = resp.text.strip().splitlines()
        assert lines[0].startswith("Department,Lastname,Name")
        assert len(lines) == 3

    async def test_requires_admin(self, client, org: Org):
        resp = await client.get("/api/v1/users/export", headers=auth_headers(org.employee))
        assert resp.status_code == 403
