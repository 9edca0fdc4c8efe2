"""Authorization predicate, supervision loaders and the auth dependency."""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.permissions import (
    can_manage,
    load_supervised_department_ids,
    managed_users,
    supervisors_of,
)
from timeoff.company.models import DepartmentSupervisor
from tests.conftest import (
    Org,
    _make_company,
    _make_department,
    _make_user,
    auth_headers,
    create_access_token,
)


class TestCanManage:

    def test_admin_manages_company(self):
        company = _make_company()
        dept = _make_department(company)
        admin = _make_user(company, dept, is_admin=True)
        subject = _make_user(company, _make_department(company, name="Ops"))
        assert can_manage(admin, subject, frozenset()) is True

    def test_admin_of_other_company(self):
        company = _make_company()
        other = _make_company(name="Other")
        admin = _make_user(other, _make_department(other), is_admin=True)
        subject = _make_user(company, _make_department(company))
        assert can_manage(admin, subject, frozenset()) is False

    def test_supervisor_of_department(self):
        company = _make_company()
        dept = _make_department(company)
        boss = _make_user(company, _make_department(company, name="Mgmt"))
        subject = _make_user(company, dept)
        assert can_manage(boss, subject, {dept.id}) is True
        assert can_manage(boss, subject, {uuid.uuid4()}) is False


class TestLoaders:

    async def test_manager_and_secondary_supervisor(self, db: AsyncSession, org: Org):
        db.add(DepartmentSupervisor(
            id=uuid.uuid4(), department_id=org.management.id, user_id=org.manager.id,
        ))
        await db.commit()

        supervised = await load_supervised_department_ids(db, org.manager)
        assert supervised == frozenset({org.sales.id, org.management.id})
        assert await load_supervised_department_ids(db, org.employee) == frozenset()

    async def test_managed_users(self, db: AsyncSession, org: Org):
        everyone = await managed_users(db, org.admin)
        team = await managed_users(db, org.manager)
        alone = await managed_users(db, org.employee)

        assert {u.id for u in everyone} == {org.admin.id, org.manager.id, org.employee.id}
        assert {u.id for u in team} == {org.manager.id, org.employee.id}
        assert [u.id for u in alone] == [org.employee.id]

    async def test_managed_users_sorted_by_lastname(self, db: AsyncSession, org: Org):
        # Admin, Doe, Manager
        users = await managed_users(db, org.admin)
        assert [u.lastname for u in users] == ["Admin", "Doe", "Manager"]

    async def test_supervisors_of_employee(self, db: AsyncSession, org: Org):
        supervisors = await supervisors_of(db, org.employee)
        assert [u.id for u in supervisors] == [org.manager.id]

    async def test_supervisors_fall_back_to_admins(self, db: AsyncSession, org: Org):
        org.sales.manager_id = None
        await db.commit()

        supervisors = await supervisors_of(db, org.employee)
        assert [u.id for u in supervisors] == [org.admin.id]


class TestAuthDependency:

    async def test_missing_header(self, client, org: Org):
        resp = await client.get("/api/v1/calendar/team-view", params={
            "start": "2024-06-01", "end": "2024-06-02",
        })
        assert resp.status_code == 401

    async def test_expired_token(self, client, org: Org):
        token = create_access_token(org.employee.id, expired=True)
        resp = await client.get(
            "/api/v1/leave/balance",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_unknown_user(self, client, org: Org):
        token = create_access_token(uuid.uuid4())
        resp = await client.get(
            "/api/v1/leave/balance",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_former_employee(self, client, db: AsyncSession, org: Org):
        org.employee.end_date = date(2021, 12, 31)
        await db.commit()

        resp = await client.get("/api/v1/leave/balance", headers=auth_headers(org.employee))
        assert resp.status_code == 401

    async def test_admin_required(self, client, org: Org):
        resp = await client.get(
            "/api/v1/integration/report/allowance",
            headers=auth_headers(org.manager),
        )
        assert resp.status_code == 403
        assert resp.json()["title"] == "Forbidden"
