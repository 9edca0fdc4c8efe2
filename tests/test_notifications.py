"""Notifications — recipients, audit rows, commit ordering and failure isolation."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import LeaveStatus, NotificationChannel
from timeoff.company.models import User
from timeoff.database import commit
from timeoff.leave.models import Leave
from timeoff.leave.schemas import LeaveCreate
from timeoff.leave.service import LeaveService
from timeoff.notifications.models import NotificationAudit
from timeoff.notifications.service import (
    LogTransport,
    NotificationTransport,
    set_transports,
)
from tests.conftest import Org, auth_headers


class _BrokenTransport(NotificationTransport):
    async def send(self, *, recipient: User, subject: str, body: str) -> str:
        raise ConnectionError("relay unreachable")


class _ChatTransport(NotificationTransport):
    channel = NotificationChannel.chat

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, *, recipient: User, subject: str, body: str) -> str:
        self.sent.append((recipient.email, subject))
        return f"@{recipient.name.lower()}"


def _week(org: Org) -> LeaveCreate:
    return LeaveCreate(
        leave_type_id=org.holiday.id,
        date_start=date(2024, 6, 3),
        date_end=date(2024, 6, 7),
    )


async def _audits(db: AsyncSession) -> list[NotificationAudit]:
    result = await db.execute(select(NotificationAudit).order_by(NotificationAudit.created_at))
    return list(result.scalars().all())


class TestRecipients:

    async def test_request_goes_to_supervisor(self, db: AsyncSession, org: Org):
        await LeaveService.create_leave(db, org.employee, _week(org))
        await commit(db)

        audits = await _audits(db)
        assert [a.user_id for a in audits] == [org.manager.id]
        assert audits[0].recipient == org.manager.email
        assert audits[0].company_id == org.company.id

    async def test_decision_goes_to_requester(self, db: AsyncSession, org: Org):
        created = await LeaveService.create_leave(db, org.employee, _week(org))
        await commit(db)
        await LeaveService.approve(db, org.manager, created.leave.id)
        await commit(db)

        audits = await _audits(db)
        assert audits[-1].user_id == org.employee.id
        assert audits[-1].subject == "Leave request approved"

    async def test_cancel_goes_to_supervisor(self, db: AsyncSession, org: Org):
        created = await LeaveService.create_leave(db, org.employee, _week(org))
        await LeaveService.cancel(db, org.employee, created.leave.id)
        await commit(db)

        audits = await _audits(db)
        assert len(audits) == 2
        assert audits[-1].user_id == org.manager.id
        assert audits[-1].subject == "Jane Doe canceled a leave request"

    async def test_every_transport_audited(self, db: AsyncSession, org: Org):
        chat = _ChatTransport()
        set_transports([LogTransport(), chat])

        await LeaveService.create_leave(db, org.employee, _week(org))
        await commit(db)

        audits = await _audits(db)
        assert {a.channel for a in audits} == {NotificationChannel.email, NotificationChannel.chat}
        assert chat.sent == [(org.manager.email, "New leave request from Jane Doe")]
        assert "@mark" in {a.recipient for a in audits}


class TestCommitOrdering:

    async def test_nothing_sent_before_commit(self, db: AsyncSession, org: Org):
        chat = _ChatTransport()
        set_transports([chat])

        await LeaveService.create_leave(db, org.employee, _week(org))

        assert chat.sent == []
        assert await _audits(db) == []

        await commit(db)
        assert chat.sent == [(org.manager.email, "New leave request from Jane Doe")]

    async def test_rolled_back_transition_sends_nothing(self, db: AsyncSession, org: Org):
        chat = _ChatTransport()
        set_transports([chat])
        created = await LeaveService.create_leave(db, org.employee, _week(org))
        await commit(db)
        leave_id = created.leave.id
        chat.sent.clear()

        await LeaveService.approve(db, org.manager, leave_id)
        await db.rollback()
        await commit(db)

        assert chat.sent == []
        leave = await db.get(Leave, leave_id, populate_existing=True)
        assert leave.status == LeaveStatus.new
        assert [a.subject for a in await _audits(db)] == ["New leave request from Jane Doe"]

    async def test_failed_request_sends_nothing(self, client, org: Org):
        chat = _ChatTransport()
        set_transports([chat])
        resp = await client.post(
            "/api/v1/leave/requests",
            json={
                "leave_type_id": str(org.holiday.id),
                "date_start": "2024-06-07",
                "date_end": "2024-06-03",
            },
            headers=auth_headers(org.employee),
        )
        assert resp.status_code == 422
        assert chat.sent == []


class TestFailureIsolation:

    async def test_broken_transport_keeps_transition(self, db: AsyncSession, org: Org, caplog):
        set_transports([_BrokenTransport()])

        with caplog.at_level(logging.ERROR, logger="timeoff.notifications.service"):
            created = await LeaveService.create_leave(db, org.employee, _week(org))
            result = await LeaveService.reject(db, org.manager, created.leave.id)
            await commit(db)

        assert result.leave.status == LeaveStatus.rejected
        leave = await db.get(Leave, created.leave.id, populate_existing=True)
        assert leave.status == LeaveStatus.rejected
        assert await _audits(db) == []
        assert "was not delivered" in caplog.text

    async def test_one_broken_transport_spares_the_other(self, db: AsyncSession, org: Org):
        chat = _ChatTransport()
        set_transports([_BrokenTransport(), chat])

        await LeaveService.create_leave(db, org.employee, _week(org))
        await commit(db)

        audits = await _audits(db)
        assert [a.channel for a in audits] == [NotificationChannel.chat]
        assert len(chat.sent) == 1

    async def test_broken_transport_over_http(self, client, org: Org):
        set_transports([_BrokenTransport()])
        resp = await client.post(
            "/api/v1/leave/requests",
            json={
                "leave_type_id": str(org.holiday.id),
                "date_start": "2024-06-03",
                "date_end": "2024-06-07",
            },
            headers=auth_headers(org.employee),
        )
        assert resp.status_code == 201
        assert resp.json()["leave"]["status"] == LeaveStatus.new
