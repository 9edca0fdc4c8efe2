"""Outbound notifications — transport boundary plus audit records.

Delivery itself belongs to external collaborators (mail relay, chat
webhook). The ``notify_*`` helpers work out the recipients inside the
current transaction and queue the message with ``after_commit``; nothing
leaves the process unless the leave transition that triggered it is
committed. Each delivery then runs in its own savepoint and writes one
``NotificationAudit`` row. A failing transport is logged and loses only
its own audit row.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.permissions import supervisors_of
from timeoff.common.constants import LeaveStatus, NotificationChannel
from timeoff.company.models import User
from timeoff.database import after_commit
from timeoff.leave.models import Leave, LeaveType
from timeoff.notifications.models import NotificationAudit

logger = logging.getLogger(__name__)


# ── Transports ──────────────────────────────────────────────────────


class NotificationTransport:
    """Interface of an outbound channel."""

    channel: NotificationChannel = NotificationChannel.email

    async def send(self, *, recipient: User, subject: str, body: str) -> str:
        """Deliver the message; return the address it was sent to."""
        raise NotImplementedError


class LogTransport(NotificationTransport):
    """Default transport: writes the message to the application log."""

    async def send(self, *, recipient: User, subject: str, body: str) -> str:
        logger.info(
            "Outbound %s to %s: %s", self.channel.value, recipient.email, subject,
        )
        return recipient.email


_transports: list[NotificationTransport] = [LogTransport()]


def get_transports() -> Sequence[NotificationTransport]:
    return tuple(_transports)


def set_transports(transports: Iterable[NotificationTransport]) -> None:
    """Replace the active transports (wired at startup or in tests)."""
    _transports[:] = list(transports)


# ── Dispatch ────────────────────────────────────────────────────────


async def _send(
    subject: str,
    body: str,
    recipients: list[User],
    db: AsyncSession,
) -> None:
    """Post-commit half: hand the message to every transport."""
    for recipient in recipients:
        for transport in get_transports():
            try:
                async with db.begin_nested():
                    address = await transport.send(
                        recipient=recipient, subject=subject, body=body,
                    )
                    db.add(NotificationAudit(
                        company_id=recipient.company_id,
                        user_id=recipient.id,
                        channel=transport.channel,
                        recipient=address,
                        subject=subject,
                        body=body,
                    ))
            except Exception:
                logger.exception(
                    "Notification '%s' was not delivered to %s over %s",
                    subject, recipient.email, transport.channel.value,
                )
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Audit rows for notification '%s' were not stored", subject)


async def _deliver(
    db: AsyncSession,
    *,
    subject: str,
    body: str,
    to: Iterable[User] = (),
    supervisors_of_user: Optional[User] = None,
) -> int:
    """Queue a message for delivery after commit. Returns the recipient count.

    Recipient lookup runs in a savepoint, so a failing query cannot poison
    the surrounding transaction.
    """
    recipients = {user.id: user for user in to}
    if supervisors_of_user is not None:
        try:
            async with db.begin_nested():
                supervisors = await supervisors_of(db, supervisors_of_user)
        except Exception:
            logger.exception("Recipients of notification '%s' could not be loaded", subject)
            supervisors = []
        for user in supervisors:
            recipients.setdefault(user.id, user)

    if recipients:
        after_commit(db, partial(_send, subject, body, list(recipients.values())))
    return len(recipients)


def _describe(leave: Leave, leave_type: LeaveType) -> str:
    period = (
        f"{leave.date_start.isoformat()} ({leave.day_part_start.value})"
        f" to {leave.date_end.isoformat()} ({leave.day_part_end.value})"
    )
    return f"{leave_type.name} leave from {period}"


# ── Helpers called by the leave workflow ────────────────────────────


async def notify_leave_request(
    db: AsyncSession,
    leave: Leave,
    requester: User,
    leave_type: LeaveType,
) -> int:
    """Ask the requester's supervisors to review a new request."""
    return await _deliver(
        db,
        subject=f"New leave request from {requester.full_name}",
        body=f"{requester.full_name} requested {_describe(leave, leave_type)}.",
        supervisors_of_user=requester,
    )


async def notify_leave_decision(
    db: AsyncSession,
    leave: Leave,
    requester: User,
    leave_type: LeaveType,
    *,
    actor: User,
) -> int:
    """Tell the requester how a supervisor decided."""
    label = leave.status.label
    return await _deliver(
        db,
        subject=f"Leave request {label.lower()}",
        body=f"{actor.full_name} set your {_describe(leave, leave_type)} to {label}.",
        to=[requester],
    )


async def notify_leave_cancel(
    db: AsyncSession,
    leave: Leave,
    requester: User,
    leave_type: LeaveType,
) -> int:
    return await _deliver(
        db,
        subject=f"{requester.full_name} canceled a leave request",
        body=f"{requester.full_name} canceled {_describe(leave, leave_type)}.",
        supervisors_of_user=requester,
    )


async def notify_leave_revoke(
    db: AsyncSession,
    leave: Leave,
    requester: User,
    leave_type: LeaveType,
    *,
    actor: User,
) -> int:
    """Revoke requested (supervisors must decide) or revoked outright."""
    if leave.status == LeaveStatus.revoked:
        subject = f"Leave of {requester.full_name} revoked"
        to = [requester] if actor.id != requester.id else []
    else:
        subject = f"Revoke requested for leave of {requester.full_name}"
        to = []
    return await _deliver(
        db,
        subject=subject,
        body=f"{actor.full_name}: {_describe(leave, leave_type)} is now {leave.status.label}.",
        to=to,
        supervisors_of_user=requester,
    )
