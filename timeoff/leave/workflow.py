"""Leave lifecycle state machine.

    New ──approve──▶ Approved ──request_revoke──▶ PendedRevoke ──approve──▶ Revoked
     │                  ▲                              │
     ├──reject──▶ Rejected                             │
     └──cancel──▶ Canceled       Approved ◀──reject────┘

``request_revoke`` by a requester with auto-approve goes straight to
Revoked. Rejected, Canceled and Revoked are terminal.

Everything here is synchronous and side-effect free apart from
``apply_transition``, which mutates the leave and writes ``status`` as
its final assignment.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Collection, Optional
import uuid

from timeoff.common.constants import LeaveAction, LeaveStatus
from timeoff.common.exceptions import ForbiddenException, InvalidTransition
from timeoff.auth.permissions import can_manage, is_self_or_manager
from timeoff.company.models import User
from timeoff.leave.models import Leave

TRANSITIONS: dict[tuple[LeaveAction, LeaveStatus], LeaveStatus] = {
    (LeaveAction.approve, LeaveStatus.new): LeaveStatus.approved,
    (LeaveAction.approve, LeaveStatus.pended_revoke): LeaveStatus.revoked,
    (LeaveAction.reject, LeaveStatus.new): LeaveStatus.rejected,
    (LeaveAction.reject, LeaveStatus.pended_revoke): LeaveStatus.approved,
    (LeaveAction.cancel, LeaveStatus.new): LeaveStatus.canceled,
    (LeaveAction.request_revoke, LeaveStatus.approved): LeaveStatus.pended_revoke,
}

# Actions whose actor becomes the leave's approver.
_DECISIONS = frozenset({LeaveAction.approve, LeaveAction.reject})


def next_status(
    action: LeaveAction,
    current: LeaveStatus,
    *,
    auto_approve: bool = False,
) -> LeaveStatus:
    """Target status of *action* from *current*; raises ``InvalidTransition``."""
    try:
        target = TRANSITIONS[(action, current)]
    except KeyError:
        raise InvalidTransition(action.value, current.label) from None
    if action is LeaveAction.request_revoke and auto_approve:
        return LeaveStatus.revoked
    return target


def check_actor(
    action: LeaveAction,
    actor: User,
    requester: User,
    supervised_department_ids: Collection[uuid.UUID],
) -> None:
    """Raise ``ForbiddenException`` unless *actor* may perform *action*."""
    if action in _DECISIONS:
        allowed = can_manage(actor, requester, supervised_department_ids)
        message = "Only a supervisor of the employee can decide on this request."
    elif action is LeaveAction.cancel:
        allowed = actor.id == requester.id
        message = "Only the employee who requested the leave can cancel it."
    else:
        allowed = is_self_or_manager(actor, requester, supervised_department_ids)
        message = "You cannot revoke this leave."
    if not allowed:
        raise ForbiddenException(message)


def apply_transition(
    leave: Leave,
    action: LeaveAction,
    target: LeaveStatus,
    actor: User,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Mutate *leave* for a validated transition. ``status`` is written last."""
    if action in _DECISIONS:
        leave.approver_id = actor.id
        leave.decided_at = now or datetime.now(timezone.utc)
    elif target is LeaveStatus.revoked:
        # auto-approved self revoke
        leave.decided_at = now or datetime.now(timezone.utc)
    leave.status = target
