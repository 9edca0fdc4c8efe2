"""Authorization predicate: who may manage whom.

``can_manage`` is a pure function of (actor, subject, supervised
departments) so lifecycle guards can be tested without a database; the
async helpers below load the inputs it needs.
"""

from __future__ import annotations

import uuid
from typing import Collection, Optional

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.exceptions import ForbiddenException
from timeoff.company.models import Department, DepartmentSupervisor, User


def can_manage(
    actor: User,
    subject: User,
    supervised_department_ids: Collection[uuid.UUID],
) -> bool:
    """True when *actor* may act on *subject*'s leave as a supervisor.

    Admins manage everybody in their company; otherwise the actor must
    supervise the subject's department (as manager or secondary
    supervisor). Nobody manages users of another company.
    """
    if actor.company_id != subject.company_id:
        return False
    if actor.is_admin:
        return True
    return subject.department_id in supervised_department_ids


def is_self_or_manager(
    actor: User,
    subject: User,
    supervised_department_ids: Collection[uuid.UUID],
) -> bool:
    return actor.id == subject.id or can_manage(actor, subject, supervised_department_ids)


# ── Loaders ─────────────────────────────────────────────────────────


async def load_supervised_department_ids(
    db: AsyncSession,
    actor: User,
) -> frozenset[uuid.UUID]:
    """Departments *actor* manages directly or as a secondary supervisor."""
    as_manager = select(Department.id).where(
        Department.manager_id == actor.id,
        Department.company_id == actor.company_id,
    )
    as_supervisor = (
        select(DepartmentSupervisor.department_id)
        .join(Department, Department.id == DepartmentSupervisor.department_id)
        .where(
            DepartmentSupervisor.user_id == actor.id,
            Department.company_id == actor.company_id,
        )
    )
    result = await db.execute(sa.union(as_manager, as_supervisor))
    return frozenset(result.scalars().all())


async def ensure_can_manage(db: AsyncSession, actor: User, subject: User) -> None:
    supervised = await load_supervised_department_ids(db, actor)
    if not can_manage(actor, subject, supervised):
        raise ForbiddenException("You are not allowed to manage this employee.")


async def managed_users(
    db: AsyncSession,
    actor: User,
    *,
    department_id: Optional[uuid.UUID] = None,
) -> list[User]:
    """Users *actor* may see: the whole company for admins, otherwise the
    members of supervised departments plus the actor. Sorted by last name.
    """
    query = select(User).where(User.company_id == actor.company_id)
    if not actor.is_admin:
        supervised = await load_supervised_department_ids(db, actor)
        query = query.where(
            sa.or_(User.department_id.in_(list(supervised)), User.id == actor.id)
        )
    if department_id is not None:
        query = query.where(User.department_id == department_id)

    result = await db.execute(query.order_by(User.lastname, User.name, User.id))
    return list(result.scalars().all())


async def supervisors_of(db: AsyncSession, user: User) -> list[User]:
    """People who decide on *user*'s requests: the department manager and
    secondary supervisors, or the company admins when there are none.
    """
    department = await db.get(Department, user.department_id)
    ids: set[uuid.UUID] = set()
    if department is not None and department.manager_id is not None:
        ids.add(department.manager_id)
    result = await db.execute(
        select(DepartmentSupervisor.user_id).where(
            DepartmentSupervisor.department_id == user.department_id,
        )
    )
    ids.update(result.scalars().all())
    ids.discard(user.id)

    if ids:
        query = select(User).where(User.id.in_(list(ids)))
    else:
        query = select(User).where(
            User.company_id == user.company_id,
            User.is_admin.is_(True),
            User.id != user.id,
        )
    result = await db.execute(query.order_by(User.lastname, User.name))
    return list(result.scalars().all())
