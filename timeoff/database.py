"""Async SQLAlchemy engine and session management."""

from typing import Awaitable, Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Session, SessionTransaction

from timeoff.config import settings

# Async engine for FastAPI
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=20,
    pool_pre_ping=True,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

AFTER_COMMIT_KEY = "timeoff.after_commit"

AfterCommitCallback = Callable[[AsyncSession], Awaitable[None]]


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def after_commit(session: AsyncSession, callback: AfterCommitCallback) -> None:
    """Run *callback* once the session's current transaction is committed
    through ``commit()``. A rollback of the outer transaction drops it."""
    session.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)


@event.listens_for(Session, "after_soft_rollback")
def _drop_after_commit(session: Session, previous_transaction: SessionTransaction) -> None:
    if previous_transaction.nested:
        return
    session.info.pop(AFTER_COMMIT_KEY, None)


async def commit(session: AsyncSession) -> None:
    """Commit, then run the callbacks registered with ``after_commit``.

    Callbacks receive the same session, already outside the committed
    transaction, and must commit their own writes.
    """
    await session.commit()
    callbacks = session.info.pop(AFTER_COMMIT_KEY, [])
    for callback in callbacks:
        await callback(session)


async def get_db() -> AsyncSession:
    """FastAPI dependency: yield an async database session.

    The whole request is one unit of work: it commits when the handler
    returns and rolls back on any exception, so a transition that fails
    half-way never leaves a partial status write behind. Work queued with
    ``after_commit`` (outbound notifications) only runs once that commit
    has succeeded.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await commit(session)
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
