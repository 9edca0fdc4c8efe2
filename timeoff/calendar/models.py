"""Calendar feed ORM model: UserFeed."""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from timeoff.common.constants import FeedType
from timeoff.company.models import utcnow
from timeoff.database import Base


def new_feed_token() -> str:
    return secrets.token_urlsafe(24)


class UserFeed(Base):
    """Opaque token giving read access to one user's calendar feed.

    One row per user and feed type; regenerating replaces the token.
    """

    __tablename__ = "user_feeds"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "type", name="uq_user_feed_user_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("users.id"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    feed_token: Mapped[str] = mapped_column(
        sa.String(64), unique=True, default=new_feed_token, nullable=False,
    )
    type: Mapped[FeedType] = mapped_column(
        sa.Enum(
            FeedType,
            name="feed_type",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            length=16,
        ),
        default=FeedType.calendar,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
