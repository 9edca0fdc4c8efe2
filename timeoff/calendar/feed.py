"""iCalendar feeds: leave days and work anniversaries.

A feed is addressed by an opaque ``UserFeed.feed_token`` that its owner
issues (and may regenerate). Leave feeds carry one event per leave per
working day, so a morning and an afternoon leave on the same date stay two
events with their own comments.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from icalendar import Calendar, Event
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.auth.permissions import managed_users
from timeoff.calendar.models import UserFeed, new_feed_token
from timeoff.calendar.service import TeamViewService
from timeoff.common.constants import CompanyMode, FeedType
from timeoff.company.models import Company, User
from timeoff.config import settings
from timeoff.leave.expander import DayUnit, expand
from timeoff.leave.models import Comment
from timeoff.schedule.service import ScheduleCache, ScheduleResolver

logger = logging.getLogger(__name__)

PRODID = "-//timeoff.management//Calendar feed//EN"

DEFAULT_FEED_NAMES = {
    FeedType.calendar: "My calendar",
    FeedType.teamview: "Team view",
}


@dataclass(frozen=True)
class FeedOwner:
    feed: UserFeed
    user: User
    company: Company

    @property
    def tz(self) -> ZoneInfo:
        return self.company.zone


@dataclass(frozen=True)
class LeaveDay:
    """One working day of one leave."""

    user: User
    leave_id: uuid.UUID
    unit: DayUnit


# ── Windows ─────────────────────────────────────────────────────────


def _add_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def teamview_window(today: date) -> tuple[date, date]:
    """From the first of ``FEED_PAST_MONTHS`` ago to the end of the month
    ``FEED_FUTURE_MONTHS`` ahead."""
    start = _add_months(today, -settings.FEED_PAST_MONTHS)
    end = _add_months(today, settings.FEED_FUTURE_MONTHS + 1) - timedelta(days=1)
    return start, end


def calendar_window(today: date) -> tuple[date, date]:
    return date(today.year, 1, 1), date(today.year, 12, 31)


# ── Rendering ───────────────────────────────────────────────────────


def _new_calendar(name: str) -> Calendar:
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("x-wr-calname", name)
    return cal


def leave_event(day: LeaveDay, tz: ZoneInfo, comments: Iterable[str] = ()) -> Event:
    """All-day event, or a 09-13 / 13-17 slot for a half day."""
    unit = day.unit
    event = Event()
    event.add("uid", f"{day.leave_id}-{unit.date.isoformat()}@{settings.FEED_DOMAIN}")
    event.add("dtstamp", datetime.now(timezone.utc))
    event.add("summary", f"{day.user.full_name} is OOO (out of office)")

    if unit.is_morning_off and unit.is_afternoon_off:
        event.add("dtstart", unit.date)
        event.add("dtend", unit.date + timedelta(days=1))
    else:
        if unit.is_morning_off:
            start_hour, end_hour = settings.WORKDAY_START_HOUR, settings.WORKDAY_MIDDAY_HOUR
        else:
            start_hour, end_hour = settings.WORKDAY_MIDDAY_HOUR, settings.WORKDAY_END_HOUR
        start = datetime.combine(unit.date, time(start_hour), tzinfo=tz)
        end = datetime.combine(unit.date, time(end_hour), tzinfo=tz)
        event.add("dtstart", start.astimezone(timezone.utc))
        event.add("dtend", end.astimezone(timezone.utc))

    comments = list(comments)
    event.add("description", f"With comments: {'. '.join(comments)}" if comments else "")
    return event


def render_leave_feed(
    name: str,
    days: Iterable[LeaveDay],
    comments: dict[uuid.UUID, list[str]],
    tz: ZoneInfo,
) -> bytes:
    cal = _new_calendar(name)
    for day in days:
        cal.add_component(leave_event(day, tz, comments.get(day.leave_id, ())))
    return cal.to_ical()


def _first_anniversary(start: date) -> date:
    try:
        return start.replace(year=start.year + 1)
    except ValueError:
        # 29 February
        return date(start.year + 1, 2, 28)


def render_anniversary_feed(users: Iterable[User]) -> bytes:
    cal = _new_calendar("anniversary")
    for user in users:
        first = _first_anniversary(user.start_date)
        event = Event()
        event.add("uid", f"anniversary-{user.id}@{settings.FEED_DOMAIN}")
        event.add("dtstamp", datetime.now(timezone.utc))
        event.add("summary", f"{user.full_name}: work anniversary (joined {user.start_date.year})")
        event.add("description", f"{user.full_name} started on {user.start_date.isoformat()}.")
        event.add("dtstart", first)
        event.add("dtend", first + timedelta(days=1))
        event.add("rrule", {"freq": "yearly"})
        cal.add_component(event)
    return cal.to_ical()


# ── Service ─────────────────────────────────────────────────────────


class FeedService:
    """Feed tokens and feed assembly."""

    @staticmethod
    async def list_feeds(db: AsyncSession, user: User) -> list[UserFeed]:
        result = await db.execute(
            select(UserFeed).where(UserFeed.user_id == user.id).order_by(UserFeed.type)
        )
        return list(result.scalars().all())

    @staticmethod
    async def issue_feed(
        db: AsyncSession,
        user: User,
        feed_type: FeedType,
        name: Optional[str] = None,
    ) -> UserFeed:
        """Create the user's feed of *feed_type*, or give the existing one a
        new token. The old token stops working immediately."""
        result = await db.execute(
            select(UserFeed).where(UserFeed.user_id == user.id, UserFeed.type == feed_type)
        )
        feed = result.scalar_one_or_none()
        if feed is None:
            feed = UserFeed(
                user_id=user.id,
                type=feed_type,
                name=name or DEFAULT_FEED_NAMES[feed_type],
                feed_token=new_feed_token(),
            )
            db.add(feed)
            action = "issued"
        else:
            feed.feed_token = new_feed_token()
            if name:
                feed.name = name
            action = "regenerated"
        await db.flush()

        logger.info("%s feed %s %s for user %s", feed_type.value, feed.id, action, user.id)
        return feed

    @staticmethod
    async def get_owner(
        db: AsyncSession,
        token: str,
        *,
        allow_readonly: bool = False,
    ) -> Optional[FeedOwner]:
        """Resolve a feed token. None when unknown or the company is read-only."""
        result = await db.execute(
            select(UserFeed, User, Company)
            .join(User, User.id == UserFeed.user_id)
            .join(Company, Company.id == User.company_id)
            .where(UserFeed.feed_token == token)
        )
        found = result.first()
        if found is None:
            return None
        feed, user, company = found
        if company.mode == CompanyMode.readonly_holidays and not allow_readonly:
            return None
        return FeedOwner(feed=feed, user=user, company=company)

    @staticmethod
    async def _comments_for(
        db: AsyncSession,
        leave_ids: set[uuid.UUID],
    ) -> dict[uuid.UUID, list[str]]:
        comments: dict[uuid.UUID, list[str]] = defaultdict(list)
        if not leave_ids:
            return comments
        result = await db.execute(
            select(Comment.leave_id, Comment.comment)
            .where(Comment.leave_id.in_(list(leave_ids)))
            .order_by(Comment.created_at)
        )
        for leave_id, text in result.all():
            comments[leave_id].append(text)
        return comments

    @staticmethod
    async def _leave_days(
        db: AsyncSession,
        users: Sequence[User],
        start: date,
        end: date,
    ) -> list[LeaveDay]:
        users = [u for u in users if u.is_active_between(start, end)]
        if not users:
            return []
        calendars = await ScheduleResolver.resolve_many(db, users, ScheduleCache())
        leaves = await TeamViewService.load_leaves(db, [u.id for u in users], start, end)
        return [
            LeaveDay(user=user, leave_id=leave.id, unit=unit)
            for user in users
            for leave in leaves.get(user.id, [])
            for unit in expand(leave, calendars[user.id], window_start=start, window_end=end)
        ]

    @staticmethod
    async def leave_feed(
        db: AsyncSession,
        owner: FeedOwner,
        today: Optional[date] = None,
    ) -> bytes:
        """``calendar`` feeds: the owner's year. ``teamview`` feeds: everyone
        the owner may see, a few months around today."""
        tz = owner.tz
        today = today or datetime.now(tz).date()
        if owner.feed.type == FeedType.teamview:
            users = await managed_users(db, owner.user)
            start, end = teamview_window(today)
            name = f"{owner.user.full_name}'s team whereabouts"
        else:
            users = [owner.user]
            start, end = calendar_window(today)
            name = f"{owner.user.full_name} calendar"

        days = await FeedService._leave_days(db, users, start, end)
        comments = await FeedService._comments_for(db, {d.leave_id for d in days})
        return render_leave_feed(name, days, comments, tz)

    @staticmethod
    async def anniversary_feed(
        db: AsyncSession,
        owner: FeedOwner,
        today: Optional[date] = None,
    ) -> bytes:
        """Yearly recurring event per still-employed user of the company."""
        today = today or datetime.now(owner.tz).date()
        result = await db.execute(
            select(User)
            .where(
                User.company_id == owner.company.id,
                (User.end_date.is_(None)) | (User.end_date >= today),
            )
            .order_by(User.lastname, User.name)
        )
        return render_anniversary_feed(result.scalars().all())
