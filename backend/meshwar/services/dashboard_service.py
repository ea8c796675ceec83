"""
Dashboard analytics.

All figures are computed in UTC relative to a single `now` so one payload is
internally consistent. The assembled payload is cached per period in
DashboardCache (see cache_service).

Periods:
  day    start = today 00:00,      previous = yesterday 00:00, hourly points
  week   start = now - 7 days,     previous = now - 14 days,   daily points
  month  start = now - 1 month,    previous = now - 2 months,  daily points
  year   start = now - 1 year,     previous = now - 2 years,   monthly points
  all    start = previous = 2020-01-01,                        monthly points

Growth compares items created in [start, now] with [previous, start).
"""

import calendar
import math
from bisect import bisect_right
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.models.activity import Activity, ActivityDifficulty, AgeGroup, activity_locations
from meshwar.models.location import Location
from meshwar.models.user import User
from meshwar.schemas.dashboard import (
    DashboardPeriod,
    DashboardResponse,
    DashboardStats,
    MapLocation,
    PieChartSlice,
    RecentItem,
    TimeSeriesPoint,
    UpcomingActivity,
)
from meshwar.services.activity_service import mark_expired_activities
from meshwar.services.cache_service import DashboardCache
from meshwar.core.timestamps import utcnow
from meshwar.core.logging import get_logger

logger = get_logger(__name__)

ALL_TIME_START = datetime(2020, 1, 1, tzinfo=timezone.utc)
MAX_SERIES_POINTS = 30
POPULAR_LOCATIONS_LIMIT = 5
RECENT_ITEMS_LIMIT = 5
UPCOMING_LIMIT = 5
MAP_LOCATIONS_LIMIT = 50

LABEL_FORMATS = {
    DashboardPeriod.DAY: "%H:%M",
    DashboardPeriod.WEEK: "%a %d",
    DashboardPeriod.MONTH: "%d %b",
    DashboardPeriod.YEAR: "%b %y",
    DashboardPeriod.ALL: "%b %y",
}


def shift_months(value: datetime, months: int) -> datetime:
    """Move by whole months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def get_date_range(period: DashboardPeriod, now: datetime) -> tuple[datetime, datetime]:
    """Return (start, previous_start) for a period."""
    if period == DashboardPeriod.DAY:
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start - timedelta(days=1)
    if period == DashboardPeriod.WEEK:
        return now - timedelta(days=7), now - timedelta(days=14)
    if period == DashboardPeriod.MONTH:
        return shift_months(now, -1), shift_months(now, -2)
    if period == DashboardPeriod.YEAR:
        return shift_months(now, -12), shift_months(now, -24)
    return ALL_TIME_START, ALL_TIME_START


def get_time_intervals(start: datetime, period: DashboardPeriod, now: datetime) -> list[datetime]:
    intervals = []
    current = start
    step = 0
    while current <= now:
        intervals.append(current)
        step += 1
        if period == DashboardPeriod.DAY:
            current = start + timedelta(hours=step)
        elif period in (DashboardPeriod.WEEK, DashboardPeriod.MONTH):
            current = start + timedelta(days=step)
        else:
            current = shift_months(start, step)
    return intervals


def sample_intervals(intervals: list[datetime], max_points: int = MAX_SERIES_POINTS) -> list[datetime]:
    """Keep every ceil(n / max_points)-th point."""
    if not intervals:
        return []
    stride = math.ceil(len(intervals) / min(len(intervals), max_points))
    return intervals[::stride]


def format_label(value: datetime, period: DashboardPeriod) -> str:
    return value.strftime(LABEL_FORMATS[period])


def calculate_growth(current: int, previous: int) -> int:
    if previous == 0:
        return 100
    # Half-up rounding
    return math.floor((current - previous) / previous * 100 + 0.5)


async def _count(db: AsyncSession, model, *conditions) -> int:
    query = select(func.count()).select_from(model)
    if conditions:
        query = query.where(*conditions)
    return await db.scalar(query) or 0


async def _growth(db: AsyncSession, model, start: datetime, previous_start: datetime, now: datetime) -> int:
    current = await _count(db, model, model.created_at >= start, model.created_at <= now)
    previous = await _count(
        db, model, model.created_at >= previous_start, model.created_at < start
    )
    return calculate_growth(current, previous)


async def _count_by(db: AsyncSession, column, values: list[str]) -> dict[str, int]:
    result = await db.execute(select(column, func.count()).group_by(column))
    counts = {value: 0 for value in values}
    for key, count in result.all():
        counts[key] = count
    return counts


async def get_dashboard_stats(db: AsyncSession, period: DashboardPeriod, now: datetime) -> DashboardStats:
    start, previous_start = get_date_range(period, now)

    upcoming = await db.execute(
        select(Activity.id, Activity.title, Activity.start_date)
        .where(Activity.start_date >= now, Activity.is_active.is_(True))
        .order_by(Activity.start_date.asc())
        .limit(UPCOMING_LIMIT)
    )

    return DashboardStats(
        total_users=await _count(db, User),
        total_locations=await _count(db, Location),
        total_activities=await _count(db, Activity),
        active_activities=await _count(
            db, Activity, Activity.is_active.is_(True), Activity.is_expired.is_(False)
        ),
        user_growth=await _growth(db, User, start, previous_start, now),
        location_growth=await _growth(db, Location, start, previous_start, now),
        activity_growth=await _growth(db, Activity, start, previous_start, now),
        activities_by_difficulty=await _count_by(
            db, Activity.difficulty, [d.value for d in ActivityDifficulty]
        ),
        activities_by_age_group=await _count_by(db, Activity.age_group, [a.value for a in AgeGroup]),
        upcoming_activities=[
            UpcomingActivity(id=row.id, title=row.title, start_date=row.start_date)
            for row in upcoming.all()
        ],
    )


async def _created_since(db: AsyncSession, model, start: datetime, now: datetime) -> list[datetime]:
    result = await db.execute(
        select(model.created_at)
        .where(model.created_at >= start, model.created_at <= now)
        .order_by(model.created_at.asc())
    )
    return list(result.scalars().all())


async def get_time_series(db: AsyncSession, period: DashboardPeriod, now: datetime) -> list[TimeSeriesPoint]:
    """Cumulative users and activities created between start and each point."""
    start, _ = get_date_range(period, now)
    points = sample_intervals(get_time_intervals(start, period, now))

    user_dates = await _created_since(db, User, start, now)
    activity_dates = await _created_since(db, Activity, start, now)

    return [
        TimeSeriesPoint(
            date=format_label(point, period),
            users=bisect_right(user_dates, point),
            activities=bisect_right(activity_dates, point),
        )
        for point in points
    ]


async def get_location_popularity(db: AsyncSession, limit: int = POPULAR_LOCATIONS_LIMIT) -> list[PieChartSlice]:
    """Locations referenced by the most activities."""
    usage = func.count(activity_locations.c.activity_id)
    result = await db.execute(
        select(activity_locations.c.location_id, Location.name, usage.label("uses"))
        .select_from(activity_locations)
        .outerjoin(Location, Location.id == activity_locations.c.location_id)
        .group_by(activity_locations.c.location_id, Location.name)
        .order_by(usage.desc(), Location.name.asc())
        .limit(limit)
    )
    return [PieChartSlice(name=row.name or "Unknown", value=row.uses) for row in result.all()]


async def get_recent_activity(db: AsyncSession, limit: int = RECENT_ITEMS_LIMIT) -> list[RecentItem]:
    """Newest users and activities, merged by creation time."""
    users = await db.execute(
        select(User.id, User.display_name, User.email, User.created_at)
        .order_by(User.created_at.desc())
        .limit(limit)
    )
    activities = await db.execute(
        select(Activity.id, Activity.title, Activity.created_at)
        .order_by(Activity.created_at.desc())
        .limit(limit)
    )

    items = [
        RecentItem(id=row.id, type="user", title=row.display_name or row.email, created_at=row.created_at)
        for row in users.all()
    ]
    items += [
        RecentItem(id=row.id, type="activity", title=row.title, created_at=row.created_at)
        for row in activities.all()
    ]
    items.sort(key=lambda item: item.created_at, reverse=True)
    return items[:limit]


async def get_map_locations(db: AsyncSession, limit: int = MAP_LOCATIONS_LIMIT) -> list[MapLocation]:
    result = await db.execute(
        select(Location.id, Location.name, Location.lat, Location.lng, Location.category_id, Location.is_active)
        .order_by(Location.created_at.desc())
        .limit(limit)
    )
    return [MapLocation(**row._mapping) for row in result.all()]


async def get_dashboard_data(
    db: AsyncSession,
    cache: DashboardCache,
    period: DashboardPeriod = DashboardPeriod.MONTH,
    now: Optional[datetime] = None,
) -> DashboardResponse:
    """
    Return the whole dashboard payload for a period, from cache when
    possible.
    """
    cached = await cache.get(period.value)
    if cached:
        payload = DashboardResponse.model_validate(cached)
        payload.cached = True
        return payload

    await mark_expired_activities(db)
    now = now or utcnow()
    payload = DashboardResponse(
        period=period,
        stats=await get_dashboard_stats(db, period, now),
        time_series=await get_time_series(db, period, now),
        location_popularity=await get_location_popularity(db),
        recent_activity=await get_recent_activity(db),
        locations=await get_map_locations(db),
    )

    await cache.set(period.value, payload.model_dump(mode="json"))
    logger.info("dashboard_built", period=period.value, points=len(payload.time_series))
    return payload
