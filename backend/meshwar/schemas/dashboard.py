"""
Pydantic schemas for the dashboard payload.
"""

import enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class DashboardPeriod(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


class UpcomingActivity(BaseModel):
    id: str
    title: str
    start_date: datetime


class DashboardStats(BaseModel):
    total_users: int
    total_locations: int
    total_activities: int
    active_activities: int
    user_growth: int
    location_growth: int
    activity_growth: int
    activities_by_difficulty: dict[str, int]
    activities_by_age_group: dict[str, int]
    upcoming_activities: list[UpcomingActivity]


class TimeSeriesPoint(BaseModel):
    date: str
    users: int
    activities: int


class PieChartSlice(BaseModel):
    name: str
    value: int


class RecentItem(BaseModel):
    id: str
    type: str  # "user" or "activity"
    title: str
    created_at: datetime


class MapLocation(BaseModel):
    id: str
    name: str
    lat: float
    lng: float
    category_id: Optional[str] = None
    is_active: bool


class DashboardResponse(BaseModel):
    period: DashboardPeriod
    stats: DashboardStats
    time_series: list[TimeSeriesPoint]
    location_popularity: list[PieChartSlice]
    recent_activity: list[RecentItem]
    locations: list[MapLocation]
    cached: bool = False


class CacheClearResponse(BaseModel):
    keys_deleted: int
