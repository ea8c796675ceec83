"""
Report generation.

A report is a title plus ordered sections of lines. Builders query the
database and assemble a Report; `render_report` turns it into a plain-text
or HTML document with a download filename such as
`activity_report_<id>_<YYYY-MM-DD>.html`.
"""

import enum
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from jinja2 import BaseLoader, Environment
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.models.activity import Activity
from meshwar.models.booking import Booking, BookingStatus
from meshwar.models.location import Location
from meshwar.models.user import User, UserRole, calculate_age
from meshwar.services.activity_service import get_activity, list_activities
from meshwar.services.booking_service import list_bookings_by_activity, list_bookings_by_user
from meshwar.services.user_service import get_user
from meshwar.core.logging import get_logger

logger = get_logger(__name__)


class ReportFormat(str, enum.Enum):
    TXT = "txt"
    HTML = "html"


class ReportTimeframe(str, enum.Enum):
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


MEDIA_TYPES = {
    ReportFormat.TXT: "text/plain; charset=utf-8",
    ReportFormat.HTML: "text/html; charset=utf-8",
}

RECENT_ACTIVITIES_LIMIT = 10


@dataclass
class ReportSection:
    title: str
    lines: list[str] = field(default_factory=list)


@dataclass
class Report:
    title: str
    filename_stem: str
    generated_on: date
    sections: list[ReportSection] = field(default_factory=list)

    def add(self, title: str, lines: list[str]) -> None:
        self.sections.append(ReportSection(title, lines))


TEXT_TEMPLATE = """# {{ report.title }}
Generated on: {{ format_date(report.generated_on) }}
{% for section in report.sections %}

## {{ section.title }}
{% for line in section.lines %}
- {{ line }}
{% endfor %}
{% endfor %}
"""

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ report.title }}</title>
</head>
<body>
<h1>{{ report.title }}</h1>
<p>Generated on: {{ format_date(report.generated_on) }}</p>
{% for section in report.sections %}
<h2>{{ section.title }}</h2>
<ul>
{% for line in section.lines %}
<li>{{ line }}</li>
{% endfor %}
</ul>
{% endfor %}
</body>
</html>
"""

_TEXT_ENV = Environment(loader=BaseLoader(), autoescape=False, trim_blocks=True, lstrip_blocks=True)
_HTML_ENV = Environment(loader=BaseLoader(), autoescape=True, trim_blocks=True, lstrip_blocks=True)


def format_date(value: Optional[date]) -> str:
    if value is None:
        return "N/A"
    return value.strftime("%b %d, %Y")


def percent(part: int, whole: int) -> int:
    if whole == 0:
        return 0
    # Half-up rounding
    return math.floor(part / whole * 100 + 0.5)


def _status_label(activity: Activity) -> str:
    if activity.is_expired:
        return "Expired"
    return "Active" if activity.is_active else "Inactive"


def _location_names(activity: Optional[Activity]) -> str:
    if activity is None or not activity.locations:
        return "N/A"
    return ", ".join(location.name for location in activity.locations)


def _status_counts(bookings: list[Booking]) -> Counter:
    return Counter(booking.status for booking in bookings)


def _time_key(value: datetime, timeframe: ReportTimeframe) -> str:
    if timeframe == ReportTimeframe.MONTH:
        return value.strftime("%b %Y")
    if timeframe == ReportTimeframe.QUARTER:
        return f"Q{(value.month - 1) // 3 + 1} {value.year}"
    return str(value.year)


def bucket_by_time(values: list[datetime], timeframe: ReportTimeframe) -> dict[str, int]:
    """Count timestamps per month/quarter/year, in chronological order."""
    buckets: dict[str, int] = {}
    for value in sorted(values):
        key = _time_key(value, timeframe)
        buckets[key] = buckets.get(key, 0) + 1
    return buckets


def _distribution(counts: Counter, total: int) -> list[str]:
    return [f"{name}: {count} ({percent(count, total)}%)" for name, count in counts.most_common()]


async def build_user_report(db: AsyncSession, user_id: str, today: Optional[date] = None) -> Report:
    today = today or date.today()
    user = await get_user(db, user_id)
    bookings = await list_bookings_by_user(db, user_id)
    statuses = _status_counts(bookings)

    report = Report(
        title=f"User Report: {user.display_name or user.email}",
        filename_stem=f"user_report_{user.id}_{today.isoformat()}",
        generated_on=today,
    )
    report.add("User Information", [
        f"Name: {user.display_name or 'N/A'}",
        f"Email: {user.email}",
        f"Role: {user.role}",
        f"Age: {calculate_age(user.dob, today) if user.dob else 'N/A'}",
        f"Account Created: {format_date(user.created_at)}",
    ])
    report.add("Booking Summary", [
        f"Total Bookings: {len(bookings)}",
        f"Confirmed Bookings: {statuses[BookingStatus.CONFIRMED.value]}",
        f"Pending Bookings: {statuses[BookingStatus.PENDING.value]}",
        f"Cancelled Bookings: {statuses[BookingStatus.CANCELLED.value]}",
    ])

    details = []
    for index, booking in enumerate(bookings, start=1):
        activity = booking.activity
        details.append(
            f"Booking {index}: "
            f"{activity.title if activity else 'Unknown Activity'}"
            f" | Date: {format_date(activity.start_date) if activity else 'N/A'}"
            f" | Time: {(activity.start_time if activity else '') or 'N/A'}"
            f" | Status: {booking.status.capitalize()}"
            f" | Locations: {_location_names(activity)}"
            f" | Booked on: {format_date(booking.created_at)}"
        )
    report.add("Booking Details", details or ["No bookings found for this user."])
    return report


async def build_activity_report(db: AsyncSession, activity_id: str, today: Optional[date] = None) -> Report:
    today = today or date.today()
    activity = await get_activity(db, activity_id)
    bookings = await list_bookings_by_activity(db, activity_id)
    statuses = _status_counts(bookings)
    limit = activity.participant_limit

    report = Report(
        title=f"Activity Report: {activity.title}",
        filename_stem=f"activity_report_{activity.id}_{today.isoformat()}",
        generated_on=today,
    )
    report.add("Activity Information", [
        f"Title: {activity.title}",
        f"Date: {format_date(activity.start_date)} - {format_date(activity.end_date)}",
        f"Time: {activity.start_time or 'N/A'} - {activity.end_time or 'N/A'}",
        f"Locations: {_location_names(activity)}",
        f"Difficulty: {activity.difficulty.capitalize()}",
        f"Age Group: {activity.age_group.capitalize()}",
        f"Estimated Cost: ${activity.estimated_cost}",
        f"Estimated Duration: {activity.estimated_duration} minutes",
        f"Status: {_status_label(activity)}",
        f"Participant Limit: {limit or 'Unlimited'}",
        f"Current Participants: {activity.current_participants}",
        f"Tags: {', '.join(activity.tags) if activity.tags else 'None'}",
    ])
    report.add("Booking Summary", [
        f"Total Participants: {len(bookings)}",
        f"Confirmed Participants: {statuses[BookingStatus.CONFIRMED.value]}",
        f"Pending Participants: {statuses[BookingStatus.PENDING.value]}",
        f"Cancelled Participants: {statuses[BookingStatus.CANCELLED.value]}",
        f"Capacity Utilization: {f'{percent(len(bookings), limit)}%' if limit else 'N/A'}",
    ])

    participants = []
    for index, booking in enumerate(bookings, start=1):
        user = booking.user
        participants.append(
            f"Participant {index}: {(user.display_name if user else '') or 'Unknown User'}"
            f" | Email: {user.email if user else 'N/A'}"
            f" | Status: {booking.status.capitalize()}"
            f" | Booked on: {format_date(booking.created_at)}"
        )
    report.add("Participant Details", participants or ["No participants found for this activity."])
    return report


async def build_admin_report(
    db: AsyncSession,
    timeframe: ReportTimeframe = ReportTimeframe.MONTH,
    today: Optional[date] = None,
) -> Report:
    today = today or date.today()
    activities = await list_activities(db)
    users = list((await db.execute(select(User).order_by(User.created_at.desc()))).scalars().all())
    locations = list(
        (await db.execute(select(Location).order_by(Location.created_at.desc()))).scalars().all()
    )
    bookings = list(
        (await db.execute(select(Booking).order_by(Booking.created_at.asc()))).scalars().all()
    )

    members = [user for user in users if user.role == UserRole.USER.value]
    statuses = _status_counts(bookings)
    per_activity = Counter(booking.activity_id for booking in bookings)
    per_user = Counter(booking.user_id for booking in bookings)

    average = round(len(bookings) / len(per_activity), 2) if per_activity else 0
    most_popular = max(activities, key=lambda a: per_activity[a.id], default=None)
    most_active = max(members, key=lambda u: per_user[u.id], default=None)

    report = Report(
        title="Administrative Data Analysis Report",
        filename_stem=f"admin_report_{today.isoformat()}",
        generated_on=today,
    )
    report.add("Key Statistics", [
        f"Total Users: {len(members)}",
        f"Total Activities: {len(activities)}",
        f"Total Locations: {len(locations)}",
        f"Total Bookings: {len(bookings)}",
    ])
    report.add("Activity Analysis", [
        f"Active Activities: {sum(1 for a in activities if a.is_active and not a.is_expired)}",
        f"Completed Activities: {sum(1 for a in activities if a.is_expired)}",
        f"Average Participants Per Activity: {average}",
        "Most Popular Activity: "
        + (most_popular.title if most_popular and per_activity[most_popular.id] else "None"),
    ])
    report.add("Booking Analysis", [
        f"Confirmed Bookings: {statuses[BookingStatus.CONFIRMED.value]}",
        f"Pending Bookings: {statuses[BookingStatus.PENDING.value]}",
        f"Cancelled Bookings: {statuses[BookingStatus.CANCELLED.value]}",
        "Booking Confirmation Rate: "
        + (f"{percent(statuses[BookingStatus.CONFIRMED.value], len(bookings))}%" if bookings else "N/A"),
    ])
    report.add("User Analysis", [
        "Most Active User: "
        + (
            (most_active.display_name or most_active.email)
            if most_active and per_user[most_active.id]
            else "None"
        ),
    ])

    report.add("Activities by Difficulty", _distribution(
        Counter(a.difficulty.capitalize() for a in activities), len(activities)
    ))
    report.add("Activities by Age Group", _distribution(
        Counter(a.age_group.capitalize() for a in activities), len(activities)
    ))
    report.add("Locations by Category", _distribution(
        Counter(loc.category.name for loc in locations if loc.category is not None), len(locations)
    ))

    label = timeframe.value.capitalize()
    report.add(f"Bookings by {label}", [
        f"{key}: {count}" for key, count in bucket_by_time([b.created_at for b in bookings], timeframe).items()
    ])
    report.add(f"User Registrations by {label}", [
        f"{key}: {count}" for key, count in bucket_by_time([u.created_at for u in members], timeframe).items()
    ])

    report.add("Recent Activities", [
        f"{index}. {a.title} - {format_date(a.start_date)} ({_status_label(a)})"
        for index, a in enumerate(activities[:RECENT_ACTIVITIES_LIMIT], start=1)
    ])
    report.add("All Users", [
        f"{index}. {u.display_name or u.email} - Joined: {format_date(u.created_at)}"
        for index, u in enumerate(members, start=1)
    ])
    report.add("All Locations", [
        f"{index}. {loc.name} - {loc.category.name if loc.category else 'No category'}"
        f" - {'Active' if loc.is_active else 'Inactive'}"
        for index, loc in enumerate(locations, start=1)
    ])
    return report


def render_report(report: Report, fmt: ReportFormat) -> tuple[str, str, str]:
    """Return (content, media_type, filename)."""
    env = _HTML_ENV if fmt == ReportFormat.HTML else _TEXT_ENV
    source = HTML_TEMPLATE if fmt == ReportFormat.HTML else TEXT_TEMPLATE
    content = env.from_string(source).render(report=report, format_date=format_date)

    filename = f"{report.filename_stem}.{fmt.value}"
    logger.info("report_rendered", filename=filename, sections=len(report.sections))
    return content, MEDIA_TYPES[fmt], filename
