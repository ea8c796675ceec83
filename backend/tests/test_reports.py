"""
Tests for report generation and download.
"""

from datetime import date, datetime, timezone

import pytest
from httpx import AsyncClient

from meshwar.services import booking_service
from meshwar.services.report_service import (
    Report,
    ReportFormat,
    ReportTimeframe,
    bucket_by_time,
    build_activity_report,
    format_date,
    percent,
    render_report,
)

TODAY = date(2024, 5, 15)


def test_format_date():
    assert format_date(date(2024, 5, 1)) == "May 01, 2024"
    assert format_date(datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc)) == "Dec 31, 2024"
    assert format_date(None) == "N/A"


def test_percent():
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    assert percent(1, 8) == 13
    assert percent(5, 0) == 0


def test_bucket_by_time():
    values = [
        datetime(2024, 2, 10, tzinfo=timezone.utc),
        datetime(2023, 11, 3, tzinfo=timezone.utc),
        datetime(2024, 2, 20, tzinfo=timezone.utc),
        datetime(2024, 4, 1, tzinfo=timezone.utc),
    ]
    assert bucket_by_time(values, ReportTimeframe.MONTH) == {"Nov 2023": 1, "Feb 2024": 2, "Apr 2024": 1}
    assert bucket_by_time(values, ReportTimeframe.QUARTER) == {"Q4 2023": 1, "Q1 2024": 2, "Q2 2024": 1}
    assert bucket_by_time(values, ReportTimeframe.YEAR) == {"2023": 1, "2024": 3}


def test_render_text_and_html():
    report = Report(title="Trail <Report>", filename_stem="sample_2024-05-15", generated_on=TODAY)
    report.add("Summary", ["Total: 3", "Note: <b>bold</b>"])

    text, media_type, filename = render_report(report, ReportFormat.TXT)
    assert media_type.startswith("text/plain")
    assert filename == "sample_2024-05-15.txt"
    assert "# Trail <Report>" in text
    assert "Generated on: May 15, 2024" in text
    assert "## Summary" in text
    assert "- Total: 3" in text

    html, media_type, filename = render_report(report, ReportFormat.HTML)
    assert media_type.startswith("text/html")
    assert filename == "sample_2024-05-15.html"
    assert "<h1>Trail &lt;Report&gt;</h1>" in html
    assert "<li>Note: &lt;b&gt;bold&lt;/b&gt;</li>" in html


@pytest.mark.asyncio
async def test_activity_report_contents(database, member, other_member, make_activity):
    await make_activity("a1", title="Sunrise Climb", participant_limit=4, difficulty="hard", tags=["peak"])
    await booking_service.create_booking(database, member.id, "a1", "confirmed")
    await booking_service.create_booking(database, other_member.id, "a1")

    async with database.session() as session:
        report = await build_activity_report(session, "a1", today=TODAY)

    assert report.filename_stem == "activity_report_a1_2024-05-15"
    sections = {section.title: section.lines for section in report.sections}
    assert "Difficulty: Hard" in sections["Activity Information"]
    assert "Participant Limit: 4" in sections["Activity Information"]
    assert "Current Participants: 2" in sections["Activity Information"]
    assert "Tags: peak" in sections["Activity Information"]
    assert "Confirmed Participants: 1" in sections["Booking Summary"]
    assert "Pending Participants: 1" in sections["Booking Summary"]
    assert "Capacity Utilization: 50%" in sections["Booking Summary"]
    assert len(sections["Participant Details"]) == 2


@pytest.mark.asyncio
async def test_user_report_download(client: AsyncClient, auth_headers, database, member, make_activity):
    await make_activity("a1", title="Sunrise Climb")
    await booking_service.create_booking(database, member.id, "a1", "confirmed")

    response = await client.get(f"/api/v1/reports/users/{member.id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith(f'attachment; filename="user_report_{member.id}_')
    assert disposition.endswith('.txt"')
    assert "Total Bookings: 1" in response.text
    assert "Sunrise Climb" in response.text


@pytest.mark.asyncio
async def test_user_report_without_bookings(client: AsyncClient, auth_headers, member):
    response = await client.get(
        f"/api/v1/reports/users/{member.id}?format=html", headers=auth_headers
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "No bookings found for this user." in response.text


@pytest.mark.asyncio
async def test_report_unknown_ids(client: AsyncClient, auth_headers):
    assert (await client.get("/api/v1/reports/users/missing", headers=auth_headers)).status_code == 404
    assert (await client.get("/api/v1/reports/activities/missing", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_admin_report(client: AsyncClient, auth_headers, database, member, other_member, make_activity):
    await make_activity("a1", title="Sunrise Climb")
    await make_activity("a2", title="Night Walk")
    await booking_service.create_booking(database, member.id, "a1", "confirmed")
    await booking_service.create_booking(database, other_member.id, "a1", "confirmed")
    await booking_service.create_booking(database, member.id, "a2")

    response = await client.get("/api/v1/reports/admin?timeframe=quarter", headers=auth_headers)
    assert response.status_code == 200
    text = response.text
    assert "Administrative Data Analysis Report" in text
    assert "Total Users: 2" in text
    assert "Total Bookings: 3" in text
    assert "Average Participants Per Activity: 1.5" in text
    assert "Most Popular Activity: Sunrise Climb" in text
    assert "Booking Confirmation Rate: 67%" in text
    assert "## Bookings by Quarter" in text
    assert 'filename="admin_report_' in response.headers["content-disposition"]


@pytest.mark.asyncio
async def test_report_rejects_unknown_format(client: AsyncClient, auth_headers):
    response = await client.get("/api/v1/reports/admin?format=pdf", headers=auth_headers)
    assert response.status_code == 422
