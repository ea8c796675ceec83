"""
Report download endpoints. Reports are rendered as plain text or HTML and
returned as attachments.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import get_db
from meshwar.services.report_service import (
    Report,
    ReportFormat,
    ReportTimeframe,
    build_activity_report,
    build_admin_report,
    build_user_report,
    render_report,
)

router = APIRouter(prefix="/reports", tags=["Reports"])


def _download(report: Report, fmt: ReportFormat) -> Response:
    content, media_type, filename = render_report(report, fmt)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/users/{user_id}")
async def user_report(
    user_id: str,
    format: ReportFormat = ReportFormat.TXT,
    db: AsyncSession = Depends(get_db),
):
    return _download(await build_user_report(db, user_id), format)


@router.get("/activities/{activity_id}")
async def activity_report(
    activity_id: str,
    format: ReportFormat = ReportFormat.TXT,
    db: AsyncSession = Depends(get_db),
):
    return _download(await build_activity_report(db, activity_id), format)


@router.get("/admin")
async def admin_report(
    format: ReportFormat = ReportFormat.TXT,
    timeframe: ReportTimeframe = ReportTimeframe.MONTH,
    db: AsyncSession = Depends(get_db),
):
    return _download(await build_admin_report(db, timeframe), format)
