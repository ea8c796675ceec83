"""
Dashboard analytics endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import get_db
from meshwar.schemas.dashboard import CacheClearResponse, DashboardPeriod, DashboardResponse
from meshwar.services.dashboard_service import get_dashboard_data
from meshwar.services.cache_service import DashboardCache, get_cache

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/", response_model=DashboardResponse)
async def dashboard(
    period: DashboardPeriod = DashboardPeriod.MONTH,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    """
    Aggregate counts, growth percentages, time series, location popularity,
    recent sign-ups and map locations for a period. Cached per period.
    """
    return await get_dashboard_data(db, cache, period)


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_dashboard_cache(cache: DashboardCache = Depends(get_cache)):
    return CacheClearResponse(keys_deleted=await cache.invalidate())
