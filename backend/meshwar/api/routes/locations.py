"""
Location management endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import get_db
from meshwar.schemas.common import ActiveStatusUpdate, DeleteResponse
from meshwar.schemas.location import LocationCreate, LocationResponse, LocationUpdate
from meshwar.services import location_service
from meshwar.services.cache_service import DashboardCache, get_cache

router = APIRouter(prefix="/locations", tags=["Locations"])


@router.get("/", response_model=list[LocationResponse])
async def list_locations(db: AsyncSession = Depends(get_db)):
    return await location_service.list_locations(db)


@router.post("/", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
async def create_location(
    data: LocationCreate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    location = await location_service.create_location(db, data)
    await cache.invalidate()
    return location


@router.get("/{location_id}", response_model=LocationResponse)
async def get_location(location_id: str, db: AsyncSession = Depends(get_db)):
    return await location_service.get_location(db, location_id)


@router.patch("/{location_id}", response_model=LocationResponse)
async def update_location(
    location_id: str,
    data: LocationUpdate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    location = await location_service.update_location(db, location_id, data)
    await cache.invalidate()
    return location


@router.patch("/{location_id}/active", response_model=LocationResponse)
async def set_location_active(
    location_id: str,
    data: ActiveStatusUpdate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    location = await location_service.set_location_active(db, location_id, data.is_active)
    await cache.invalidate()
    return location


@router.delete("/{location_id}", response_model=DeleteResponse)
async def delete_location(
    location_id: str,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    await location_service.delete_location(db, location_id)
    await cache.invalidate()
    return DeleteResponse(message="Location deleted successfully", id=location_id)
