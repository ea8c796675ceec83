"""
Category management endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import get_db
from meshwar.schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from meshwar.schemas.common import ActiveStatusUpdate, DeleteResponse
from meshwar.schemas.location import LocationResponse
from meshwar.services import category_service, location_service
from meshwar.services.cache_service import DashboardCache, get_cache

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("/", response_model=list[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await category_service.list_categories(db)


@router.post("/", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(data: CategoryCreate, db: AsyncSession = Depends(get_db)):
    return await category_service.create_category(db, data)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: str, db: AsyncSession = Depends(get_db)):
    return await category_service.get_category(db, category_id)


@router.get("/{category_id}/locations", response_model=list[LocationResponse])
async def list_category_locations(category_id: str, db: AsyncSession = Depends(get_db)):
    return await location_service.list_locations_by_category(db, category_id)


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: str, data: CategoryUpdate, db: AsyncSession = Depends(get_db)):
    return await category_service.update_category(db, category_id, data)


@router.patch("/{category_id}/active", response_model=CategoryResponse)
async def set_category_active(
    category_id: str,
    data: ActiveStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await category_service.set_category_active(db, category_id, data.is_active)


@router.delete("/{category_id}", response_model=DeleteResponse)
async def delete_category(
    category_id: str,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    await category_service.delete_category(db, category_id)
    await cache.invalidate()
    return DeleteResponse(message="Category deleted successfully", id=category_id)
