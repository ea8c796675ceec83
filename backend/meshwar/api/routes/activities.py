"""
Activity management endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import Database, get_database, get_db
from meshwar.schemas.activity import ActivityCreate, ActivityResponse, ActivityUpdate, ReconcileResponse
from meshwar.schemas.common import ActiveStatusUpdate, DeleteResponse
from meshwar.services import activity_service
from meshwar.services.booking_service import reconcile_participants
from meshwar.services.cache_service import DashboardCache, get_cache

router = APIRouter(prefix="/activities", tags=["Activities"])


@router.get("/", response_model=list[ActivityResponse])
async def list_activities(db: AsyncSession = Depends(get_db)):
    """List activities, newest first. Activities past their end date are marked expired."""
    return await activity_service.list_activities(db)


@router.post("/", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    data: ActivityCreate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    activity = await activity_service.create_activity(db, data)
    await cache.invalidate()
    return activity


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity(activity_id: str, db: AsyncSession = Depends(get_db)):
    return await activity_service.get_activity(db, activity_id)


@router.patch("/{activity_id}", response_model=ActivityResponse)
async def update_activity(
    activity_id: str,
    data: ActivityUpdate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    """Update activity details. The participant count cannot be set here."""
    activity = await activity_service.update_activity(db, activity_id, data)
    await cache.invalidate()
    return activity


@router.patch("/{activity_id}/active", response_model=ActivityResponse)
async def set_activity_active(
    activity_id: str,
    data: ActiveStatusUpdate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    activity = await activity_service.set_activity_active(db, activity_id, data.is_active)
    await cache.invalidate()
    return activity


@router.post("/{activity_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_activity_participants(
    activity_id: str,
    database: Database = Depends(get_database),
    cache: DashboardCache = Depends(get_cache),
):
    """Recount the activity's bookings and correct its participant count."""
    previous, current = await reconcile_participants(database, activity_id)
    if previous != current:
        await cache.invalidate()
    return ReconcileResponse(
        activity_id=activity_id, previous=previous, current=current, drift=current - previous
    )


@router.delete("/{activity_id}", response_model=DeleteResponse)
async def delete_activity(
    activity_id: str,
    database: Database = Depends(get_database),
    cache: DashboardCache = Depends(get_cache),
):
    """Delete an activity together with its bookings."""
    removed = await activity_service.delete_activity(database, activity_id)
    await cache.invalidate()
    return DeleteResponse(message=f"Activity deleted with {removed} booking(s)", id=activity_id)
