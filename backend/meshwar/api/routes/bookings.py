"""
Booking endpoints with capacity-safe admission.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import Database, get_database, get_db
from meshwar.models.booking import BookingStatus
from meshwar.schemas.booking import (
    BookingCreate,
    BookingDeleteResponse,
    BookingDetailResponse,
    BookingResponse,
    BookingStatusUpdate,
)
from meshwar.services import booking_service
from meshwar.services.cache_service import DashboardCache, get_cache

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    database: Database = Depends(get_database),
    cache: DashboardCache = Depends(get_cache),
):
    """
    Book a user onto an activity.

    Capacity and duplicate checks run inside the same transaction as the
    insert and counter increment. Returns 409 when the activity is full or
    the user already holds an active booking, and 503 when concurrent
    updates kept conflicting through every retry.
    """
    booking = await booking_service.create_booking(
        database, booking_data.user_id, booking_data.activity_id, booking_data.status
    )
    await cache.invalidate()
    return booking


@router.get("/", response_model=list[BookingDetailResponse])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """List all bookings, newest first, optionally filtered by status."""
    return await booking_service.list_bookings(db, status_filter)


@router.get("/activity/{activity_id}", response_model=list[BookingDetailResponse])
async def list_activity_bookings(activity_id: str, db: AsyncSession = Depends(get_db)):
    return await booking_service.list_bookings_by_activity(db, activity_id)


@router.get("/user/{user_id}", response_model=list[BookingDetailResponse])
async def list_user_bookings(user_id: str, db: AsyncSession = Depends(get_db)):
    return await booking_service.list_bookings_by_user(db, user_id)


@router.get("/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(booking_id: str, db: AsyncSession = Depends(get_db)):
    return await booking_service.get_booking(db, booking_id)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def change_booking_status(
    booking_id: str,
    data: BookingStatusUpdate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    """
    Change a booking's status. The activity's participant count is not
    adjusted; delete the booking to free its place.
    """
    booking = await booking_service.change_booking_status(db, booking_id, data.status)
    await cache.invalidate()
    return booking


@router.delete("/{booking_id}", response_model=BookingDeleteResponse)
async def delete_booking(
    booking_id: str,
    database: Database = Depends(get_database),
    cache: DashboardCache = Depends(get_cache),
):
    """Delete a booking and release its place on the activity."""
    await booking_service.delete_booking(database, booking_id)
    await cache.invalidate()
    return BookingDeleteResponse(message="Booking deleted successfully", booking_id=booking_id)
