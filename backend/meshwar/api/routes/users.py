"""
User management endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import Database, get_database, get_db
from meshwar.models.user import UserRole
from meshwar.schemas.common import DeleteResponse
from meshwar.schemas.user import UserCreate, UserResponse, UserUpdate
from meshwar.services import user_service
from meshwar.services.cache_service import DashboardCache, get_cache

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/", response_model=list[UserResponse])
async def list_users(role: Optional[UserRole] = None, db: AsyncSession = Depends(get_db)):
    """List users, newest first, optionally filtered by role."""
    return await user_service.list_users(db, role)


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    user = await user_service.create_user(db, user_data)
    await cache.invalidate()
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    cache: DashboardCache = Depends(get_cache),
):
    user = await user_service.update_user(db, user_id, user_data)
    await cache.invalidate()
    return user


@router.delete("/{user_id}", response_model=DeleteResponse)
async def delete_user(
    user_id: str,
    database: Database = Depends(get_database),
    cache: DashboardCache = Depends(get_cache),
):
    """Delete a user and their bookings, releasing each booked place."""
    removed = await user_service.delete_user(database, user_id)
    await cache.invalidate()
    return DeleteResponse(message=f"User deleted with {removed} booking(s)", id=user_id)
