"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from meshwar.models.booking import BookingStatus
from meshwar.schemas.activity import ActivitySummary
from meshwar.schemas.user import UserSummary


class BookingCreate(BaseModel):
    user_id: str
    activity_id: str
    status: BookingStatus = BookingStatus.PENDING


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    id: str
    user_id: str
    activity_id: str
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingDetailResponse(BookingResponse):
    user: Optional[UserSummary] = None
    activity: Optional[ActivitySummary] = None


class BookingDeleteResponse(BaseModel):
    message: str
    booking_id: str
