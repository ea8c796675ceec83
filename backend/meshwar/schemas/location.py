"""
Pydantic schemas for locations.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from meshwar.schemas.category import CategoryResponse


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    address: str = Field("", max_length=500)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    category_id: Optional[str] = None
    icon: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    is_active: bool = True


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    address: Optional[str] = Field(None, max_length=500)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    category_id: Optional[str] = None
    icon: Optional[str] = None
    images: Optional[list[str]] = None
    is_active: Optional[bool] = None


class LocationSummary(BaseModel):
    id: str
    name: str
    lat: float
    lng: float

    model_config = {"from_attributes": True}


class LocationResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    address: str
    lat: float
    lng: float
    category_id: Optional[str]
    category: Optional[CategoryResponse]
    icon: Optional[str]
    images: list[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
