"""
Pydantic schemas for activities.

`current_participants` appears only in responses: the counter is maintained
by the booking transactions and cannot be set through create/update.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from meshwar.models.activity import ActivityDifficulty, AgeGroup
from meshwar.schemas.location import LocationSummary

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ActivityCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    start_date: datetime
    end_date: datetime
    start_time: str = Field("", pattern=r"^$|" + TIME_PATTERN)
    end_time: str = Field("", pattern=r"^$|" + TIME_PATTERN)
    location_ids: list[str] = Field(default_factory=list)
    is_active: bool = True
    difficulty: ActivityDifficulty = ActivityDifficulty.EASY
    age_group: AgeGroup = AgeGroup.ALL
    estimated_duration: int = Field(0, ge=0)
    estimated_cost: float = Field(0.0, ge=0)
    tags: list[str] = Field(default_factory=list)
    participant_limit: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_date_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ActivityUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = Field(None, pattern=r"^$|" + TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=r"^$|" + TIME_PATTERN)
    location_ids: Optional[list[str]] = None
    is_active: Optional[bool] = None
    difficulty: Optional[ActivityDifficulty] = None
    age_group: Optional[AgeGroup] = None
    estimated_duration: Optional[int] = Field(None, ge=0)
    estimated_cost: Optional[float] = Field(None, ge=0)
    tags: Optional[list[str]] = None
    participant_limit: Optional[int] = Field(None, ge=0)


class ActivitySummary(BaseModel):
    id: str
    title: str
    start_date: datetime
    start_time: str

    model_config = {"from_attributes": True}


class ActivityResponse(BaseModel):
    id: str
    title: str
    description: str
    start_date: datetime
    end_date: datetime
    start_time: str
    end_time: str
    location_ids: list[str]
    locations: list[LocationSummary]
    is_active: bool
    is_expired: bool
    difficulty: ActivityDifficulty
    age_group: AgeGroup
    estimated_duration: int
    estimated_cost: float
    tags: list[str]
    participant_limit: int
    current_participants: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReconcileResponse(BaseModel):
    activity_id: str
    previous: int
    current: int
    drift: int
