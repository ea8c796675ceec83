"""
Pydantic schemas for snapshot imports.

A snapshot is a JSON export of the document collections, each a mapping of
document id to a camelCase document. Timestamp fields are left untyped here
and normalised by meshwar.core.timestamps during the import.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SnapshotDocument(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    created_at: Any = None
    updated_at: Any = None


class CategoryDocument(SnapshotDocument):
    name: str
    description: Optional[str] = None
    is_active: bool = True


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class LocationDocument(SnapshotDocument):
    name: str
    description: Optional[str] = None
    address: str = ""
    coordinates: Coordinates
    category_id: Optional[str] = None
    icon: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    is_active: bool = True


class UserDocument(SnapshotDocument):
    email: str
    display_name: str = ""
    role: str = Field("user", pattern=r"^(admin|user)$")
    dob: Any = None
    profile_image: Optional[str] = None


class ActivityDocument(SnapshotDocument):
    title: str
    description: str = ""
    start_date: Any
    end_date: Any
    start_time: str = ""
    end_time: str = ""
    locations: list[str] = Field(default_factory=list)
    is_active: bool = True
    is_expired: bool = False
    difficulty: str = Field("easy", pattern=r"^(easy|moderate|hard)$")
    age_group: str = Field("all", pattern=r"^(all|adults|children|seniors)$")
    estimated_duration: int = Field(0, ge=0)
    estimated_cost: float = Field(0.0, ge=0)
    tags: list[str] = Field(default_factory=list)
    participant_limit: int = Field(0, ge=0)
    current_participants: Optional[int] = None


class BookingDocument(SnapshotDocument):
    user_id: str
    activity_id: str
    status: str = Field("pending", pattern=r"^(confirmed|pending|cancelled)$")


class Snapshot(BaseModel):
    categories: dict[str, CategoryDocument] = Field(default_factory=dict)
    locations: dict[str, LocationDocument] = Field(default_factory=dict)
    users: dict[str, UserDocument] = Field(default_factory=dict)
    activities: dict[str, ActivityDocument] = Field(default_factory=dict)
    bookings: dict[str, BookingDocument] = Field(default_factory=dict)


class CollectionImportResult(BaseModel):
    imported: int = 0
    skipped: int = 0


class ImportResult(BaseModel):
    categories: CollectionImportResult = Field(default_factory=CollectionImportResult)
    locations: CollectionImportResult = Field(default_factory=CollectionImportResult)
    users: CollectionImportResult = Field(default_factory=CollectionImportResult)
    activities: CollectionImportResult = Field(default_factory=CollectionImportResult)
    bookings: CollectionImportResult = Field(default_factory=CollectionImportResult)
