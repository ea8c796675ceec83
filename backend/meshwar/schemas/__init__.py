from meshwar.schemas.user import UserCreate, UserUpdate, UserResponse, UserLogin, Token
from meshwar.schemas.category import CategoryCreate, CategoryUpdate, CategoryResponse
from meshwar.schemas.location import LocationCreate, LocationUpdate, LocationResponse
from meshwar.schemas.activity import ActivityCreate, ActivityUpdate, ActivityResponse
from meshwar.schemas.booking import BookingCreate, BookingResponse, BookingDetailResponse
from meshwar.schemas.dashboard import DashboardPeriod, DashboardResponse
from meshwar.schemas.imports import Snapshot, ImportResult

__all__ = [
    "UserCreate", "UserUpdate", "UserResponse", "UserLogin", "Token",
    "CategoryCreate", "CategoryUpdate", "CategoryResponse",
    "LocationCreate", "LocationUpdate", "LocationResponse",
    "ActivityCreate", "ActivityUpdate", "ActivityResponse",
    "BookingCreate", "BookingResponse", "BookingDetailResponse",
    "DashboardPeriod", "DashboardResponse",
    "Snapshot", "ImportResult",
]
