from meshwar.models.user import User, UserRole
from meshwar.models.category import Category
from meshwar.models.location import Location
from meshwar.models.activity import Activity, ActivityDifficulty, AgeGroup, activity_locations
from meshwar.models.booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES

__all__ = [
    "User", "UserRole",
    "Category",
    "Location",
    "Activity", "ActivityDifficulty", "AgeGroup", "activity_locations",
    "Booking", "BookingStatus", "ACTIVE_BOOKING_STATUSES",
]
