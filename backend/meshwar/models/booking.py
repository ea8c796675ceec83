"""
Booking model representing a user's place on an activity.

Key design decisions:
- No unique constraint on (user_id, activity_id): a user may hold any number
  of cancelled bookings; the one-active-booking rule is enforced inside the
  admission transaction
- Status change does not touch the activity counter; only creation and
  deletion do
"""

import enum

from sqlalchemy import Column, String, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from meshwar.db.base import Base, TimestampMixin, new_id


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"


ACTIVE_BOOKING_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.PENDING.value)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    activity_id = Column(String(64), ForeignKey("activities.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    user = relationship("User", back_populates="bookings", lazy="raise")
    activity = relationship("Activity", back_populates="bookings", lazy="raise")

    __table_args__ = (
        Index("ix_bookings_user_activity", "user_id", "activity_id"),
        Index("ix_bookings_created_at", "created_at"),
        CheckConstraint(
            "status IN ('confirmed', 'pending', 'cancelled')", name="check_booking_status"
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, activity={self.activity_id}, status={self.status})>"
