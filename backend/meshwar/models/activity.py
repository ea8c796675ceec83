"""
Activity model with participant capacity tracking.

Key design decisions:
- `current_participants` is denormalised (avoids COUNT on bookings) and is
  written only by the booking transactions in booking_service
- `participant_limit = 0` means unlimited
- `version` column enables optimistic locking for the counter
- Locations are many-to-many through `activity_locations`
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, Float, JSON, Table, ForeignKey, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from meshwar.db.base import Base, TimestampMixin, UTCDateTime, new_id


class ActivityDifficulty(str, enum.Enum):
    EASY = "easy"
    MODERATE = "moderate"
    HARD = "hard"


class AgeGroup(str, enum.Enum):
    ALL = "all"
    ADULTS = "adults"
    CHILDREN = "children"
    SENIORS = "seniors"


activity_locations = Table(
    "activity_locations",
    Base.metadata,
    Column("activity_id", String(64), ForeignKey("activities.id", ondelete="CASCADE"), primary_key=True),
    Column("location_id", String(64), ForeignKey("locations.id", ondelete="CASCADE"), primary_key=True),
)


class Activity(Base, TimestampMixin):
    __tablename__ = "activities"

    id = Column(String(64), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(String(5000), nullable=False, default="")
    start_date = Column(UTCDateTime(), nullable=False)
    end_date = Column(UTCDateTime(), nullable=False)
    start_time = Column(String(10), nullable=False, default="")  # "HH:MM"
    end_time = Column(String(10), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    is_expired = Column(Boolean, nullable=False, default=False)
    difficulty = Column(String(20), nullable=False, default=ActivityDifficulty.EASY.value)
    age_group = Column(String(20), nullable=False, default=AgeGroup.ALL.value)
    estimated_duration = Column(Integer, nullable=False, default=0)  # minutes
    estimated_cost = Column(Float, nullable=False, default=0.0)
    tags = Column(JSON, nullable=False, default=list)
    participant_limit = Column(Integer, nullable=False, default=0)
    current_participants = Column(Integer, nullable=False, default=0)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    locations = relationship("Location", secondary=activity_locations, lazy="selectin")
    bookings = relationship("Booking", back_populates="activity", lazy="raise", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("participant_limit >= 0", name="check_participant_limit_non_negative"),
        CheckConstraint("current_participants >= 0", name="check_current_participants_non_negative"),
        CheckConstraint("difficulty IN ('easy', 'moderate', 'hard')", name="check_activity_difficulty"),
        CheckConstraint(
            "age_group IN ('all', 'adults', 'children', 'seniors')", name="check_activity_age_group"
        ),
        Index("ix_activities_start_date", "start_date"),
        Index("ix_activities_created_at", "created_at"),
    )

    @property
    def location_ids(self) -> list[str]:
        return [location.id for location in self.locations]

    def __repr__(self) -> str:
        return (
            f"<Activity(id={self.id}, title={self.title}, "
            f"participants={self.current_participants}/{self.participant_limit or 'unlimited'})>"
        )
