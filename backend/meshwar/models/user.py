"""
User model. Admins sign in to this API; regular users are the people who
book activities through the mobile app.
"""

import enum
from datetime import date
from typing import Optional

from sqlalchemy import Column, String, Date, Text, CheckConstraint
from sqlalchemy.orm import relationship

from meshwar.db.base import Base, TimestampMixin, new_id


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


def calculate_age(dob: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    display_name = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    dob = Column(Date, nullable=True)
    profile_image = Column(Text, nullable=True)  # base64 data URL
    # Empty for imported accounts until an admin sets a password
    hashed_password = Column(String(255), nullable=False, default="")

    bookings = relationship("Booking", back_populates="user", lazy="raise", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="check_user_role"),
    )

    @property
    def age(self) -> Optional[int]:
        if self.dob is None:
            return None
        return calculate_age(self.dob)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
