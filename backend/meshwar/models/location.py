"""
Location model: a place on the map, optionally filed under a category.
"""

from sqlalchemy import Column, String, Boolean, Float, Text, JSON, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from meshwar.db.base import Base, TimestampMixin, new_id


class Location(Base, TimestampMixin):
    __tablename__ = "locations"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    address = Column(String(500), nullable=False, default="")
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    category_id = Column(
        String(64), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    icon = Column(Text, nullable=True)  # base64 data URL
    images = Column(JSON, nullable=False, default=list)  # list of base64 data URLs
    is_active = Column(Boolean, nullable=False, default=True)

    category = relationship("Category", lazy="selectin")

    __table_args__ = (
        CheckConstraint("lat >= -90 AND lat <= 90", name="check_location_lat"),
        CheckConstraint("lng >= -180 AND lng <= 180", name="check_location_lng"),
    )

    def __repr__(self) -> str:
        return f"<Location(id={self.id}, name={self.name})>"
