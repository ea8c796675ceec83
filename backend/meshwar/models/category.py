"""
Category model. Purely descriptive grouping for locations.
"""

from sqlalchemy import Column, String, Boolean

from meshwar.db.base import Base, TimestampMixin, new_id


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name})>"
