"""
User-scoped category taxonomy.
"""
from sqlalchemy import Column, DateTime, String, UniqueConstraint

from spendscan.database import Base, utcnow


class CategoryModel(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name_key", "type", name="uq_categories_user_name_type"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    name_key = Column(String, nullable=False)  # lower(trim(name))
    type = Column(String, nullable=False)  # INCOME | EXPENSE
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
