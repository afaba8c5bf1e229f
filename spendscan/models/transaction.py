"""
Permanent transaction records written by the commit engine.
"""
from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship

from spendscan.database import Base, utcnow

SOURCE_MANUAL = "MANUAL"
SOURCE_RECEIPT = "RECEIPT"
SOURCE_STATEMENT_IMPORT = "STATEMENT_IMPORT"


class TransactionModel(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_occurred", "user_id", "occurred_at"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    type = Column(String, nullable=False)  # INCOME | EXPENSE
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="INR")
    occurred_at = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    merchant = Column(String)
    source = Column(String, nullable=False, default=SOURCE_MANUAL)
    category_id = Column(String, ForeignKey("categories.id", ondelete="SET NULL"), index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    category = relationship("CategoryModel")
