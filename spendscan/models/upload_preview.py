"""
Ephemeral extraction results awaiting user verification.
"""
from sqlalchemy import JSON, Column, DateTime, Index, String

from spendscan.database import Base, utcnow


class UploadPreviewModel(Base):
    __tablename__ = "upload_previews"
    __table_args__ = (
        Index("ix_upload_previews_user_expires", "user_id", "expires_at"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    type = Column(String, nullable=False)  # receipt | statement
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
