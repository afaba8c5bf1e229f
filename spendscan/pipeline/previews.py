"""
Preview store — user-scoped, TTL-bound extraction results.

Expiry is enforced twice: lazily on every read (``get_preview``) and eagerly
by ``sweep_expired``. Both compare ``expires_at`` against the current time, so
a sweep racing a read only turns the read into a ``PreviewNotFound``.
"""
from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from spendscan.config import settings
from spendscan.database import utcnow
from spendscan.exceptions import PreviewForbidden, PreviewGone, PreviewNotFound
from spendscan.models.upload_preview import UploadPreviewModel

logger = logging.getLogger(__name__)


def create_preview(
    db: Session,
    user_id: str,
    kind: str,
    payload: dict,
    ttl_sec: Optional[int] = None,
) -> UploadPreviewModel:
    ttl = settings.AI_PREVIEW_TTL_SEC if ttl_sec is None else ttl_sec
    now = utcnow()
    preview = UploadPreviewModel(
        id=str(uuid.uuid4()),
        user_id=user_id,
        type=kind,
        data=payload,
        created_at=now,
        expires_at=now + timedelta(seconds=ttl),
    )
    db.add(preview)
    db.commit()
    db.refresh(preview)
    logger.info("Created %s preview %s for user %s (ttl=%ds)", kind, preview.id, user_id, ttl)
    return preview


def get_preview(db: Session, preview_id: str, user_id: str) -> UploadPreviewModel:
    """Fetch a live preview owned by *user_id*.

    Raises ``PreviewNotFound`` / ``PreviewForbidden`` / ``PreviewGone``. An
    expired preview is deleted before ``PreviewGone`` is raised, so the next
    read sees ``PreviewNotFound``.
    """
    preview = db.query(UploadPreviewModel).filter(UploadPreviewModel.id == preview_id).first()
    if not preview:
        raise PreviewNotFound("Preview not found or expired")

    if preview.user_id != user_id:
        logger.warning("User %s tried to access preview %s owned by another user", user_id, preview_id)
        raise PreviewForbidden("Preview belongs to another user")

    now = utcnow()
    if preview.expires_at <= now:
        logger.info("Preview %s expired at %s; deleting on read", preview_id, preview.expires_at)
        (
            db.query(UploadPreviewModel)
            .filter(UploadPreviewModel.id == preview_id, UploadPreviewModel.expires_at <= now)
            .delete(synchronize_session=False)
        )
        db.commit()
        db.expunge(preview)
        raise PreviewGone("Preview has expired")

    return preview


def list_active_previews(
    db: Session, user_id: str, kind: Optional[str] = None
) -> list[UploadPreviewModel]:
    query = db.query(UploadPreviewModel).filter(
        UploadPreviewModel.user_id == user_id,
        UploadPreviewModel.expires_at > utcnow(),
    )
    if kind:
        query = query.filter(UploadPreviewModel.type == kind)
    return query.order_by(UploadPreviewModel.created_at.desc()).all()


def consume_preview(db: Session, preview_id: str, user_id: str) -> bool:
    """Delete a live preview inside the caller's transaction.

    Returns False when another commit or the sweep got there first. The
    caller owns the transaction and must roll back on False.
    """
    deleted = (
        db.query(UploadPreviewModel)
        .filter(
            UploadPreviewModel.id == preview_id,
            UploadPreviewModel.user_id == user_id,
            UploadPreviewModel.expires_at > utcnow(),
        )
        .delete(synchronize_session=False)
    )
    return deleted == 1


def sweep_expired(db: Session) -> int:
    """Delete every expired preview. Safe to run concurrently with reads."""
    count = (
        db.query(UploadPreviewModel)
        .filter(UploadPreviewModel.expires_at <= utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Swept %d expired previews", count)
    return count
