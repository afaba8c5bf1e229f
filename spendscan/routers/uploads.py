"""
Upload API endpoints.

POST /api/uploads/receipt            — receipt image → preview
POST /api/uploads/statement          — bank statement → preview
POST /api/uploads/receipt/commit     — verified receipt → transaction
POST /api/uploads/statement/commit   — verified rows → transactions
GET  /api/uploads/previews           — active previews of the caller
GET  /api/uploads/previews/{id}      — one preview
"""
from __future__ import annotations

import asyncio
import logging
import os
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from spendscan.auth import get_current_user_id
from spendscan.config import settings
from spendscan.database import get_db
from spendscan.exceptions import ValidationError
from spendscan.models.transaction import TransactionModel
from spendscan.models.upload_preview import UploadPreviewModel
from spendscan.pipeline import extract_receipt, extract_statement
from spendscan.pipeline.committer import commit_receipt, commit_statement
from spendscan.pipeline.gemini import ExtractionClient, get_extraction_client
from spendscan.pipeline.previews import get_preview, list_active_previews
from spendscan.schemas import (
    CategoryOut,
    CommitReceiptRequest,
    CommitStatementRequest,
    CommitStatementResult,
    Envelope,
    PreviewListResponse,
    PreviewResponse,
    PreviewType,
    ReceiptPreview,
    StatementPreview,
    TransactionOut,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/uploads")

RECEIPT_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
STATEMENT_MIME_TYPES = ("application/pdf",) + RECEIPT_MIME_TYPES

_CHUNK = 1024 * 1024


def transform_preview(model: UploadPreviewModel) -> PreviewResponse:
    """UploadPreviewModel → PreviewResponse"""
    return PreviewResponse(
        previewId=model.id,
        type=model.type,
        data=model.data,
        createdAt=model.created_at,
        expiresAt=model.expires_at,
    )


def transform_transaction(model: TransactionModel) -> TransactionOut:
    """TransactionModel → TransactionOut"""
    category = None
    if model.category is not None:
        category = CategoryOut(id=model.category.id, name=model.category.name, type=model.category.type)
    return TransactionOut(
        id=model.id,
        type=model.type,
        amount=float(model.amount),
        currency=model.currency,
        date=model.occurred_at,
        description=model.description,
        merchant=model.merchant,
        source=model.source,
        categoryId=model.category_id,
        category=category,
        createdAt=model.created_at,
    )


async def _save_upload(
    file: Optional[UploadFile], kind: str, allowed: tuple[str, ...], max_mb: int
) -> str:
    """Stream the upload to disk, enforcing MIME type and size. Returns the path."""
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    if file.content_type not in allowed:
        raise ValidationError(f"Invalid file type. Allowed types: {', '.join(allowed)}")

    directory = os.path.join(settings.UPLOAD_DIR, f"{kind}s")
    ext = os.path.splitext(file.filename)[1]
    path = os.path.join(directory, f"{kind}-{uuid.uuid4().hex}{ext}")

    limit = max_mb * 1024 * 1024
    size = await asyncio.to_thread(_write_limited, file.file, path, limit)
    if size > limit:
        await asyncio.to_thread(_remove, path)
        raise ValidationError(f"File too large (max {max_mb}MB)")
    if size == 0:
        await asyncio.to_thread(_remove, path)
        raise ValidationError("Uploaded file is empty")

    logger.info("Saved %s upload %s (%d bytes, %s)", kind, file.filename, size, file.content_type)
    return path


def _write_limited(src, path: str, limit: int) -> int:
    """Copy *src* to *path* in chunks, stopping once *limit* bytes are exceeded."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    size = 0
    with open(path, "wb") as out:
        while True:
            chunk = src.read(_CHUNK)
            if not chunk:
                break
            size += len(chunk)
            if size > limit:
                break
            out.write(chunk)
    return size


def _remove(path: str) -> None:
    try:
        os.remove(path)
    except OSError as e:
        logger.warning("Failed to delete temp file %s: %s", path, e)


# ── POST /api/uploads/receipt ────────────────────────────────────────────
@router.post("/receipt", response_model=Envelope[ReceiptPreview])
async def upload_receipt(
    file: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: ExtractionClient = Depends(get_extraction_client),
):
    path = await _save_upload(file, "receipt", RECEIPT_MIME_TYPES, settings.MAX_RECEIPT_SIZE_MB)
    try:
        preview = await extract_receipt(db, client, path, file.content_type, user_id)
    finally:
        await asyncio.to_thread(_remove, path)
    return Envelope[ReceiptPreview](
        data=preview,
        message="Receipt processed successfully. Please review and confirm the extracted data.",
    )


# ── POST /api/uploads/statement ──────────────────────────────────────────
@router.post("/statement", response_model=Envelope[StatementPreview])
async def upload_statement(
    file: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: ExtractionClient = Depends(get_extraction_client),
):
    path = await _save_upload(file, "statement", STATEMENT_MIME_TYPES, settings.MAX_STATEMENT_SIZE_MB)
    try:
        preview = await extract_statement(db, client, path, user_id, mime_type=file.content_type)
    finally:
        await asyncio.to_thread(_remove, path)
    count = preview.extractedData.summary.transactionCount
    return Envelope[StatementPreview](
        data=preview,
        message=f"Statement processed successfully. Found {count} transactions. "
                "Please review before importing.",
    )


# ── POST /api/uploads/receipt/commit ─────────────────────────────────────
@router.post("/receipt/commit", response_model=Envelope[TransactionOut])
def commit_receipt_route(
    req: CommitReceiptRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    transaction = commit_receipt(db, req, user_id)
    return Envelope[TransactionOut](data=transform_transaction(transaction), message="Transaction created successfully")


# ── POST /api/uploads/statement/commit ───────────────────────────────────
@router.post("/statement/commit", response_model=Envelope[CommitStatementResult])
def commit_statement_route(
    req: CommitStatementRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = commit_statement(db, req, user_id)
    message = f"Successfully imported {result.created} transaction(s)."
    if result.skipped:
        message += f" Skipped {result.skipped} duplicate(s)."
    return Envelope[CommitStatementResult](data=result, message=message)


# ── GET /api/uploads/previews ────────────────────────────────────────────
@router.get("/previews", response_model=PreviewListResponse)
def list_previews(
    type: Optional[PreviewType] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    previews = list_active_previews(db, user_id, type)
    return PreviewListResponse(data=[transform_preview(p) for p in previews], count=len(previews))


# ── GET /api/uploads/previews/{preview_id} ───────────────────────────────
@router.get("/previews/{preview_id}", response_model=Envelope[PreviewResponse])
def get_preview_route(
    preview_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return Envelope[PreviewResponse](data=transform_preview(get_preview(db, preview_id, user_id)))
