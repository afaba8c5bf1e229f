"""
Commit engine — turns a verified preview into permanent transactions.

Each commit runs in one database transaction: resolve categories, insert the
rows, then delete the preview. The conditional delete is the gate: if it
removes nothing (double submit, concurrent sweep) everything is rolled back,
so a preview is never committed twice and a failed commit leaves it intact.
"""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from spendscan.exceptions import PreviewNotFound, ValidationError
from spendscan.models.transaction import (
    SOURCE_RECEIPT,
    SOURCE_STATEMENT_IMPORT,
    TransactionModel,
)
from spendscan.pipeline.categories import category_key, resolve_categories, resolve_or_create
from spendscan.pipeline.previews import consume_preview, get_preview
from spendscan.schemas import (
    CommitReceiptRequest,
    CommitStatementRequest,
    CommitStatementResult,
    CommitStatementRow,
)

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")


def _check_kind(preview, expected: str) -> None:
    if preview.type != expected:
        raise ValidationError(f"Preview {preview.id} is a {preview.type} preview, not a {expected}")


def _finish(db: Session, preview_id: str, user_id: str) -> None:
    if not consume_preview(db, preview_id, user_id):
        raise PreviewNotFound("Preview not found or expired")
    db.commit()


# ---------------------------------------------------------------------------
# Duplicate detection
# ---------------------------------------------------------------------------

def find_duplicates(
    db: Session, user_id: str, rows: Iterable[CommitStatementRow]
) -> list[bool]:
    """Flag rows that match an existing transaction on date, amount and description.

    Amounts match within 0.01; descriptions match after lower-casing only.
    """
    rows = list(rows)
    dates = {r.date for r in rows}
    existing = (
        db.query(
            TransactionModel.occurred_at,
            TransactionModel.amount,
            TransactionModel.description,
        )
        .filter(TransactionModel.user_id == user_id, TransactionModel.occurred_at.in_(dates))
        .all()
    )
    by_date = defaultdict(list)
    for e in existing:
        by_date[e.occurred_at].append(e)

    flags = []
    for row in rows:
        description = row.description.lower()
        flags.append(any(
            abs(Decimal(str(e.amount)) - row.amount) < AMOUNT_TOLERANCE
            and (e.description or "").lower() == description
            for e in by_date[row.date]
        ))
    return flags


# ---------------------------------------------------------------------------
# Receipt
# ---------------------------------------------------------------------------

def commit_receipt(db: Session, req: CommitReceiptRequest, user_id: str) -> TransactionModel:
    logger.info("Committing receipt preview %s for user %s", req.previewId, user_id)
    preview = get_preview(db, req.previewId, user_id)
    _check_kind(preview, "receipt")

    txn_in = req.transaction
    metadata = req.metadata
    try:
        category = resolve_or_create(db, user_id, txn_in.categoryName, txn_in.type)
        transaction = TransactionModel(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=txn_in.type,
            amount=txn_in.amount,
            currency=metadata.currency if metadata else "INR",
            occurred_at=txn_in.date,
            description=txn_in.description,
            merchant=metadata.merchant if metadata else None,
            source=SOURCE_RECEIPT,
            category_id=category.id,
        )
        db.add(transaction)
        db.flush()
        _finish(db, req.previewId, user_id)
    except Exception:
        db.rollback()
        raise

    logger.info("Receipt preview %s committed as transaction %s (%s %s)",
                req.previewId, transaction.id, transaction.type, transaction.amount)
    return transaction


# ---------------------------------------------------------------------------
# Statement
# ---------------------------------------------------------------------------

def commit_statement(
    db: Session, req: CommitStatementRequest, user_id: str
) -> CommitStatementResult:
    rows = req.transactions
    skip_duplicates = req.options.skipDuplicates if req.options else True
    logger.info("Committing statement preview %s for user %s (%d rows, skipDuplicates=%s)",
                req.previewId, user_id, len(rows), skip_duplicates)

    preview = get_preview(db, req.previewId, user_id)
    _check_kind(preview, "statement")

    try:
        categories = resolve_categories(db, user_id, [(r.categoryName, r.type) for r in rows])

        to_create = rows
        if skip_duplicates:
            flags = find_duplicates(db, user_id, rows)
            to_create = [r for r, dup in zip(rows, flags) if not dup]
            logger.info("Deduplication applied: %d of %d rows kept", len(to_create), len(rows))

        db.add_all([
            TransactionModel(
                id=str(uuid.uuid4()),
                user_id=user_id,
                type=r.type,
                amount=r.amount,
                occurred_at=r.date,
                description=r.description,
                merchant=r.merchant,
                source=SOURCE_STATEMENT_IMPORT,
                category_id=categories[category_key(r.categoryName, r.type)].id,
            )
            for r in to_create
        ])
        db.flush()
        _finish(db, req.previewId, user_id)
    except Exception:
        db.rollback()
        raise

    result = CommitStatementResult(
        created=len(to_create),
        skipped=len(rows) - len(to_create),
        total=len(rows),
    )
    logger.info("Statement preview %s committed: %s", req.previewId, result.model_dump())
    return result
