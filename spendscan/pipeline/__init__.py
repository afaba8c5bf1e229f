"""
SpendScan extraction pipeline.

Orchestrates: category context → upload + extract → suggestions → preview.
"""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from spendscan.exceptions import ExtractionError
from spendscan.pipeline.categories import list_category_names
from spendscan.pipeline.gemini import ExtractionClient
from spendscan.pipeline.previews import create_preview
from spendscan.pipeline.prompts import (
    RECEIPT_SCHEMA,
    STATEMENT_SCHEMA,
    receipt_prompt,
    statement_prompt,
)
from spendscan.schemas import (
    AccountInfo,
    ExtractedReceipt,
    ExtractedStatement,
    ReceiptData,
    ReceiptPreview,
    StatementData,
    StatementPeriod,
    StatementPreview,
    StatementRow,
    StatementSummary,
    SuggestedTransaction,
)

logger = logging.getLogger(__name__)

RECEIPT_FAILURE = (
    "Failed to extract receipt data. "
    "Please ensure the image is clear and contains a valid receipt."
)
STATEMENT_FAILURE = (
    "Failed to extract statement data. "
    "Please ensure the file is a valid bank statement."
)

DEFAULT_CATEGORY = {"INCOME": "Other Income", "EXPENSE": "Other"}


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_receipt(extracted: ExtractedReceipt) -> ReceiptData:
    return ReceiptData(
        merchant=_clean(extracted.merchant),
        date=extracted.date.strip(),
        amount=abs(extracted.amount),
        currency=_clean(extracted.currency) or "INR",
        description=_clean(extracted.description),
        suggestedCategory=_clean(extracted.suggestedCategory),
        confidence=extracted.confidence,
    )


def build_receipt_suggestion(data: ReceiptData) -> SuggestedTransaction:
    return SuggestedTransaction(
        type="EXPENSE",
        amount=data.amount,
        description=data.description or f"Purchase at {data.merchant or 'Unknown'}",
        date=data.date,
        categoryName=data.suggestedCategory or DEFAULT_CATEGORY["EXPENSE"],
        merchant=data.merchant,
    )


def normalize_statement(extracted: ExtractedStatement) -> tuple[AccountInfo, list[StatementRow]]:
    info = extracted.accountInfo
    period = StatementPeriod()
    if info and info.statementPeriod:
        p = info.statementPeriod
        period = StatementPeriod(startDate=p.from_ or p.startDate, endDate=p.to or p.endDate)
    account = AccountInfo(
        accountNumber=_clean(info.accountNumber) if info else None,
        accountHolder=_clean(info.accountHolder) if info else None,
        bank=_clean(info.bank) if info else None,
        period=period,
    )
    rows = [
        StatementRow(
            date=row.date.strip(),
            description=row.description.strip(),
            merchant=_clean(row.merchant),
            amount=abs(row.amount),
            type=row.type,
            balance=row.balance,
            suggestedCategory=_clean(row.suggestedCategory),
        )
        for row in extracted.transactions
    ]
    return account, rows


def build_statement_suggestions(rows: Iterable[StatementRow]) -> list[SuggestedTransaction]:
    return [
        SuggestedTransaction(
            type=row.type,
            amount=row.amount,
            description=row.description,
            date=row.date,
            categoryName=row.suggestedCategory or DEFAULT_CATEGORY[row.type],
            merchant=row.merchant,
        )
        for row in rows
    ]


def summarize(rows: list[StatementRow]) -> StatementSummary:
    """Totals per type, summed in Decimal so they reconcile with the rows."""
    income = sum((Decimal(str(r.amount)) for r in rows if r.type == "INCOME"), Decimal("0"))
    expenses = sum((Decimal(str(r.amount)) for r in rows if r.type == "EXPENSE"), Decimal("0"))
    return StatementSummary(
        totalIncome=float(income),
        totalExpenses=float(expenses),
        transactionCount=len(rows),
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

async def extract_receipt(
    db: Session,
    client: ExtractionClient,
    file_path: str,
    mime_type: str,
    user_id: str,
) -> ReceiptPreview:
    """Extract one expense from a receipt image and store it as a preview."""
    logger.info("Receipt extraction start: user=%s mime=%s", user_id, mime_type)
    expense_names = await asyncio.to_thread(list_category_names, db, user_id, "EXPENSE")

    try:
        async with client.uploaded(file_path, mime_type, "receipt") as remote:
            extracted = await client.extract(
                remote, receipt_prompt(expense_names), RECEIPT_SCHEMA, ExtractedReceipt
            )
    except Exception as e:
        logger.error("Receipt extraction failed for user %s: %s", user_id, e,
                     exc_info=not isinstance(e, ExtractionError))
        raise ExtractionError(RECEIPT_FAILURE) from e

    data = normalize_receipt(extracted)
    suggested = build_receipt_suggestion(data)
    logger.info("Receipt extracted: merchant=%s amount=%s confidence=%s",
                data.merchant, data.amount, data.confidence)

    preview = await asyncio.to_thread(
        create_preview,
        db,
        user_id,
        "receipt",
        {"extracted": data.model_dump(), "suggested": suggested.model_dump()},
    )
    return ReceiptPreview(
        previewId=preview.id,
        extractedData=data,
        suggestedTransaction=suggested,
        expiresAt=preview.expires_at,
        createdAt=preview.created_at,
    )


async def extract_statement(
    db: Session,
    client: ExtractionClient,
    file_path: str,
    user_id: str,
    mime_type: str = "application/pdf",
) -> StatementPreview:
    """Extract every row of a bank statement and store it as a preview."""
    logger.info("Statement extraction start: user=%s mime=%s", user_id, mime_type)
    income_names = await asyncio.to_thread(list_category_names, db, user_id, "INCOME")
    expense_names = await asyncio.to_thread(list_category_names, db, user_id, "EXPENSE")

    try:
        async with client.uploaded(file_path, mime_type, "statement") as remote:
            extracted = await client.extract(
                remote,
                statement_prompt(income_names, expense_names),
                STATEMENT_SCHEMA,
                ExtractedStatement,
            )
    except Exception as e:
        logger.error("Statement extraction failed for user %s: %s", user_id, e,
                     exc_info=not isinstance(e, ExtractionError))
        raise ExtractionError(STATEMENT_FAILURE) from e

    account, rows = normalize_statement(extracted)
    suggested = build_statement_suggestions(rows)
    summary = summarize(rows)
    logger.info("Statement extracted: %d rows, income=%s expenses=%s",
                summary.transactionCount, summary.totalIncome, summary.totalExpenses)

    data = StatementData(accountInfo=account, transactions=rows, summary=summary)
    preview = await asyncio.to_thread(
        create_preview,
        db,
        user_id,
        "statement",
        {
            "extracted": data.model_dump(),
            "suggested": [s.model_dump() for s in suggested],
            "summary": summary.model_dump(),
        },
    )
    return StatementPreview(
        previewId=preview.id,
        extractedData=data,
        suggestedTransactions=suggested,
        expiresAt=preview.expires_at,
        createdAt=preview.created_at,
    )
