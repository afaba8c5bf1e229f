"""
Pydantic v2 contracts for the upload → preview → commit flow.

Field names follow the JSON wire format (camelCase) used by the web client.
"""
from __future__ import annotations

import datetime
import re
from decimal import Decimal
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

TransactionType = Literal["INCOME", "EXPENSE"]
PreviewType = Literal["receipt", "statement"]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Raw extraction payloads (what the extraction service returns)
# ---------------------------------------------------------------------------

class ExtractedReceipt(BaseModel):
    merchant: Optional[str] = None
    date: str
    amount: float
    currency: Optional[str] = None
    description: Optional[str] = None
    suggestedCategory: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)


class ExtractedPeriod(BaseModel):
    # the model is asked for from/to but sometimes answers startDate/endDate
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class ExtractedAccountInfo(BaseModel):
    accountNumber: Optional[str] = None
    accountHolder: Optional[str] = None
    bank: Optional[str] = None
    statementPeriod: Optional[ExtractedPeriod] = None


class ExtractedStatementRow(BaseModel):
    date: str
    description: str
    merchant: Optional[str] = None
    amount: float
    type: TransactionType
    suggestedCategory: Optional[str] = None
    balance: Optional[float] = None


class ExtractedStatement(BaseModel):
    accountInfo: Optional[ExtractedAccountInfo] = None
    transactions: list[ExtractedStatementRow]


# ---------------------------------------------------------------------------
# Preview responses
# ---------------------------------------------------------------------------

class SuggestedTransaction(BaseModel):
    type: TransactionType
    amount: float
    description: str
    date: str
    categoryName: str
    merchant: Optional[str] = None


class ReceiptData(BaseModel):
    merchant: Optional[str] = None
    date: str
    amount: float
    currency: str = "INR"
    description: Optional[str] = None
    suggestedCategory: Optional[str] = None
    confidence: Optional[float] = None


class ReceiptPreview(BaseModel):
    previewId: str
    type: Literal["receipt"] = "receipt"
    extractedData: ReceiptData
    suggestedTransaction: SuggestedTransaction
    expiresAt: datetime.datetime
    createdAt: datetime.datetime


class StatementPeriod(BaseModel):
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class AccountInfo(BaseModel):
    accountNumber: Optional[str] = None
    accountHolder: Optional[str] = None
    bank: Optional[str] = None
    period: StatementPeriod = Field(default_factory=StatementPeriod)


class StatementRow(BaseModel):
    date: str
    description: str
    merchant: Optional[str] = None
    amount: float
    type: TransactionType
    balance: Optional[float] = None
    suggestedCategory: Optional[str] = None


class StatementSummary(BaseModel):
    totalIncome: float
    totalExpenses: float
    transactionCount: int


class StatementData(BaseModel):
    accountInfo: AccountInfo
    transactions: list[StatementRow]
    summary: StatementSummary


class StatementPreview(BaseModel):
    previewId: str
    type: Literal["statement"] = "statement"
    extractedData: StatementData
    suggestedTransactions: list[SuggestedTransaction]
    expiresAt: datetime.datetime
    createdAt: datetime.datetime


class PreviewResponse(BaseModel):
    previewId: str
    type: PreviewType
    data: dict
    createdAt: datetime.datetime
    expiresAt: datetime.datetime


class PreviewListResponse(BaseModel):
    success: bool = True
    data: list[PreviewResponse]
    count: int


# ---------------------------------------------------------------------------
# Commit requests
# ---------------------------------------------------------------------------

class _CommitRow(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    date: datetime.date
    categoryName: str = Field(..., min_length=1)

    @field_validator("date", mode="before")
    @classmethod
    def _iso_date(cls, v):
        if not isinstance(v, str) or not _ISO_DATE.match(v):
            raise ValueError("Date must be YYYY-MM-DD format")
        return v

    @field_validator("categoryName")
    @classmethod
    def _category_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Category name is required")
        return v


class CommitReceiptTransaction(_CommitRow):
    pass


class ReceiptMetadata(BaseModel):
    merchant: Optional[str] = None
    currency: str = "INR"
    aiConfidence: Optional[float] = Field(default=None, ge=0, le=1)


class CommitReceiptRequest(BaseModel):
    previewId: str = Field(..., min_length=1)
    transaction: CommitReceiptTransaction
    metadata: Optional[ReceiptMetadata] = None


class CommitStatementRow(_CommitRow):
    merchant: Optional[str] = None


class CommitOptions(BaseModel):
    skipDuplicates: bool = True


class CommitStatementRequest(BaseModel):
    previewId: str = Field(..., min_length=1)
    transactions: list[CommitStatementRow] = Field(..., min_length=1)
    options: Optional[CommitOptions] = None


# ---------------------------------------------------------------------------
# Commit responses
# ---------------------------------------------------------------------------

class CategoryOut(BaseModel):
    id: str
    name: str
    type: TransactionType


class TransactionOut(BaseModel):
    id: str
    type: TransactionType
    amount: float
    currency: str
    date: datetime.date
    description: str
    merchant: Optional[str] = None
    source: str
    categoryId: Optional[str] = None
    category: Optional[CategoryOut] = None
    createdAt: datetime.datetime


class CommitStatementResult(BaseModel):
    created: int
    skipped: int
    total: int


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T
    message: Optional[str] = None
