"""
spendscan contracts — request/response and extraction payload schemas.
"""
from spendscan.schemas.upload import (  # noqa: F401
    AccountInfo,
    CategoryOut,
    CommitOptions,
    CommitReceiptRequest,
    CommitReceiptTransaction,
    CommitStatementRequest,
    CommitStatementResult,
    CommitStatementRow,
    Envelope,
    ExtractedReceipt,
    ExtractedStatement,
    ExtractedStatementRow,
    PreviewListResponse,
    PreviewResponse,
    PreviewType,
    ReceiptData,
    ReceiptMetadata,
    ReceiptPreview,
    StatementData,
    StatementPeriod,
    StatementPreview,
    StatementRow,
    StatementSummary,
    SuggestedTransaction,
    TransactionOut,
    TransactionType,
)
