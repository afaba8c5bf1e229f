"""
Extraction prompts and response schemas for receipts and bank statements.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable

RECEIPT_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "merchant": {
            "type": "STRING",
            "nullable": True,
            "description": "Name of the merchant or business",
        },
        "date": {
            "type": "STRING",
            "description": "Transaction date in YYYY-MM-DD format",
        },
        "amount": {
            "type": "NUMBER",
            "description": "Total amount as a positive number",
        },
        "currency": {
            "type": "STRING",
            "nullable": True,
            "description": "Currency code (e.g., INR, USD)",
        },
        "description": {
            "type": "STRING",
            "nullable": True,
            "description": "Brief description or itemized list",
        },
        "suggestedCategory": {
            "type": "STRING",
            "nullable": True,
            "description": "Best-fitting expense category name",
        },
        "confidence": {
            "type": "NUMBER",
            "nullable": True,
            "minimum": 0,
            "maximum": 1,
            "description": "Confidence score between 0 and 1",
        },
    },
    "required": ["date", "amount"],
}

STATEMENT_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "accountInfo": {
            "type": "OBJECT",
            "nullable": True,
            "properties": {
                "accountNumber": {"type": "STRING", "nullable": True},
                "accountHolder": {"type": "STRING", "nullable": True},
                "bank": {"type": "STRING", "nullable": True},
                "statementPeriod": {
                    "type": "OBJECT",
                    "nullable": True,
                    "properties": {
                        "from": {"type": "STRING", "nullable": True},
                        "to": {"type": "STRING", "nullable": True},
                    },
                },
            },
        },
        "transactions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "date": {
                        "type": "STRING",
                        "description": "Transaction date in YYYY-MM-DD format",
                    },
                    "description": {
                        "type": "STRING",
                        "description": "Transaction description as written in the statement",
                    },
                    "merchant": {
                        "type": "STRING",
                        "nullable": True,
                        "description": "Merchant or counterparty parsed from the description",
                    },
                    "amount": {
                        "type": "NUMBER",
                        "description": "Absolute amount (always positive)",
                    },
                    "type": {
                        "type": "STRING",
                        "enum": ["INCOME", "EXPENSE"],
                        "description": "INCOME for credits, EXPENSE for debits",
                    },
                    "suggestedCategory": {
                        "type": "STRING",
                        "nullable": True,
                        "description": "Best-fitting category name for this row",
                    },
                    "balance": {
                        "type": "NUMBER",
                        "nullable": True,
                        "description": "Account balance after transaction",
                    },
                },
                "required": ["date", "description", "amount", "type"],
            },
        },
    },
    "required": ["transactions"],
}


def _category_hint(label: str, names: Iterable[str]) -> str:
    names = [n for n in names if n]
    if not names:
        return f"The user has no {label} categories yet; suggest a short, generic name."
    return (
        f"The user's existing {label} categories are: {', '.join(names)}. "
        "Prefer one of these; only suggest a new name when none fits."
    )


def receipt_prompt(expense_categories: Iterable[str]) -> str:
    return f"""You are a financial assistant. Extract transaction details from this receipt image.

Instructions:
1. Identify the merchant/business name
2. Find the transaction date (format as YYYY-MM-DD)
3. Extract the TOTAL amount (not individual items) as a positive number
4. Determine the currency (default to INR if unclear)
5. Create a brief description (mention main items if visible)
6. Suggest a category name for the purchase
7. Provide a confidence score (0-1) based on image clarity

{_category_hint("expense", expense_categories)}

If any field is unclear, set it to null. Return valid JSON only."""


def statement_prompt(income_categories: Iterable[str], expense_categories: Iterable[str]) -> str:
    return f"""You are a financial assistant. Extract ALL transactions from this bank statement.

Instructions:
1. Identify account information if visible (account number, holder name, bank, statement period)
2. Extract EVERY transaction row with:
   - Date (YYYY-MM-DD format)
   - Description (as written in statement)
   - Merchant (best-effort parse from the description, null if none)
   - Amount (always positive number, use 'type' field for INCOME vs EXPENSE)
   - Type (INCOME for credits/deposits, EXPENSE for debits/withdrawals)
   - Suggested category name
   - Balance (if shown in statement)
3. Ignore summary rows, headers, and footers
4. Maintain chronological order

{_category_hint("income", income_categories)}
{_category_hint("expense", expense_categories)}

Return valid JSON with an array of transactions. Be thorough and extract all visible transactions."""
