"""
Unit tests for the commit engine and duplicate detection.
"""
import datetime
import uuid
from decimal import Decimal

import pytest

from spendscan.exceptions import (
    InvalidCategory,
    PreviewForbidden,
    PreviewGone,
    PreviewNotFound,
    ValidationError,
)
from spendscan.models import CategoryModel, TransactionModel, UploadPreviewModel
from spendscan.models.transaction import SOURCE_RECEIPT, SOURCE_STATEMENT_IMPORT
from spendscan.pipeline import categories, committer
from spendscan.pipeline.categories import resolve_categories
from spendscan.pipeline.committer import commit_receipt, commit_statement, find_duplicates
from spendscan.schemas import CommitReceiptRequest, CommitStatementRequest

from conftest import OTHER_USER, USER


def receipt_request(preview_id, **overrides):
    transaction = {
        "type": "EXPENSE",
        "amount": "123.45",
        "description": "Groceries at Big Bazaar",
        "date": "2025-01-01",
        "categoryName": "Food",
    }
    transaction.update(overrides)
    return CommitReceiptRequest.model_validate({
        "previewId": preview_id,
        "transaction": transaction,
        "metadata": {"merchant": "Big Bazaar", "currency": "INR", "aiConfidence": 0.9},
    })


def statement_request(preview_id, rows, skip_duplicates=None):
    body = {"previewId": preview_id, "transactions": rows}
    if skip_duplicates is not None:
        body["options"] = {"skipDuplicates": skip_duplicates}
    return CommitStatementRequest.model_validate(body)


def row(amount="500", date="2025-10-01", description="X", type_="EXPENSE", category="Bills"):
    return {"type": type_, "amount": amount, "date": date,
            "description": description, "categoryName": category}


def existing_transaction(db, amount, date, description, user_id=USER):
    db.add(TransactionModel(
        id=str(uuid.uuid4()), user_id=user_id, type="EXPENSE", amount=Decimal(amount),
        occurred_at=datetime.date.fromisoformat(date), description=description, source="MANUAL",
    ))
    db.commit()


# =====================================================================
# Receipt commit
# =====================================================================
class TestCommitReceipt:
    def test_creates_transaction_and_consumes_preview(self, db, make_preview):
        preview_id = make_preview()
        txn = commit_receipt(db, receipt_request(preview_id), USER)

        assert txn.amount == Decimal("123.45")
        assert txn.source == SOURCE_RECEIPT
        assert txn.merchant == "Big Bazaar"
        assert txn.currency == "INR"
        assert txn.occurred_at == datetime.date(2025, 1, 1)
        assert txn.category.type == txn.type == "EXPENSE"
        assert txn.category.name == "Food"
        assert db.query(UploadPreviewModel).count() == 0

    def test_reuses_category_case_insensitively(self, db, make_preview):
        db.add(CategoryModel(id="cat-1", user_id=USER, name="Food", name_key="food", type="EXPENSE"))
        db.commit()
        txn = commit_receipt(db, receipt_request(make_preview(), categoryName="  fOOd "), USER)
        assert txn.category_id == "cat-1"
        assert db.query(CategoryModel).count() == 1

    def test_same_name_other_type_is_separate_category(self, db, make_preview):
        db.add(CategoryModel(id="cat-1", user_id=USER, name="Refunds", name_key="refunds", type="EXPENSE"))
        db.commit()
        txn = commit_receipt(db, receipt_request(make_preview(), type="INCOME", categoryName="Refunds"), USER)
        assert txn.category_id != "cat-1"
        assert txn.category.type == "INCOME"

    def test_double_commit_is_not_found(self, db, make_preview):
        preview_id = make_preview()
        commit_receipt(db, receipt_request(preview_id), USER)
        with pytest.raises(PreviewNotFound):
            commit_receipt(db, receipt_request(preview_id), USER)
        assert db.query(TransactionModel).count() == 1

    def test_other_user_forbidden(self, db, make_preview):
        preview_id = make_preview()
        with pytest.raises(PreviewForbidden):
            commit_receipt(db, receipt_request(preview_id), OTHER_USER)
        assert db.query(TransactionModel).count() == 0

    def test_expired_is_gone(self, db, make_preview):
        preview_id = make_preview(expires_in=-1)
        with pytest.raises(PreviewGone):
            commit_receipt(db, receipt_request(preview_id), USER)
        assert db.query(TransactionModel).count() == 0

    def test_statement_preview_rejected(self, db, make_preview):
        preview_id = make_preview(kind="statement")
        with pytest.raises(ValidationError):
            commit_receipt(db, receipt_request(preview_id), USER)
        assert db.query(UploadPreviewModel).count() == 1

    def test_failed_gate_leaves_no_rows(self, db, make_preview, monkeypatch):
        preview_id = make_preview()
        monkeypatch.setattr(committer, "consume_preview", lambda *args: False)
        with pytest.raises(PreviewNotFound):
            commit_receipt(db, receipt_request(preview_id), USER)
        assert db.query(TransactionModel).count() == 0
        assert db.query(UploadPreviewModel).filter_by(id=preview_id).count() == 1


# =====================================================================
# Statement commit
# =====================================================================
class TestCommitStatement:
    def test_duplicate_row_skipped(self, db, make_preview):
        existing_transaction(db, "500", "2025-10-01", "X")
        result = commit_statement(db, statement_request(make_preview(kind="statement"), [row()]), USER)
        assert (result.created, result.skipped, result.total) == (0, 1, 1)
        assert db.query(TransactionModel).count() == 1

    def test_skip_disabled_imports_everything(self, db, make_preview):
        existing_transaction(db, "500", "2025-10-01", "X")
        result = commit_statement(
            db, statement_request(make_preview(kind="statement"), [row()], skip_duplicates=False), USER
        )
        assert (result.created, result.skipped, result.total) == (1, 0, 1)
        assert db.query(TransactionModel).count() == 2

    def test_mixed_rows(self, db, make_preview):
        existing_transaction(db, "250.00", "2025-10-03", "UPI/Swiggy/Food")
        rows = [
            row(amount="1000", type_="INCOME", description="SALARY", category="Salary"),
            row(amount="250", date="2025-10-03", description="upi/swiggy/food", category="Food"),
            row(amount="251", date="2025-10-03", description="UPI/Swiggy/Food", category="Food"),
            row(amount="250", date="2025-10-04", description="UPI/Swiggy/Food", category="Food"),
        ]
        result = commit_statement(db, statement_request(make_preview(kind="statement"), rows), USER)
        assert (result.created, result.skipped, result.total) == (3, 1, 4)
        assert result.created + result.skipped == result.total

        imported = db.query(TransactionModel).filter_by(source=SOURCE_STATEMENT_IMPORT).all()
        assert len(imported) == 3
        for txn in imported:
            assert txn.category.type == txn.type
        # two "Food" rows share one category
        assert db.query(CategoryModel).filter_by(name_key="food").count() == 1

    def test_resubmission_is_all_skipped(self, db, make_preview):
        rows = [row(amount="10"), row(amount="20", description="Y"), row(amount="30", type_="INCOME")]
        first = commit_statement(db, statement_request(make_preview(kind="statement"), rows), USER)
        assert first.created == 3
        second = commit_statement(db, statement_request(make_preview(kind="statement"), rows), USER)
        assert second.skipped == second.total == 3
        assert second.created == 0

    def test_other_users_transactions_do_not_count(self, db, make_preview):
        existing_transaction(db, "500", "2025-10-01", "X", user_id=OTHER_USER)
        result = commit_statement(db, statement_request(make_preview(kind="statement"), [row()]), USER)
        assert result.created == 1

    def test_double_commit_is_not_found(self, db, make_preview):
        preview_id = make_preview(kind="statement")
        commit_statement(db, statement_request(preview_id, [row()]), USER)
        with pytest.raises(PreviewNotFound):
            commit_statement(db, statement_request(preview_id, [row(description="Z")]), USER)
        assert db.query(TransactionModel).count() == 1

    def test_failed_gate_rolls_back_everything(self, db, make_preview, monkeypatch):
        preview_id = make_preview(kind="statement")
        monkeypatch.setattr(committer, "consume_preview", lambda *args: False)
        with pytest.raises(PreviewNotFound):
            commit_statement(db, statement_request(preview_id, [row(), row(description="Y")]), USER)
        assert db.query(TransactionModel).count() == 0
        assert db.query(UploadPreviewModel).filter_by(id=preview_id).count() == 1

    def test_receipt_preview_rejected(self, db, make_preview):
        with pytest.raises(ValidationError):
            commit_statement(db, statement_request(make_preview(), [row()]), USER)


# =====================================================================
# Helpers
# =====================================================================
class TestFindDuplicates:
    def test_tolerance_and_case(self, db):
        existing_transaction(db, "99.99", "2025-10-01", "Coffee Shop")
        rows = statement_request("p", [
            row(amount="99.99", description="COFFEE SHOP"),
            row(amount="99.98", description="Coffee Shop"),
            row(amount="99.99", description="Coffee  Shop"),
            row(amount="99.99", date="2025-10-02", description="Coffee Shop"),
        ]).transactions
        assert find_duplicates(db, USER, rows) == [True, False, False, False]


class TestResolveCategories:
    def test_batch_creates_once_per_key(self, db):
        resolved = resolve_categories(db, USER, [
            ("Food", "EXPENSE"), ("food ", "EXPENSE"), ("Food", "INCOME"),
        ])
        db.commit()
        assert len(resolved) == 2
        assert db.query(CategoryModel).count() == 2

    def test_empty(self, db):
        assert resolve_categories(db, USER, []) == {}


# =====================================================================
# Concurrent category creation
# =====================================================================
def race_category_creation(monkeypatch, db, name, type_, consume_preview_id=None):
    """Make the first category lookup miss while a rival commit creates *name*.

    The rival optionally consumes the preview in the same transaction, as a
    winning double submit would.
    """
    real_find = categories.find_categories
    calls = []

    def find(session, user_id, keys):
        calls.append(keys)
        if len(calls) == 1:
            db.add(CategoryModel(id="rival-cat", user_id=USER, name=name,
                                 name_key=name.lower(), type=type_))
            if consume_preview_id:
                db.query(UploadPreviewModel).filter_by(id=consume_preview_id).delete()
            db.commit()
            return {}
        return real_find(session, user_id, keys)

    monkeypatch.setattr(categories, "find_categories", find)
    return calls


class TestCategoryRace:
    def test_losing_double_submit_is_not_found(self, db, make_preview, monkeypatch):
        preview_id = make_preview(kind="statement")
        race_category_creation(monkeypatch, db, "Other", "EXPENSE", consume_preview_id=preview_id)
        with pytest.raises(PreviewNotFound):
            commit_statement(db, statement_request(preview_id, [row(category="Other")]), USER)
        assert db.query(TransactionModel).count() == 0
        assert db.query(CategoryModel).count() == 1

    def test_losing_receipt_double_submit_is_not_found(self, db, make_preview, monkeypatch):
        preview_id = make_preview()
        race_category_creation(monkeypatch, db, "Food", "EXPENSE", consume_preview_id=preview_id)
        with pytest.raises(PreviewNotFound):
            commit_receipt(db, receipt_request(preview_id), USER)
        assert db.query(TransactionModel).count() == 0

    def test_rival_category_is_reused(self, db, make_preview, monkeypatch):
        calls = race_category_creation(monkeypatch, db, "Other", "EXPENSE")
        result = commit_statement(
            db, statement_request(make_preview(kind="statement"), [row(category="other")]), USER
        )
        assert result.created == 1
        assert len(calls) == 2
        assert db.query(TransactionModel).one().category_id == "rival-cat"
        assert db.query(CategoryModel).count() == 1

    def test_unresolvable_category_keeps_preview(self, db, make_preview, monkeypatch):
        preview_id = make_preview(kind="statement")
        db.add(CategoryModel(id="hidden", user_id=USER, name="Other", name_key="other", type="EXPENSE"))
        db.commit()
        monkeypatch.setattr(categories, "find_categories", lambda *args: {})
        with pytest.raises(InvalidCategory):
            commit_statement(db, statement_request(preview_id, [row(category="Other")]), USER)
        assert db.query(TransactionModel).count() == 0
        assert db.query(UploadPreviewModel).filter_by(id=preview_id).count() == 1
