"""
ReversalService tests.

Tests cover:
- Mirrored ledger lines with DR and CR swapped, amounts and currencies kept
- Linkage: reversal_of_id, the -REV code and reversal metadata
- The original transaction is left untouched
- One reversal per transaction; a repeat is a suppressed duplicate
- Error paths: reversal of a reversal, draft, missing reason, not found
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from hera_kernel.exceptions import InvalidPayloadError, TransactionNotFoundError
from hera_kernel.models.transaction import Transaction, TransactionLine
from tests.conftest import gl_line, sale_header, sale_lines


def _posting(side, amount, account):
    line = gl_line(side, amount)
    line["line_data"]["account"] = account
    return line


@pytest.fixture
def posted_sale(transaction_service, ctx):
    lines = [
        *sale_lines(),
        _posting("DR", "472.50", "cash"),
        _posting("CR", "450.00", "revenue"),
        _posting("CR", "22.50", "vat"),
    ]
    return transaction_service.emit(ctx, sale_header(), lines).transaction


def _line_snapshot(session, transaction_id):
    session.expire_all()
    rows = session.execute(
        select(TransactionLine)
        .where(TransactionLine.transaction_id == transaction_id)
        .order_by(TransactionLine.line_number)
    ).scalars().all()
    return [
        (r.line_number, r.line_type, r.line_amount, r.smart_code, r.line_data, r.updated_at)
        for r in rows
    ]


class TestReverse:
    def test_mirrors_ledger_lines(self, reversal_service, ctx, posted_sale):
        outcome = reversal_service.reverse(ctx, posted_sale.id, "Customer refund")
        reversal = outcome.transaction

        assert outcome.duplicate_suppressed is False
        assert reversal.reversal_of_id == posted_sale.id
        assert reversal.status == "posted"
        assert [(line.line_number, line.side, line.line_amount) for line in reversal.lines] == [
            (4, "CR", Decimal("472.50")),
            (5, "DR", Decimal("450.00")),
            (6, "DR", Decimal("22.50")),
        ]
        assert [line.line_data["account"] for line in reversal.lines] == ["cash", "revenue", "vat"]
        assert all(line.line_data["currency"] == "AED" for line in reversal.lines)

    def test_non_ledger_lines_not_carried(self, reversal_service, ctx, posted_sale):
        reversal = reversal_service.reverse(ctx, posted_sale.id, "refund").transaction
        assert {line.line_type for line in reversal.lines} == {"gl"}
        assert reversal.total_amount == Decimal("0")

    def test_code_and_metadata(self, reversal_service, ctx, posted_sale, deterministic_clock):
        deterministic_clock.advance(3600)
        reversal = reversal_service.reverse(ctx, str(posted_sale.id), "Customer refund").transaction
        assert reversal.transaction_code == f"{posted_sale.transaction_code}-REV"
        assert reversal.transaction_type == posted_sale.transaction_type
        assert reversal.smart_code == posted_sale.smart_code
        assert reversal.transaction_date == deterministic_clock.now()
        assert reversal.metadata == {
            "reversal_reason": "Customer refund",
            "reversed_transaction_code": posted_sale.transaction_code,
        }

    def test_original_untouched(self, reversal_service, ctx, posted_sale, session):
        before = _line_snapshot(session, posted_sale.id)
        header_before = session.get(Transaction, posted_sale.id).updated_at

        reversal_service.reverse(ctx, posted_sale.id, "refund")

        assert _line_snapshot(session, posted_sale.id) == before
        original = session.get(Transaction, posted_sale.id)
        assert original.status == "posted"
        assert original.updated_at == header_before
        assert original.total_amount == Decimal("472.50")

    def test_original_without_ledger_lines(self, transaction_service, reversal_service, ctx):
        txn = transaction_service.emit(ctx, sale_header(), sale_lines()).transaction
        reversal = reversal_service.reverse(ctx, txn.id, "void").transaction
        assert reversal.lines == ()
        assert reversal.reversal_of_id == txn.id

    def test_logs(self, reversal_service, ctx, posted_sale, captured_logs):
        reversal = reversal_service.reverse(ctx, posted_sale.id, "refund").transaction
        (record,) = [r for r in captured_logs() if r["message"] == "transaction_reversed"]
        assert record["reversal_id"] == str(reversal.id)
        assert record["line_count"] == 3


class TestAtMostOnce:
    def test_second_reverse_is_duplicate(self, reversal_service, ctx, posted_sale, session):
        first = reversal_service.reverse(ctx, posted_sale.id, "refund")
        second = reversal_service.reverse(ctx, posted_sale.id, "refund again")

        assert second.duplicate_suppressed is True
        assert second.transaction.id == first.transaction.id
        assert second.transaction.metadata["reversal_reason"] == "refund"
        reversals = session.execute(
            select(Transaction).where(Transaction.reversal_of_id == posted_sale.id)
        ).scalars().all()
        assert len(reversals) == 1

    def test_reversal_cannot_be_reversed(self, reversal_service, ctx, posted_sale):
        reversal = reversal_service.reverse(ctx, posted_sale.id, "refund").transaction
        with pytest.raises(InvalidPayloadError) as exc_info:
            reversal_service.reverse(ctx, reversal.id, "undo the refund")
        assert exc_info.value.code == "INVALID_PAYLOAD"


class TestErrors:
    def test_draft_not_reversible(self, transaction_service, reversal_service, ctx):
        draft = transaction_service.emit(ctx, sale_header(status="draft"), []).transaction
        with pytest.raises(InvalidPayloadError):
            reversal_service.reverse(ctx, draft.id, "nope")

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, reversal_service, ctx, posted_sale, reason):
        with pytest.raises(InvalidPayloadError) as exc_info:
            reversal_service.reverse(ctx, posted_sale.id, reason)
        assert exc_info.value.field == "reason"

    def test_unknown_transaction(self, reversal_service, ctx):
        with pytest.raises(TransactionNotFoundError) as exc_info:
            reversal_service.reverse(ctx, uuid4(), "refund")
        assert exc_info.value.code == "NOT_FOUND"

    def test_malformed_id(self, reversal_service, ctx):
        with pytest.raises(TransactionNotFoundError):
            reversal_service.reverse(ctx, "SALE-000001", "refund")

    def test_other_tenant_is_not_found(self, reversal_service, transaction_service, ctx, other_ctx):
        theirs = transaction_service.emit(other_ctx, sale_header(), []).transaction
        with pytest.raises(TransactionNotFoundError):
            reversal_service.reverse(ctx, theirs.id, "refund")
