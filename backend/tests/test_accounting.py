"""
Accounting core tests.

Verifies:
- Order ledger payment and credit note arithmetic and status derivation
- Oldest-first and manual payment allocation
- Credit note validation and reason labels
- Statement running balance, document numbers and CSV export
"""

from datetime import datetime

import pytest

from marketplace.accounting import (
    AllocationError,
    CreditNoteEntry,
    CreditNoteError,
    CreditNoteProcessor,
    CreditNoteReason,
    InvoiceEntry,
    LedgerError,
    LedgerOrder,
    OrderLedger,
    PaymentAllocator,
    PaymentEntry,
    StatementBuilder,
    credit_note_number,
    derive_payment_status,
    invoice_number,
    parse_statement_csv,
    reason_label,
    statement_to_csv,
)
from marketplace.accounting.credit_notes import classify_notes
from marketplace.accounting.ledger import (
    apply_payment,
    can_transition,
    reverse_credit,
    reverse_payment,
)
from marketplace.accounting.money import format_amount, format_money, parse_amount


def order(order_id, total_cents, *, day=1, paid=0, status="pending"):
    return LedgerOrder(
        order_id=order_id,
        created_at=datetime(2026, 3, day, 10, 0),
        total_cents=total_cents,
        total_paid_cents=paid,
        status=status,
    )


# =============================================================================
# ORDER LEDGER
# =============================================================================


class TestOrderLedger:

    def test_partial_then_full_payment(self):
        o = order("A", 10000)

        apply_payment(o, 4000)
        assert o.payment_status == "partial"
        assert o.remaining_cents == 6000

        apply_payment(o, 6000)
        assert o.payment_status == "paid"
        assert o.remaining_cents == 0

    def test_credit_note_reduces_total_but_not_original(self):
        o = order("A", 10000)
        CreditNoteProcessor().apply(o, 3000, "damaged_goods", "Two boxes arrived crushed")

        assert o.total_cents == 7000
        assert o.original_total_cents == 10000
        assert o.credited_cents == 3000
        assert o.remaining_cents == 7000

    def test_credit_after_full_payment_leaves_negative_remaining(self):
        o = order("A", 10000)
        apply_payment(o, 10000)
        CreditNoteProcessor().apply(o, 2500, "pricing_error", "Charged the wrong rate")

        assert o.remaining_cents == -2500
        assert o.payment_status == "paid"

    def test_payment_must_be_positive(self):
        with pytest.raises(LedgerError):
            apply_payment(order("A", 10000), 0)

    def test_reverse_payment_restores_status(self):
        o = order("A", 10000)
        apply_payment(o, 10000)
        reverse_payment(o, 4000)

        assert o.total_paid_cents == 6000
        assert o.payment_status == "partial"

    def test_cannot_reverse_more_than_paid(self):
        o = order("A", 10000, paid=1000)
        with pytest.raises(LedgerError):
            reverse_payment(o, 2000)

    def test_reverse_credit_restores_total(self):
        o = order("A", 10000)
        CreditNoteProcessor().apply(o, 3000, "other", "Goodwill")
        reverse_credit(o, 3000)

        assert o.total_cents == 10000
        assert o.credited_cents == 0

    @pytest.mark.parametrize(
        "total,paid,expected",
        [
            (10000, 0, "pending"),
            (10000, 1, "partial"),
            (10000, 10000, "paid"),
            (0, 0, "paid"),
        ],
    )
    def test_derive_payment_status(self, total, paid, expected):
        assert derive_payment_status(total, paid) == expected

    def test_outstanding_is_oldest_first_and_skips_cancelled(self):
        ledger = OrderLedger.from_orders("cust", [
            order("B", 5000, day=3),
            order("A", 5000, day=1),
            order("C", 5000, day=2, status="cancelled"),
            order("D", 5000, day=2, paid=5000),
        ])
        assert [o.order_id for o in ledger.outstanding()] == ["A", "B"]
        assert ledger.outstanding_cents == 10000

    def test_status_transitions_are_forward_only(self):
        assert can_transition("pending", "confirmed")
        assert can_transition("prepared", "cancelled")
        assert not can_transition("delivered", "cancelled")
        assert not can_transition("confirmed", "pending")


# =============================================================================
# PAYMENT ALLOCATION
# =============================================================================


class TestPaymentAllocator:

    def setup_method(self):
        self.allocator = PaymentAllocator()
        self.orders = [order("B", 10000, day=5), order("A", 5000, day=1)]

    def test_bulk_payment_covers_oldest_first(self):
        result = self.allocator.allocate(15000, self.orders)
        assert result.as_map() == {"A": 5000, "B": 10000}
        assert result.unallocated_cents == 0

    def test_small_payment_lists_untouched_orders_with_zero(self):
        result = self.allocator.allocate(3000, self.orders)
        assert [a.to_dict() for a in result.allocations] == [
            {"order_id": "A", "amount_cents": 3000},
            {"order_id": "B", "amount_cents": 0},
        ]

    def test_overpayment_stays_unallocated(self):
        result = self.allocator.allocate(20000, self.orders)
        assert result.allocated_cents == 15000
        assert result.unallocated_cents == 5000

    def test_same_timestamp_orders_tie_break_on_id(self):
        same = [order("Z", 1000, day=2), order("M", 1000, day=2)]
        result = self.allocator.allocate(1500, same)
        assert result.as_map() == {"M": 1000, "Z": 500}

    def test_manual_allocations_must_sum_to_payment(self):
        with pytest.raises(AllocationError):
            self.allocator.validate_manual(15000, {"A": 5000, "B": 5000}, self.orders)

    def test_manual_allocation_cannot_exceed_remaining(self):
        with pytest.raises(AllocationError):
            self.allocator.validate_manual(6000, {"A": 6000}, self.orders)

    def test_manual_allocation_rejects_unknown_order(self):
        with pytest.raises(AllocationError):
            self.allocator.validate_manual(1000, {"X": 1000}, self.orders)

    def test_manual_allocation_is_returned_oldest_first(self):
        result = self.allocator.validate_manual(7000, {"B": 4000, "A": 3000}, self.orders)
        assert [a.order_id for a in result.allocations] == ["A", "B"]
        assert result.manual

    def test_ledger_applies_allocations(self):
        ledger = OrderLedger.from_orders("cust", self.orders)
        result = self.allocator.allocate(7000, ledger.orders)
        ledger.apply_allocations(result.allocations)

        assert ledger.get("A").payment_status == "paid"
        assert ledger.get("B").total_paid_cents == 2000
        assert ledger.get("B").payment_status == "partial"

    def test_non_positive_payment_rejected(self):
        with pytest.raises(AllocationError):
            self.allocator.allocate(0, self.orders)


# =============================================================================
# CREDIT NOTES
# =============================================================================


class TestCreditNotes:

    def test_amount_cannot_exceed_current_total(self):
        o = order("A", 10000)
        with pytest.raises(CreditNoteError):
            CreditNoteProcessor().apply(o, 10001, "other", "Too much")
        assert o.total_cents == 10000
        assert o.credited_cents == 0

    def test_notes_required(self):
        with pytest.raises(CreditNoteError):
            CreditNoteProcessor().validate(order("A", 10000), 100, "other", "   ")

    def test_unknown_reason_rejected(self):
        with pytest.raises(CreditNoteError):
            CreditNoteProcessor().validate(order("A", 10000), 100, "bad_weather", "Rain")

    def test_draft_mirrors_negative_transaction(self):
        draft = CreditNoteProcessor().validate(order("A", 10000), 3000, "damaged_goods", "Crushed")
        assert draft.reason is CreditNoteReason.DAMAGED_GOODS
        assert draft.transaction_amount_cents == -3000
        assert draft.label == "Damaged Goods"

    def test_stored_reason_wins_over_notes(self):
        assert reason_label("quality_issue", "items were damaged") == "Quality Issue"

    def test_untagged_notes_are_classified(self):
        assert reason_label(None, "Customer returned two cases") == "Returned Goods"
        assert classify_notes("Box was broken on arrival") == "Damaged Goods"

    def test_ambiguous_or_unmatched_notes_get_default_label(self):
        assert classify_notes("damaged and returned") == "Credit Note"
        assert classify_notes("adjustment") == "Credit Note"


# =============================================================================
# STATEMENTS
# =============================================================================


class TestStatementBuilder:

    def build(self, **kwargs):
        return StatementBuilder().build(
            "cust",
            invoices=[
                InvoiceEntry("order00000a", datetime(2026, 1, 10), 10000),
                InvoiceEntry("order00000b", datetime(2026, 2, 3), 5000),
            ],
            payments=[
                PaymentEntry("pay1", datetime(2026, 1, 20), 4000, method="bank_transfer",
                             reference="BT-77", order_id="order00000a",
                             order_created_at=datetime(2026, 1, 10)),
                PaymentEntry("pay2", datetime(2026, 2, 5), 1000, method="cash"),
            ],
            credit_notes=[
                CreditNoteEntry("txn0000000c", datetime(2026, 1, 25), datetime(2026, 1, 25), 3000,
                                reason="damaged_goods", notes="Crushed boxes", order_id="order00000a"),
            ],
            **kwargs,
        )

    def test_running_balance_and_final_balance(self):
        statement = self.build()

        assert [line.type for line in statement.lines] == [
            "invoice", "payment", "credit_note", "invoice", "payment",
        ]
        assert [line.balance_cents for line in statement.lines] == [10000, 6000, 3000, 8000, 7000]
        # invoices - payments - credit notes
        assert statement.closing_balance_cents == 15000 - 5000 - 3000
        assert statement.total_credited_cents == 3000

    def test_document_numbers_use_entity_creation_date(self):
        statement = self.build()
        assert statement.lines[0].reference == "INV-202601-00000A"
        assert statement.lines[2].reference == "CN-202601-00000C"
        assert invoice_number("order00000b", datetime(2026, 2, 3)) == "INV-202602-00000B"
        assert credit_note_number("abc", datetime(2025, 12, 31)) == "CN-202512-ABC"

    def test_descriptions(self):
        statement = self.build()
        assert statement.lines[1].description == "Payment (Bank Transfer) against INV-202601-00000A"
        assert statement.lines[2].description == "Damaged Goods: Crushed boxes"
        assert statement.lines[4].description == "Payment on account (Cash)"

    def test_period_filter(self):
        statement = self.build(start=datetime(2026, 2, 1), end=datetime(2026, 2, 28, 23, 59))
        assert [line.type for line in statement.lines] == ["invoice", "payment"]
        assert statement.closing_balance_cents == 4000

    def test_same_timestamp_orders_invoice_before_payment(self):
        when = datetime(2026, 3, 1, 12, 0)
        statement = StatementBuilder().build(
            "cust",
            payments=[PaymentEntry("p", when, 500)],
            invoices=[InvoiceEntry("o", when, 500)],
        )
        assert [line.type for line in statement.lines] == ["invoice", "payment"]
        assert statement.closing_balance_cents == 0

    def test_empty_statement(self):
        statement = StatementBuilder().build("cust")
        assert statement.lines == []
        assert statement.closing_balance_cents == 0


class TestStatementCsv:

    def test_csv_format(self):
        statement = StatementBuilder().build(
            "cust",
            invoices=[InvoiceEntry("order00000a", datetime(2026, 1, 10), 123450)],
            credit_notes=[
                CreditNoteEntry("txn0000000c", datetime(2026, 1, 11), datetime(2026, 1, 11), 450,
                                reason="other", notes='Short "by one", as agreed'),
            ],
        )
        text = statement_to_csv(statement)

        assert text.startswith("\ufeffDate,Type,Reference,Description,Amount,Payment,Balance\r\n")
        lines = text.lstrip("\ufeff").split("\r\n")
        assert lines[1] == "2026-01-10,Invoice,INV-202601-00000A,Invoice INV-202601-00000A,1234.50,,1234.50"
        assert lines[2] == (
            '2026-01-11,Credit Note,CN-202601-00000C,"Other: Short ""by one"", as agreed",-4.50,,1230.00'
        )

    def test_csv_reads_back_to_display_rows(self):
        statement = StatementBuilder().build(
            "cust",
            invoices=[InvoiceEntry("o1", datetime(2026, 1, 10), 10000)],
            payments=[PaymentEntry("p1", datetime(2026, 1, 12), 2500, reference="ref, with comma")],
        )
        assert parse_statement_csv(statement_to_csv(statement)) == statement.rows()

    def test_parse_rejects_foreign_csv(self):
        with pytest.raises(ValueError):
            parse_statement_csv("a,b,c\r\n1,2,3\r\n")


class TestMoney:

    def test_format_and_parse(self):
        assert format_amount(123450) == "1234.50"
        assert format_amount(-450) == "-4.50"
        assert format_money(123450) == "€1,234.50"
        assert format_money(-3000, "$") == "-$30.00"
        assert parse_amount("€1,234.50") == 123450
        assert parse_amount("-4.5") == -450

    def test_parse_garbage(self):
        with pytest.raises(ValueError):
            parse_amount("abc")
