# Overview: Builds a customer's chronological statement with a running balance.

"""
Customer Statement

Interleaves invoice, payment and credit-note lines by date and carries a
running balance:

    balance += amount - payment

Invoices contribute their original (pre-credit-note) total as amount,
payments contribute as payment, and credit notes contribute a negative
amount. The closing balance therefore equals
sum(invoices) - sum(payments) - sum(credit notes).

Document numbers are derived from the creation timestamp of the entity
they describe, never from the date the statement is produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from marketplace.time_utils import to_utc_z
from .credit_notes import reason_label
from .money import format_amount


LINE_INVOICE = "invoice"
LINE_PAYMENT = "payment"
LINE_CREDIT_NOTE = "credit_note"

LINE_TYPE_LABELS = {
    LINE_INVOICE: "Invoice",
    LINE_PAYMENT: "Payment",
    LINE_CREDIT_NOTE: "Credit Note",
}

# Same-timestamp ordering
_LINE_RANK = {LINE_INVOICE: 0, LINE_PAYMENT: 1, LINE_CREDIT_NOTE: 2}

PAYMENT_METHOD_LABELS = {
    "cash": "Cash",
    "bank_transfer": "Bank Transfer",
    "cheque": "Cheque",
    "card": "Card",
    "credit_note": "Credit Note",
    "other": "Other",
}


def _document_number(prefix: str, entity_id: str, created_at: datetime) -> str:
    return f"{prefix}-{created_at.year}{created_at.month:02d}-{str(entity_id)[-6:].upper()}"


def invoice_number(order_id: str, created_at: datetime) -> str:
    return _document_number("INV", order_id, created_at)


def delivery_note_number(order_id: str, created_at: datetime) -> str:
    return _document_number("DN", order_id, created_at)


def credit_note_number(transaction_id: str, created_at: datetime) -> str:
    return _document_number("CN", transaction_id, created_at)


@dataclass(frozen=True)
class InvoiceEntry:
    order_id: str
    created_at: datetime
    amount_cents: int


@dataclass(frozen=True)
class PaymentEntry:
    payment_id: str
    date: datetime
    amount_cents: int
    method: str = "other"
    reference: str = ""
    order_id: str | None = None
    order_created_at: datetime | None = None


@dataclass(frozen=True)
class CreditNoteEntry:
    transaction_id: str
    date: datetime
    created_at: datetime
    amount_cents: int
    reason: str | None = None
    notes: str = ""
    order_id: str | None = None


@dataclass
class StatementLine:
    date: datetime
    type: str
    reference: str
    description: str
    amount_cents: int
    payment_cents: int
    balance_cents: int = 0
    source_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "date": to_utc_z(self.date),
            "type": self.type,
            "reference": self.reference,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "payment_cents": self.payment_cents,
            "balance_cents": self.balance_cents,
            "source_id": self.source_id,
        }

    def to_row(self) -> list[str]:
        """Display/CSV row: amounts as 2-decimal strings, blanks for zero."""
        return [
            self.date.strftime("%Y-%m-%d"),
            LINE_TYPE_LABELS[self.type],
            self.reference,
            self.description,
            format_amount(self.amount_cents) if self.amount_cents else "",
            format_amount(self.payment_cents) if self.payment_cents else "",
            format_amount(self.balance_cents),
        ]


@dataclass
class Statement:
    customer_id: str
    start: datetime | None
    end: datetime | None
    lines: list[StatementLine] = field(default_factory=list)
    opening_balance_cents: int = 0

    @property
    def total_invoiced_cents(self) -> int:
        return sum(line.amount_cents for line in self.lines if line.type == LINE_INVOICE)

    @property
    def total_paid_cents(self) -> int:
        return sum(line.payment_cents for line in self.lines if line.type == LINE_PAYMENT)

    @property
    def total_credited_cents(self) -> int:
        return -sum(line.amount_cents for line in self.lines if line.type == LINE_CREDIT_NOTE)

    @property
    def closing_balance_cents(self) -> int:
        if not self.lines:
            return self.opening_balance_cents
        return self.lines[-1].balance_cents

    def rows(self) -> list[list[str]]:
        return [line.to_row() for line in self.lines]

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "start": to_utc_z(self.start),
            "end": to_utc_z(self.end),
            "opening_balance_cents": self.opening_balance_cents,
            "total_invoiced_cents": self.total_invoiced_cents,
            "total_paid_cents": self.total_paid_cents,
            "total_credited_cents": self.total_credited_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "lines": [line.to_dict() for line in self.lines],
        }


def _in_period(dt: datetime, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and dt < start:
        return False
    if end is not None and dt > end:
        return False
    return True


class StatementBuilder:

    def build(
        self,
        customer_id: str,
        *,
        invoices: Iterable[InvoiceEntry] = (),
        payments: Iterable[PaymentEntry] = (),
        credit_notes: Iterable[CreditNoteEntry] = (),
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Statement:
        lines: list[StatementLine] = []

        for inv in invoices:
            if not _in_period(inv.created_at, start, end):
                continue
            number = invoice_number(inv.order_id, inv.created_at)
            lines.append(StatementLine(
                date=inv.created_at,
                type=LINE_INVOICE,
                reference=number,
                description=f"Invoice {number}",
                amount_cents=inv.amount_cents,
                payment_cents=0,
                source_id=inv.order_id,
            ))

        for pay in payments:
            if not _in_period(pay.date, start, end):
                continue
            method = PAYMENT_METHOD_LABELS.get(pay.method, pay.method.replace("_", " ").title())
            if pay.order_id and pay.order_created_at:
                target = invoice_number(pay.order_id, pay.order_created_at)
                description = f"Payment ({method}) against {target}"
            else:
                description = f"Payment on account ({method})"
            lines.append(StatementLine(
                date=pay.date,
                type=LINE_PAYMENT,
                reference=pay.reference or "",
                description=description,
                amount_cents=0,
                payment_cents=pay.amount_cents,
                source_id=pay.payment_id,
            ))

        for cn in credit_notes:
            if not _in_period(cn.date, start, end):
                continue
            label = reason_label(cn.reason, cn.notes)
            description = f"{label}: {cn.notes}" if cn.notes else label
            lines.append(StatementLine(
                date=cn.date,
                type=LINE_CREDIT_NOTE,
                reference=credit_note_number(cn.transaction_id, cn.created_at),
                description=description,
                amount_cents=-abs(cn.amount_cents),
                payment_cents=0,
                source_id=cn.transaction_id,
            ))

        lines.sort(key=lambda line: (line.date, _LINE_RANK[line.type], line.reference))

        balance = 0
        for line in lines:
            balance += line.amount_cents - line.payment_cents
            line.balance_cents = balance

        return Statement(customer_id=customer_id, start=start, end=end, lines=lines)
