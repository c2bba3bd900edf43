# Overview: Loads a customer's accounting history and builds their statement.

from __future__ import annotations

from datetime import datetime

from ..accounting import CreditNoteEntry, InvoiceEntry, PaymentEntry, Statement, StatementBuilder
from ..accounting.ledger import ORDER_STATUS_CANCELLED
from ..extensions import db
from ..models import CreditNote, Customer, Order, OrderPayment, Transaction
from ..models.transactions import TRANSACTION_TYPE_PAYMENT
from marketplace.time_utils import parse_iso_datetime, parse_range_end
from ..validation import NotFoundError, ValidationError
from .access_policy import ACTION_VIEW, KIND_STATEMENT, Principal, Resource, require_access

_builder = StatementBuilder()


def _invoices(customer_id: str) -> list[InvoiceEntry]:
    orders = db.session.query(Order).filter(
        Order.customer_id == customer_id,
        Order.status != ORDER_STATUS_CANCELLED,
    ).all()
    return [InvoiceEntry(o.id, o.created_at, o.original_total_cents) for o in orders]


def _payments(customer_id: str) -> list[PaymentEntry]:
    rows = (
        db.session.query(OrderPayment, Order)
        .join(Order, OrderPayment.order_id == Order.id)
        .filter(Order.customer_id == customer_id)
        .all()
    )
    entries = [
        PaymentEntry(
            payment_id=p.id,
            date=p.paid_at,
            amount_cents=p.amount_cents,
            method=p.method,
            reference=p.reference or "",
            order_id=o.id,
            order_created_at=o.created_at,
        )
        for p, o in rows
    ]

    # Whatever a payment could not allocate stays on account
    on_account = db.session.query(Transaction).filter(
        Transaction.customer_id == customer_id,
        Transaction.type == TRANSACTION_TYPE_PAYMENT,
        Transaction.unallocated_cents > 0,
    ).all()
    entries.extend(
        PaymentEntry(
            payment_id=t.id,
            date=t.transaction_date,
            amount_cents=t.unallocated_cents,
            method=t.payment_method,
            reference=t.reference or "",
        )
        for t in on_account
    )
    return entries


def _credit_notes(customer_id: str) -> list[CreditNoteEntry]:
    rows = (
        db.session.query(CreditNote, Transaction)
        .join(Order, CreditNote.order_id == Order.id)
        .outerjoin(Transaction, CreditNote.transaction_id == Transaction.id)
        .filter(Order.customer_id == customer_id)
        .all()
    )
    return [
        CreditNoteEntry(
            transaction_id=t.id if t else cn.id,
            date=t.transaction_date if t else cn.created_at,
            created_at=t.created_at if t else cn.created_at,
            amount_cents=cn.amount_cents,
            reason=cn.reason,
            notes=cn.notes or "",
            order_id=cn.order_id,
        )
        for cn, t in rows
    ]


def parse_period(start_date: str | None, end_date: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start = parse_iso_datetime(start_date)
        end = parse_range_end(end_date)
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")
    if start and end and start > end:
        raise ValidationError("start_date must not be after end_date")
    return start, end


def build_customer_statement(
    principal: Principal,
    customer_id: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> tuple[Customer, Statement]:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    require_access(
        principal,
        Resource(kind=KIND_STATEMENT, seller_id=customer.seller_id, customer_id=customer.id),
        ACTION_VIEW,
    )

    statement = _builder.build(
        customer.id,
        invoices=_invoices(customer.id),
        payments=_payments(customer.id),
        credit_notes=_credit_notes(customer.id),
        start=start,
        end=end,
    )
    return customer, statement
