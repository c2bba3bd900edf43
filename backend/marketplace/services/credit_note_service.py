# Overview: Issues credit notes against orders and mirrors them as negative transactions.

"""
Credit Note Service

WHY: A credit note changes what the customer owes. The order update, the
CreditNote record and the mirrored negative Transaction are written in one
database transaction, so a failure leaves no half-issued credit note.

RULES:
- 0 < amount <= order.total (the current, post-credit total)
- reason is one of the enumerated tags and is stored as given
- notes are required
- cancelled orders cannot be credited
- a rejected credit note mutates nothing
"""

from __future__ import annotations

import logging

from ..accounting import CreditNoteError, CreditNoteProcessor
from ..accounting.ledger import ORDER_STATUS_CANCELLED
from ..accounting.money import format_money
from ..accounting.statement import credit_note_number, invoice_number
from ..extensions import db
from ..models import CreditNote, Transaction
from ..models.transactions import TRANSACTION_TYPE_CREDIT_NOTE
from marketplace.time_utils import parse_iso_datetime, utcnow
from ..validation import NotFoundError, ValidationError, parse_amount_cents
from . import ledger_service, messaging_service
from .access_policy import ACTION_UPDATE, KIND_ORDER, Principal, Resource, require_access
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

_processor = CreditNoteProcessor()


def issue_credit_note(principal: Principal, order_id: str, data: dict):
    """
    Returns (order, credit_note, transaction).

    Raises:
        NotFoundError: unknown order
        AccessDeniedError: not the owning seller or an admin
        CreditNoteError: amount/reason/notes rejected (order untouched)
    """
    data = data or {}
    amount_cents = parse_amount_cents(data)
    try:
        txn_date = parse_iso_datetime(data.get("transaction_date")) or utcnow()
    except ValueError:
        raise ValidationError("transaction_date must be an ISO-8601 date")

    def _op():
        order = ledger_service.lock_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        require_access(principal, Resource.of(KIND_ORDER, order), ACTION_UPDATE)
        if order.status == ORDER_STATUS_CANCELLED:
            raise CreditNoteError("Cannot issue a credit note on a cancelled order")

        snap = ledger_service.snapshot(order)
        draft = _processor.apply(snap, amount_cents, data.get("reason"), data.get("notes"))

        now = utcnow()
        customer = order.customer
        txn = Transaction(
            customer_id=order.customer_id,
            customer_name=customer.display_name if customer else None,
            seller_id=order.seller_id,
            type=TRANSACTION_TYPE_CREDIT_NOTE,
            amount_cents=draft.transaction_amount_cents,
            unallocated_cents=0,
            payment_method="credit_note",
            notes=draft.notes,
            related_order_id=order.id,
            transaction_date=txn_date,
            created_by_user_id=principal.user_id,
            created_at=now,
        )
        db.session.add(txn)
        db.session.flush()
        txn.reference = (data.get("reference") or "").strip() or credit_note_number(txn.id, now)

        credit_note = CreditNote(
            order_id=order.id,
            transaction_id=txn.id,
            amount_cents=draft.amount_cents,
            reason=draft.reason.value,
            notes=draft.notes,
            created_by_user_id=principal.user_id,
            created_at=now,
        )
        db.session.add(credit_note)
        ledger_service.write_back(order, snap)

        if customer and customer.user_id:
            messaging_service.notify(
                customer.user_id,
                messaging_service.NOTIFICATION_PAYMENT_UPDATED,
                "Credit note issued",
                f"Credit note {txn.reference} of {format_money(draft.amount_cents)} issued on "
                f"{invoice_number(order.id, order.created_at)} ({draft.label})",
                {"order_id": order.id, "transaction_id": txn.id},
            )

        db.session.commit()
        logger.info(
            "Credit note %s (%s cents, %s) issued on order %s",
            txn.reference, draft.amount_cents, draft.reason.value, order.id,
        )
        return order, credit_note, txn

    return run_with_retry(_op)
