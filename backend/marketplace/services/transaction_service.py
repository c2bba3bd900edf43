# Overview: Service-layer operations for customer payments; allocation, recording and reversal.

"""
Transaction Service

WHY: A payment touches several rows at once: the Transaction, one
allocation and one OrderPayment per order it pays, and the aggregates of
every order it touches. All of it is written in a single database
transaction under row locks, so concurrent payments for one customer
cannot double-allocate and a failed payment leaves nothing behind.

ALLOCATION:
- no allocations given: oldest-first across the customer's outstanding
  orders; whatever exceeds the outstanding total stays on account
- allocations given: must sum exactly to the payment and respect each
  order's remaining balance

ON ACCOUNT: the unallocated part of a payment is credit. It is applied,
oldest payment first, to orders that become outstanding later (a new
order, or a reversal that reopens a balance).

DELETION reverses the transaction's effect on its orders. Admins may pass
reverse=False to remove only the transaction record.
"""

from __future__ import annotations

import logging

from ..accounting import AllocationResult, PaymentAllocator
from ..accounting.ledger import reverse_credit, reverse_payment
from ..accounting.money import format_money
from ..extensions import db
from ..models import (
    CreditNote,
    Customer,
    OrderPayment,
    Transaction,
    TransactionAllocation,
)
from ..models.transactions import (
    TRANSACTION_TYPE_CREDIT_NOTE,
    TRANSACTION_TYPE_PAYMENT,
    VALID_PAYMENT_METHODS,
    VALID_TRANSACTION_TYPES,
)
from marketplace.time_utils import parse_iso_datetime, parse_range_end, utcnow
from ..validation import AccessDeniedError, NotFoundError, ValidationError, parse_amount_cents
from . import credit_note_service, ledger_service, messaging_service
from .access_policy import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_VIEW,
    KIND_TRANSACTION,
    Principal,
    Resource,
    require_access,
)
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

_allocator = PaymentAllocator()


def _parse_allocations(raw) -> dict[str, int] | None:
    """
    Accepts {order_id: cents} or
    [{"order_id": ..., "amount_cents": ...} | {"order_id": ..., "amount": "12.50"}].
    """
    if raw is None or raw == [] or raw == {}:
        return None
    if isinstance(raw, dict):
        items = [{"order_id": k, "amount_cents": v} for k, v in raw.items()]
    elif isinstance(raw, list):
        items = raw
    else:
        raise ValidationError("allocations must be an object or a list")

    requested: dict[str, int] = {}
    for item in items:
        if not isinstance(item, dict) or not item.get("order_id"):
            raise ValidationError("Each allocation needs an order_id")
        order_id = str(item["order_id"])
        if order_id in requested:
            raise ValidationError(f"Order {order_id} is allocated more than once")
        requested[order_id] = parse_amount_cents(item)
    return requested


def _parse_method(value) -> str:
    method = (value or "").strip().lower()
    if method not in VALID_PAYMENT_METHODS or method == "credit_note":
        valid = ", ".join(m for m in VALID_PAYMENT_METHODS if m != "credit_note")
        raise ValidationError(f"payment_method must be one of: {valid}")
    return method


def _parse_date(value, field_name: str):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 date")


# =============================================================================
# READS
# =============================================================================

def list_transactions(principal: Principal, filters: dict | None = None) -> list[Transaction]:
    """
    Filters: customer_id, payment_method, type, start_date, end_date
    (a bare end date covers the whole day), seller_id (admins only).
    """
    filters = filters or {}
    query = db.session.query(Transaction)

    if principal.is_admin:
        if filters.get("seller_id"):
            query = query.filter(Transaction.seller_id == filters["seller_id"])
    elif principal.is_customer:
        if not principal.customer_id:
            return []
        query = query.filter(Transaction.customer_id == principal.customer_id)
    else:
        query = query.filter(Transaction.seller_id == principal.user_id)

    if filters.get("customer_id"):
        query = query.filter(Transaction.customer_id == filters["customer_id"])
    if filters.get("payment_method"):
        query = query.filter(Transaction.payment_method == filters["payment_method"])
    if filters.get("type"):
        if filters["type"] not in VALID_TRANSACTION_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(VALID_TRANSACTION_TYPES)}")
        query = query.filter(Transaction.type == filters["type"])
    if filters.get("start_date"):
        query = query.filter(Transaction.transaction_date >= _parse_date(filters["start_date"], "start_date"))
    if filters.get("end_date"):
        try:
            end = parse_range_end(filters["end_date"])
        except ValueError:
            raise ValidationError("end_date must be an ISO-8601 date")
        query = query.filter(Transaction.transaction_date <= end)

    return query.order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc()).all()


def get_transaction(principal: Principal, transaction_id: str, action: str = ACTION_VIEW) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if not txn:
        raise NotFoundError("Transaction not found")
    require_access(principal, Resource.of(KIND_TRANSACTION, txn), action)
    return txn


# =============================================================================
# PAYMENTS
# =============================================================================

def create_transaction(principal: Principal, data: dict):
    """
    POST /api/transactions entry point. Payments go through the allocator;
    type=credit_note is issued against related_order_id.
    Returns (transaction, allocation_result or None).
    """
    data = data or {}
    if (data.get("type") or TRANSACTION_TYPE_PAYMENT) == TRANSACTION_TYPE_CREDIT_NOTE:
        order_id = data.get("related_order_id") or data.get("order_id")
        if not order_id:
            raise ValidationError("related_order_id is required for a credit note")
        _, _, txn = credit_note_service.issue_credit_note(principal, order_id, data)
        return txn, None
    return create_payment(principal, data)


def create_payment(principal: Principal, data: dict) -> tuple[Transaction, AllocationResult]:
    """
    Record a customer payment and apply it to their orders.

    Raises:
        ValidationError: bad amount, method or date
        AllocationError: manual allocations rejected (nothing written)
        NotFoundError / AccessDeniedError: customer lookup and ownership
        ConflictError: concurrent writers kept colliding
    """
    data = data or {}
    customer_id = data.get("customer_id")
    if not customer_id:
        raise ValidationError("customer_id is required")
    amount_cents = parse_amount_cents(data)
    if amount_cents <= 0:
        raise ValidationError("Amount must be greater than 0")
    method = _parse_method(data.get("payment_method"))
    txn_date = _parse_date(data.get("transaction_date"), "transaction_date") or utcnow()
    requested = _parse_allocations(data.get("allocations"))
    reference = (data.get("reference") or "").strip() or None
    notes = (data.get("notes") or "").strip() or None

    def _op():
        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        require_access(
            principal,
            Resource(kind=KIND_TRANSACTION, seller_id=customer.seller_id, customer_id=customer.id),
            ACTION_CREATE,
        )

        ledger, rows = ledger_service.load_customer_ledger(customer.id, customer.seller_id)
        if requested:
            result = _allocator.validate_manual(amount_cents, requested, ledger.orders)
        else:
            result = _allocator.allocate(amount_cents, ledger.orders)

        related_order_id = data.get("related_order_id")
        if not related_order_id and requested and len(requested) == 1:
            related_order_id = next(iter(requested))

        txn = Transaction(
            customer_id=customer.id,
            customer_name=customer.display_name,
            seller_id=customer.seller_id,
            type=TRANSACTION_TYPE_PAYMENT,
            amount_cents=amount_cents,
            unallocated_cents=result.unallocated_cents,
            payment_method=method,
            reference=reference,
            notes=notes,
            related_order_id=related_order_id,
            transaction_date=txn_date,
            created_by_user_id=principal.user_id,
        )
        db.session.add(txn)
        db.session.flush()

        for snap in ledger.apply_allocations(result.allocations):
            ledger_service.write_back(rows[snap.order_id], snap)
        _record_allocations(txn, result.allocations, principal.user_id)

        if customer.user_id:
            messaging_service.notify(
                customer.user_id,
                messaging_service.NOTIFICATION_PAYMENT_UPDATED,
                "Payment received",
                f"Payment of {format_money(amount_cents)} received",
                {"transaction_id": txn.id, "allocations": result.as_map()},
            )

        db.session.commit()
        logger.info(
            "Payment %s of %s cents for customer %s (%s allocated, %s on account)",
            txn.id, amount_cents, customer.id, result.allocated_cents, result.unallocated_cents,
        )
        return txn, result

    return run_with_retry(_op)


def _record_allocations(txn: Transaction, allocations, actor_user_id: int | None) -> None:
    """Write allocation and OrderPayment rows; zero allocations are skipped."""
    existing = {a.order_id: a for a in txn.allocations}
    for allocation in allocations:
        if allocation.amount_cents <= 0:
            continue
        row = existing.get(allocation.order_id)
        if row:
            row.amount_cents += allocation.amount_cents
        else:
            txn.allocations.append(
                TransactionAllocation(order_id=allocation.order_id, amount_cents=allocation.amount_cents)
            )
        db.session.add(OrderPayment(
            order_id=allocation.order_id,
            transaction_id=txn.id,
            amount_cents=allocation.amount_cents,
            method=txn.payment_method,
            reference=txn.reference,
            notes=txn.notes,
            paid_at=txn.transaction_date,
            created_by_user_id=actor_user_id,
        ))


def apply_on_account_credit(customer: Customer, actor_user_id: int | None = None) -> int:
    """
    Apply the customer's open on-account balances to their outstanding
    orders: payments oldest first, orders oldest first.

    Runs inside the caller's database transaction and does not commit.
    Returns the cents applied.
    """
    credits = lock_for_update(
        db.session.query(Transaction).filter(
            Transaction.customer_id == customer.id,
            Transaction.seller_id == customer.seller_id,
            Transaction.type == TRANSACTION_TYPE_PAYMENT,
            Transaction.unallocated_cents > 0,
        ).order_by(Transaction.transaction_date.asc(), Transaction.created_at.asc(), Transaction.id.asc())
    ).all()
    if not credits:
        return 0

    ledger, rows = ledger_service.load_customer_ledger(customer.id, customer.seller_id)
    applied = 0
    for txn in credits:
        if ledger.outstanding_cents <= 0:
            break
        result = _allocator.allocate(txn.unallocated_cents, ledger.orders)
        for snap in ledger.apply_allocations(result.allocations):
            ledger_service.write_back(rows[snap.order_id], snap)
        _record_allocations(txn, result.allocations, actor_user_id)
        txn.unallocated_cents = result.unallocated_cents
        applied += result.allocated_cents

    if applied:
        logger.info("Applied %s cents of on-account credit for customer %s", applied, customer.id)
    return applied


# =============================================================================
# DELETION
# =============================================================================

def _reverse_payment_effects(txn: Transaction) -> None:
    for allocation in txn.allocations:
        order = ledger_service.lock_order(allocation.order_id)
        if not order:
            continue
        snap = ledger_service.snapshot(order)
        reverse_payment(snap, allocation.amount_cents)
        ledger_service.write_back(order, snap)
    db.session.query(OrderPayment).filter(OrderPayment.transaction_id == txn.id).delete(
        synchronize_session="fetch"
    )


def _reverse_credit_effects(txn: Transaction) -> None:
    credit_notes = db.session.query(CreditNote).filter(CreditNote.transaction_id == txn.id).all()
    for credit_note in credit_notes:
        order = ledger_service.lock_order(credit_note.order_id)
        if order:
            snap = ledger_service.snapshot(order)
            reverse_credit(snap, credit_note.amount_cents)
            ledger_service.write_back(order, snap)
        db.session.delete(credit_note)


def _detach(txn: Transaction) -> None:
    """Keep order-side records and aggregates; only unlink them."""
    db.session.query(OrderPayment).filter(OrderPayment.transaction_id == txn.id).update(
        {OrderPayment.transaction_id: None}, synchronize_session="fetch"
    )
    db.session.query(CreditNote).filter(CreditNote.transaction_id == txn.id).update(
        {CreditNote.transaction_id: None}, synchronize_session="fetch"
    )


def delete_transaction(principal: Principal, transaction_id: str, *, reverse: bool = True) -> dict:
    """
    Delete a transaction. By default its payments or credit note are
    reversed on the affected orders in the same commit.
    """
    if not reverse and not principal.is_admin:
        raise AccessDeniedError("Only admins can delete a transaction without reversing it")

    def _op():
        txn = get_transaction(principal, transaction_id, ACTION_DELETE)
        touched = sorted({a.order_id for a in txn.allocations} | (
            {txn.related_order_id} if txn.type == TRANSACTION_TYPE_CREDIT_NOTE and txn.related_order_id else set()
        ))

        if reverse:
            if txn.type == TRANSACTION_TYPE_CREDIT_NOTE:
                _reverse_credit_effects(txn)
            else:
                _reverse_payment_effects(txn)
        else:
            _detach(txn)

        customer = db.session.get(Customer, txn.customer_id)
        db.session.delete(txn)
        db.session.flush()
        if reverse and customer:
            # Reopened balances draw on any credit left on account
            apply_on_account_credit(customer, principal.user_id)
        db.session.commit()
        logger.info(
            "Transaction %s deleted by user %s (reversed=%s, orders=%s)",
            transaction_id, principal.user_id, reverse, touched,
        )
        return {"id": transaction_id, "reversed": reverse, "order_ids": touched}

    return run_with_retry(_op)
