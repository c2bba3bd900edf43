# Overview: Bridges Order rows and the pure accounting ledger.

from __future__ import annotations

from ..accounting import LedgerOrder, OrderLedger
from ..accounting.ledger import ORDER_STATUS_CANCELLED, check_invariants
from ..extensions import db
from ..models import Order
from .concurrency import lock_for_update


def snapshot(order: Order) -> LedgerOrder:
    snap = LedgerOrder(
        order_id=order.id,
        created_at=order.created_at,
        total_cents=order.total_cents,
        total_paid_cents=order.total_paid_cents,
        original_total_cents=order.original_total_cents,
        credited_cents=order.total_credit_notes_cents,
        payment_status=order.payment_status,
        status=order.status,
    )
    check_invariants(snap)
    return snap


def write_back(order: Order, snap: LedgerOrder) -> None:
    """Copy recomputed aggregates onto the row. Only the ledger sets these."""
    order.total_cents = snap.total_cents
    order.original_total_cents = snap.original_total_cents
    order.total_credit_notes_cents = snap.credited_cents
    order.total_paid_cents = snap.total_paid_cents
    order.remaining_amount_cents = snap.remaining_cents
    order.payment_status = snap.payment_status


def lock_order(order_id: str) -> Order | None:
    return lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()


def load_customer_ledger(customer_id: str, seller_id: int) -> tuple[OrderLedger, dict[str, Order]]:
    """
    Lock the customer's open orders with this seller and build their ledger.
    Returns the ledger and the rows keyed by id for write-back.
    """
    rows = lock_for_update(
        db.session.query(Order).filter(
            Order.customer_id == customer_id,
            Order.seller_id == seller_id,
            Order.status != ORDER_STATUS_CANCELLED,
            Order.remaining_amount_cents > 0,
        ).order_by(Order.created_at.asc(), Order.id.asc())
    ).all()
    ledger = OrderLedger.from_orders(customer_id, (snapshot(o) for o in rows))
    return ledger, {o.id: o for o in rows}
