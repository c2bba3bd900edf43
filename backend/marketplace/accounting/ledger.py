# Overview: Per-customer order ledger; owns aggregate recomputation and payment status derivation.

"""
Order Ledger

WHY: Every payment and credit note must leave an order with consistent
aggregates. The ledger is the single place where totalPaid, remainingAmount
and paymentStatus are recomputed, so the HTTP layer and the allocator never
write these fields by hand.

INVARIANTS (checked after every mutation):
- remaining = total - total_paid
- total = original_total - sum(credit notes)

This module has no Flask or database dependency. Services load ORM rows
into LedgerOrder snapshots, mutate them here, and write the fields back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from marketplace.validation import ValidationError


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_OVERDUE = "overdue"

VALID_PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_OVERDUE,
)


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"
ORDER_STATUS_PREPARED = "prepared"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

VALID_ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_PREPARED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

# Forward-only fulfilment path; cancel is allowed until delivery
ORDER_STATUS_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_CONFIRMED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_CONFIRMED: {ORDER_STATUS_PREPARED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PREPARED: {ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_DELIVERED: set(),
    ORDER_STATUS_CANCELLED: set(),
}


class LedgerError(ValidationError):
    """Raised when a ledger mutation would break an order invariant."""


@dataclass
class LedgerOrder:
    """Accounting snapshot of one order. All amounts in cents."""
    order_id: str
    created_at: datetime
    total_cents: int
    total_paid_cents: int = 0
    original_total_cents: int | None = None
    credited_cents: int = 0
    payment_status: str = PAYMENT_STATUS_PENDING
    status: str = ORDER_STATUS_PENDING

    def __post_init__(self):
        if self.original_total_cents is None:
            self.original_total_cents = self.total_cents + self.credited_cents

    @property
    def remaining_cents(self) -> int:
        return self.total_cents - self.total_paid_cents

    @property
    def is_outstanding(self) -> bool:
        return self.status != ORDER_STATUS_CANCELLED and self.remaining_cents > 0


def derive_payment_status(total_cents: int, total_paid_cents: int) -> str:
    """
    paid if nothing remains, partial if something but not everything is
    paid, pending otherwise.
    """
    if total_cents - total_paid_cents <= 0:
        return PAYMENT_STATUS_PAID
    if total_paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PENDING


def check_invariants(order: LedgerOrder) -> None:
    if order.total_cents != order.original_total_cents - order.credited_cents:
        raise LedgerError(
            f"Order {order.order_id}: total does not match original total less credit notes"
        )
    if order.total_paid_cents < 0:
        raise LedgerError(f"Order {order.order_id}: total paid cannot be negative")


def apply_payment(order: LedgerOrder, amount_cents: int) -> LedgerOrder:
    """Record a payment against an order and recompute its status."""
    if amount_cents <= 0:
        raise LedgerError("Payment amount must be greater than 0")
    order.total_paid_cents += amount_cents
    order.payment_status = derive_payment_status(order.total_cents, order.total_paid_cents)
    check_invariants(order)
    return order


def reverse_payment(order: LedgerOrder, amount_cents: int) -> LedgerOrder:
    """Undo a previously applied payment (transaction deletion)."""
    if amount_cents <= 0:
        raise LedgerError("Reversal amount must be greater than 0")
    if amount_cents > order.total_paid_cents:
        raise LedgerError(f"Order {order.order_id}: cannot reverse more than was paid")
    order.total_paid_cents -= amount_cents
    order.payment_status = derive_payment_status(order.total_cents, order.total_paid_cents)
    check_invariants(order)
    return order


def apply_credit(order: LedgerOrder, amount_cents: int) -> LedgerOrder:
    """
    Reduce an order's effective total. original_total is never touched.
    remaining may go negative when the order was already paid in full.
    """
    order.total_cents -= amount_cents
    order.credited_cents += amount_cents
    order.payment_status = derive_payment_status(order.total_cents, order.total_paid_cents)
    check_invariants(order)
    return order


def reverse_credit(order: LedgerOrder, amount_cents: int) -> LedgerOrder:
    if amount_cents <= 0 or amount_cents > order.credited_cents:
        raise LedgerError(f"Order {order.order_id}: invalid credit note reversal")
    order.total_cents += amount_cents
    order.credited_cents -= amount_cents
    order.payment_status = derive_payment_status(order.total_cents, order.total_paid_cents)
    check_invariants(order)
    return order


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_STATUS_TRANSITIONS.get(current, set())


@dataclass
class OrderLedger:
    """
    One customer's orders, keyed by id.

    outstanding() is the allocator's input: unpaid, non-cancelled orders
    ordered oldest first (created_at, then id).
    """
    customer_id: str
    orders: list[LedgerOrder] = field(default_factory=list)

    @classmethod
    def from_orders(cls, customer_id: str, orders: Iterable[LedgerOrder]) -> "OrderLedger":
        return cls(customer_id=customer_id, orders=list(orders))

    def get(self, order_id: str) -> LedgerOrder:
        for order in self.orders:
            if order.order_id == order_id:
                return order
        raise LedgerError(f"Order {order_id} is not on this customer's ledger")

    def outstanding(self) -> list[LedgerOrder]:
        return sorted(
            (o for o in self.orders if o.is_outstanding),
            key=lambda o: (o.created_at, o.order_id),
        )

    @property
    def outstanding_cents(self) -> int:
        return sum(o.remaining_cents for o in self.outstanding())

    def apply_allocations(self, allocations) -> list[LedgerOrder]:
        """Apply allocator output; zero allocations are skipped."""
        touched = []
        for allocation in allocations:
            if allocation.amount_cents <= 0:
                continue
            order = self.get(allocation.order_id)
            if allocation.amount_cents > order.remaining_cents:
                raise LedgerError(
                    f"Allocation of {allocation.amount_cents} exceeds remaining balance of order {order.order_id}"
                )
            touched.append(apply_payment(order, allocation.amount_cents))
        return touched
