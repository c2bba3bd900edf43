# Overview: Distributes a lump payment across a customer's outstanding orders.

"""
Payment Allocation

Oldest-first: each outstanding order (by creation time) is filled up to its
remaining balance before the next one receives anything. Every outstanding
order appears in the result, including those that receive 0, so the caller
can show the full picture.

Manual allocations bypass the strategy but must account for the whole
payment: sum(allocations) == payment, each allocation positive and within
the target order's remaining balance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from marketplace.validation import ValidationError
from .ledger import LedgerOrder


class AllocationError(ValidationError):
    """Raised when a payment cannot be allocated as requested."""


@dataclass(frozen=True)
class Allocation:
    order_id: str
    amount_cents: int

    def to_dict(self) -> dict:
        return {"order_id": self.order_id, "amount_cents": self.amount_cents}


@dataclass
class AllocationResult:
    payment_cents: int
    allocations: list[Allocation] = field(default_factory=list)
    manual: bool = False

    @property
    def allocated_cents(self) -> int:
        return sum(a.amount_cents for a in self.allocations)

    @property
    def unallocated_cents(self) -> int:
        return self.payment_cents - self.allocated_cents

    def as_map(self) -> dict[str, int]:
        return {a.order_id: a.amount_cents for a in self.allocations}

    def to_dict(self) -> dict:
        return {
            "payment_cents": self.payment_cents,
            "allocated_cents": self.allocated_cents,
            "unallocated_cents": self.unallocated_cents,
            "manual": self.manual,
            "allocations": [a.to_dict() for a in self.allocations],
        }


class PaymentAllocator:

    def allocate(self, payment_cents: int, orders: Iterable[LedgerOrder]) -> AllocationResult:
        """
        Oldest-first allocation.

        sum(allocated) == min(payment, sum(remaining)).
        """
        if payment_cents <= 0:
            raise AllocationError("Payment amount must be greater than 0")

        outstanding = sorted(
            (o for o in orders if o.is_outstanding),
            key=lambda o: (o.created_at, o.order_id),
        )

        left = payment_cents
        allocations = []
        for order in outstanding:
            share = min(left, order.remaining_cents)
            allocations.append(Allocation(order.order_id, share))
            left -= share

        return AllocationResult(payment_cents=payment_cents, allocations=allocations)

    def validate_manual(
        self,
        payment_cents: int,
        requested: Mapping[str, int],
        orders: Iterable[LedgerOrder],
    ) -> AllocationResult:
        """
        Check caller-specified allocations before anything is written.

        Raises AllocationError when the allocations do not sum to the
        payment, reference an order that is not outstanding for this
        customer, or exceed an order's remaining balance.
        """
        if payment_cents <= 0:
            raise AllocationError("Payment amount must be greater than 0")
        if not requested:
            raise AllocationError("At least one allocation is required")

        by_id = {o.order_id: o for o in orders if o.is_outstanding}

        allocations = []
        for order_id, amount_cents in requested.items():
            if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
                raise AllocationError(f"Allocation for order {order_id} must be an integer amount of cents")
            if amount_cents <= 0:
                raise AllocationError(f"Allocation for order {order_id} must be greater than 0")
            order = by_id.get(order_id)
            if order is None:
                raise AllocationError(f"Order {order_id} has no outstanding balance for this customer")
            if amount_cents > order.remaining_cents:
                raise AllocationError(
                    f"Allocation for order {order_id} exceeds its remaining balance of {order.remaining_cents}"
                )
            allocations.append(Allocation(order_id, amount_cents))

        total = sum(a.amount_cents for a in allocations)
        if total != payment_cents:
            raise AllocationError(
                f"Allocations total {total} but the payment is {payment_cents}; they must be equal"
            )

        # Keep oldest-first order in the result for stable output
        rank = {o.order_id: (o.created_at, o.order_id) for o in by_id.values()}
        allocations.sort(key=lambda a: rank[a.order_id])
        return AllocationResult(payment_cents=payment_cents, allocations=allocations, manual=True)
