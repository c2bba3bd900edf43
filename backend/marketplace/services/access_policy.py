# Overview: Single role/ownership policy for every protected operation.

"""
Access Policy

WHY: Role and ownership rules live in one pure function so they can be
tested without HTTP or a database, and so no route re-derives them.

RULES:
- admin: everything
- seller: only resources whose seller_id is their own user id
- customer: read-only access to their own seller's catalogue, and to their
  own customer record, orders, transactions and statement; may create
  orders for themselves
- conversations: participants only (admins always)
- inactive principals: nothing
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..models import ROLE_ADMIN, ROLE_SELLER, ROLE_CUSTOMER
from ..validation import AccessDeniedError


# =============================================================================
# ACTIONS AND RESOURCE KINDS (CONSTANTS)
# =============================================================================

ACTION_VIEW = "view"
ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"

KIND_CUSTOMER = "customer"
KIND_PRODUCT = "product"
KIND_ORDER = "order"
KIND_TRANSACTION = "transaction"
KIND_STATEMENT = "statement"
KIND_REPORT = "report"
KIND_CONVERSATION = "conversation"

# What a customer may do to things that belong to them
_CUSTOMER_ALLOWED = {
    KIND_CUSTOMER: {ACTION_VIEW},
    KIND_ORDER: {ACTION_VIEW, ACTION_CREATE},
    KIND_TRANSACTION: {ACTION_VIEW},
    KIND_STATEMENT: {ACTION_VIEW},
}


@dataclass(frozen=True)
class Principal:
    """
    Verified identity for one request. Built once by the auth decorator
    and passed explicitly to services.

    seller_id is the seller scope: a seller's own id, a customer's owning
    seller, None for admins.
    """
    user_id: int
    role: str
    email: str = ""
    seller_id: int | None = None
    customer_id: str | None = None
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_seller(self) -> bool:
        return self.role == ROLE_SELLER

    @property
    def is_customer(self) -> bool:
        return self.role == ROLE_CUSTOMER

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "email": self.email,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
        }


@dataclass(frozen=True)
class Resource:
    kind: str
    seller_id: int | None = None
    customer_id: str | None = None
    participant_ids: frozenset = field(default_factory=frozenset)

    @classmethod
    def of(cls, kind: str, obj) -> "Resource":
        """Describe a model instance (or anything with the same attributes)."""
        customer_id = getattr(obj, "customer_id", None)
        if kind == KIND_CUSTOMER:
            customer_id = getattr(obj, "id", None)
        return cls(kind=kind, seller_id=getattr(obj, "seller_id", None), customer_id=customer_id)

    @classmethod
    def conversation(cls, participant_ids) -> "Resource":
        return cls(kind=KIND_CONVERSATION, participant_ids=frozenset(participant_ids))


def can_access(principal: Principal | None, resource: Resource, action: str) -> bool:
    if principal is None or not principal.is_active:
        return False

    if principal.is_admin:
        return True

    if resource.kind == KIND_CONVERSATION:
        return principal.user_id in resource.participant_ids

    if principal.is_seller:
        return resource.seller_id is not None and resource.seller_id == principal.user_id

    if principal.is_customer:
        if resource.seller_id is None or resource.seller_id != principal.seller_id:
            return False
        if resource.kind == KIND_PRODUCT:
            return action == ACTION_VIEW
        allowed = _CUSTOMER_ALLOWED.get(resource.kind, set())
        if action not in allowed:
            return False
        return principal.customer_id is not None and resource.customer_id == principal.customer_id

    return False


def require_access(principal: Principal, resource: Resource, action: str) -> None:
    if not can_access(principal, resource, action):
        raise AccessDeniedError(f"Access denied: cannot {action} this {resource.kind}")
