# Overview: Service-layer operations for customers; accounts, branches and price maps.

"""
Customer Service

A customer is a business owned by one seller. Creating a customer also
creates its login (customer-role user). Branches are shadow customers with
their own logins, linked through parent_customer_id, that start with the
parent's price map; later price changes on the parent are pushed to its
branches.

Deleting a customer with accounting history (orders or transactions)
deactivates it instead, so statements stay reproducible.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, CustomerPrice, Order, Product, Transaction, User, ROLE_CUSTOMER, ROLE_SELLER
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_customer,
    parse_amount_cents,
    validate_payload,
)
from . import auth_service, session_service
from .access_policy import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_UPDATE,
    ACTION_VIEW,
    KIND_CUSTOMER,
    Principal,
    Resource,
    require_access,
)

logger = logging.getLogger(__name__)


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"business_name", "contact_person", "email", "phone", "address", "is_active"}),
    required_on_create=frozenset({"business_name", "contact_person", "email", "phone", "address"}),
)

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"business_name", "contact_person", "email", "phone", "address"}),
    required_on_create=frozenset({"business_name", "email"}),
)


def get_customer(principal: Principal, customer_id: str, action: str = ACTION_VIEW) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    require_access(principal, Resource.of(KIND_CUSTOMER, customer), action)
    return customer


def get_my_customer(principal: Principal) -> Customer:
    if not principal.customer_id:
        raise NotFoundError("No customer profile for this account")
    return get_customer(principal, principal.customer_id)


def list_customers(
    principal: Principal,
    *,
    seller_id: int | None = None,
    search: str | None = None,
    include_inactive: bool = False,
) -> list[Customer]:
    query = db.session.query(Customer)
    if principal.is_admin:
        if seller_id:
            query = query.filter(Customer.seller_id == seller_id)
    else:
        query = query.filter(Customer.seller_id == principal.seller_id)

    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.business_name.ilike(like),
            Customer.contact_person.ilike(like),
            Customer.email.ilike(like),
        ))
    return query.order_by(Customer.business_name.asc()).all()


def _resolve_seller_id(principal: Principal, data: dict) -> int:
    if principal.is_seller:
        return principal.user_id
    seller_id = data.get("seller_id")
    seller = db.session.get(User, seller_id) if seller_id else None
    if not seller or seller.role != ROLE_SELLER:
        raise ValidationError("seller_id must reference a seller")
    return seller.id


def _parse_prices(raw, seller_id: int) -> dict[str, int]:
    """
    Accepts {product_id: price_cents} or
    [{"product_id": ..., "price_cents": ...} | {"product_id": ..., "price": "12.50"}].
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        items = [{"product_id": k, "price_cents": v} for k, v in raw.items()]
    elif isinstance(raw, list):
        items = raw
    else:
        raise ValidationError("prices must be an object or a list")

    prices: dict[str, int] = {}
    for item in items:
        if not isinstance(item, dict) or not item.get("product_id"):
            raise ValidationError("Each price needs a product_id")
        cents = parse_amount_cents(item, field_name="price")
        if cents < 0:
            raise ValidationError("Prices cannot be negative")
        prices[str(item["product_id"])] = cents

    if prices:
        owned = {
            pid for (pid,) in db.session.query(Product.id).filter(
                Product.id.in_(list(prices)), Product.seller_id == seller_id
            )
        }
        unknown = sorted(set(prices) - owned)
        if unknown:
            raise ValidationError(f"Unknown products for this seller: {', '.join(unknown)}")
    return prices


def _set_prices(customer: Customer, prices: dict[str, int]) -> None:
    """Replace the price map, updating rows in place to respect the unique key."""
    existing = {p.product_id: p for p in customer.prices}
    for product_id, row in existing.items():
        if product_id not in prices:
            customer.prices.remove(row)
    for product_id, cents in prices.items():
        if product_id in existing:
            existing[product_id].price_cents = cents
        else:
            customer.prices.append(CustomerPrice(product_id=product_id, price_cents=cents))


def _create_login(data: dict, seller_id: int, display_name: str | None, business_name: str) -> User:
    return auth_service.create_user(
        email=data.get("email"),
        password=data.get("password"),
        role=ROLE_CUSTOMER,
        display_name=display_name,
        business_name=business_name,
        seller_id=seller_id,
        commit=False,
    )


def create_customer(principal: Principal, data: dict) -> Customer:
    """
    Create a customer, its login user, its price map, and any branches,
    in one commit.
    """
    seller_id = _resolve_seller_id(principal, data or {})
    require_access(principal, Resource(kind=KIND_CUSTOMER, seller_id=seller_id), ACTION_CREATE)

    patch = validate_payload(model=Customer, payload=data, policy=CUSTOMER_POLICY, partial=False)
    patch["email"] = auth_service.normalize_email(patch["email"])
    enforce_rules_customer(patch)
    auth_service.validate_password_strength(data.get("password"))

    branches = data.get("branches") or []
    if not isinstance(branches, list):
        raise ValidationError("branches must be a list")
    branch_patches = []
    for branch in branches:
        if not isinstance(branch, dict):
            raise ValidationError("Each branch must be an object")
        branch_patch = validate_payload(model=Customer, payload=branch, policy=BRANCH_POLICY, partial=False)
        branch_patch["email"] = auth_service.normalize_email(branch_patch["email"])
        enforce_rules_customer(branch_patch)
        try:
            auth_service.validate_password_strength(branch.get("password"))
        except auth_service.PasswordValidationError:
            raise ValidationError("Branch user passwords must be at least 6 characters long")
        branch_patches.append((branch, branch_patch))

    prices = _parse_prices(data.get("prices"), seller_id)

    try:
        user = _create_login(data, seller_id, patch.get("contact_person"), patch["business_name"])
        customer = Customer(seller_id=seller_id, user_id=user.id, **patch)
        db.session.add(customer)
        _set_prices(customer, prices)
        db.session.flush()

        for raw, branch_patch in branch_patches:
            branch_user = _create_login(raw, seller_id, branch_patch.get("contact_person"), branch_patch["business_name"])
            branch_patch.setdefault("contact_person", patch.get("contact_person"))
            branch_patch.setdefault("phone", patch.get("phone"))
            branch_patch.setdefault("address", patch.get("address"))
            branch_customer = Customer(
                seller_id=seller_id,
                user_id=branch_user.id,
                parent_customer_id=customer.id,
                **branch_patch,
            )
            db.session.add(branch_customer)
            _set_prices(branch_customer, prices)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Customer %s created for seller %s with %s branches", customer.id, seller_id, len(branch_patches))
    return customer


def update_customer(principal: Principal, customer_id: str, data: dict) -> Customer:
    customer = get_customer(principal, customer_id, ACTION_UPDATE)
    patch = validate_payload(model=Customer, payload=data, policy=CUSTOMER_POLICY, partial=True)
    if "email" in patch:
        patch["email"] = auth_service.normalize_email(patch["email"])
    enforce_rules_customer(patch)

    prices = None
    if data and "prices" in data:
        prices = _parse_prices(data.get("prices"), customer.seller_id)

    try:
        for key, value in patch.items():
            setattr(customer, key, value)

        if customer.user is not None:
            if "email" in patch and patch["email"] != customer.user.email:
                clash = db.session.query(User).filter(
                    User.email == patch["email"], User.id != customer.user_id
                ).first()
                if clash:
                    raise ConflictError("A user with this email already exists")
                customer.user.email = patch["email"]
            if "business_name" in patch:
                customer.user.business_name = patch["business_name"]
            if "is_active" in patch:
                customer.user.is_active = patch["is_active"]

        if prices is not None:
            _set_prices(customer, prices)
            for branch in customer.branches:
                _set_prices(branch, prices)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if patch.get("is_active") is False and customer.user_id:
        session_service.revoke_all_user_sessions(customer.user_id, reason="Customer deactivated")
    return customer


def _has_history(customer: Customer) -> bool:
    if db.session.query(Order.id).filter_by(customer_id=customer.id).first():
        return True
    return db.session.query(Transaction.id).filter_by(customer_id=customer.id).first() is not None


def delete_customer(principal: Principal, customer_id: str) -> dict:
    """
    Hard-delete a customer (and its branches and logins) without history;
    otherwise deactivate it. Returns {"deleted": bool, "deactivated": bool}.
    """
    customer = get_customer(principal, customer_id, ACTION_DELETE)
    family = [customer] + list(customer.branches)

    if any(_has_history(c) for c in family):
        for c in family:
            c.is_active = False
            if c.user is not None:
                c.user.is_active = False
        db.session.commit()
        for c in family:
            if c.user_id:
                session_service.revoke_all_user_sessions(c.user_id, reason="Customer deactivated")
        logger.info("Customer %s deactivated (has accounting history)", customer.id)
        return {"deleted": False, "deactivated": True}

    try:
        for c in reversed(family):
            user = c.user
            db.session.delete(c)
            if user is not None:
                for session in list(user.sessions):
                    db.session.delete(session)
                db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Customer %s deleted", customer_id)
    return {"deleted": True, "deactivated": False}


def price_for(customer: Customer, product_id: str) -> int | None:
    for price in customer.prices:
        if price.product_id == product_id:
            return price.price_cents
    return None
