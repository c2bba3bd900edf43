# Overview: Service-layer operations for admin user management and marketplace stats.

"""
User Service

SECURITY: Admin only. Admin and seller accounts are managed here; customer
logins are created and changed through the customer service so the
Customer record and its login stay in step.

Deactivating a user, or changing its password, revokes every open session.
Deleting a user with history (customers, products, orders, transactions or
messages) deactivates it instead.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_

from ..accounting.ledger import ORDER_STATUS_CANCELLED
from ..extensions import db
from ..models import (
    ConversationParticipant,
    Customer,
    Message,
    Notification,
    Order,
    Product,
    Transaction,
    User,
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    ROLE_SELLER,
    VALID_ROLES,
)
from ..validation import (
    AccessDeniedError,
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from marketplace.time_utils import to_utc_z
from . import auth_service, session_service
from .access_policy import Principal

logger = logging.getLogger(__name__)


MANAGED_ROLES = (ROLE_ADMIN, ROLE_SELLER)

USER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"email", "display_name", "business_name", "is_active", "role"}),
    required_on_create=frozenset({"email", "role"}),
)

RECENT_LIMIT = 5


def _require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise AccessDeniedError("Admin access required")


def _managed_role(role) -> str:
    role = (role or "").strip().lower()
    if role not in MANAGED_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(MANAGED_ROLES)}")
    return role


def list_users(principal: Principal, *, role: str | None = None, search: str | None = None,
               include_inactive: bool = True) -> list[User]:
    """Admin and seller accounts by default; role=customer lists customer logins."""
    _require_admin(principal)
    query = db.session.query(User)
    if role:
        role = role.strip().lower()
        if role not in VALID_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")
        query = query.filter(User.role == role)
    else:
        query = query.filter(User.role.in_(MANAGED_ROLES))
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            User.email.ilike(like),
            User.display_name.ilike(like),
            User.business_name.ilike(like),
        ))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def get_user(principal: Principal, user_id: int) -> User:
    _require_admin(principal)
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def create_user(principal: Principal, data: dict) -> User:
    """
    Request body:
    {"email": "...", "password": "...", "role": "seller|admin",
     "display_name": "...", "business_name": "..."}
    """
    _require_admin(principal)
    data = data or {}
    patch = validate_payload(model=User, payload=data, policy=USER_POLICY, partial=False)
    role = _managed_role(patch["role"])
    user = auth_service.create_user(
        patch["email"],
        data.get("password"),
        role,
        display_name=patch.get("display_name"),
        business_name=patch.get("business_name"),
    )
    logger.info("Admin %s created %s user %s", principal.user_id, role, user.id)
    return user


def update_user(principal: Principal, user_id: int, data: dict) -> User:
    """
    Partial update. A new password or is_active=false revokes the user's
    sessions. Admins cannot deactivate or demote themselves.
    """
    user = get_user(principal, user_id)
    if user.role == ROLE_CUSTOMER:
        raise ValidationError("Customer logins are managed through /api/customers")

    data = data or {}
    patch = validate_payload(model=User, payload=data, policy=USER_POLICY, partial=True)
    if "role" in patch:
        patch["role"] = _managed_role(patch["role"])
    if "email" in patch:
        patch["email"] = auth_service.normalize_email(patch["email"])
        if not patch["email"]:
            raise ValidationError("email cannot be blank")

    if user.id == principal.user_id:
        if patch.get("is_active") is False:
            raise ValidationError("You cannot deactivate your own account")
        if patch.get("role", ROLE_ADMIN) != ROLE_ADMIN:
            raise ValidationError("You cannot change your own role")

    if user.role == ROLE_SELLER and patch.get("role") == ROLE_ADMIN and _owns_records(user):
        raise ValidationError("A seller with customers, products or orders cannot become an admin")

    password = data.get("password")
    try:
        if "email" in patch and patch["email"] != user.email:
            clash = db.session.query(User).filter(User.email == patch["email"], User.id != user.id).first()
            if clash:
                raise ConflictError("A user with this email already exists")
        for key, value in patch.items():
            setattr(user, key, value)
        if password:
            user.password_hash = auth_service.hash_password(password)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if patch.get("is_active") is False:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    elif password:
        session_service.revoke_all_user_sessions(user.id, reason="Password changed")
    logger.info("Admin %s updated user %s (%s)", principal.user_id, user.id, ", ".join(sorted(patch)) or "password")
    return user


def _owns_records(user: User) -> bool:
    for column in (Customer.seller_id, Product.seller_id, Order.seller_id, Transaction.seller_id):
        if db.session.query(column).filter(column == user.id).first():
            return True
    return False


def _has_history(user: User) -> bool:
    if _owns_records(user):
        return True
    checks = (
        Order.created_by_user_id,
        Transaction.created_by_user_id,
        Message.sender_id,
        ConversationParticipant.user_id,
    )
    return any(db.session.query(column).filter(column == user.id).first() for column in checks)


def delete_user(principal: Principal, user_id: int) -> dict:
    """
    Hard-delete a user without history; otherwise deactivate it.
    Returns {"deleted": bool, "deactivated": bool}.
    """
    user = get_user(principal, user_id)
    if user.id == principal.user_id:
        raise ValidationError("You cannot delete your own account")
    if user.role == ROLE_CUSTOMER:
        raise ValidationError("Customer logins are managed through /api/customers")

    if _has_history(user):
        user.is_active = False
        db.session.commit()
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
        logger.info("User %s deactivated (has history)", user.id)
        return {"deleted": False, "deactivated": True}

    try:
        for session in list(user.sessions):
            db.session.delete(session)
        db.session.query(Notification).filter(Notification.user_id == user.id).delete(synchronize_session=False)
        db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("User %s deleted", user_id)
    return {"deleted": True, "deactivated": False}


# =============================================================================
# STATS
# =============================================================================

def _seller_name(user: User | None) -> str:
    if user is None:
        return ""
    return user.business_name or user.display_name or user.email


def admin_stats(principal: Principal) -> dict:
    """Marketplace-wide totals for the admin dashboard. Money in cents."""
    _require_admin(principal)

    users_by_role = dict(
        db.session.query(User.role, func.count(User.id)).group_by(User.role).all()
    )
    orders_by_status = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    paid, outstanding = db.session.query(
        func.coalesce(func.sum(Order.total_paid_cents), 0),
        func.coalesce(func.sum(Order.remaining_amount_cents), 0),
    ).filter(Order.status != ORDER_STATUS_CANCELLED).one()
    on_account = db.session.query(func.coalesce(func.sum(Transaction.unallocated_cents), 0)).scalar()

    sellers = {s.id: s for s in db.session.query(User).filter(User.role == ROLE_SELLER).all()}
    breakdown = db.session.query(Customer.seller_id, func.count(Customer.id)).group_by(Customer.seller_id).all()
    recent_sellers = sorted(sellers.values(), key=lambda s: (s.created_at, s.id), reverse=True)[:RECENT_LIMIT]
    recent_orders = db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(RECENT_LIMIT).all()

    return {
        "totals": {
            "admins": users_by_role.get(ROLE_ADMIN, 0),
            "sellers": users_by_role.get(ROLE_SELLER, 0),
            "customer_users": users_by_role.get(ROLE_CUSTOMER, 0),
            "customers": db.session.query(func.count(Customer.id)).scalar(),
            "products": db.session.query(func.count(Product.id)).scalar(),
            "orders": sum(orders_by_status.values()),
            "transactions": db.session.query(func.count(Transaction.id)).scalar(),
            "total_paid_cents": int(paid),
            "total_outstanding_cents": int(outstanding),
            "on_account_cents": int(on_account),
        },
        "orders_by_status": orders_by_status,
        "recent_sellers": [
            {
                "id": s.id,
                "name": _seller_name(s),
                "email": s.email,
                "is_active": s.is_active,
                "created_at": to_utc_z(s.created_at),
            }
            for s in recent_sellers
        ],
        "recent_orders": [
            dict(
                o.to_dict(include_children=False),
                seller_name=_seller_name(sellers.get(o.seller_id)),
                customer_name=o.customer.display_name if o.customer else "",
            )
            for o in recent_orders
        ],
        "seller_customer_breakdown": [
            {"seller_id": seller_id, "seller_name": _seller_name(sellers.get(seller_id)), "customer_count": count}
            for seller_id, count in sorted(breakdown, key=lambda row: row[1], reverse=True)
        ],
    }
