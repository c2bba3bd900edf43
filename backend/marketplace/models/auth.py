from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z, utcnow


ROLE_ADMIN = "admin"
ROLE_SELLER = "seller"
ROLE_CUSTOMER = "customer"
VALID_ROLES = (ROLE_ADMIN, ROLE_SELLER, ROLE_CUSTOMER)


class User(db.Model):
    """
    Login accounts for all three roles.

    Sellers own customers, products, orders and transactions.
    Customer users point at their seller (seller_id) and are linked to a
    Customer record through Customer.user_id.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_CUSTOMER)

    display_name = db.Column(db.String(255), nullable=True)
    business_name = db.Column(db.String(255), nullable=True)

    # For customer users: the seller that owns them
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    seller = db.relationship("User", remote_side=[id], backref=db.backref("customer_users", lazy=True))

    def to_dict(self) -> dict:
        profile = self.customer_profile
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "display_name": self.display_name,
            "business_name": self.business_name,
            "seller_id": self.seller_id,
            "customer_id": profile.id if profile else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Server-side session records. Only the SHA-256 of the token is stored.

    role_claim is captured at login; when it is empty or no longer matches
    the user row, the user's current role is used instead.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    role_claim = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role_claim,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
