from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z, utcnow
from .ids import new_document_id


class Customer(db.Model):
    """
    Wholesale customer (a business) owned by one seller.

    Branches are shadow customers pointing at their head office through
    parent_customer_id. Each branch has its own login and copies the
    parent's price map when created.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_seller_active", "seller_id", "is_active"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True)
    parent_customer_id = db.Column(db.String(32), db.ForeignKey("customers.id"), nullable=True, index=True)

    business_name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    seller = db.relationship("User", foreign_keys=[seller_id])
    user = db.relationship(
        "User",
        foreign_keys=[user_id],
        backref=db.backref("customer_profile", uselist=False),
    )
    parent = db.relationship("Customer", remote_side=[id], backref=db.backref("branches", lazy=True))
    prices = db.relationship("CustomerPrice", backref="customer", lazy=True, cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return (self.business_name or "").strip() or (self.contact_person or "").strip() or self.email

    def price_map(self) -> dict[str, int]:
        return {p.product_id: p.price_cents for p in self.prices}

    def to_dict(self, include_prices: bool = True) -> dict:
        data = {
            "id": self.id,
            "seller_id": self.seller_id,
            "user_id": self.user_id,
            "parent_customer_id": self.parent_customer_id,
            "business_name": self.business_name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "branch_ids": [b.id for b in self.branches],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_prices:
            data["prices"] = self.price_map()
        return data


class CustomerPrice(db.Model):
    """Customer-specific unit price for one product (the price map)."""
    __tablename__ = "customer_prices"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_customer_prices_customer_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(32), db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.String(32), db.ForeignKey("products.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)
