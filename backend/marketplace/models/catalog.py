from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z, utcnow
from .ids import new_document_id


class Product(db.Model):
    """
    Seller catalogue entry. Products carry no list price; what a customer
    pays comes from that customer's price map.

    Deleting a product deactivates it so historic order lines keep their
    reference.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_seller_active", "seller_id", "is_active"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "name": self.name,
            "unit": self.unit,
            "category": self.category,
            "description": self.description or "",
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
