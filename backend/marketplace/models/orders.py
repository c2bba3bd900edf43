from __future__ import annotations

from ..extensions import db
from marketplace.accounting import reason_label
from marketplace.time_utils import to_utc_z, utcnow
from .ids import new_document_id


class Order(db.Model):
    """
    Customer order with denormalized accounting aggregates.

    INVARIANTS (maintained by the accounting ledger, never set by hand):
    - remaining_amount_cents = total_cents - total_paid_cents
    - total_cents = original_total_cents - total_credit_notes_cents

    version_id gives optimistic locking so concurrent payment writes
    against the same order cannot both succeed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_seller_created", "seller_id", "created_at"),
        db.Index("ix_orders_customer_payment_status", "customer_id", "payment_status"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    customer_id = db.Column(db.String(32), db.ForeignKey("customers.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(16), nullable=False, default="credit")  # credit | cash

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    original_total_cents = db.Column(db.Integer, nullable=False, default=0)
    total_credit_notes_cents = db.Column(db.Integer, nullable=False, default=0)
    total_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    delivery_address = db.Column(db.Text, nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem", backref="order", lazy=True, cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    payments = db.relationship(
        "OrderPayment", backref="order", lazy=True, cascade="all, delete-orphan", order_by="OrderPayment.created_at"
    )
    credit_notes = db.relationship(
        "CreditNote", backref="order", lazy=True, cascade="all, delete-orphan", order_by="CreditNote.created_at"
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_children: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "seller_id": self.seller_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "delivery_fee_cents": self.delivery_fee_cents,
            "total_cents": self.total_cents,
            "original_total_cents": self.original_total_cents,
            "total_credit_notes_cents": self.total_credit_notes_cents,
            "total_paid_cents": self.total_paid_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "delivery_address": self.delivery_address or "",
            "delivery_date": to_utc_z(self.delivery_date),
            "notes": self.notes or "",
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_children:
            data["items"] = [i.to_dict() for i in self.items]
            data["payments"] = [p.to_dict() for p in self.payments]
            data["credit_notes"] = [c.to_dict() for c in self.credit_notes]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(32), db.ForeignKey("products.id"), nullable=True)

    # Snapshot of the product at checkout
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "unit": self.unit or "",
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class OrderPayment(db.Model):
    """
    Payment record on an order. transaction_id is set when the payment
    came from a (bulk) transaction allocation; direct order payments
    have none.
    """
    __tablename__ = "order_payments"

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)
    transaction_id = db.Column(db.String(32), db.ForeignKey("transactions.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="cash")
    reference = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "transaction_id": self.transaction_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference or "",
            "notes": self.notes or "",
            "paid_at": to_utc_z(self.paid_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class CreditNote(db.Model):
    """Credit note on an order, mirrored by a negative transaction."""
    __tablename__ = "credit_notes"

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)
    transaction_id = db.Column(db.String(32), db.ForeignKey("transactions.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "transaction_id": self.transaction_id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "reason_label": reason_label(self.reason, self.notes),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
