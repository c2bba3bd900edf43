from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z, utcnow
from .ids import new_document_id


TRANSACTION_TYPE_PAYMENT = "payment"
TRANSACTION_TYPE_CREDIT_NOTE = "credit_note"
VALID_TRANSACTION_TYPES = (TRANSACTION_TYPE_PAYMENT, TRANSACTION_TYPE_CREDIT_NOTE)

VALID_PAYMENT_METHODS = ("cash", "bank_transfer", "cheque", "card", "credit_note", "other")


class Transaction(db.Model):
    """
    Money event on a customer account.

    amount_cents is signed: positive for payments, negative for credit
    notes. A payment's split across orders is recorded in
    TransactionAllocation rows; whatever was not allocated stays on
    account (unallocated_cents).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_seller_date", "seller_id", "transaction_date"),
        db.Index("ix_transactions_customer_date", "customer_id", "transaction_date"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    customer_id = db.Column(db.String(32), db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, default=TRANSACTION_TYPE_PAYMENT)
    amount_cents = db.Column(db.Integer, nullable=False)
    unallocated_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    related_order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=True, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    allocations = db.relationship(
        "TransactionAllocation", backref="transaction", lazy=True, cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name or "",
            "seller_id": self.seller_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "unallocated_cents": self.unallocated_cents,
            "payment_method": self.payment_method,
            "reference": self.reference or "",
            "notes": self.notes or "",
            "related_order_id": self.related_order_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class TransactionAllocation(db.Model):
    __tablename__ = "transaction_allocations"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "order_id", name="uq_transaction_allocations_txn_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(32), db.ForeignKey("transactions.id"), nullable=False, index=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {"order_id": self.order_id, "amount_cents": self.amount_cents}
