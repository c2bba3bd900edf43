# Overview: Service-layer operations for orders; checkout, fulfilment status and order-level payments.

"""
Order Service

Orders are priced at checkout from the customer's price map and carry
denormalized accounting aggregates. Those aggregates are only ever changed
through the ledger: a direct order payment is recorded as a single-order
transaction, and a credit note goes through the credit note service.

STATUS FLOW: pending -> confirmed -> prepared -> delivered. Any state
before delivered may be cancelled, unless money has already been applied
to the order.
"""

from __future__ import annotations

import logging

from flask import current_app

from ..accounting.ledger import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PENDING,
    PAYMENT_STATUS_OVERDUE,
    PAYMENT_STATUS_PENDING,
    VALID_ORDER_STATUSES,
    VALID_PAYMENT_STATUSES,
    can_transition,
    derive_payment_status,
)
from ..accounting.money import format_money
from ..accounting.statement import invoice_number
from ..extensions import db
from ..models import Customer, Order, OrderItem, Product
from marketplace.time_utils import parse_iso_datetime
from ..validation import NotFoundError, ValidationError, parse_amount_cents
from . import credit_note_service, customer_service, messaging_service, transaction_service
from .access_policy import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_UPDATE,
    ACTION_VIEW,
    KIND_ORDER,
    Principal,
    Resource,
    require_access,
)
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

ORDER_PAYMENT_METHODS = ("credit", "cash")


# =============================================================================
# READS
# =============================================================================

def list_orders(principal: Principal, filters: dict | None = None) -> list[Order]:
    filters = filters or {}
    query = db.session.query(Order)

    if principal.is_admin:
        if filters.get("seller_id"):
            query = query.filter(Order.seller_id == filters["seller_id"])
    elif principal.is_customer:
        if not principal.customer_id:
            return []
        query = query.filter(Order.customer_id == principal.customer_id)
    else:
        query = query.filter(Order.seller_id == principal.user_id)

    if filters.get("customer_id"):
        query = query.filter(Order.customer_id == filters["customer_id"])
    if filters.get("status"):
        if filters["status"] not in VALID_ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(VALID_ORDER_STATUSES)}")
        query = query.filter(Order.status == filters["status"])
    if filters.get("payment_status"):
        if filters["payment_status"] not in VALID_PAYMENT_STATUSES:
            raise ValidationError(f"payment_status must be one of: {', '.join(VALID_PAYMENT_STATUSES)}")
        query = query.filter(Order.payment_status == filters["payment_status"])

    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_order(principal: Principal, order_id: str, action: str = ACTION_VIEW) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    require_access(principal, Resource.of(KIND_ORDER, order), action)
    return order


# =============================================================================
# CHECKOUT
# =============================================================================

def delivery_fee_for(subtotal_cents: int) -> int:
    if subtotal_cents >= current_app.config["FREE_DELIVERY_THRESHOLD_CENTS"]:
        return 0
    return current_app.config["DEFAULT_DELIVERY_FEE_CENTS"]


def _parse_quantity(value) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        quantity = value
    elif isinstance(value, str) and value.strip().isdigit():
        quantity = int(value.strip())
    else:
        raise ValidationError("quantity must be a positive integer")
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def _build_items(customer: Customer, raw_items) -> list[OrderItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("An order needs at least one item")

    product_ids = []
    for raw in raw_items:
        if not isinstance(raw, dict) or not raw.get("product_id"):
            raise ValidationError("Each item needs a product_id")
        product_ids.append(str(raw["product_id"]))

    products = {
        p.id: p for p in db.session.query(Product).filter(
            Product.id.in_(product_ids),
            Product.seller_id == customer.seller_id,
            Product.is_active.is_(True),
        )
    }

    items = []
    for raw, product_id in zip(raw_items, product_ids):
        product = products.get(product_id)
        if not product:
            raise ValidationError(f"Product {product_id} is not available")
        quantity = _parse_quantity(raw.get("quantity"))

        unit_price = customer_service.price_for(customer, product_id)
        if unit_price is None:
            if raw.get("price_cents") is None and raw.get("price") is None:
                raise ValidationError(f"No price is set for {product.name}")
            unit_price = parse_amount_cents(raw, field_name="price")
            if unit_price < 0:
                raise ValidationError("Prices cannot be negative")

        items.append(OrderItem(
            product_id=product.id,
            name=product.name,
            unit=product.unit,
            quantity=quantity,
            unit_price_cents=unit_price,
            line_total_cents=unit_price * quantity,
        ))
    return items


def create_order(principal: Principal, data: dict) -> Order:
    """
    Place an order for a customer. Customers order for themselves; sellers
    and admins name the customer.
    """
    data = data or {}
    customer_id = principal.customer_id if principal.is_customer else data.get("customer_id")
    if not customer_id:
        raise ValidationError("customer_id is required")
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    require_access(
        principal,
        Resource(kind=KIND_ORDER, seller_id=customer.seller_id, customer_id=customer.id),
        ACTION_CREATE,
    )
    if not customer.is_active:
        raise ValidationError("Customer is inactive")

    payment_method = (data.get("payment_method") or "credit").strip().lower()
    if payment_method not in ORDER_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(ORDER_PAYMENT_METHODS)}")
    try:
        delivery_date = parse_iso_datetime(data.get("delivery_date"))
    except ValueError:
        raise ValidationError("delivery_date must be an ISO-8601 date")

    items = _build_items(customer, data.get("items"))
    subtotal = sum(i.line_total_cents for i in items)
    fee = delivery_fee_for(subtotal)
    total = subtotal + fee

    order = Order(
        customer_id=customer.id,
        seller_id=customer.seller_id,
        status=ORDER_STATUS_PENDING,
        payment_status=PAYMENT_STATUS_PENDING,
        payment_method=payment_method,
        subtotal_cents=subtotal,
        delivery_fee_cents=fee,
        total_cents=total,
        original_total_cents=total,
        total_credit_notes_cents=0,
        total_paid_cents=0,
        remaining_amount_cents=total,
        delivery_address=(data.get("delivery_address") or "").strip() or customer.address,
        delivery_date=delivery_date,
        notes=(data.get("notes") or "").strip() or None,
        created_by_user_id=principal.user_id,
    )
    order.items = items

    try:
        db.session.add(order)
        db.session.flush()
        messaging_service.notify(
            customer.seller_id,
            messaging_service.NOTIFICATION_NEW_ORDER,
            "New order",
            f"{customer.display_name} placed order {invoice_number(order.id, order.created_at)} "
            f"for {format_money(total)}",
            {"order_id": order.id, "customer_id": customer.id},
        )
        transaction_service.apply_on_account_credit(customer, principal.user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Order %s created for customer %s (%s cents)", order.id, customer.id, total)
    return order


# =============================================================================
# UPDATES
# =============================================================================

def _notify_customer(order: Order, title: str, message: str) -> None:
    customer = order.customer
    if customer and customer.user_id:
        messaging_service.notify(
            customer.user_id,
            messaging_service.NOTIFICATION_ORDER_UPDATED,
            title,
            message,
            {"order_id": order.id},
        )


def record_payment(principal: Principal, order_id: str, data: dict) -> Order:
    """
    Direct payment against one order. It is stored as a transaction
    allocated wholly to this order, so it cannot exceed the remaining
    balance.
    """
    order = get_order(principal, order_id, ACTION_UPDATE)
    data = dict(data or {})
    amount_cents = parse_amount_cents(data)
    payload = {
        "customer_id": order.customer_id,
        "amount_cents": amount_cents,
        "payment_method": data.get("payment_method") or data.get("method") or "cash",
        "reference": data.get("reference"),
        "notes": data.get("notes"),
        "transaction_date": data.get("transaction_date") or data.get("paid_at"),
        "related_order_id": order.id,
        "allocations": {order.id: amount_cents},
    }
    transaction_service.create_payment(principal, payload)
    db.session.refresh(order)
    return order


def issue_credit_note(principal: Principal, order_id: str, data: dict) -> Order:
    order, _, _ = credit_note_service.issue_credit_note(principal, order_id, data)
    return order


def update_status(principal: Principal, order_id: str, status: str | None) -> Order:
    target = (status or "").strip().lower()
    if target not in VALID_ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(VALID_ORDER_STATUSES)}")

    def _op():
        order = get_order(principal, order_id, ACTION_UPDATE)
        if order.status == target:
            return order
        if not can_transition(order.status, target):
            raise ValidationError(f"Cannot change status from {order.status} to {target}")
        if target == ORDER_STATUS_CANCELLED and (order.total_paid_cents > 0 or order.total_credit_notes_cents > 0):
            raise ValidationError("Orders with payments or credit notes cannot be cancelled")

        previous = order.status
        order.status = target
        _notify_customer(
            order,
            "Order updated",
            f"Order {invoice_number(order.id, order.created_at)} is now {target}",
        )
        db.session.commit()
        logger.info("Order %s status %s -> %s", order.id, previous, target)
        return order

    return run_with_retry(_op)


def set_payment_status(principal: Principal, order_id: str, payment_status: str | None) -> Order:
    """
    Only the overdue flag is set by hand. Any other value must match the
    status derived from payments and clears the flag.
    """
    value = (payment_status or "").strip().lower()
    if value not in VALID_PAYMENT_STATUSES:
        raise ValidationError(f"payment_status must be one of: {', '.join(VALID_PAYMENT_STATUSES)}")

    def _op():
        order = get_order(principal, order_id, ACTION_UPDATE)
        derived = derive_payment_status(order.total_cents, order.total_paid_cents)
        if value == PAYMENT_STATUS_OVERDUE:
            if order.status == ORDER_STATUS_CANCELLED or order.remaining_amount_cents <= 0:
                raise ValidationError("Only orders with an outstanding balance can be overdue")
        elif value != derived:
            raise ValidationError(f"payment_status is {derived} based on payments; only overdue can be set")
        order.payment_status = value
        _notify_customer(
            order,
            "Payment status updated",
            f"Order {invoice_number(order.id, order.created_at)} is {value}",
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_details(principal: Principal, order_id: str, data: dict) -> Order:
    order = get_order(principal, order_id, ACTION_UPDATE)
    if "notes" in data:
        order.notes = (data.get("notes") or "").strip() or None
    if "delivery_address" in data:
        order.delivery_address = (data.get("delivery_address") or "").strip() or None
    if "delivery_date" in data:
        try:
            order.delivery_date = parse_iso_datetime(data.get("delivery_date"))
        except ValueError:
            raise ValidationError("delivery_date must be an ISO-8601 date")
    db.session.commit()
    return order


def apply_patch(principal: Principal, order_id: str, data: dict) -> Order:
    """PATCH /api/orders/{id}: exactly one kind of change per request."""
    data = data or {}
    if "payment" in data:
        return record_payment(principal, order_id, data.get("payment") or {})
    if "credit_note" in data:
        return issue_credit_note(principal, order_id, data.get("credit_note") or {})
    if "status" in data:
        return update_status(principal, order_id, data.get("status"))
    if "payment_status" in data:
        return set_payment_status(principal, order_id, data.get("payment_status"))
    if any(k in data for k in ("notes", "delivery_date", "delivery_address")):
        return update_details(principal, order_id, data)
    raise ValidationError("Nothing to update")


def delete_order(principal: Principal, order_id: str) -> None:
    order = get_order(principal, order_id, ACTION_DELETE)
    if order.status not in (ORDER_STATUS_PENDING, ORDER_STATUS_CANCELLED):
        raise ValidationError("Only pending or cancelled orders can be deleted")
    if order.payments or order.credit_notes:
        raise ValidationError("Orders with payments or credit notes cannot be deleted")
    db.session.delete(order)
    db.session.commit()
    logger.info("Order %s deleted by user %s", order_id, principal.user_id)
