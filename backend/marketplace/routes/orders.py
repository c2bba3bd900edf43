# Overview: Flask API routes for orders; checkout, status changes, payments and credit notes.

"""
Order Routes

SECURITY: All routes require authentication.
- Customers list and read their own orders and place orders for themselves.
- Sellers (own customers) and admins update and delete orders.

PATCH takes exactly one of:
    {"payment": {"amount": "40.00", "payment_method": "cash"}}
    {"credit_note": {"amount": "30.00", "reason": "damaged_goods", "notes": "..."}}
    {"status": "confirmed"}
    {"payment_status": "overdue"}
    {"notes": "...", "delivery_date": "...", "delivery_address": "..."}
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_SELLER
from ..responses import SERVICE_ERRORS, error_response, fail, ok
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_orders_route():
    """Query parameters: customer_id, status, payment_status, seller_id (admins)."""
    try:
        orders = order_service.list_orders(g.principal, {
            "customer_id": request.args.get("customer_id"),
            "status": request.args.get("status"),
            "payment_status": request.args.get("payment_status"),
            "seller_id": request.args.get("seller_id", type=int),
        })
        return ok([o.to_dict() for o in orders])
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return fail("Internal server error", 500)


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Request body:
    {
        "customer_id": "...",   // ignored for customers (always themselves)
        "items": [{"product_id": "...", "quantity": 2, "price": "12.50"}],
        "delivery_address": "...",
        "delivery_date": "2026-05-01",
        "notes": "...",
        "payment_method": "credit" | "cash"
    }
    """
    try:
        order = order_service.create_order(g.principal, request.get_json(silent=True) or {})
        return ok(order.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return fail("Internal server error", 500)


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    try:
        return ok(order_service.get_order(g.principal, order_id).to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return fail("Internal server error", 500)


@orders_bp.patch("/<order_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def update_order_route(order_id: str):
    try:
        order = order_service.apply_patch(g.principal, order_id, request.get_json(silent=True) or {})
        return ok(order.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return fail("Internal server error", 500)


@orders_bp.delete("/<order_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_order_route(order_id: str):
    try:
        order_service.delete_order(g.principal, order_id)
        return ok({"id": order_id, "deleted": True})
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return fail("Internal server error", 500)
