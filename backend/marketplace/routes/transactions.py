# Overview: Flask API routes for customer payments and credit note transactions.

"""
Transaction Routes

SECURITY: All routes require authentication.
- Customers read their own transactions.
- Sellers record and delete transactions for their own customers.
- Deleting without reversal (?reverse=false) is admin only.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_SELLER
from ..responses import SERVICE_ERRORS, error_response, fail, ok
from ..services import transaction_service


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """Query parameters: customer_id, payment_method, type, start_date, end_date, seller_id (admins)."""
    try:
        filters = {
            key: request.args.get(key)
            for key in ("customer_id", "payment_method", "type", "start_date", "end_date")
        }
        filters["seller_id"] = request.args.get("seller_id", type=int)
        transactions = transaction_service.list_transactions(g.principal, filters)
        return ok([t.to_dict() for t in transactions])
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return fail("Internal server error", 500)


@transactions_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def create_transaction_route():
    """
    Record a payment:
    {
        "customer_id": "...",
        "amount": "150.00",            // or "amount_cents": 15000
        "payment_method": "bank_transfer",
        "reference": "...", "notes": "...", "transaction_date": "...",
        "allocations": [{"order_id": "...", "amount": "50.00"}]   // optional
    }

    Without allocations the payment is applied oldest order first; any
    excess stays on account.

    Or issue a credit note:
    {"type": "credit_note", "related_order_id": "...", "amount": "30.00",
     "reason": "damaged_goods", "notes": "..."}
    """
    try:
        txn, allocation = transaction_service.create_transaction(g.principal, request.get_json(silent=True) or {})
        data = txn.to_dict()
        if allocation is not None:
            data["allocation"] = allocation.to_dict()
        return ok(data, 201)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return fail("Internal server error", 500)


@transactions_bp.get("/<transaction_id>")
@require_auth
def get_transaction_route(transaction_id: str):
    try:
        return ok(transaction_service.get_transaction(g.principal, transaction_id).to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load transaction")
        return fail("Internal server error", 500)


@transactions_bp.delete("/<transaction_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_transaction_route(transaction_id: str):
    """Reverses the transaction on its orders unless ?reverse=false (admins)."""
    try:
        reverse = request.args.get("reverse", "true").lower() != "false"
        result = transaction_service.delete_transaction(g.principal, transaction_id, reverse=reverse)
        return ok(result)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete transaction")
        return fail("Internal server error", 500)
