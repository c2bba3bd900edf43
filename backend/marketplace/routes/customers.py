# Overview: Flask API routes for customers, their price maps and statements.

"""
Customer Routes

SECURITY: All routes require authentication.
- Admins and sellers manage customers; sellers only their own.
- Customers may read their own profile (/me) and statement.
"""

from flask import Blueprint, Response, current_app, g, request

from ..accounting import statement_to_csv
from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_SELLER
from ..responses import SERVICE_ERRORS, error_response, fail, ok
from ..services import customer_service, statement_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def list_customers_route():
    """
    Query parameters:
    - search: matches business name, contact person or email
    - include_inactive: default false
    - seller_id: admins only
    """
    try:
        customers = customer_service.list_customers(
            g.principal,
            seller_id=request.args.get("seller_id", type=int),
            search=request.args.get("search"),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        )
        return ok([c.to_dict() for c in customers])
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return fail("Internal server error", 500)


@customers_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def create_customer_route():
    """
    Request body:
    {
        "business_name": "...", "contact_person": "...", "email": "...",
        "phone": "...", "address": "...", "password": "...",
        "prices": {"<product_id>": 1250} | [{"product_id": "...", "price": "12.50"}],
        "branches": [{"business_name": "...", "email": "...", "password": "..."}],
        "seller_id": 2   // admins only
    }
    """
    try:
        customer = customer_service.create_customer(g.principal, request.get_json(silent=True) or {})
        return ok(customer.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return fail("Internal server error", 500)


@customers_bp.get("/me")
@require_auth
def my_customer_route():
    try:
        return ok(customer_service.get_my_customer(g.principal).to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load customer profile")
        return fail("Internal server error", 500)


@customers_bp.get("/<customer_id>")
@require_auth
def get_customer_route(customer_id: str):
    try:
        customer = customer_service.get_customer(g.principal, customer_id)
        data = customer.to_dict()
        data["branches"] = [b.to_dict(include_prices=False) for b in customer.branches]
        return ok(data)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load customer")
        return fail("Internal server error", 500)


@customers_bp.put("/<customer_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def update_customer_route(customer_id: str):
    try:
        customer = customer_service.update_customer(g.principal, customer_id, request.get_json(silent=True) or {})
        return ok(customer.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return fail("Internal server error", 500)


@customers_bp.delete("/<customer_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_customer_route(customer_id: str):
    """Customers with orders or transactions are deactivated instead."""
    try:
        return ok(customer_service.delete_customer(g.principal, customer_id))
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return fail("Internal server error", 500)


@customers_bp.get("/<customer_id>/statement")
@require_auth
def statement_route(customer_id: str):
    """
    Query parameters:
    - start_date, end_date: optional ISO dates (end date inclusive)
    - format: "json" (default) or "csv"
    """
    try:
        start, end = statement_service.parse_period(
            request.args.get("start_date"), request.args.get("end_date")
        )
        customer, statement = statement_service.build_customer_statement(
            g.principal, customer_id, start=start, end=end
        )
        if request.args.get("format", "json").lower() == "csv":
            return Response(
                statement_to_csv(statement),
                mimetype="text/csv",
                headers={"Content-Disposition": f'attachment; filename="statement-{customer.id}.csv"'},
            )
        data = statement.to_dict()
        data["customer"] = customer.to_dict(include_prices=False)
        data["rows"] = statement.rows()
        return ok(data)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build statement")
        return fail("Internal server error", 500)
