# Overview: Flask API routes for the seller catalogue.

"""
Product Routes

SECURITY: All routes require authentication.
- Customers see their seller's active products.
- Sellers manage their own catalogue; admins any seller's.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_SELLER
from ..responses import SERVICE_ERRORS, error_response, fail, ok
from ..services import product_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    try:
        products = product_service.list_products(
            g.principal,
            seller_id=request.args.get("seller_id", type=int),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        )
        return ok([p.to_dict() for p in products])
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return fail("Internal server error", 500)


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def create_product_route():
    """
    Request body:
    {"name": "Lamb shoulder", "unit": "kg", "category": "lamb", "description": "..."}
    """
    try:
        product = product_service.create_product(g.principal, request.get_json(silent=True) or {})
        return ok(product.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return fail("Internal server error", 500)


@products_bp.get("/<product_id>")
@require_auth
def get_product_route(product_id: str):
    try:
        return ok(product_service.get_product(g.principal, product_id).to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return fail("Internal server error", 500)


@products_bp.put("/<product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def update_product_route(product_id: str):
    try:
        product = product_service.update_product(g.principal, product_id, request.get_json(silent=True) or {})
        return ok(product.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return fail("Internal server error", 500)


@products_bp.delete("/<product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_product_route(product_id: str):
    try:
        product = product_service.delete_product(g.principal, product_id)
        return ok(product.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return fail("Internal server error", 500)
