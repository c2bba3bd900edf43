# Overview: Flask API routes for admin user management and the admin dashboard stats.

"""
User Routes

SECURITY: Admin only. Sellers and customers receive 403.
Customer logins are managed through /api/customers.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN
from ..responses import SERVICE_ERRORS, error_response, fail, ok
from ..services import user_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")
admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    """
    Query parameters:
    - role: admin | seller | customer (default: admins and sellers)
    - search: matches email, display name or business name
    - include_inactive: default true
    """
    try:
        users = user_service.list_users(
            g.principal,
            role=request.args.get("role"),
            search=request.args.get("search"),
            include_inactive=request.args.get("include_inactive", "true").lower() == "true",
        )
        return ok([u.to_dict() for u in users])
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list users")
        return fail("Internal server error", 500)


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Request body:
    {"email": "...", "password": "...", "role": "seller|admin",
     "display_name": "...", "business_name": "..."}
    """
    try:
        user = user_service.create_user(g.principal, request.get_json(silent=True) or {})
        return ok(user.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return fail("Internal server error", 500)


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    try:
        return ok(user_service.get_user(g.principal, user_id).to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch user")
        return fail("Internal server error", 500)


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    """
    Partial update of email, display_name, business_name, role, is_active
    and password. Deactivation and password changes end the user's sessions.
    """
    try:
        user = user_service.update_user(g.principal, user_id, request.get_json(silent=True) or {})
        return ok(user.to_dict())
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return fail("Internal server error", 500)


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: int):
    """Users with history are deactivated rather than deleted."""
    try:
        return ok(user_service.delete_user(g.principal, user_id))
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return fail("Internal server error", 500)


@admin_bp.get("/stats")
@require_auth
@require_role(ROLE_ADMIN)
def admin_stats_route():
    try:
        return ok(user_service.admin_stats(g.principal))
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load admin stats")
        return fail("Failed to load admin stats", 500)
