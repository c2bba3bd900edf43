# Overview: Flask API routes for login, logout and the current session.

"""
Authentication API routes

SECURITY:
- Accounts are created by admins, sellers (for their customers) or the CLI;
  there is no self-registration.
- Login sets an httponly session cookie and also returns the token for
  clients that prefer the Authorization header.
- Logout revokes the session server-side and clears the cookie.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..responses import fail, ok
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_session_cookie(response, token: str) -> None:
    response.set_cookie(
        current_app.config["SESSION_TOKEN_COOKIE"],
        token,
        max_age=current_app.config["SESSION_ABSOLUTE_HOURS"] * 3600,
        httponly=True,
        secure=current_app.config["SESSION_COOKIE_SECURE_FLAG"],
        samesite="Lax",
        path="/",
    )


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email and password.

    Request body: {"email": "...", "password": "..."}

    Returns:
        {user, principal, token, session}
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not email or not password:
            return fail("email and password are required", 400)

        user = auth_service.authenticate(email, password)
        if not user:
            return fail("Invalid credentials", 401)

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        principal = session_service.build_principal(user)

        response, status = ok({
            "user": user.to_dict(),
            "principal": principal.to_dict(),
            "token": token,
            "session": session.to_dict(),
        })
        _set_session_cookie(response, token)
        return response, status

    except Exception:
        current_app.logger.exception("Failed to login user")
        return fail("Internal server error", 500)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        response, status = ok({"message": "Logout successful"})
        response.delete_cookie(current_app.config["SESSION_TOKEN_COOKIE"], path="/")
        return response, status
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return fail("Internal server error", 500)


@auth_bp.get("/session")
@require_auth
def session_route():
    """Current user and principal; 401 (via require_auth) when not signed in."""
    return ok({
        "user": g.current_user.to_dict(),
        "principal": g.principal.to_dict(),
    })
