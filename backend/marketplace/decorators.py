# Overview: Authentication and role decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .services import session_service


def _session_token() -> tuple[str | None, bool]:
    """Return (token, came_from_cookie). The cookie wins over the header."""
    cookie_name = current_app.config.get("SESSION_TOKEN_COOKIE", "session")
    token = request.cookies.get(cookie_name)
    if token:
        return token, True

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip(), False
    return None, False


def _unauthorized(message: str, clear_cookie: bool = False):
    response = jsonify({"success": False, "error": message})
    response.status_code = 401
    if clear_cookie:
        response.delete_cookie(current_app.config.get("SESSION_TOKEN_COOKIE", "session"), path="/")
    return response


def require_auth(f):
    """
    Require a valid session and establish the request principal.

    Sets the following Flask g attributes:
    - g.principal: the Principal (user id, role, seller scope, customer id)
    - g.current_user: the authenticated User object
    - g.session_token: the plaintext token (used by logout)

    SECURITY: Returns 401 if the token is missing, unknown, expired or
    revoked, or if the user was deactivated. An invalid session cookie is
    cleared in that response.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token, from_cookie = _session_token()
        if not token:
            return _unauthorized("Authentication required")

        context = session_service.validate_session(token)
        if not context:
            return _unauthorized("Invalid or expired session", clear_cookie=from_cookie)

        g.principal = context.principal
        g.current_user = context.user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles. Must be applied after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return _unauthorized("Authentication required")
            if principal.role not in roles:
                return jsonify({
                    "success": False,
                    "error": "Forbidden",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
