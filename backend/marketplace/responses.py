# Overview: JSON response envelope and error-to-status mapping shared by all routes.

from flask import jsonify

from .validation import AccessDeniedError, ConflictError, NotFoundError, ValidationError


# Errors raised by services that carry a client-facing message
SERVICE_ERRORS = (ValidationError, ConflictError, NotFoundError, AccessDeniedError)


def ok(data=None, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def fail(message: str, status: int = 400, **extra):
    body = {"success": False, "error": message}
    body.update(extra)
    return jsonify(body), status


def error_response(exc: Exception):
    if isinstance(exc, AccessDeniedError):
        return fail(str(exc) or "Forbidden", 403)
    if isinstance(exc, NotFoundError):
        return fail(str(exc) or "Not found", 404)
    if isinstance(exc, ConflictError):
        return fail(str(exc), 409)
    return fail(str(exc), 400)
