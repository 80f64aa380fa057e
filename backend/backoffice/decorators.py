# Overview: Request decorators for API routes (authentication, admin gate).

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _token_from_request() -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get("token") or None


def require_auth(f):
    """
    Require a valid session and establish the caller's identity.

    Sets g.identity (session_service.Identity). Routes pass it explicitly
    into service calls.

    SECURITY: Returns 401 if:
    - No bearer token and no "token" cookie
    - Invalid, expired, idle or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _token_from_request()
        if not token:
            return jsonify({"error": "Authentication required", "code": "AUTH_REQUIRED"}), 401

        identity = session_service.validate_session(token)
        if not identity:
            return jsonify({"error": "Invalid or expired token", "code": "AUTH_REQUIRED"}), 401

        g.identity = identity
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = getattr(g, "identity", None)
        if identity is None:
            return jsonify({"error": "Authentication required", "code": "AUTH_REQUIRED"}), 401
        if not identity.is_admin:
            return jsonify({"error": "Admin access required", "code": "FORBIDDEN"}), 403
        return f(*args, **kwargs)

    return decorated_function
