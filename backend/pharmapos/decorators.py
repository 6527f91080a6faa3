# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def require_auth(f):
    """
    Require a valid session token.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.auth_token: the raw bearer token (used by logout)

    Returns 401 if the header is missing, or the token is unknown, expired,
    revoked, or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles. Use below @require_auth.

    Example:
        @require_auth
        @require_role("owner", "manager")
        def route(): ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
