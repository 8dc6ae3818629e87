# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


USER_HEADER = "X-User-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_user(f):
    """
    Resolve the acting user for attribution.

    Authentication happens upstream (gateway / session layer); this layer
    only receives the user id in the X-User-Id header and sets:
    - g.current_user: The active User object

    Returns 401 if the header is missing, malformed, or names an unknown or
    deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(USER_HEADER)
        if not raw:
            return jsonify({"error": "Authentication required"}), 401

        try:
            user_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid user id"}), 401

        user = db.session.get(User, user_id)
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the acting user to hold one of `roles`.

    Must be stacked under @require_user.
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
                    "message": f"Requires any of: {', '.join(roles)}"
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
