from functools import wraps
from flask import g, jsonify


def require_roles(*role_names: str):
    """
    Usage: @require_roles("Admin")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error=getattr(g, "auth_error", None) or "Authentication required"), 401

            if user.role not in role_names:
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
