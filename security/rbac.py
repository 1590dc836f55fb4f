from functools import wraps
from flask import g, jsonify

def require_user_type(*user_types: str):
    """
    Usage: @require_user_type("developer")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401
            if user.user_type not in user_types:
                return jsonify(error="Forbidden"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
