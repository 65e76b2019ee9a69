from functools import wraps

from flask import current_app
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from consult.utils.exceptions import AccessDenied


def current_actor():
    """Return ``(actor_id, role)`` for the authenticated request."""
    claims = get_jwt()
    role = claims.get(current_app.config.get("JWT_ROLE_CLAIM", "role"))
    return get_jwt_identity(), role


def role_required(*roles):
    """Like ``jwt_required`` but also checks the role claim."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            _, role = current_actor()
            if roles and role not in roles:
                raise AccessDenied(f"Requires role: {', '.join(roles)}")
            return fn(*args, **kwargs)
        return wrapper
    return decorator
