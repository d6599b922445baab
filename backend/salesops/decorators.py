# Overview: Request and capability decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .extensions import db
from .models import User
from .permissions import Capabilities


ACTOR_HEADER = "X-Actor-Id"


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "capabilities")


def require_actor(f):
    """
    Resolve the acting user from the gateway-injected X-Actor-Id header.

    Sets:
    - g.current_user: the active User
    - g.capabilities: Capabilities resolved from the user's role and branch

    Returns 401 if the header is missing, malformed, or names an unknown
    or deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive actor"}), 401

        g.current_user = user
        g.capabilities = Capabilities.for_user(user)
        return f(*args, **kwargs)

    return decorated_function


def require_capability(code: str):
    """
    Require a capability code for the route as a whole.

    Branch scope is checked by the service once the target entity is known.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not g.capabilities.has(code):
                return jsonify({
                    "error": "Permission denied",
                    "required_capability": code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
