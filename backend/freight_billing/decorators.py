# Overview: Request decorators that resolve the acting user and enforce roles.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


ACTOR_HEADER = "X-Actor-Id"


def _has_actor() -> bool:
    return hasattr(g, 'current_user') and g.current_user is not None


def require_actor(f):
    """
    Resolve the acting user from the X-Actor-Id header.

    Sets g.current_user. Authentication happens in front of this service;
    the header names who is acting so every mutation can be attributed.

    Returns 401 if:
    - No X-Actor-Id header, or it is not an integer
    - User does not exist or is deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw_id.isdigit():
            return jsonify({"error": "Actor required"}), 401

        user = db.session.get(User, int(raw_id))
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive actor"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require the actor to hold one of the given roles.

    Must be applied after @require_actor.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_actor():
                return jsonify({"error": "Actor required"}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
