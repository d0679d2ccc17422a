# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import identity_service


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the calling user and expose it as g.current_user.

    Authentication happens upstream (gateway/session layer); this only
    maps the already-authenticated user id onto a User row.

    Returns 401 if the header is missing or malformed, 403 if the user
    is unknown or deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)
        if not raw:
            return jsonify({"error": "Caller identity required"}), 401

        try:
            user_id = int(raw)
        except ValueError:
            return jsonify({"error": f"Invalid {ACTOR_HEADER} header"}), 401

        user = identity_service.get_user(user_id)
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 403

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
