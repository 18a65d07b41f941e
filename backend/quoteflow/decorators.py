# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .validation import coerce_int
from .errors import ValidationError


def require_actor(f):
    """
    Require the acting user's identity and expose it to the route.

    Authentication happens upstream: the gateway forwards the authenticated
    user's id in the X-User-Id header. Sets g.actor_id (int).

    Returns 401 if the header is missing or blank, 400 if it is not an integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get("X-User-Id") or "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401

        try:
            g.actor_id = coerce_int(raw, "X-User-Id")
        except ValidationError as e:
            return jsonify(e.to_dict()), 400

        return f(*args, **kwargs)

    return decorated_function
