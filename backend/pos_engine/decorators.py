# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .extensions import db
from .models import User


def require_operator(f):
    """
    Resolve the acting operator from the trusted gateway header.

    Authentication happens upstream; the gateway forwards the user id in
    OPERATOR_HEADER. Sets g.current_user.

    Returns 401 if the header is missing, malformed, or names an unknown
    or deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config.get("OPERATOR_HEADER", "X-Operator-Id")
        raw = request.headers.get(header, "").strip()

        if not raw.isdigit():
            return jsonify({"error": {"code": "UNAUTHORIZED", "message": "Operator identity required"}}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": {"code": "UNAUTHORIZED", "message": "Operator is not recognized"}}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
