# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .context import OperationContext
from .services.branch_service import get_user


def require_context(f):
    """
    Resolve the acting user and establish the operation context.

    Identity comes from the X-User-Id header (set by the external auth
    collaborator); an optional X-Branch-Id header selects the branch.

    Sets the following Flask g attributes:
    - g.current_user: The acting User object
    - g.ctx: OperationContext(user_id, branch_id) passed into services

    Returns 401 if the header is missing or names an unknown user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get("X-User-Id") or "").strip()
        if not user_id:
            return jsonify({"error": "Authentication required"}), 401

        user = get_user(user_id)
        if user is None:
            return jsonify({"error": "Unknown user"}), 401

        branch_id = (request.headers.get("X-Branch-Id") or "").strip() or None

        g.current_user = user
        g.ctx = OperationContext(user_id=user.id, branch_id=branch_id)

        return f(*args, **kwargs)

    return decorated_function
