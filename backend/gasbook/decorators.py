# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.owner_service import OwnerAccessError, normalize_owner_key


OWNER_HEADER = "X-Owner-Key"


def require_owner(f):
    """
    Require an owner key and establish owner context.

    OWNER SCOPE: Sets g.owner_key from the X-Owner-Key header. Every
    service call made by the route is filtered by it.

    Returns 401 if the header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.owner_key = normalize_owner_key(request.headers.get(OWNER_HEADER))
        except OwnerAccessError:
            return jsonify({"error": f"{OWNER_HEADER} header required"}), 401
        return f(*args, **kwargs)

    return decorated_function
