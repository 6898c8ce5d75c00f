# Overview: Request decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def require_api_token(f):
    """
    Require `Authorization: Bearer <API_AUTH_TOKEN>`.

    SECURITY: Returns 401 when the header is missing, malformed, or does not
    match. An unset API_AUTH_TOKEN locks the read API entirely.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        expected = current_app.config.get("API_AUTH_TOKEN") or ""

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "error": "Unauthorized"}), 401

        token = auth_header.split(" ", 1)[1]
        if not expected or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            return jsonify({"success": False, "error": "Unauthorized"}), 401

        return f(*args, **kwargs)

    return decorated_function
