# Overview: Request decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def require_service_key(f):
    """
    Require the service bearer key on programmatic endpoints.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Header is not "Bearer <key>"
    - Key does not match SERVICE_API_KEY (or none is configured)

    The emailed approve/reject links do not use this decorator; the
    single-use approval token is their credential.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        presented = auth_header.split(" ", 1)[1].strip()
        expected = current_app.config.get("SERVICE_API_KEY")

        if not expected:
            current_app.logger.warning("SERVICE_API_KEY is not configured; rejecting %s", request.path)
            return jsonify({"error": "Invalid or expired token"}), 401

        if not hmac.compare_digest(presented.encode(), expected.encode()):
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, **kwargs)

    return decorated_function
