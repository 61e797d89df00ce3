# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'ledger_context')


def require_auth(f):
    """
    Require a valid staff session token.

    Sets g.ledger_context (LedgerContext: staff id + permissions), which
    routes pass explicitly into every ledger operation.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Unknown, expired, idle or revoked session
    - Staff account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        ctx = session_service.validate_session(token)
        if ctx is None:
            return jsonify({"error": "Invalid or expired session"}), 401

        g.ledger_context = ctx
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission on the session's LedgerContext."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            ctx = g.ledger_context
            if not ctx.has(permission_code):
                current_app.logger.warning(
                    "Permission %s denied to staff %s on %s %s",
                    permission_code, ctx.staff_id, request.method, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "details": {"required_permission": permission_code},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
