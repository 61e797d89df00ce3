# Overview: Flask API routes for staff sign-in; parses input and returns JSON responses.

# backend/agripos/routes/auth.py
"""
Authentication API routes

Credential check only: a successful login opens a session and returns its
bearer token. The token goes in the Authorization header ("Bearer <token>")
and is turned back into a LedgerContext on every protected request.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import LedgerError
from ..services import auth_service, session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate staff and issue a session token.

    Request body:
    {
        "username": "cashier1",
        "password": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        staff = auth_service.authenticate(username, password)
        _, token = session_service.create_session(
            staff,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        current_app.logger.info("Staff %s signed in", staff.id)

        return jsonify({
            "token": token,
            "staff": staff.to_dict(),
        }), 200

    except LedgerError as e:
        current_app.logger.warning("Failed sign-in for %r", (request.get_json(silent=True) or {}).get("username"))
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    try:
        staff = auth_service.get_staff(g.ledger_context.staff_id)
        return jsonify({
            "staff": staff.to_dict(),
            "permissions": sorted(g.ledger_context.permissions),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session behind the presented token."""
    session_service.revoke_session(g.session_token)
    current_app.logger.info("Staff %s signed out", g.ledger_context.staff_id)
    return jsonify({"message": "Signed out"}), 200
