# Overview: Flask API routes for staff administration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import LedgerError
from ..services import auth_service, staff_service
from ..services.auth_service import PERM_STAFF_MANAGE


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")

_CREATE_FIELDS = ("username", "password", "first_name", "last_name")


@staff_bp.get("")
@require_auth
@require_permission(PERM_STAFF_MANAGE)
def list_staff_route():
    """Query parameters: include_inactive (default false)."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    staff = staff_service.list_staff(include_inactive=include_inactive)
    return jsonify({"items": [s.to_dict() for s in staff], "count": len(staff)})


@staff_bp.post("")
@require_auth
@require_permission(PERM_STAFF_MANAGE)
def create_staff_route():
    """
    Create a staff member.

    Request body:
    {
        "username": "cashier2",
        "password": "...",
        "first_name": "Ana",
        "last_name": "Reyes",
        "position": "CASHIER",        // optional, default CASHIER
        "permissions": ["pos_sales"], // optional, default from position
        "employee_id": "E-104",       // optional
        "email": "..."                // optional
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = [key for key in _CREATE_FIELDS if not data.get(key)]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        staff = auth_service.create_staff(
            username=data["username"],
            password=data["password"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            position=data.get("position", "CASHIER"),
            permissions=data.get("permissions"),
            employee_id=data.get("employee_id"),
            email=data.get("email"),
        )
        current_app.logger.info("Staff %s created by %s", staff.id, g.ledger_context.staff_id)
        return jsonify(staff.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create staff")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.get("/<int:staff_id>")
@require_auth
@require_permission(PERM_STAFF_MANAGE)
def get_staff_route(staff_id: int):
    try:
        return jsonify(auth_service.get_staff(staff_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@staff_bp.patch("/<int:staff_id>")
@require_auth
@require_permission(PERM_STAFF_MANAGE)
def update_staff_route(staff_id: int):
    """
    Profile, position/permissions, is_active and password.

    Setting a password or is_active=false signs the staff member out everywhere.
    """
    try:
        staff = staff_service.update_staff(
            staff_id, request.get_json(silent=True) or {}, actor_id=g.ledger_context.staff_id
        )
        return jsonify(staff.to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update staff %s", staff_id)
        return jsonify({"error": "Internal server error"}), 500
