# Overview: Staff administration; listing, profile edits, position/permission changes, deactivation and password resets.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Staff
from ..errors import ValidationError
from ..validation import ModelValidationPolicy, validate_payload
from .auth_service import ALL_PERMISSIONS, POSITION_DEFAULT_PERMISSIONS, get_staff, hash_password
from .concurrency import run_unit
from .session_service import revoke_all_sessions


STAFF_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "username", "employee_id", "first_name", "last_name", "email", "phone",
        "position", "is_active",
    }),
    choices={"position": tuple(POSITION_DEFAULT_PERMISSIONS)},
)


def list_staff(include_inactive: bool = False) -> list[Staff]:
    query = db.session.query(Staff)
    if not include_inactive:
        query = query.filter(Staff.is_active.is_(True))
    return query.order_by(Staff.username.asc()).all()


def _permission_set(raw) -> list[str]:
    if not isinstance(raw, list) or not all(isinstance(p, str) for p in raw):
        raise ValidationError("permissions must be a list of permission codes")
    unknown = set(raw) - ALL_PERMISSIONS
    if unknown:
        raise ValidationError(f"Unknown permissions: {', '.join(sorted(unknown))}")
    return sorted(set(raw))


def _ensure_unique(staff: Staff, column, value) -> None:
    if value is None or value == getattr(staff, column.key):
        return
    if db.session.query(Staff.id).filter(column == value, Staff.id != staff.id).first():
        raise ValidationError(f"{column.key} '{value}' already exists", details={column.key: value})


def update_staff(staff_id: int, payload: dict, *, actor_id: int | None = None) -> Staff:
    """
    Edit a staff member.

    - position without permissions resets permissions to the position's defaults
    - permissions replaces the set outright
    - password (non-empty) is strength-checked and re-hashed
    - a password change or is_active=false revokes every open session

    actor_id is the staff member making the change; nobody may deactivate
    themselves.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    password = payload.pop("password", None)
    raw_permissions = payload.pop("permissions", None)

    patch = validate_payload(model=Staff, payload=payload, policy=STAFF_UPDATE_POLICY, partial=True)
    if raw_permissions is not None:
        patch["permissions"] = _permission_set(raw_permissions)
    elif "position" in patch:
        patch["permissions"] = sorted(POSITION_DEFAULT_PERMISSIONS[patch["position"]])

    if password is not None and not isinstance(password, str):
        raise ValidationError("password must be a string")
    if password:
        patch["password_hash"] = hash_password(password)

    if patch.get("is_active") is False and actor_id == staff_id:
        raise ValidationError("Cannot deactivate your own account")

    revoked = {}

    def _op():
        staff = get_staff(staff_id)
        _ensure_unique(staff, Staff.username, patch.get("username"))
        _ensure_unique(staff, Staff.employee_id, patch.get("employee_id"))

        ending = None
        if patch.get("is_active") is False and staff.is_active:
            ending = "Staff deactivated"
        elif "password_hash" in patch:
            ending = "Password reset"

        for key, value in patch.items():
            setattr(staff, key, value)
        if ending:
            revoked["count"] = revoke_all_sessions(staff.id, ending, commit=False)
        return staff

    staff = run_unit(_op, operation="update_staff", context={"staff_id": staff_id, "actor_id": actor_id})

    changed = sorted("password" if key == "password_hash" else key for key in patch)
    current_app.logger.info(
        "Staff %s updated by %s: %s (sessions revoked: %s)",
        staff_id, actor_id, ", ".join(changed), revoked.get("count", 0),
    )
    return staff
