# Overview: Staff credential check and the explicit session context passed into ledger operations.

"""
Authentication Service

Every ledger event must be attributable to a staff member. Instead of a
process-wide "current staff" global, a successful sign-in opens a session
(session_service), and each request turns its token back into a LedgerContext
that is passed explicitly into every ledger operation.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with upper, lower, digit and special character
- Same error for unknown username and wrong password
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Staff
from ..errors import AuthenticationError, NotFoundError, PermissionDeniedError, ValidationError
from agripos.time_utils import utcnow


# =============================================================================
# PERMISSIONS (CONSTANTS)
# =============================================================================

PERM_POS_SALES = "pos_sales"
PERM_INVENTORY_MANAGE = "inventory_manage"
PERM_CUSTOMER_MANAGE = "customer_manage"
PERM_EGG_COLLECTION = "egg_collection"
PERM_VENDOR_MANAGE = "vendor_manage"
PERM_REPORTS_VIEW = "reports_view"
PERM_CREDIT_APPROVE = "credit_approve"
PERM_CASH_HANDLE = "cash_handle"
PERM_STAFF_MANAGE = "staff_manage"

ALL_PERMISSIONS = frozenset({
    PERM_POS_SALES,
    PERM_INVENTORY_MANAGE,
    PERM_CUSTOMER_MANAGE,
    PERM_EGG_COLLECTION,
    PERM_VENDOR_MANAGE,
    PERM_REPORTS_VIEW,
    PERM_CREDIT_APPROVE,
    PERM_CASH_HANDLE,
    PERM_STAFF_MANAGE,
})

POSITION_DEFAULT_PERMISSIONS = {
    "ADMIN": ALL_PERMISSIONS,
    "MANAGER": ALL_PERMISSIONS - {PERM_STAFF_MANAGE},
    "SUPERVISOR": frozenset({
        PERM_POS_SALES, PERM_CUSTOMER_MANAGE, PERM_CREDIT_APPROVE,
        PERM_CASH_HANDLE, PERM_REPORTS_VIEW, PERM_INVENTORY_MANAGE,
    }),
    "CASHIER": frozenset({PERM_POS_SALES, PERM_CASH_HANDLE}),
    "COLLECTOR": frozenset({PERM_EGG_COLLECTION}),
}


@dataclass(frozen=True)
class LedgerContext:
    """Who is performing a ledger operation and what they may do."""
    staff_id: int
    permissions: frozenset = field(default_factory=frozenset)

    def has(self, permission: str) -> bool:
        return permission in self.permissions

    def require(self, permission: str) -> None:
        if permission not in self.permissions:
            raise PermissionDeniedError(
                f"Permission '{permission}' required",
                details={"required_permission": permission, "staff_id": self.staff_id},
            )


# =============================================================================
# PASSWORDS
# =============================================================================

def validate_password_strength(password: str) -> None:
    """Raise ValidationError unless the password meets the strength rules."""
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise ValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


# =============================================================================
# STAFF
# =============================================================================

def create_staff(
    *,
    username: str,
    password: str,
    first_name: str,
    last_name: str,
    position: str = "CASHIER",
    permissions: set[str] | None = None,
    employee_id: str | None = None,
    email: str | None = None,
) -> Staff:
    """Create a staff member; permissions default to the position's set."""
    if not username or not username.strip():
        raise ValidationError("username is required")
    if position not in POSITION_DEFAULT_PERMISSIONS:
        raise ValidationError(f"position must be one of {sorted(POSITION_DEFAULT_PERMISSIONS)}")

    perms = set(permissions) if permissions is not None else set(POSITION_DEFAULT_PERMISSIONS[position])
    unknown = perms - ALL_PERMISSIONS
    if unknown:
        raise ValidationError(f"Unknown permissions: {', '.join(sorted(unknown))}")

    if db.session.query(Staff).filter_by(username=username.strip()).first():
        raise ValidationError(f"Username '{username}' already exists")

    staff = Staff(
        username=username.strip(),
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        position=position,
        permissions=sorted(perms),
        employee_id=employee_id,
        email=email,
    )
    db.session.add(staff)
    db.session.commit()
    return staff


def get_staff(staff_id: int) -> Staff:
    staff = db.session.get(Staff, staff_id)
    if not staff:
        raise NotFoundError(f"Staff {staff_id} not found")
    return staff


def authenticate(username: str, password: str) -> Staff:
    """
    Credential check. Same error for unknown user and wrong password.
    """
    staff = db.session.query(Staff).filter_by(username=(username or "").strip()).first()
    if not staff or not verify_password(password or "", staff.password_hash):
        raise AuthenticationError("Invalid username or password")
    if not staff.is_active:
        raise AuthenticationError("Staff account is deactivated")

    staff.last_login_at = utcnow()
    db.session.commit()
    return staff


def context_for(staff: Staff) -> LedgerContext:
    return LedgerContext(staff_id=staff.id, permissions=frozenset(staff.permissions or []))


