from __future__ import annotations

from ..extensions import db
from agripos.time_utils import to_utc_z, utcnow


class Staff(db.Model):
    """
    Store employee who can sign in and is attributed on every ledger event.

    permissions holds permission codes (see auth_service.ALL_PERMISSIONS).
    """
    __tablename__ = "staff"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(32), nullable=True, unique=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    position = db.Column(db.String(16), nullable=False, default="CASHIER")  # MANAGER, CASHIER, COLLECTOR, ADMIN, SUPERVISOR
    permissions = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "position": self.position,
            "permissions": sorted(self.permissions or []),
            "is_active": self.is_active,
            "last_login_at": to_utc_z(self.last_login_at),
            "created_at": to_utc_z(self.created_at),
        }


class StaffSession(db.Model):
    """
    Sign-in session for a staff member.

    Only the SHA-256 hash of the bearer token is stored. A session ends at
    expires_at, after an idle gap, on logout, or when the staff member is
    deactivated; ended sessions keep is_revoked and the reason.
    """
    __tablename__ = "staff_sessions"
    __table_args__ = (
        db.Index("ix_staff_sessions_staff_active", "staff_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(64), nullable=True)

    staff = db.relationship("Staff")

    def revoke(self, reason: str, at) -> None:
        self.is_revoked = True
        self.revoked_at = at
        self.revoked_reason = reason
