# Overview: Staff sign-in sessions; issues bearer tokens and turns them back into a LedgerContext.

"""
Session Service

A successful sign-in creates a StaffSession row and hands the client a random
bearer token. The database stores only the token's SHA-256 hash, so a leaked
table does not leak usable tokens.

SECURITY FEATURES:
- 32 random bytes per token (secrets.token_hex)
- Absolute lifetime SESSION_MAX_AGE seconds (default 12h)
- Idle lifetime SESSION_IDLE_TIMEOUT seconds (default 2h), auto-revoked
- Revoked on logout and when the staff member is deactivated
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Staff, StaffSession
from .auth_service import LedgerContext, context_for
from agripos.time_utils import utcnow


DEFAULT_MAX_AGE = 12 * 60 * 60
DEFAULT_IDLE_TIMEOUT = 2 * 60 * 60


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy, so a fast hash is enough
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _seconds(key: str, default: int) -> timedelta:
    return timedelta(seconds=int(current_app.config.get(key, default)))


def create_session(
    staff: Staff,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[StaffSession, str]:
    """
    Open a session for an authenticated staff member.

    Returns (session_record, plaintext_token); the plaintext is never stored.
    """
    token = generate_token()
    now = utcnow()

    session = StaffSession(
        staff_id=staff.id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _seconds("SESSION_MAX_AGE", DEFAULT_MAX_AGE),
        user_agent=(user_agent or None) and user_agent[:255],
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> LedgerContext | None:
    """
    Resolve a bearer token to the LedgerContext of its staff member.

    Returns None when the token is unknown, expired, revoked, idle too long,
    or belongs to a deactivated staff member. Touches last_used_at on success.
    """
    now = utcnow()
    session = db.session.query(StaffSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _seconds("SESSION_IDLE_TIMEOUT", DEFAULT_IDLE_TIMEOUT):
        session.revoke("Idle timeout", now)
        db.session.commit()
        return None

    staff = session.staff
    if not staff or not staff.is_active:
        session.revoke("Staff deactivated", now)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return context_for(staff)


def revoke_session(token: str, reason: str = "Logout") -> bool:
    """Revoke one session. Returns False if the token is unknown or already revoked."""
    session = db.session.query(StaffSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    session.revoke(reason, utcnow())
    db.session.commit()
    return True


def revoke_all_sessions(staff_id: int, reason: str, *, commit: bool = True) -> int:
    """
    End every open session of a staff member (password reset, deactivation).

    Returns how many were revoked.
    """
    now = utcnow()
    sessions = db.session.query(StaffSession).filter_by(staff_id=staff_id, is_revoked=False).all()
    for session in sessions:
        session.revoke(reason, now)
    if commit:
        db.session.commit()
    return len(sessions)
