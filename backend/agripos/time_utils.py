# Overview: UTC time helpers; the database stores naive UTC datetimes.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> naive UTC datetime.

    Blank input gives None. Strings without an offset are taken as UTC;
    a trailing Z or an explicit offset is converted. Raises ValueError for
    anything fromisoformat rejects.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a Z suffix; naive values are UTC."""
    if dt is None:
        return None
    return _naive_utc(dt).replace(microsecond=0).isoformat() + "Z"


def due_date_for(start: datetime, payment_terms_days: int) -> datetime:
    """Due date of a credit sale: start plus the account's payment terms."""
    return start + timedelta(days=payment_terms_days or 0)


def days_past(due: datetime, as_of: datetime) -> int:
    """Whole days `as_of` is past `due` (0 or negative when not yet due)."""
    return (as_of - due).days
