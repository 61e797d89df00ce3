# Overview: Error taxonomy shared by the ledger services and API routes.

"""
Ledger error classes.

Every service failure that a caller is expected to handle is a LedgerError
subclass carrying a plain-language message plus a ``details`` dict. Routes
turn them into JSON with ``to_dict()`` and ``http_status``.

- ValidationError: bad input or a rule violation; nothing was written.
- InsufficientCreditError: credit gate refused a sale; nothing was written.
- InsufficientStockError: a cart line exceeds stock on hand.
- NotFoundError: an account/product/staff/record id does not resolve.
- ConsistencyError: a storage step failed part-way through a unit of work.
  The unit has been rolled back; the context is logged for reconciliation.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for classified ledger failures."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(LedgerError):
    """400-level input problem."""


class InsufficientStockError(ValidationError):
    http_status = 409


class InsufficientCreditError(LedgerError):
    http_status = 409

    def __init__(self, message: str, *, available_cents: int, requested_cents: int, details: dict | None = None):
        merged = {"available_cents": available_cents, "requested_cents": requested_cents}
        merged.update(details or {})
        super().__init__(message, merged)
        self.available_cents = available_cents
        self.requested_cents = requested_cents


class NotFoundError(LedgerError):
    http_status = 404


class ConsistencyError(LedgerError):
    http_status = 500


class AuthenticationError(LedgerError):
    http_status = 401


class PermissionDeniedError(LedgerError):
    http_status = 403
