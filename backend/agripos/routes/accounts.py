# Overview: Flask API routes for customer and vendor accounts; parses input and returns JSON responses.

"""
Account Routes

SECURITY: All routes require authentication.
- Creating/updating customer accounts requires customer_manage
- Creating/updating vendor accounts requires vendor_manage

Balances are read-only here; they move only through sales, payments and
egg collections.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import LedgerError
from ..models.accounts import ACCOUNT_KIND_VENDOR
from ..services import account_service, ledger_service, payment_service, sales_service
from ..services.auth_service import PERM_CUSTOMER_MANAGE, PERM_VENDOR_MANAGE


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


def _manage_permission(kind: str | None) -> str:
    return PERM_VENDOR_MANAGE if kind == ACCOUNT_KIND_VENDOR else PERM_CUSTOMER_MANAGE


def _limit_arg(default: int = 100) -> int:
    limit = request.args.get("limit", default, type=int)
    return max(1, min(limit, 500))


@accounts_bp.get("")
@require_auth
def list_accounts_route():
    """
    Query parameters:
    - kind: FARMER | REGULAR | WHOLESALE | VENDOR
    - include_inactive: Include inactive accounts (default: false)
    """
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        accounts = account_service.list_accounts(
            kind=request.args.get("kind"),
            active_only=not include_inactive,
        )
        return jsonify({"items": [a.to_dict() for a in accounts], "count": len(accounts)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@accounts_bp.post("")
@require_auth
def create_account_route():
    """
    Create a customer or vendor account.

    Request body:
    {
        "kind": "FARMER",                  // required
        "name": "Green Valley Farm",       // required
        "credit_limit_cents": 1500000,     // optional
        "payment_terms_days": 30,          // optional
        "opening_balance_cents": 0,        // optional, signed
        "contact_person": "...", "phone": "...", "email": "...", "address": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        g.ledger_context.require(_manage_permission(data.get("kind")))
        account = account_service.create_account(data, staff_id=g.ledger_context.staff_id)
        return jsonify(account.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/<int:account_id>")
@require_auth
def get_account_route(account_id: int):
    try:
        return jsonify(account_service.get_account(account_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@accounts_bp.patch("/<int:account_id>")
@require_auth
def update_account_route(account_id: int):
    """Profile, credit limit and payment terms only."""
    try:
        account = account_service.get_account(account_id)
        g.ledger_context.require(_manage_permission(account.kind))
        account = account_service.update_account(account_id, request.get_json(silent=True) or {})
        return jsonify(account.to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update account %s", account_id)
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/<int:account_id>/credit")
@require_auth
def account_credit_route(account_id: int):
    """Limit, balance, available credit, payable and aging for one account."""
    try:
        return jsonify(account_service.credit_summary(account_id))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@accounts_bp.get("/<int:account_id>/transactions")
@require_auth
def account_transactions_route(account_id: int):
    try:
        txns = sales_service.list_transactions(account_id=account_id, limit=_limit_arg())
        return jsonify({"items": [t.to_dict(include_items=False) for t in txns], "count": len(txns)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@accounts_bp.get("/<int:account_id>/payments")
@require_auth
def account_payments_route(account_id: int):
    try:
        records = payment_service.list_payment_records(
            account_id=account_id,
            payment_type=request.args.get("type"),
            limit=_limit_arg(),
        )
        return jsonify({"items": [r.to_dict() for r in records], "count": len(records)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@accounts_bp.get("/<int:account_id>/ledger")
@require_auth
def account_ledger_route(account_id: int):
    """Ledger entries (newest first) plus the reconciliation result."""
    try:
        reconciliation = ledger_service.reconcile_account(account_id)
        entries = ledger_service.account_history(account_id, limit=_limit_arg(200))
        return jsonify({
            "items": [e.to_dict() for e in entries],
            "reconciliation": reconciliation,
        })
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
