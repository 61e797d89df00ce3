# Overview: Flask API routes for payment records; parses input and returns JSON responses.

# backend/agripos/routes/payments.py
"""
Payment Record API Routes

DESIGN:
- POST records a payment and applies it to the account balance in one unit
- PATCH edits notes / reference_number only

PAYMENT TYPES:
- CUSTOMER_PAYMENT: customer settles their balance (cannot exceed it)
- EGG_PAYMENT: cash paid to a farmer for eggs
- DEBIT: manual charge against an account
- VENDOR_PAYMENT: store settles a vendor balance
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import LedgerError
from ..services import payment_service
from agripos.time_utils import parse_iso_datetime


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
def record_payment_route():
    """
    Request body:
    {
        "account_id": 5,
        "payment_type": "CUSTOMER_PAYMENT",
        "amount_cents": 17280,
        "payment_method": "CASH",          // CASH, BANK_TRANSFER, CHECK, DIGITAL
        "reference_number": "CHK-1001",    // optional
        "notes": "...",                    // optional
        "payment_date": "2026-10-19T10:00:00Z"  // optional
    }

    Returns:
        201: payment record plus the updated account
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = [k for k in ("account_id", "payment_type", "amount_cents") if data.get(k) is None]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        try:
            payment_date = parse_iso_datetime(data.get("payment_date"))
        except ValueError:
            return jsonify({"error": "payment_date must be an ISO-8601 datetime"}), 400

        record = payment_service.record_payment(
            g.ledger_context,
            account_id=data["account_id"],
            payment_type=data["payment_type"],
            amount_cents=data["amount_cents"],
            payment_method=data.get("payment_method", payment_service.PAYMENT_METHOD_CASH),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
            payment_date=payment_date,
        )
        return jsonify({
            "payment": record.to_dict(),
            "account": record.account.to_dict(),
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<int:record_id>")
@require_auth
def get_payment_route(record_id: int):
    try:
        return jsonify(payment_service.get_payment_record(record_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@payments_bp.patch("/<int:record_id>")
@require_auth
def update_payment_route(record_id: int):
    """Only notes and reference_number are editable."""
    try:
        record = payment_service.update_payment_record(record_id, request.get_json(silent=True) or {})
        return jsonify(record.to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update payment record %s", record_id)
        return jsonify({"error": "Internal server error"}), 500
