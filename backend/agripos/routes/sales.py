# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/agripos/routes/sales.py
"""
Sales API Routes

DESIGN:
- POST /api/sales runs the whole sale (transaction, credit, stock) as one unit
- Prices come from the product and the customer's tier, never the client
- Refunds create a REFUND transaction linked to the original

ERRORS:
- 400 validation, 403 permission, 404 unknown id
- 409 insufficient credit or stock (nothing was written)
- 500 storage failure (rolled back)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import LedgerError
from ..services import sales_service
from ..services.auth_service import PERM_POS_SALES, PERM_REPORTS_VIEW
from ..services.sales_service import SaleRequest
from agripos.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission(PERM_POS_SALES)
def create_sale_route():
    """
    Process a sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],
        "payment_method": "CREDIT",      // CASH, CREDIT, BANK_TRANSFER, CHECK, DIGITAL
        "customer_id": 5,                // required for CREDIT
        "discount_cents": 0,             // optional
        "notes": "..."                   // optional
    }

    Returns:
        201: {"transaction": {...}, "warnings": [...]}
    """
    try:
        sale_request = SaleRequest.from_payload(request.get_json(silent=True))
        result = sales_service.process_sale(g.ledger_context, sale_request)
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission(PERM_REPORTS_VIEW)
def list_sales_route():
    try:
        limit = max(1, min(request.args.get("limit", 100, type=int), 500))
        txns = sales_service.list_transactions(
            account_id=request.args.get("account_id", type=int),
            limit=limit,
        )
        return jsonify({"items": [t.to_dict(include_items=False) for t in txns], "count": len(txns)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.get("/summary")
@require_auth
@require_permission(PERM_REPORTS_VIEW)
def sales_summary_route():
    """Query parameters: start, end (ISO-8601, end exclusive)."""
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    return jsonify(sales_service.sales_summary(start, end))


@sales_bp.get("/<int:transaction_id>")
@require_auth
def get_sale_route(transaction_id: int):
    try:
        return jsonify(sales_service.get_transaction(transaction_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.post("/<int:transaction_id>/refund")
@require_auth
def refund_sale_route(transaction_id: int):
    """
    Refund all or part of a sale.

    Request body:
    {
        "amount_cents": 1000,   // optional, defaults to the full refundable amount
        "reason": "Damaged bag"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        refund = sales_service.refund_sale(
            g.ledger_context,
            transaction_id,
            amount_cents=data.get("amount_cents"),
            reason=data.get("reason"),
        )
        return jsonify(refund.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to refund transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500
