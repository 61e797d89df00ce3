# Overview: Flask API routes for products and stock; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import LedgerError
from ..services import inventory_service
from ..services.auth_service import PERM_INVENTORY_MANAGE


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        products = inventory_service.list_products(
            product_type=request.args.get("type"),
            active_only=not include_inactive,
        )
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.post("")
@require_auth
@require_permission(PERM_INVENTORY_MANAGE)
def create_product_route():
    try:
        product = inventory_service.create_product(request.get_json(silent=True) or {})
        return jsonify(product.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify(inventory_service.get_product(product_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission(PERM_INVENTORY_MANAGE)
def update_product_route(product_id: int):
    """Catalogue fields only; stock is changed through POST /<id>/stock."""
    try:
        product = inventory_service.update_product(product_id, request.get_json(silent=True) or {})
        return jsonify(product.to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_permission(PERM_INVENTORY_MANAGE)
def adjust_stock_route(product_id: int):
    """
    Adjust stock by a signed delta.

    Request body: {"delta": -5}
    Returns 409 if the adjustment would take stock below zero.
    """
    try:
        data = request.get_json(silent=True) or {}
        if "delta" not in data:
            return jsonify({"error": "delta required"}), 400
        product = inventory_service.update_product_stock(product_id, data["delta"])
        current_app.logger.info("Stock adjusted: product=%s delta=%s", product_id, data["delta"])
        return jsonify(product.to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500
