# Overview: Flask API routes for egg collections; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import LedgerError
from ..services import egg_collection_service
from ..services.auth_service import (
    PERM_CASH_HANDLE, PERM_CUSTOMER_MANAGE, PERM_EGG_COLLECTION, PERM_REPORTS_VIEW,
)
from ..services.egg_collection_service import CollectionRequest
from agripos.time_utils import parse_iso_datetime


egg_collections_bp = Blueprint("egg_collections", __name__, url_prefix="/api/egg-collections")


@egg_collections_bp.post("")
@require_auth
@require_permission(PERM_EGG_COLLECTION)
def record_collection_route():
    """
    Record an egg collection from a farmer.

    Request body:
    {
        "farmer_id": 3,
        "route_id": 1,   // optional
        "hen_eggs": {"small": 24, "medium": 48, "large": 36, "extra_large": 12, "damaged": 2},
        "duck_eggs": {"small": 12, "medium": 18, "large": 6, "damaged": 0},
        "hen_egg_price_cents": 250,    // per dozen
        "duck_egg_price_cents": 400,   // per dozen
        "quality_notes": "..."
    }
    """
    try:
        collection_request = CollectionRequest.from_payload(request.get_json(silent=True))
        result = egg_collection_service.record_collection(g.ledger_context, collection_request)
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record egg collection")
        return jsonify({"error": "Internal server error"}), 500


@egg_collections_bp.get("")
@require_auth
def list_collections_route():
    """Query parameters: farmer_id, limit (newest first)."""
    collections = egg_collection_service.list_collections(
        farmer_id=request.args.get("farmer_id", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"items": [c.to_dict() for c in collections], "count": len(collections)})


@egg_collections_bp.get("/<int:collection_id>")
@require_auth
def get_collection_route(collection_id: int):
    try:
        return jsonify(egg_collection_service.get_collection(collection_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@egg_collections_bp.post("/value")
@require_auth
def value_collection_route():
    """Price a collection without recording it (same body as POST /)."""
    try:
        data = request.get_json(silent=True) or {}
        data.setdefault("farmer_id", None)
        req = CollectionRequest.from_payload(data)
        valuation = egg_collection_service.value_collection(
            req.hen_eggs, req.duck_eggs, req.hen_egg_price_cents, req.duck_egg_price_cents
        )
        return jsonify(valuation.to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@egg_collections_bp.get("/unpaid/<int:farmer_id>")
@require_auth
def unpaid_collections_route(farmer_id: int):
    try:
        collections = egg_collection_service.list_unpaid_collections(farmer_id)
        return jsonify({
            "items": [c.to_dict() for c in collections],
            "count": len(collections),
            "total_value_cents": sum(c.total_value_cents for c in collections),
        })
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@egg_collections_bp.post("/pay")
@require_auth
@require_permission(PERM_CASH_HANDLE)
def pay_collections_route():
    """
    Settle unpaid collections (one EGG_PAYMENT each).

    Request body:
    {
        "collection_ids": [1, 2, 3],
        "payment_method": "CASH",
        "reference_number": "..."
    }

    Returns 200 with per-collection "paid" and "failed" lists.
    """
    try:
        data = request.get_json(silent=True) or {}
        collection_ids = data.get("collection_ids")
        if not isinstance(collection_ids, list):
            return jsonify({"error": "collection_ids must be a list"}), 400
        result = egg_collection_service.pay_collections(
            g.ledger_context,
            collection_ids,
            payment_method=data.get("payment_method", "CASH"),
            reference_number=data.get("reference_number"),
        )
        return jsonify(result)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to pay egg collections")
        return jsonify({"error": "Internal server error"}), 500


@egg_collections_bp.get("/summary")
@require_auth
@require_permission(PERM_REPORTS_VIEW)
def collection_summary_route():
    """Query parameters: start, end (ISO-8601, inclusive), route_id."""
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    if start is None or end is None:
        return jsonify({"error": "start and end are required"}), 400
    return jsonify(egg_collection_service.collection_summary(
        start, end, route_id=request.args.get("route_id", type=int)
    ))


@egg_collections_bp.get("/routes")
@require_auth
def list_routes_route():
    routes = egg_collection_service.list_routes()
    return jsonify({"items": [r.to_dict() for r in routes], "count": len(routes)})


@egg_collections_bp.post("/routes")
@require_auth
@require_permission(PERM_CUSTOMER_MANAGE)
def create_route_route():
    """Request body: {"name": "North loop", "farmer_ids": [3, 4], "description": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        route = egg_collection_service.create_route(
            data.get("name"),
            farmer_ids=data.get("farmer_ids"),
            description=data.get("description"),
        )
        return jsonify(route.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
