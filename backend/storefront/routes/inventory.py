# Overview: Flask API routes for inventory; stock levels, history, restock and corrections.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StorefrontError, ValidationError
from ..decorators import with_actor
from ..services import inventory_service
from ..validation import MAX_QUANTITY, require_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

_MOVE_FIELDS = {"product_id", "variant_id", "location_id", "quantity", "quantity_change", "note"}


def _move_payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(data) - _MOVE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    return data


@inventory_bp.get("/stock")
def list_stock_route():
    """?location_id= for a franchise pool; central stock otherwise."""
    try:
        rows = inventory_service.list_stock(
            location_id=request.args.get("location_id", type=int),
            product_id=request.args.get("product_id", type=int),
        )
        return jsonify({"items": [r.to_dict() for r in rows]}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status


@inventory_bp.get("/history")
def stock_history_route():
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))
    rows = inventory_service.list_stock_history(
        product_id=request.args.get("product_id", type=int),
        variant_id=request.args.get("variant_id", type=int),
        location_id=request.args.get("location_id", type=int),
        order_id=request.args.get("order_id", type=int),
        limit=limit,
    )
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@inventory_bp.post("/restock")
@with_actor
def restock_route():
    """Body: {product_id, variant_id?, location_id?, quantity, note?}"""
    try:
        data = _move_payload()
        quantity = require_int(data, "quantity")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")

        entry = inventory_service.restock(
            product_id=require_int(data, "product_id"),
            variant_id=require_int(data, "variant_id", required=False),
            location_id=require_int(data, "location_id", required=False),
            quantity=quantity,
            actor=g.actor,
            note=data.get("note"),
        )
        return jsonify({"history": entry.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to restock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
@with_actor
def adjust_route():
    """Body: {product_id, variant_id?, location_id?, quantity_change (+/-), note}"""
    try:
        data = _move_payload()
        note = (data.get("note") or "").strip()
        if not note:
            raise ValidationError("note is required for adjustments")

        entry = inventory_service.adjust_stock(
            product_id=require_int(data, "product_id"),
            variant_id=require_int(data, "variant_id", required=False),
            location_id=require_int(data, "location_id", required=False),
            quantity_change=require_int(data, "quantity_change"),
            actor=g.actor,
            note=note,
        )
        return jsonify({"history": entry.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
