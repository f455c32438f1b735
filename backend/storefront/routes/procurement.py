# Overview: Flask API routes for the procurement queue; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StorefrontError, ValidationError
from ..models import ProcurementQueueItem
from ..decorators import with_actor
from ..services import procurement_service
from ..validation import PROCUREMENT_CREATE_POLICY, enforce_rules_procurement, require_int, validate_payload


procurement_bp = Blueprint("procurement", __name__, url_prefix="/api/admin/procurement-queue")


@procurement_bp.get("")
def list_queue_route():
    try:
        limit = request.args.get("limit", default=200, type=int)
        limit = max(1, min(limit, 500))
        items = procurement_service.list_queue(
            status=request.args.get("status"),
            location_id=request.args.get("location_id", type=int),
            limit=limit,
        )
        return jsonify({"items": [i.to_dict() for i in items]}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status


@procurement_bp.post("")
@with_actor
def add_demand_route():
    """Manual demand. Merges into the pending row for the same product/variant/location."""
    try:
        patch = validate_payload(
            model=ProcurementQueueItem,
            payload=request.get_json(silent=True),
            policy=PROCUREMENT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_procurement(patch)

        item = procurement_service.enqueue_demand(
            patch["product_id"],
            patch.get("variant_id"),
            patch["location_id"],
            patch["quantity_needed"],
            actor=g.actor,
            priority=patch.get("priority") or "normal",
            notes=patch.get("notes"),
        )
        return jsonify({"item": item.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add procurement demand")
        return jsonify({"error": "Internal server error"}), 500


@procurement_bp.post("/<int:item_id>/status")
@with_actor
def transition_item_route(item_id: int):
    """Body: {"status": "ordered|received|cancelled", "restock": false, "quantity_received": null}"""
    try:
        data = request.get_json(silent=True) or {}
        to_status = data.get("status")
        if not to_status:
            raise ValidationError("status required")
        restock = data.get("restock", False)
        if not isinstance(restock, bool):
            raise ValidationError("restock must be a boolean")

        item = procurement_service.transition_item(
            item_id,
            to_status,
            actor=g.actor,
            restock=restock,
            quantity_received=require_int(data, "quantity_received", required=False),
        )
        return jsonify({"item": item.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update procurement item")
        return jsonify({"error": "Internal server error"}), 500
