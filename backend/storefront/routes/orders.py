# Overview: Flask API routes for orders; checkout settlement trigger and fulfilment status.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StorefrontError
from ..decorators import with_actor
from ..services import audit_service, order_service, settlement_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@with_actor
def create_order_route():
    """
    Settle a checkout request.

    Body: customer_email, customer_id?, items[{product_id, variant_id?, quantity,
    unit_price_snapshot, unit_cost_snapshot}], declared_total, delivery_info,
    franchise_location_id?  (all money in integer cents)

    201 {order_id, status, bookkeeping_pending}; errors {error, kind, details}.
    """
    try:
        data = request.get_json(silent=True)
        result = settlement_service.settle_order(data, actor=g.actor)
        return jsonify(
            {
                "order_id": result.order_id,
                "status": result.status,
                "bookkeeping_pending": result.bookkeeping_pending,
            }
        ), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to settle order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        tasks = settlement_service.list_tasks(order_id=order_id)
        events = audit_service.list_audit_events(order_id=order_id)
        return jsonify({
            "order": order.to_dict(include_lines=True),
            "settlement_tasks": [t.to_dict() for t in tasks],
            "audit_events": [e.to_dict() for e in events],
        }), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.post("/<int:order_id>/status")
@with_actor
def transition_order_route(order_id: int):
    """Body: {"status": "...", "reason": "..."}; reason is required to cancel."""
    try:
        data = request.get_json(silent=True) or {}
        to_status = data.get("status")
        if not to_status:
            return jsonify({"error": "status required", "kind": "validation_error", "details": {}}), 400

        order = order_service.transition_order(order_id, to_status, actor=g.actor, reason=data.get("reason"))
        return jsonify({"order": order.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500
