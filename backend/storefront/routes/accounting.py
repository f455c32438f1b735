# Overview: Flask API routes for accounting; ledger summary, product profitability, tax configuration and settlement tasks.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StorefrontError, ValidationError
from ..decorators import with_actor
from ..services import ledger_service, order_service, settlement_service, tax_service

"""
Time semantics:
- start / end accept ISO-8601 datetimes or bare dates; a bare end date covers the whole day.
- range=today|week|month|year|all picks the start when start is not given.
- Without bounds or range the summary covers the last 30 days; products-profit defaults to range=month.
"""

accounting_bp = Blueprint("accounting", __name__, url_prefix="/api/admin/accounting")

_BAD_PERIOD = {
    "error": "start and end must be ISO-8601 dates with start before end, range one of today|week|month|year|all",
    "kind": "validation_error",
    "details": {},
}


@accounting_bp.get("/summary")
def summary_route():
    try:
        summary = ledger_service.summarize(
            request.args.get("start"),
            request.args.get("end"),
            range_name=request.args.get("range"),
        )
        return jsonify(summary), 200
    except ValueError:
        return jsonify(_BAD_PERIOD), 400


@accounting_bp.get("/products-profit")
def products_profit_route():
    try:
        report = ledger_service.products_profit(
            request.args.get("start"),
            request.args.get("end"),
            range_name=request.args.get("range", "month"),
        )
        return jsonify(report), 200
    except ValueError:
        return jsonify(_BAD_PERIOD), 400


@accounting_bp.post("/orders/<int:order_id>/recompute")
def recompute_route(order_id: int):
    """Recompute the ledger row for an order with the active tax configuration."""
    try:
        order = order_service.get_order(order_id)
        tx = ledger_service.compute_and_record(order)
        return jsonify({"transaction": tx.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to recompute financial transaction")
        return jsonify({"error": "Internal server error"}), 500


@accounting_bp.get("/tax-config")
def get_tax_config_route():
    return jsonify({"tax_config": tax_service.get_active_tax_config().to_dict()}), 200


@accounting_bp.put("/tax-config")
@with_actor
def set_tax_config_route():
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        row = tax_service.set_tax_config(data, actor=g.actor)
        return jsonify({"tax_config": row.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update tax configuration")
        return jsonify({"error": "Internal server error"}), 500


@accounting_bp.get("/settlement-tasks")
def list_tasks_route():
    try:
        limit = request.args.get("limit", default=200, type=int)
        limit = max(1, min(limit, 500))
        tasks = settlement_service.list_tasks(
            status=request.args.get("status"),
            order_id=request.args.get("order_id", type=int),
            limit=limit,
        )
        return jsonify({"items": [t.to_dict() for t in tasks]}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status


@accounting_bp.post("/settlement-tasks/replay")
@with_actor
def replay_tasks_route():
    """Body (optional): {"order_id": 123}"""
    try:
        data = request.get_json(silent=True) or {}
        order_id = data.get("order_id")
        if order_id is not None and (not isinstance(order_id, int) or isinstance(order_id, bool)):
            raise ValidationError("order_id must be an integer")

        tasks = settlement_service.replay_tasks(order_id, actor=g.actor)
        return jsonify({"items": [t.to_dict() for t in tasks]}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to replay settlement tasks")
        return jsonify({"error": "Internal server error"}), 500


@accounting_bp.post("/settlement-tasks/recover")
@with_actor
def recover_orders_route():
    """
    Finish or flag orders whose settlement was interrupted after stock moved.

    Body (optional): {"grace_seconds": 300}
    """
    try:
        data = request.get_json(silent=True) or {}
        grace = data.get("grace_seconds")
        if grace is not None and (not isinstance(grace, int) or isinstance(grace, bool) or grace < 0):
            raise ValidationError("grace_seconds must be a non-negative integer")

        orders = settlement_service.recover_unfinished_orders(actor=g.actor, grace_seconds=grace)
        return jsonify({"items": [o.to_dict() for o in orders]}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to recover unfinished orders")
        return jsonify({"error": "Internal server error"}), 500
