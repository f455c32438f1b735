# Overview: Flask API routes for the landed-cost pricing calculator; admin tooling only.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import NotFound, StorefrontError, ValidationError
from ..models import CustomDutyRate
from ..decorators import with_actor
from ..services import catalog_service, pricing_service
from ..validation import DUTY_RATE_POLICY, enforce_rules_duty_rate, validate_payload


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/admin/pricing-calculator")


@pricing_bp.post("/calculate")
def calculate_route():
    """
    Body: calculator fields (major currency units / percentages). A 'category'
    may stand in for custom_duty_rate; the rate is then looked up.
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        breakdown = pricing_service.calculate_cost_breakdown(pricing_service.resolve_calculator_payload(data))
        return jsonify({"breakdown": breakdown.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to calculate cost breakdown")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.get("/duty-rates")
def list_duty_rates_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    rows = pricing_service.list_duty_rates(include_inactive=include_inactive)
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@pricing_bp.get("/duty-rates/<string:category>")
def get_duty_rate_route(category: str):
    rate = pricing_service.get_duty_rate(category)
    return jsonify({"category": category, "duty_rate": str(rate)}), 200


@pricing_bp.put("/duty-rates/<string:category>")
@with_actor
def set_duty_rate_route(category: str):
    try:
        patch = validate_payload(
            model=CustomDutyRate,
            payload=request.get_json(silent=True),
            policy=DUTY_RATE_POLICY,
            partial=False,
        )
        enforce_rules_duty_rate(patch)
        row = pricing_service.set_duty_rate(
            category,
            patch["duty_rate"],
            actor=g.actor,
            description=patch.get("description"),
        )
        return jsonify({"duty_rate": row.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to set duty rate")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.get("/breakdowns/<int:product_id>")
def get_breakdown_route(product_id: int):
    try:
        variant_id = request.args.get("variant_id", type=int)
        row = pricing_service.get_cost_breakdown(product_id, variant_id)
        if row is None:
            raise NotFound(
                f"No cost breakdown saved for product {product_id}",
                details={"product_id": product_id, "variant_id": variant_id},
            )
        return jsonify({"breakdown": row.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status


@pricing_bp.put("/breakdowns/<int:product_id>")
@with_actor
def save_breakdown_route(product_id: int):
    """
    Body: {"inputs": {...calculator fields...}, "variant_id": null,
           "notes": "...", "apply_to_catalog": true}

    Without custom_duty_rate the product's category rate is used.
    """
    try:
        data = request.get_json(silent=True) or {}
        allowed = {"inputs", "variant_id", "notes", "apply_to_catalog"}
        unknown = set(data) - allowed
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        inputs = data.get("inputs")
        if not isinstance(inputs, dict):
            raise ValidationError("inputs must be an object")

        variant_id = data.get("variant_id")
        if variant_id is not None and (not isinstance(variant_id, int) or isinstance(variant_id, bool)):
            raise ValidationError("variant_id must be an integer")

        product = catalog_service.get_product(product_id)
        inputs = dict(inputs)
        inputs.setdefault("category", product.category)
        breakdown = pricing_service.calculate_cost_breakdown(pricing_service.resolve_calculator_payload(inputs))

        row = pricing_service.save_cost_breakdown(
            product_id=product.id,
            variant_id=variant_id,
            breakdown=breakdown,
            actor=g.actor,
            notes=data.get("notes"),
            apply_to_catalog=bool(data.get("apply_to_catalog", True)),
        )
        return jsonify({"breakdown": row.to_dict(), "calculated": breakdown.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to save cost breakdown")
        return jsonify({"error": "Internal server error"}), 500
