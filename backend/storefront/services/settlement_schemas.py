from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from ..errors import ValidationError


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

REQUEST_FIELDS = {
    "customer_email",
    "customer_id",
    "items",
    "declared_total",
    "delivery_info",
    "franchise_location_id",
}
ITEM_FIELDS = {"product_id", "variant_id", "quantity", "unit_price_snapshot", "unit_cost_snapshot"}
REQUIRED_ITEM_FIELDS = ("product_id", "quantity", "unit_price_snapshot", "unit_cost_snapshot")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


@dataclass(frozen=True)
class LineItemInput:
    """One validated line of a settlement request. Money is integer cents."""
    product_id: int
    quantity: int
    unit_price_snapshot: int
    unit_cost_snapshot: int
    variant_id: int | None = None

    @property
    def line_total(self) -> int:
        return self.unit_price_snapshot * self.quantity


@dataclass(frozen=True)
class SettlementRequest:
    customer_email: str
    items: tuple[LineItemInput, ...]
    declared_total: int
    customer_id: str | None = None
    franchise_location_id: int | None = None
    delivery_info: dict | None = field(default=None, compare=False)

    @property
    def computed_total(self) -> int:
        return sum(item.line_total for item in self.items)


def _parse_item(index: int, raw: Any) -> LineItemInput:
    if not isinstance(raw, dict):
        raise ValidationError(f"Line {index}: item must be an object", details={"line_number": index})

    unknown = set(raw) - ITEM_FIELDS
    if unknown:
        raise ValidationError(
            f"Line {index}: field not allowed: {', '.join(sorted(unknown))}",
            details={"line_number": index, "fields": sorted(unknown)},
        )
    missing = [name for name in REQUIRED_ITEM_FIELDS if raw.get(name) is None]
    if missing:
        raise ValidationError(
            f"Line {index}: missing required field(s): {', '.join(missing)}",
            details={"line_number": index, "fields": missing},
        )

    for name in ("product_id", "quantity", "unit_price_snapshot", "unit_cost_snapshot"):
        if not _is_int(raw[name]):
            raise ValidationError(
                f"Line {index}: {name} must be an integer",
                details={"line_number": index, "field": name},
            )

    variant_id = raw.get("variant_id")
    if variant_id is not None and not _is_int(variant_id):
        raise ValidationError(
            f"Line {index}: variant_id must be an integer",
            details={"line_number": index, "field": "variant_id"},
        )

    if raw["quantity"] <= 0:
        raise ValidationError(
            f"Line {index}: quantity must be greater than 0",
            details={"line_number": index, "field": "quantity"},
        )
    for name in ("unit_price_snapshot", "unit_cost_snapshot"):
        if raw[name] < 0:
            raise ValidationError(
                f"Line {index}: {name} cannot be negative",
                details={"line_number": index, "field": name},
            )

    return LineItemInput(
        product_id=raw["product_id"],
        variant_id=variant_id,
        quantity=raw["quantity"],
        unit_price_snapshot=raw["unit_price_snapshot"],
        unit_cost_snapshot=raw["unit_cost_snapshot"],
    )


def parse_settlement_request(payload: Any, *, require_total_match: bool = True) -> SettlementRequest:
    """
    Validate an inbound settlement request at the boundary.

    Unknown and missing fields are rejected; snapshots must be integer cents.
    With require_total_match, declared_total must equal the sum of
    unit_price_snapshot * quantity.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = set(payload) - REQUEST_FIELDS
    if unknown:
        raise ValidationError(
            f"Field not allowed: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )

    email = _to_text(payload.get("customer_email"))
    if not email:
        raise ValidationError("customer_email is required", details={"field": "customer_email"})
    if not EMAIL_RE.match(email):
        raise ValidationError("customer_email is not a valid email address", details={"field": "customer_email"})

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})
    items = tuple(_parse_item(index, raw) for index, raw in enumerate(raw_items, start=1))

    declared_total = payload.get("declared_total")
    if declared_total is None:
        raise ValidationError("declared_total is required", details={"field": "declared_total"})
    if not _is_int(declared_total) or declared_total < 0:
        raise ValidationError("declared_total must be a non-negative integer", details={"field": "declared_total"})

    franchise_location_id = payload.get("franchise_location_id")
    if franchise_location_id is not None and not _is_int(franchise_location_id):
        raise ValidationError("franchise_location_id must be an integer", details={"field": "franchise_location_id"})

    delivery_info = payload.get("delivery_info")
    if delivery_info is not None and not isinstance(delivery_info, dict):
        raise ValidationError("delivery_info must be an object", details={"field": "delivery_info"})

    request = SettlementRequest(
        customer_email=email.lower(),
        customer_id=_to_text(payload.get("customer_id")),
        items=items,
        declared_total=declared_total,
        franchise_location_id=franchise_location_id,
        delivery_info=delivery_info,
    )

    if require_total_match and request.computed_total != declared_total:
        raise ValidationError(
            "declared_total does not match the sum of line items",
            details={"declared_total": declared_total, "computed_total": request.computed_total},
        )
    return request
