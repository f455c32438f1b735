# Overview: Landed-cost calculator and the admin operations around it.

"""
Landed-Cost Calculator

Turns supplier cost + freight + customs duty + VAT rates + desired margin into
a full cost breakdown and a suggested (VAT-exclusive) selling price.

    duty             = base_cost * duty_rate
    import_vat       = (base_cost + duty) * import_vat_rate
    total_landed     = base_cost + duty + import_vat + freight
    effective_cost   = total_landed - import_vat * reclaim_rate
    suggested_price  = effective_cost / (1 - margin)

Duty is charged on the supplier cost only. Import VAT is charged on the
duty-inclusive value. The reclaimable share of import VAT is removed from the
effective cost because it comes back from the revenue service; the margin is
solved against effective cost, not against the cash outlay.

calculate_cost_breakdown() is pure: no I/O, Decimal arithmetic, rounding to
cents only on the returned values.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Mapping

from ..extensions import db
from ..errors import InvalidInput, ValidationError
from ..models import CustomDutyRate, Product, ProductCostBreakdown, ProductVariant
from ..money import HUNDRED, quantize_money, to_cents, to_decimal
from .actor import Actor
from .audit_service import append_audit_event
from .catalog_service import get_product, get_variant


ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True)
class CostBreakdownInput:
    base_cost: Decimal
    custom_duty_rate: Decimal
    transport_cost_per_unit: Decimal = ZERO
    transport_cost_per_shipment: Decimal = ZERO
    import_vat_rate: Decimal = Decimal("15")
    sales_vat_rate: Decimal = Decimal("15")
    corporate_tax_rate: Decimal = Decimal("27")
    desired_profit_margin: Decimal = Decimal("30")
    total_products_in_shipment: int = 1
    product_cost_proportion: Decimal = ONE
    import_vat_reclaim_rate: Decimal = HUNDRED

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "CostBreakdownInput":
        """
        Validate a loose mapping (JSON body, CLI options) into calculator input.

        Raises InvalidInput for malformed or missing required fields. Keys that
        are present but None fall back to their defaults.
        """
        known = {f.name for f in fields(cls)}
        unknown = [k for k in payload if k not in known]
        if unknown:
            raise InvalidInput(f"Unknown field: {', '.join(sorted(unknown))}")

        def _dec(key: str, default: Decimal | None = None) -> Decimal | None:
            raw = payload.get(key)
            if raw is None:
                return default
            try:
                return to_decimal(raw, field=key)
            except ValueError as e:
                raise InvalidInput(str(e), details={"field": key})

        base_cost = _dec("base_cost")
        if base_cost is None or base_cost <= 0:
            raise InvalidInput(
                "base_cost is required and must be greater than 0",
                details={"field": "base_cost"},
            )

        duty_rate = _dec("custom_duty_rate")
        if duty_rate is None or duty_rate < 0:
            raise InvalidInput(
                "custom_duty_rate is required and must be >= 0",
                details={"field": "custom_duty_rate"},
            )

        values: dict[str, Any] = {"base_cost": base_cost, "custom_duty_rate": duty_rate}
        for key in (
            "transport_cost_per_unit",
            "transport_cost_per_shipment",
            "import_vat_rate",
            "sales_vat_rate",
            "corporate_tax_rate",
            "desired_profit_margin",
            "product_cost_proportion",
            "import_vat_reclaim_rate",
        ):
            value = _dec(key)
            if value is not None:
                values[key] = value

        raw_total = payload.get("total_products_in_shipment")
        if raw_total is not None:
            if isinstance(raw_total, bool):
                raise InvalidInput("total_products_in_shipment must be an integer")
            try:
                total = to_decimal(raw_total, field="total_products_in_shipment")
            except ValueError as e:
                raise InvalidInput(str(e))
            if total != total.to_integral_value():
                raise InvalidInput("total_products_in_shipment must be an integer")
            values["total_products_in_shipment"] = int(total)

        data = cls(**values)
        data.validate()
        return data

    def validate(self) -> None:
        if self.base_cost <= 0:
            raise InvalidInput("base_cost must be greater than 0", details={"field": "base_cost"})
        if self.custom_duty_rate < 0:
            raise InvalidInput("custom_duty_rate must be >= 0", details={"field": "custom_duty_rate"})
        for key in ("transport_cost_per_unit", "transport_cost_per_shipment"):
            if getattr(self, key) < 0:
                raise InvalidInput(f"{key} must be >= 0", details={"field": key})
        for key in ("import_vat_rate", "sales_vat_rate", "corporate_tax_rate", "import_vat_reclaim_rate"):
            value = getattr(self, key)
            if value < 0 or value > HUNDRED:
                raise InvalidInput(f"{key} must be between 0 and 100", details={"field": key})
        if self.desired_profit_margin < 0 or self.desired_profit_margin >= HUNDRED:
            raise InvalidInput(
                "desired_profit_margin must be >= 0 and < 100",
                details={"field": "desired_profit_margin"},
            )
        if self.total_products_in_shipment < 1:
            raise InvalidInput(
                "total_products_in_shipment must be >= 1",
                details={"field": "total_products_in_shipment"},
            )
        if self.product_cost_proportion < 0 or self.product_cost_proportion > 1:
            raise InvalidInput(
                "product_cost_proportion must be between 0 and 1",
                details={"field": "product_cost_proportion"},
            )


@dataclass(frozen=True)
class CostBreakdown:
    base_cost: Decimal
    transport_cost_per_unit: Decimal
    transport_cost_per_shipment: Decimal
    transport_cost_allocated_per_unit: Decimal
    custom_duty_rate: Decimal
    custom_duty_amount: Decimal
    import_vat_rate: Decimal
    import_vat_amount: Decimal
    import_vat_reclaimable: Decimal
    total_landed_cost: Decimal
    effective_cost: Decimal
    desired_profit_margin: Decimal
    suggested_selling_price: Decimal
    sales_vat_rate: Decimal
    sales_vat_amount: Decimal
    final_selling_price: Decimal
    profit_per_unit: Decimal
    corporate_tax_rate: Decimal
    corporate_tax_per_unit: Decimal
    net_profit_per_unit: Decimal

    def to_dict(self) -> dict:
        return {f.name: str(getattr(self, f.name)) for f in fields(self)}


def calculate_cost_breakdown(data: CostBreakdownInput | Mapping[str, Any]) -> CostBreakdown:
    """Compute the landed-cost breakdown and suggested selling price."""
    if not isinstance(data, CostBreakdownInput):
        data = CostBreakdownInput.from_mapping(data)
    else:
        data.validate()

    # Shared shipment freight: an explicit proportion wins, otherwise split evenly
    if data.product_cost_proportion < ONE:
        allocated_freight = data.transport_cost_per_shipment * data.product_cost_proportion
    else:
        allocated_freight = data.transport_cost_per_shipment / data.total_products_in_shipment

    duty = data.base_cost * data.custom_duty_rate / HUNDRED
    import_vat = (data.base_cost + duty) * data.import_vat_rate / HUNDRED
    reclaimable = import_vat * data.import_vat_reclaim_rate / HUNDRED

    total_landed = data.base_cost + duty + import_vat + data.transport_cost_per_unit + allocated_freight
    effective_cost = total_landed - reclaimable

    margin = data.desired_profit_margin / HUNDRED
    price = effective_cost / (ONE - margin)

    sales_vat = price * data.sales_vat_rate / HUNDRED
    profit = price - effective_cost
    corporate_tax = max(ZERO, profit) * data.corporate_tax_rate / HUNDRED

    return CostBreakdown(
        base_cost=quantize_money(data.base_cost),
        transport_cost_per_unit=quantize_money(data.transport_cost_per_unit),
        transport_cost_per_shipment=quantize_money(data.transport_cost_per_shipment),
        transport_cost_allocated_per_unit=quantize_money(allocated_freight),
        custom_duty_rate=data.custom_duty_rate,
        custom_duty_amount=quantize_money(duty),
        import_vat_rate=data.import_vat_rate,
        import_vat_amount=quantize_money(import_vat),
        import_vat_reclaimable=quantize_money(reclaimable),
        total_landed_cost=quantize_money(total_landed),
        effective_cost=quantize_money(effective_cost),
        desired_profit_margin=data.desired_profit_margin,
        suggested_selling_price=quantize_money(price),
        sales_vat_rate=data.sales_vat_rate,
        sales_vat_amount=quantize_money(sales_vat),
        final_selling_price=quantize_money(price + sales_vat),
        profit_per_unit=quantize_money(profit),
        corporate_tax_rate=data.corporate_tax_rate,
        corporate_tax_per_unit=quantize_money(corporate_tax),
        net_profit_per_unit=quantize_money(profit - corporate_tax),
    )


def calculate_product_cost_proportion(product_base_cost: Any, total_shipment_base_cost: Any) -> Decimal:
    """Share of a shipment's supplier cost attributable to one product (1 when unknown)."""
    total = to_decimal(total_shipment_base_cost, field="total_shipment_base_cost")
    if total == 0:
        return ONE
    return to_decimal(product_base_cost, field="product_base_cost") / total


# ---------------------------------------------------------------------------
# Custom duty rates
# ---------------------------------------------------------------------------

def list_duty_rates(include_inactive: bool = False) -> list[CustomDutyRate]:
    q = db.session.query(CustomDutyRate)
    if not include_inactive:
        q = q.filter(CustomDutyRate.is_active.is_(True))
    return q.order_by(CustomDutyRate.category.asc()).all()


def get_duty_rate(category: str | None) -> Decimal:
    """Duty rate (percent) for a product category; 0 when the category has none."""
    if not category:
        return ZERO
    row = (
        db.session.query(CustomDutyRate)
        .filter(CustomDutyRate.category == category, CustomDutyRate.is_active.is_(True))
        .first()
    )
    return Decimal(row.duty_rate) if row is not None else ZERO


def set_duty_rate(category: str, duty_rate: Any, *, actor: Actor, description: str | None = None) -> CustomDutyRate:
    category = (category or "").strip()
    if not category:
        raise ValidationError("category is required")
    try:
        rate = to_decimal(duty_rate, field="duty_rate")
    except ValueError as e:
        raise ValidationError(str(e))
    if rate < 0 or rate > HUNDRED:
        raise ValidationError("duty_rate must be between 0 and 100")

    row = db.session.query(CustomDutyRate).filter_by(category=category).first()
    if row is None:
        row = CustomDutyRate(category=category)
        db.session.add(row)
    row.duty_rate = rate
    row.is_active = True
    if description is not None:
        row.description = description
    db.session.flush()

    append_audit_event(
        event_type="duty_rate.updated",
        entity_type="custom_duty_rate",
        entity_id=row.id,
        actor=actor,
        payload={"category": category, "duty_rate": str(rate)},
    )
    db.session.commit()
    return row


def resolve_calculator_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Fill custom_duty_rate from the category table when the caller only sent a
    category. The category key itself is not calculator input.
    """
    data = dict(payload)
    category = data.pop("category", None)
    if data.get("custom_duty_rate") is None and category:
        data["custom_duty_rate"] = get_duty_rate(category)
    return data


# ---------------------------------------------------------------------------
# Persisted breakdowns
# ---------------------------------------------------------------------------

def _breakdown_query(product_id: int, variant_id: int | None):
    q = db.session.query(ProductCostBreakdown).filter(ProductCostBreakdown.product_id == product_id)
    if variant_id is None:
        return q.filter(ProductCostBreakdown.variant_id.is_(None))
    return q.filter(ProductCostBreakdown.variant_id == variant_id)


def get_cost_breakdown(product_id: int, variant_id: int | None = None) -> ProductCostBreakdown | None:
    return _breakdown_query(product_id, variant_id).first()


def save_cost_breakdown(
    *,
    product_id: int,
    variant_id: int | None,
    breakdown: CostBreakdown,
    actor: Actor,
    notes: str | None = None,
    apply_to_catalog: bool = True,
) -> ProductCostBreakdown:
    """
    Upsert the breakdown for a product/variant.

    With apply_to_catalog the effective cost becomes the catalog cost that
    settlement snapshots into order lines.
    """
    product: Product = get_product(product_id)
    variant: ProductVariant | None = get_variant(product, variant_id) if variant_id is not None else None

    row = _breakdown_query(product_id, variant_id).first()
    if row is None:
        row = ProductCostBreakdown(product_id=product_id, variant_id=variant_id)
        db.session.add(row)

    row.base_cost_cents = to_cents(breakdown.base_cost)
    row.transport_cost_per_unit_cents = to_cents(breakdown.transport_cost_per_unit)
    row.transport_cost_per_shipment_cents = to_cents(breakdown.transport_cost_per_shipment)
    row.transport_cost_allocated_per_unit_cents = to_cents(breakdown.transport_cost_allocated_per_unit)
    row.custom_duty_rate = breakdown.custom_duty_rate
    row.custom_duty_amount_cents = to_cents(breakdown.custom_duty_amount)
    row.import_vat_amount_cents = to_cents(breakdown.import_vat_amount)
    row.total_landed_cost_cents = to_cents(breakdown.total_landed_cost)
    row.effective_cost_cents = to_cents(breakdown.effective_cost)
    row.suggested_selling_price_cents = to_cents(breakdown.suggested_selling_price)
    row.desired_profit_margin = breakdown.desired_profit_margin
    row.calculated_by = actor.label
    row.notes = notes

    if apply_to_catalog:
        target = variant if variant is not None else product
        target.cost_cents = row.effective_cost_cents

    db.session.flush()
    append_audit_event(
        event_type="cost_breakdown.saved",
        entity_type="product",
        entity_id=product.id,
        actor=actor,
        payload={
            "variant_id": variant_id,
            "effective_cost_cents": row.effective_cost_cents,
            "suggested_selling_price_cents": row.suggested_selling_price_cents,
            "applied_to_catalog": apply_to_catalog,
        },
    )
    db.session.commit()
    return row
