"""
Landed-cost calculator tests: duty/VAT cascade, freight allocation, margin
equation, input validation, duty-rate lookup and saved breakdowns.
"""

from decimal import Decimal

import pytest

from storefront.errors import InvalidInput, ProductNotFound
from storefront.models import ProductCostBreakdown
from storefront.services import pricing_service
from storefront.services.pricing_service import (
    CostBreakdownInput,
    calculate_cost_breakdown,
    calculate_product_cost_proportion,
)


def test_duty_and_import_vat_cascade():
    result = calculate_cost_breakdown({"base_cost": 100, "custom_duty_rate": 10, "import_vat_rate": 15})

    assert result.custom_duty_amount == Decimal("10.00")
    # VAT base is duty-inclusive: (100 + 10) * 15%
    assert result.import_vat_amount == Decimal("16.50")
    assert result.total_landed_cost == Decimal("126.50")
    assert result.effective_cost == Decimal("110.00")


def test_suggested_price_satisfies_margin_equation():
    result = calculate_cost_breakdown({"base_cost": 100, "custom_duty_rate": 10, "desired_profit_margin": 30})

    assert result.suggested_selling_price == Decimal("157.14")
    margin = (result.suggested_selling_price - result.effective_cost) / result.suggested_selling_price
    assert abs(margin - Decimal("0.30")) < Decimal("0.0001")


def test_sales_vat_and_corporate_tax_per_unit():
    result = calculate_cost_breakdown({"base_cost": 100, "custom_duty_rate": 10})

    assert result.sales_vat_amount == Decimal("23.57")
    assert result.final_selling_price == Decimal("180.71")
    assert result.profit_per_unit == Decimal("47.14")
    assert result.corporate_tax_per_unit == Decimal("12.73")
    assert result.net_profit_per_unit == Decimal("34.41")


def test_defaults_apply_when_rates_omitted():
    data = CostBreakdownInput.from_mapping({"base_cost": "50", "custom_duty_rate": "0"})

    assert data.import_vat_rate == Decimal("15")
    assert data.sales_vat_rate == Decimal("15")
    assert data.corporate_tax_rate == Decimal("27")
    assert data.desired_profit_margin == Decimal("30")
    assert data.total_products_in_shipment == 1
    assert data.import_vat_reclaim_rate == Decimal("100")


def test_shipment_freight_split_evenly_without_proportion():
    result = calculate_cost_breakdown({
        "base_cost": 100,
        "custom_duty_rate": 0,
        "transport_cost_per_unit": 5,
        "transport_cost_per_shipment": 500,
        "total_products_in_shipment": 10,
    })

    assert result.transport_cost_allocated_per_unit == Decimal("50.00")
    # freight is outside the duty base
    assert result.custom_duty_amount == Decimal("0.00")
    assert result.total_landed_cost == Decimal("100") + Decimal("15.00") + Decimal("5") + Decimal("50")


def test_shipment_freight_allocated_by_cost_proportion():
    result = calculate_cost_breakdown({
        "base_cost": 100,
        "custom_duty_rate": 0,
        "transport_cost_per_shipment": 500,
        "total_products_in_shipment": 10,
        "product_cost_proportion": "0.2",
    })

    assert result.transport_cost_allocated_per_unit == Decimal("100.00")


def test_partial_import_vat_reclaim_raises_effective_cost():
    result = calculate_cost_breakdown({
        "base_cost": 100,
        "custom_duty_rate": 10,
        "import_vat_reclaim_rate": 50,
    })

    assert result.import_vat_reclaimable == Decimal("8.25")
    assert result.effective_cost == Decimal("118.25")


@pytest.mark.parametrize(
    "payload",
    [
        {"base_cost": 0, "custom_duty_rate": 10},
        {"base_cost": -5, "custom_duty_rate": 10},
        {"custom_duty_rate": 10},
        {"base_cost": 100},
        {"base_cost": 100, "custom_duty_rate": -1},
        {"base_cost": 100, "custom_duty_rate": 10, "desired_profit_margin": 100},
        {"base_cost": 100, "custom_duty_rate": 10, "total_products_in_shipment": 0},
        {"base_cost": 100, "custom_duty_rate": 10, "product_cost_proportion": "1.5"},
        {"base_cost": "abc", "custom_duty_rate": 10},
        {"base_cost": "NaN", "custom_duty_rate": 10},
        {"base_cost": float("nan"), "custom_duty_rate": 10},
        {"base_cost": 100, "custom_duty_rate": "Infinity"},
        {"base_cost": 100, "custom_duty_rate": 10, "transport_cost_per_unit": float("inf")},
        {"base_cost": 100, "custom_duty_rate": 10, "total_products_in_shipment": "sNaN"},
        {"base_cost": 100, "custom_duty_rate": 10, "unexpected": 1},
    ],
)
def test_invalid_input_rejected(payload):
    with pytest.raises(InvalidInput):
        calculate_cost_breakdown(payload)


def test_product_cost_proportion():
    assert calculate_product_cost_proportion(25, 100) == Decimal("0.25")
    assert calculate_product_cost_proportion(25, 0) == Decimal("1")


def test_duty_rate_lookup(db_session, actor):
    pricing_service.set_duty_rate("electronics", 15, actor=actor, description="Consumer electronics")

    assert pricing_service.get_duty_rate("electronics") == Decimal("15")
    assert pricing_service.get_duty_rate("unknown-category") == Decimal("0")
    assert pricing_service.get_duty_rate(None) == Decimal("0")

    # updating keeps a single row per category
    pricing_service.set_duty_rate("electronics", 20, actor=actor)
    rates = pricing_service.list_duty_rates()
    assert len(rates) == 1
    assert Decimal(rates[0].duty_rate) == Decimal("20")


def test_category_fills_missing_duty_rate(db_session, actor):
    pricing_service.set_duty_rate("clothing", 45, actor=actor)

    resolved = pricing_service.resolve_calculator_payload({"base_cost": 100, "category": "clothing"})
    assert "category" not in resolved
    assert resolved["custom_duty_rate"] == Decimal("45")

    explicit = pricing_service.resolve_calculator_payload(
        {"base_cost": 100, "category": "clothing", "custom_duty_rate": 5}
    )
    assert explicit["custom_duty_rate"] == 5


def test_save_breakdown_upserts_and_updates_catalog_cost(db_session, product, actor):
    breakdown = calculate_cost_breakdown({"base_cost": 100, "custom_duty_rate": 10})
    pricing_service.save_cost_breakdown(product_id=product.id, variant_id=None, breakdown=breakdown, actor=actor)

    cheaper = calculate_cost_breakdown({"base_cost": 80, "custom_duty_rate": 10})
    row = pricing_service.save_cost_breakdown(
        product_id=product.id, variant_id=None, breakdown=cheaper, actor=actor, notes="new supplier"
    )

    assert db_session.query(ProductCostBreakdown).count() == 1
    assert row.effective_cost_cents == 8800
    assert row.calculated_by == "tester"
    assert product.cost_cents == 8800


def test_save_breakdown_can_leave_catalog_untouched(db_session, product, actor):
    breakdown = calculate_cost_breakdown({"base_cost": 100, "custom_duty_rate": 10})
    pricing_service.save_cost_breakdown(
        product_id=product.id, variant_id=None, breakdown=breakdown, actor=actor, apply_to_catalog=False
    )

    assert product.cost_cents == 6000
    assert pricing_service.get_cost_breakdown(product.id).effective_cost_cents == 11000


def test_save_breakdown_unknown_product(db_session, actor):
    breakdown = calculate_cost_breakdown({"base_cost": 100, "custom_duty_rate": 10})
    with pytest.raises(ProductNotFound):
        pricing_service.save_cost_breakdown(product_id=999, variant_id=None, breakdown=breakdown, actor=actor)
