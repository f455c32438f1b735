"""
Ledger tests: VAT extraction, import VAT reclaim, corporate tax on positive
profit only, idempotent recording, period summaries and per-product
profitability.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from storefront.errors import ValidationError
from storefront.extensions import db
from storefront.models import FinancialTransaction, TaxConfiguration
from storefront.services import ledger_service, order_service, tax_service
from storefront.services.ledger_service import compute_transaction_amounts
from storefront.services.tax_service import TaxSettings
from storefront.time_utils import period_bounds, range_start, utcnow


def test_tax_inclusive_total_extracts_vat():
    amounts = compute_transaction_amounts(11500, 6000, TaxSettings(tax_inclusive=True))

    assert amounts.tax_amount_cents == 1500
    assert amounts.revenue_amount_cents == 10000
    assert amounts.import_vat_amount_cents == 900
    assert amounts.profit_before_tax_cents == 3400
    assert amounts.corporate_tax_amount_cents == 918
    assert amounts.net_profit_after_tax_cents == 2482


def test_tax_exclusive_total_adds_vat_on_top():
    amounts = compute_transaction_amounts(11500, 6000, TaxSettings())

    assert amounts.tax_amount_cents == 1725
    assert amounts.revenue_amount_cents == 11500
    assert amounts.profit_before_tax_cents == 4675
    # 4675 * 27% = 1262.25
    assert amounts.corporate_tax_amount_cents == 1262
    assert amounts.net_profit_after_tax_cents == 3413


def test_profit_identity_holds_on_stored_integers():
    amounts = compute_transaction_amounts(99999, 45678, TaxSettings(tax_rate=Decimal("14")))

    assert amounts.profit_before_tax_cents == (
        amounts.revenue_amount_cents
        - (amounts.cost_amount_cents - amounts.import_vat_amount_cents)
        - amounts.tax_amount_cents
    )
    assert amounts.net_profit_after_tax_cents == (
        amounts.profit_before_tax_cents - amounts.corporate_tax_amount_cents
    )


def test_no_corporate_tax_on_loss():
    amounts = compute_transaction_amounts(5000, 9000, TaxSettings())

    assert amounts.profit_before_tax_cents < 0
    assert amounts.corporate_tax_amount_cents == 0
    assert amounts.net_profit_after_tax_cents == amounts.profit_before_tax_cents


def test_partial_import_vat_reclaim():
    amounts = compute_transaction_amounts(
        11500, 6000, TaxSettings(import_vat_reclaim_rate=Decimal("50"))
    )

    assert amounts.import_vat_amount_cents == 450


def test_compute_and_record_is_idempotent(db_session, order, tax_config):
    first = ledger_service.compute_and_record(order)
    second = ledger_service.compute_and_record(order)

    assert first.id == second.id
    assert db_session.query(FinancialTransaction).count() == 1
    assert second.tax_amount_cents == 1725
    assert second.cost_amount_cents == 6000
    assert second.currency == order.currency


def test_recompute_picks_up_new_tax_config(db_session, order, tax_config, actor):
    ledger_service.compute_and_record(order)
    tax_service.set_tax_config({"tax_inclusive": True}, actor=actor)

    tx = ledger_service.compute_and_record(order)

    assert tx.tax_inclusive is True
    assert tx.tax_amount_cents == 1500
    assert tx.revenue_amount_cents == 10000
    assert db_session.query(FinancialTransaction).count() == 1


def test_cost_comes_from_order_snapshot(db_session, order, product, tax_config):
    product.cost_cents = 1
    db_session.commit()

    tx = ledger_service.compute_and_record(order)

    assert tx.cost_amount_cents == 6000


def test_defaults_used_without_active_config(db_session, order):
    tx = ledger_service.compute_and_record(order)

    assert Decimal(tx.tax_rate) == Decimal("15")
    assert tx.tax_inclusive is False
    assert Decimal(tx.corporate_tax_rate) == Decimal("27")


def test_summarize_totals(db_session, product, tax_config, actor):
    for quantity in (1, 2):
        o = order_service.create_order(
            customer_email="buyer@example.com",
            lines=[{
                "product_id": product.id,
                "variant_id": None,
                "product_name": product.name,
                "unit_price_cents": 11500,
                "unit_cost_cents": 6000,
                "quantity": quantity,
            }],
            actor=actor,
        )
        ledger_service.compute_and_record(o)

    summary = ledger_service.summarize("2000-01-01", "2100-12-31")

    assert summary["transaction_count"] == 2
    assert summary["total_revenue_cents"] == 34500
    assert summary["total_tax_cents"] == 1725 + 3450
    assert summary["total_cost_cents"] == 18000
    assert summary["total_import_vat_cents"] == 2700
    assert summary["gross_profit_cents"] == 4675 + 9350
    assert summary["stock_inconsistent_orders"] == 0
    assert summary["period"]["start"] == "2000-01-01T00:00:00Z"


def test_summarize_rejects_inverted_window(db_session):
    with pytest.raises(ValueError):
        ledger_service.summarize("2026-02-01", "2026-01-01")


def test_rejected_tax_update_keeps_active_config(db_session, tax_config, actor):
    with pytest.raises(ValidationError):
        tax_service.set_tax_config({"tax_rate": 14, "corporate_tax_rate": "NaN"}, actor=actor)
    with pytest.raises(ValidationError):
        tax_service.set_tax_config({"tax_rate": 14, "import_vat_rate": 140}, actor=actor)

    # no rollback here: a rejected update must not have deactivated anything
    active = db_session.query(TaxConfiguration).filter(TaxConfiguration.is_active.is_(True)).all()
    assert [row.id for row in active] == [tax_config.id]
    assert Decimal(tax_service.get_active_tax_config().tax_rate) == Decimal("15")


def _sold(actor, product, quantity, *, price, cost, status, variant_id=None):
    o = order_service.create_order(
        customer_email="buyer@example.com",
        lines=[{
            "product_id": product.id,
            "variant_id": variant_id,
            "product_name": product.name,
            "unit_price_cents": price,
            "unit_cost_cents": cost,
            "quantity": quantity,
        }],
        actor=actor,
    )
    o.status = status
    db.session.commit()
    return o


def test_products_profit_groups_sold_lines_per_product(db_session, product, variant_product, actor):
    _sold(actor, product, 2, price=11500, cost=6000, status="confirmed")
    _sold(actor, product, 1, price=11500, cost=6000, status="delivered")
    shirt_variant = variant_product.variants[0]
    _sold(actor, variant_product, 1, price=24900, cost=11000, status="shipped", variant_id=shirt_variant.id)
    # not sold: still pending, or cancelled
    _sold(actor, product, 5, price=11500, cost=6000, status="pending")
    _sold(actor, product, 5, price=11500, cost=6000, status="cancelled")

    report = ledger_service.products_profit("2000-01-01", "2100-12-31")

    earbuds, shirt = report["products"]
    assert earbuds["product_id"] == product.id
    assert earbuds["product_name"] == "Wireless Earbuds"
    assert earbuds["units_sold"] == 3
    assert earbuds["revenue_cents"] == 34500
    assert earbuds["cost_cents"] == 18000
    assert earbuds["profit_cents"] == 16500
    assert earbuds["profit_margin"] == "47.83"
    assert earbuds["avg_selling_price_cents"] == 11500
    assert earbuds["avg_cost_cents"] == 6000

    assert shirt["category"] == "clothing"
    assert shirt["profit_cents"] == 13900
    assert report["total_revenue_cents"] == 34500 + 24900
    assert report["total_profit_cents"] == 16500 + 13900


def test_products_profit_range_presets(db_session, product, actor):
    old = _sold(actor, product, 1, price=11500, cost=6000, status="confirmed")
    old.created_at = utcnow() - timedelta(days=40)
    db_session.commit()

    assert [p["units_sold"] for p in ledger_service.products_profit(range_name="all")["products"]] == [1]
    assert ledger_service.products_profit(range_name="week")["products"] == []
    assert ledger_service.products_profit(range_name="today")["products"] == []
    with pytest.raises(ValueError):
        ledger_service.products_profit(range_name="decade")


def test_range_start_presets():
    now = datetime(2026, 10, 19, 15, 30)

    assert range_start("today", now) == datetime(2026, 10, 19)
    assert range_start("week", now) == datetime(2026, 10, 12, 15, 30)
    assert range_start("month", now) == datetime(2026, 10, 1)
    assert range_start("year", now) == datetime(2026, 1, 1)
    assert range_start("all", now) == datetime(1970, 1, 1)


def test_explicit_start_overrides_range():
    start, end = period_bounds("2026-01-05", "2026-01-31", range_name="today")

    assert start == datetime(2026, 1, 5)
    assert end.date() == datetime(2026, 1, 31).date()

    with pytest.raises(ValueError):
        period_bounds(None, None, range_name="fortnight")
