"""
CLI command tests (flask system / tax / pricing / settlement groups).
"""

import json

from storefront.models import CentralStock, LocationStock, Product, ProductVariant, TaxConfiguration


def test_seed_defaults_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "seed-defaults"])
    assert first.exit_code == 0, first.output
    assert "PASS products: 3 created" in first.output

    second = runner.invoke(args=["system", "seed-defaults"])
    assert second.exit_code == 0, second.output
    assert "PASS products: 0 created" in second.output

    assert db_session.query(Product).count() == 3
    assert db_session.query(ProductVariant).count() == 3
    assert db_session.query(CentralStock).count() == 5
    assert db_session.query(LocationStock).count() == 5
    assert db_session.query(TaxConfiguration).count() == 1


def test_tax_set_and_show(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["tax", "set", "--tax-rate", "14", "--tax-inclusive", "--actor", "ops"])
    assert result.exit_code == 0, result.output

    shown = runner.invoke(args=["tax", "show"])
    data = json.loads(shown.output)
    assert data["tax_inclusive"] is True
    assert data["tax_rate"] in ("14", "14.00")

    assert runner.invoke(args=["tax", "set"]).exit_code != 0
    assert runner.invoke(args=["tax", "set", "--tax-rate", "abc"]).exit_code != 0


def test_pricing_calculate(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["pricing", "calculate", "--base-cost", "100", "--duty-rate", "10"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["effective_cost"] == "110.00"
    assert data["suggested_selling_price"] == "157.14"


def test_pricing_calculate_rejects_bad_input(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["pricing", "calculate", "--base-cost", "0", "--duty-rate", "10"])

    assert result.exit_code != 0
    assert "invalid_input" in result.output


def test_replay_with_nothing_pending(app, db_session):
    result = app.test_cli_runner().invoke(args=["settlement", "replay-tasks"])

    assert result.exit_code == 0
    assert "Nothing to replay" in result.output


def test_recover_orders_with_nothing_unfinished(app, db_session):
    result = app.test_cli_runner().invoke(args=["settlement", "recover-orders", "--grace-seconds", "0"])

    assert result.exit_code == 0, result.output
    assert "Nothing to recover" in result.output


def test_recover_orders_flags_order_without_stock_moves(app, db_session, order):
    result = app.test_cli_runner().invoke(args=["settlement", "recover-orders", "--grace-seconds", "0"])

    assert result.exit_code == 0, result.output
    assert f"STOCK_INCONSISTENT order {order.id}" in result.output
