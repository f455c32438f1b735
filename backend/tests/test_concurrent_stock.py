"""
Stock commits racing a second database connection.

Uses a file-backed SQLite database so the service session and a separate
engine really hold distinct connections to the same rows.
"""

import pytest
from sqlalchemy import create_engine, select, update
from sqlalchemy.exc import IntegrityError

from storefront import create_app
from storefront.errors import InsufficientStock
from storefront.extensions import db
from storefront.models import CentralStock, Product, StockHistory
from storefront.services import inventory_service, order_service
from storefront.services.actor import Actor
from storefront.services.inventory_service import StockPool, check_and_reserve, commit_reservation
from storefront.services.settlement_schemas import LineItemInput


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'stock.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_COMMIT_BACKOFF_SECONDS': 0,
        'DEFAULT_PROCUREMENT_LOCATION_CODE': None,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def other_engine(file_app):
    """Second connection pool on the same database file."""
    engine = create_engine(file_app.config["SQLALCHEMY_DATABASE_URI"])
    yield engine
    engine.dispose()


@pytest.fixture
def stocked(file_app):
    product = Product(name="Wireless Earbuds", category="electronics", price_cents=11500, cost_cents=6000)
    db.session.add(product)
    db.session.flush()
    row = CentralStock(product_id=product.id, variant_id=None, quantity=5)
    db.session.add(row)
    db.session.commit()
    return product.id, row.id


def _sell_elsewhere(engine, row_id, quantity):
    """Compare-and-swap sale on the other connection; returns True when it won."""
    with engine.begin() as conn:
        seen = conn.execute(select(CentralStock.quantity).where(CentralStock.id == row_id)).scalar_one()
        result = conn.execute(
            update(CentralStock)
            .where(CentralStock.id == row_id, CentralStock.quantity == seen)
            .values(quantity=seen - quantity)
        )
        return result.rowcount == 1


def _pending_order(product_id, quantity):
    return order_service.create_order(
        customer_email="buyer@example.com",
        lines=[{
            "product_id": product_id,
            "variant_id": None,
            "product_name": "Wireless Earbuds",
            "unit_price_cents": 11500,
            "unit_cost_cents": 6000,
            "quantity": quantity,
        }],
        actor=Actor(actor_id="tester"),
    )


def _item(product_id, quantity):
    return LineItemInput(
        product_id=product_id,
        variant_id=None,
        quantity=quantity,
        unit_price_snapshot=11500,
        unit_cost_snapshot=6000,
    )


def test_only_one_of_two_connections_wins_the_swap(stocked, other_engine):
    _, row_id = stocked
    pool = StockPool.for_location(None)

    # both connections read 5; the other one writes first
    seen = pool.current_quantity(row_id)
    assert _sell_elsewhere(other_engine, row_id, 3) is True

    assert pool.compare_and_swap(row_id, seen, seen - 3) is False
    db.session.rollback()
    assert pool.current_quantity(row_id) == 2


def test_commit_retries_after_other_connection_sells(stocked, other_engine):
    product_id, row_id = stocked
    order = _pending_order(product_id, 3)
    plan = check_and_reserve([_item(product_id, 3)])

    assert _sell_elsewhere(other_engine, row_id, 1) is True
    histories = commit_reservation(plan, order_id=order.id, actor=Actor(actor_id="tester"))

    assert [(h.previous_quantity, h.new_quantity) for h in histories] == [(4, 1)]
    assert inventory_service.get_quantity(product_id) == 1


def test_commit_stops_when_other_connection_drains_stock(stocked, other_engine):
    product_id, row_id = stocked
    order = _pending_order(product_id, 3)
    plan = check_and_reserve([_item(product_id, 3)])

    assert _sell_elsewhere(other_engine, row_id, 4) is True
    with pytest.raises(InsufficientStock) as exc:
        commit_reservation(plan, order_id=order.id, actor=Actor(actor_id="tester"))

    assert exc.value.available == 1
    assert inventory_service.get_quantity(product_id) == 1
    assert db.session.query(StockHistory).filter_by(order_id=order.id).count() == 0


def test_database_refuses_negative_stock_from_any_connection(stocked, other_engine):
    _, row_id = stocked

    with pytest.raises(IntegrityError):
        with other_engine.begin() as conn:
            conn.execute(update(CentralStock).where(CentralStock.id == row_id).values(quantity=-1))

    assert StockPool.for_location(None).current_quantity(row_id) == 5
