"""
Pytest fixtures for storefront backend tests.

Provides test database setup, catalog/stock fixtures, and test client.
"""

import pytest
from sqlalchemy import update

from storefront import create_app
from storefront.extensions import db
from storefront.models import (
    CentralStock,
    Location,
    LocationStock,
    Product,
    ProductVariant,
    TaxConfiguration,
)
from storefront.services.actor import Actor
from storefront.services import order_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_COMMIT_BACKOFF_SECONDS': 0,
        'DEFAULT_PROCUREMENT_LOCATION_CODE': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def actor():
    return Actor(actor_id="tester")


@pytest.fixture(scope='function')
def warehouse(db_session):
    """Central warehouse, flagged as the default procurement location."""
    location = Location(code="WH-MAIN", name="Main Warehouse", kind="warehouse", is_default=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def franchise(db_session):
    location = Location(code="FR-01", name="Franchise One", kind="franchise")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def tax_config(db_session):
    """15% VAT (exclusive), 15% import VAT, 27% corporate tax, full reclaim."""
    row = TaxConfiguration(
        tax_rate=15,
        tax_inclusive=False,
        import_vat_rate=15,
        corporate_tax_rate=27,
        import_vat_reclaim_rate=100,
        is_active=True,
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def product(db_session, warehouse):
    """Simple product (no variants) procured through the warehouse."""
    p = Product(
        name="Wireless Earbuds",
        category="electronics",
        price_cents=11500,
        cost_cents=6000,
        location_id=warehouse.id,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def variant_product(db_session, warehouse):
    """Product sold through two active variants."""
    p = Product(
        name="Cotton T-Shirt",
        category="clothing",
        price_cents=24900,
        cost_cents=11000,
        has_variants=True,
        location_id=warehouse.id,
    )
    db_session.add(p)
    db_session.flush()
    small = ProductVariant(product_id=p.id, sku="TS-S", attributes={"size": "S"})
    large = ProductVariant(product_id=p.id, sku="TS-L", attributes={"size": "L"})
    db_session.add_all([small, large])
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def set_stock(db_session):
    """
    Factory: set_stock(product_id, quantity, variant_id=None, location_id=None).

    Creates or overwrites the stock row directly, bypassing history (test setup).
    """
    def _set(product_id, quantity, variant_id=None, location_id=None):
        if location_id is None:
            model = CentralStock
            kwargs = {}
        else:
            model = LocationStock
            kwargs = {"location_id": location_id}
        q = db_session.query(model).filter(model.product_id == product_id)
        q = q.filter(model.variant_id.is_(None) if variant_id is None else model.variant_id == variant_id)
        if location_id is not None:
            q = q.filter(model.location_id == location_id)
        row = q.first()
        if row is None:
            row = model(product_id=product_id, variant_id=variant_id, quantity=quantity, **kwargs)
            db_session.add(row)
        else:
            row.quantity = quantity
        db_session.commit()
        return row

    return _set


@pytest.fixture(scope='function')
def external_write(db_session):
    """
    Factory simulating a concurrent writer: moves a stock row behind the
    service's back and commits.
    """
    def _write(row_id, quantity, location=False):
        model = LocationStock if location else CentralStock
        db_session.execute(update(model).where(model.id == row_id).values(quantity=quantity))
        db_session.commit()

    return _write


@pytest.fixture(scope='function')
def order(db_session, product, actor):
    """A pending order for one unit of `product` (no stock moved)."""
    return order_service.create_order(
        customer_email="buyer@example.com",
        lines=[{
            "product_id": product.id,
            "variant_id": None,
            "product_name": product.name,
            "unit_price_cents": 11500,
            "unit_cost_cents": 6000,
            "quantity": 1,
        }],
        actor=actor,
    )


def order_payload(product_id, quantity=1, *, price=11500, cost=6000, variant_id=None, **extra):
    """Helper to build a settlement request body for one line."""
    item = {
        "product_id": product_id,
        "quantity": quantity,
        "unit_price_snapshot": price,
        "unit_cost_snapshot": cost,
    }
    if variant_id is not None:
        item["variant_id"] = variant_id
    body = {
        "customer_email": "buyer@example.com",
        "items": [item],
        "declared_total": price * quantity,
        "delivery_info": {"method": "courier", "address": "1 Long Street, Cape Town"},
    }
    body.update(extra)
    return body
