"""
HTTP surface tests: status codes and JSON shapes for orders, pricing,
procurement, inventory, accounting and health.
"""

from sqlalchemy.exc import OperationalError

from storefront.models import AuditEvent, Order, StockHistory
from storefront.services import inventory_service, settlement_service

from conftest import order_payload


def test_create_order_returns_201(client, db_session, product, tax_config, set_stock):
    set_stock(product.id, 10)

    resp = client.post("/api/orders", json=order_payload(product.id, quantity=2))

    assert resp.status_code == 201
    body = resp.get_json()
    assert set(body) == {"order_id", "status", "bookkeeping_pending"}
    assert body["status"] == "pending"
    assert body["bookkeeping_pending"] is False
    assert inventory_service.get_quantity(product.id) == 8


def test_create_order_insufficient_stock_is_409(client, db_session, product, set_stock):
    set_stock(product.id, 1)

    resp = client.post("/api/orders", json=order_payload(product.id, quantity=2))

    assert resp.status_code == 409
    body = resp.get_json()
    assert body["kind"] == "insufficient_stock"
    assert body["details"]["available"] == 1
    assert body["details"]["requested"] == 2
    assert "Wireless Earbuds" in body["error"]


def test_create_order_validation_error_is_400(client, db_session, product):
    resp = client.post("/api/orders", json={"customer_email": "buyer@example.com", "items": []})

    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "validation_error"


def test_create_order_unknown_product_is_404(client, db_session):
    resp = client.post("/api/orders", json=order_payload(999))

    assert resp.status_code == 404
    assert resp.get_json()["kind"] == "product_not_found"


def test_actor_header_is_recorded(client, db_session, product, tax_config, set_stock):
    set_stock(product.id, 10)

    resp = client.post(
        "/api/orders",
        json=order_payload(product.id),
        headers={"X-Actor-Id": "checkout-svc", "X-Actor-Kind": "service"},
    )

    assert resp.status_code == 201
    assert db_session.query(StockHistory).one().created_by == "service:checkout-svc"
    created = db_session.query(AuditEvent).filter_by(event_type="order.created").one()
    assert (created.actor_id, created.actor_kind) == ("checkout-svc", "service")


def test_get_order_includes_lines_and_tasks(client, db_session, product, tax_config, set_stock):
    set_stock(product.id, 10)
    order_id = client.post("/api/orders", json=order_payload(product.id)).get_json()["order_id"]

    resp = client.get(f"/api/orders/{order_id}")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["order"]["stock_status"] == "committed"
    assert body["order"]["lines"][0]["unit_cost_cents"] == 6000
    assert {t["task_type"] for t in body["settlement_tasks"]} == {"financial", "procurement"}
    events = [e["event_type"] for e in body["audit_events"]]
    assert events[:2] == ["order.created", "order.stock_committed"]

    assert client.get("/api/orders/424242").status_code == 404


def test_order_status_transition(client, db_session, order):
    resp = client.post(f"/api/orders/{order.id}/status", json={"status": "confirmed"})
    assert resp.status_code == 200
    assert resp.get_json()["order"]["status"] == "confirmed"

    resp = client.post(f"/api/orders/{order.id}/status", json={"status": "delivered"})
    assert resp.status_code == 409
    assert resp.get_json()["kind"] == "invalid_transition"

    resp = client.post(f"/api/orders/{order.id}/status", json={})
    assert resp.status_code == 400


def test_pricing_calculate(client, db_session):
    resp = client.post(
        "/api/admin/pricing-calculator/calculate",
        json={"base_cost": 100, "custom_duty_rate": 10},
    )

    assert resp.status_code == 200
    breakdown = resp.get_json()["breakdown"]
    assert breakdown["effective_cost"] == "110.00"
    assert breakdown["suggested_selling_price"] == "157.14"


def test_pricing_calculate_invalid_input(client, db_session):
    resp = client.post("/api/admin/pricing-calculator/calculate", json={"base_cost": -1, "custom_duty_rate": 10})

    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "invalid_input"


def test_duty_rate_endpoints(client, db_session):
    resp = client.put("/api/admin/pricing-calculator/duty-rates/clothing", json={"duty_rate": 45})
    assert resp.status_code == 200

    resp = client.get("/api/admin/pricing-calculator/duty-rates/clothing")
    assert resp.get_json()["duty_rate"] in ("45", "45.00")

    listed = client.get("/api/admin/pricing-calculator/duty-rates").get_json()["items"]
    assert [r["category"] for r in listed] == ["clothing"]

    resp = client.put("/api/admin/pricing-calculator/duty-rates/clothing", json={"duty_rate": 150})
    assert resp.status_code == 400

    resp = client.put("/api/admin/pricing-calculator/duty-rates/clothing", json={"rate": 5})
    assert resp.status_code == 400


def test_breakdown_save_uses_category_rate(client, db_session, product):
    client.put("/api/admin/pricing-calculator/duty-rates/electronics", json={"duty_rate": 10})

    resp = client.put(
        f"/api/admin/pricing-calculator/breakdowns/{product.id}",
        json={"inputs": {"base_cost": 100}, "notes": "Q3 supplier quote"},
    )

    assert resp.status_code == 200
    assert resp.get_json()["breakdown"]["effective_cost_cents"] == 11000

    resp = client.get(f"/api/admin/pricing-calculator/breakdowns/{product.id}")
    assert resp.status_code == 200
    assert client.get("/api/admin/pricing-calculator/breakdowns/999").status_code == 404


def test_procurement_queue_endpoints(client, db_session, product, warehouse):
    resp = client.post(
        "/api/admin/procurement-queue",
        json={"product_id": product.id, "location_id": warehouse.id, "quantity_needed": 3},
    )
    assert resp.status_code == 201
    item = resp.get_json()["item"]
    assert item["status"] == "pending"

    resp = client.post(f"/api/admin/procurement-queue/{item['id']}/status", json={"status": "ordered"})
    assert resp.status_code == 200

    resp = client.post(
        f"/api/admin/procurement-queue/{item['id']}/status",
        json={"status": "received", "restock": True},
    )
    assert resp.status_code == 200
    assert inventory_service.get_quantity(product.id) == 3

    items = client.get("/api/admin/procurement-queue?status=received").get_json()["items"]
    assert [i["id"] for i in items] == [item["id"]]


def test_procurement_rejects_bad_quantity(client, db_session, product, warehouse):
    resp = client.post(
        "/api/admin/procurement-queue",
        json={"product_id": product.id, "location_id": warehouse.id, "quantity_needed": 1.5},
    )
    assert resp.status_code == 400


def test_inventory_restock_and_adjust(client, db_session, product):
    resp = client.post("/api/inventory/restock", json={"product_id": product.id, "quantity": 5})
    assert resp.status_code == 201
    assert resp.get_json()["history"]["new_quantity"] == 5

    resp = client.post("/api/inventory/adjust", json={"product_id": product.id, "quantity_change": -2})
    assert resp.status_code == 400

    resp = client.post(
        "/api/inventory/adjust",
        json={"product_id": product.id, "quantity_change": -2, "note": "breakage"},
    )
    assert resp.status_code == 201

    stock = client.get(f"/api/inventory/stock?product_id={product.id}").get_json()["items"]
    assert stock[0]["quantity"] == 3
    history = client.get(f"/api/inventory/history?product_id={product.id}").get_json()["items"]
    assert [h["change_type"] for h in history] == ["restock", "adjustment"]


def test_accounting_summary_and_tax_config(client, db_session, product, tax_config, set_stock):
    set_stock(product.id, 10)
    client.post("/api/orders", json=order_payload(product.id, quantity=2))

    summary = client.get("/api/admin/accounting/summary?start=2000-01-01&end=2100-12-31").get_json()
    assert summary["transaction_count"] == 1
    assert summary["total_tax_cents"] == 3450
    assert summary["net_profit_cents"] == 6825

    assert client.get("/api/admin/accounting/summary?start=bogus").status_code == 400

    resp = client.put("/api/admin/accounting/tax-config", json={"tax_inclusive": True})
    assert resp.status_code == 200
    config = client.get("/api/admin/accounting/tax-config").get_json()["tax_config"]
    assert config["tax_inclusive"] is True

    resp = client.put("/api/admin/accounting/tax-config", json={"tax_rate": 120})
    assert resp.status_code == 400


def test_settlement_task_endpoints(client, db_session, product, tax_config, set_stock):
    set_stock(product.id, 10)
    order_id = client.post("/api/orders", json=order_payload(product.id)).get_json()["order_id"]

    tasks = client.get(f"/api/admin/accounting/settlement-tasks?order_id={order_id}").get_json()["items"]
    assert len(tasks) == 2

    resp = client.post("/api/admin/accounting/settlement-tasks/replay", json={"order_id": order_id})
    assert resp.status_code == 200
    assert resp.get_json()["items"] == []

    resp = client.post("/api/admin/accounting/settlement-tasks/replay", json={"order_id": "x"})
    assert resp.status_code == 400


def test_health(client, db_session):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["settlement"]["details"]["failed_tasks"] == 0


def test_pricing_calculate_rejects_non_finite_json(client, db_session):
    # Python's JSON parser accepts the bare NaN / Infinity literals
    for literal in ("NaN", "Infinity", "-Infinity"):
        resp = client.post(
            "/api/admin/pricing-calculator/calculate",
            data=f'{{"base_cost": {literal}, "custom_duty_rate": 10}}',
            content_type="application/json",
        )
        assert resp.status_code == 400, literal
        assert resp.get_json()["kind"] == "invalid_input"


def test_tax_config_rejects_non_finite_rate(client, db_session, tax_config):
    resp = client.put(
        "/api/admin/accounting/tax-config",
        data='{"tax_rate": NaN}',
        content_type="application/json",
    )

    assert resp.status_code == 400
    config = client.get("/api/admin/accounting/tax-config").get_json()["tax_config"]
    assert config["tax_rate"] in ("15", "15.00")


def test_interrupted_settlement_is_reported_and_recovered(
    app, client, db_session, product, tax_config, set_stock, monkeypatch
):
    set_stock(product.id, 10)

    def tasks_unavailable(order):
        raise OperationalError("INSERT INTO settlement_tasks", {}, Exception("disk I/O error"))

    monkeypatch.setattr(settlement_service, "create_settlement_tasks", tasks_unavailable)
    monkeypatch.setitem(app.config, "SETTLEMENT_RECOVERY_GRACE_SECONDS", 0)

    resp = client.post("/api/orders", json=order_payload(product.id))

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["bookkeeping_pending"] is True
    assert db_session.get(Order, body["order_id"]) is not None

    health = client.get("/api/health").get_json()
    assert health["status"] == "degraded"
    assert health["checks"]["settlement"]["details"]["unfinished_orders"] == 1

    monkeypatch.undo()
    resp = client.post("/api/admin/accounting/settlement-tasks/recover", json={"grace_seconds": 0})

    assert resp.status_code == 200
    items = resp.get_json()["items"]
    assert [(o["id"], o["stock_status"]) for o in items] == [(body["order_id"], "committed")]

    resp = client.post("/api/admin/accounting/settlement-tasks/recover", json={"grace_seconds": -1})
    assert resp.status_code == 400


def test_products_profit_and_summary_ranges(client, db_session, product, tax_config, set_stock):
    set_stock(product.id, 10)
    order_id = client.post("/api/orders", json=order_payload(product.id, quantity=2)).get_json()["order_id"]
    client.post(f"/api/orders/{order_id}/status", json={"status": "confirmed"})

    report = client.get("/api/admin/accounting/products-profit?range=all").get_json()
    assert [(p["product_id"], p["units_sold"], p["profit_cents"]) for p in report["products"]] == [
        (product.id, 2, 11000)
    ]
    # default range is the current month
    assert len(client.get("/api/admin/accounting/products-profit").get_json()["products"]) == 1

    summary = client.get("/api/admin/accounting/summary?range=today").get_json()
    assert summary["transaction_count"] == 1

    assert client.get("/api/admin/accounting/products-profit?range=decade").status_code == 400
    assert client.get("/api/admin/accounting/summary?range=decade").status_code == 400
