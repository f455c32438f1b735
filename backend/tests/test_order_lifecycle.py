"""
Order lifecycle tests: forward-only transitions, cancellation rules,
terminal states and audit events.
"""

import pytest

from storefront.errors import InvalidTransition, NotFound, ValidationError
from storefront.models import AuditEvent
from storefront.services import order_service
from storefront.services.order_service import can_transition


@pytest.mark.parametrize(
    "from_status,to_status,allowed",
    [
        ("pending", "confirmed", True),
        ("confirmed", "processing", True),
        ("processing", "shipped", True),
        ("shipped", "delivered", True),
        ("pending", "shipped", False),
        ("shipped", "processing", False),
        ("pending", "pending", False),
        ("shipped", "cancelled", True),
        ("delivered", "cancelled", False),
        ("cancelled", "pending", False),
    ],
)
def test_transition_matrix(from_status, to_status, allowed):
    assert can_transition(from_status, to_status) is allowed


def test_unknown_status_rejected():
    with pytest.raises(ValidationError):
        can_transition("pending", "lost")


def test_create_order_snapshots_lines(db_session, order, product):
    assert order.status == "pending"
    assert order.stock_status == "pending"
    assert order.total_cents == 11500
    assert order.currency == "ZAR"
    assert [line.product_name for line in order.lines] == [product.name]
    assert order.lines[0].line_total_cents == 11500

    created = db_session.query(AuditEvent).filter_by(event_type="order.created").one()
    assert created.order_id == order.id
    assert created.actor_id == "tester"


def test_walk_full_lifecycle(db_session, order, actor):
    for status in ("confirmed", "processing", "shipped", "delivered"):
        order_service.transition_order(order.id, status, actor=actor)

    assert order_service.get_order(order.id).status == "delivered"
    changes = db_session.query(AuditEvent).filter_by(event_type="order.status_changed").all()
    assert [e.payload["to_status"] for e in changes] == ["confirmed", "processing", "shipped", "delivered"]

    with pytest.raises(InvalidTransition):
        order_service.transition_order(order.id, "cancelled", actor=actor, reason="too late")


def test_skipping_forward_is_rejected(db_session, order, actor):
    with pytest.raises(InvalidTransition) as exc:
        order_service.transition_order(order.id, "shipped", actor=actor)

    assert exc.value.details["from_status"] == "pending"
    assert order_service.get_order(order.id).status == "pending"


def test_cancel_requires_reason(db_session, order, actor):
    with pytest.raises(ValidationError):
        order_service.transition_order(order.id, "cancelled", actor=actor)

    cancelled = order_service.transition_order(order.id, "cancelled", actor=actor, reason="customer changed mind")
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_reason == "customer changed mind"


def test_mark_stock_status_audits(db_session, order, actor):
    order_service.mark_stock_status(order, "stock_inconsistent", actor=actor, note="conflict")

    assert order.stock_status == "stock_inconsistent"
    event = db_session.query(AuditEvent).filter_by(event_type="order.stock_inconsistent").one()
    assert event.note == "conflict"

    with pytest.raises(ValidationError):
        order_service.mark_stock_status(order, "lost", actor=actor)


def test_missing_order(db_session):
    with pytest.raises(NotFound):
        order_service.get_order(424242)
