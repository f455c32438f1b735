# Overview: Service-layer operations for orders; creation snapshot and status state machine.

"""
Order Lifecycle

STATE MACHINE:
    pending -> confirmed -> processing -> shipped -> delivered
    any non-terminal state -> cancelled

RULES:
1. Settlement only ever creates orders in 'pending'.
2. No skipping forward, no moving backwards.
3. delivered and cancelled are terminal.
4. Line price/cost are snapshots; they are never recomputed from the catalog.
5. Every transition appends an 'order.status_changed' audit event.
"""

from __future__ import annotations

from typing import Any, Iterable

from flask import current_app

from ..extensions import db
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import Order, OrderLine
from ..time_utils import utcnow
from .actor import Actor
from .audit_service import append_audit_event


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
TERMINAL_STATUSES = frozenset({"delivered", "cancelled"})

STOCK_STATUSES = ("pending", "committed", "stock_inconsistent")
_STOCK_EVENTS = {
    "pending": "order.stock_pending",
    "committed": "order.stock_committed",
    "stock_inconsistent": "order.stock_inconsistent",
}

_FORWARD = {
    "pending": "confirmed",
    "confirmed": "processing",
    "processing": "shipped",
    "shipped": "delivered",
}


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    pending -> confirmed -> processing -> shipped -> delivered, and
    cancelled from any non-terminal state. Same-state is not a transition.
    """
    validate_status(from_status)
    validate_status(to_status)

    if from_status in TERMINAL_STATUSES or from_status == to_status:
        return False
    if to_status == "cancelled":
        return True
    return _FORWARD.get(from_status) == to_status


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def create_order(
    *,
    customer_email: str,
    lines: Iterable[dict[str, Any]],
    actor: Actor,
    customer_id: str | None = None,
    franchise_location_id: int | None = None,
    delivery_info: dict | None = None,
) -> Order:
    """
    Insert a pending order with its line snapshots and commit.

    lines: dicts with product_id, variant_id, product_name, unit_price_cents,
    unit_cost_cents, quantity. total_cents is the sum of line totals.
    """
    order = Order(
        customer_email=customer_email,
        customer_id=customer_id,
        status="pending",
        stock_status="pending",
        total_cents=0,
        currency=current_app.config.get("STOREFRONT_CURRENCY", "ZAR"),
        franchise_location_id=franchise_location_id,
        delivery_info=delivery_info,
        created_by=actor.label,
    )
    db.session.add(order)
    db.session.flush()

    total = 0
    for number, line in enumerate(lines, start=1):
        line_total = line["unit_price_cents"] * line["quantity"]
        total += line_total
        db.session.add(
            OrderLine(
                order_id=order.id,
                line_number=number,
                product_id=line["product_id"],
                variant_id=line.get("variant_id"),
                product_name=line["product_name"],
                unit_price_cents=line["unit_price_cents"],
                unit_cost_cents=line["unit_cost_cents"],
                quantity=line["quantity"],
                line_total_cents=line_total,
            )
        )
    order.total_cents = total
    db.session.flush()

    append_audit_event(
        event_type="order.created",
        entity_type="order",
        entity_id=order.id,
        actor=actor,
        order_id=order.id,
        payload={
            "total_cents": total,
            "currency": order.currency,
            "franchise_location_id": franchise_location_id,
        },
    )
    db.session.commit()
    return order


def mark_stock_status(order: Order, stock_status: str, *, actor: Actor, note: str | None = None,
                      payload: dict | None = None) -> Order:
    """Record the outcome of the stock commit on the order and commit."""
    if stock_status not in STOCK_STATUSES:
        raise ValidationError(f"Invalid stock_status '{stock_status}'")

    order.stock_status = stock_status
    append_audit_event(
        event_type=_STOCK_EVENTS[stock_status],
        entity_type="order",
        entity_id=order.id,
        actor=actor,
        order_id=order.id,
        note=note,
        payload=payload,
    )
    db.session.commit()
    return order


def transition_order(order_id: int, to_status: str, *, actor: Actor, reason: str | None = None) -> Order:
    """Move an order along its lifecycle. Raises InvalidTransition when not allowed."""
    order = get_order(order_id)
    from_status = order.status

    if not can_transition(from_status, to_status):
        raise InvalidTransition(
            f"Cannot move order {order_id} from '{from_status}' to '{to_status}'",
            details={"order_id": order_id, "from_status": from_status, "to_status": to_status},
        )
    if to_status == "cancelled":
        if not reason or not reason.strip():
            raise ValidationError("reason is required to cancel an order")
        order.cancelled_reason = reason.strip()[:255]

    order.status = to_status
    append_audit_event(
        event_type="order.status_changed",
        entity_type="order",
        entity_id=order.id,
        actor=actor,
        order_id=order.id,
        occurred_at=utcnow(),
        note=reason,
        payload={"from_status": from_status, "to_status": to_status},
    )
    db.session.commit()
    return order
