# Overview: Service-layer operations for the procurement queue; replenishment demand worklist.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import Location, ProcurementQueueItem, Product
from ..time_utils import utcnow
from .actor import Actor
from .audit_service import append_audit_event
from .catalog_service import get_default_location, get_location, get_product, get_variant
from . import inventory_service
"""
Procurement Queue Invariants (authoritative)

- At most one 'pending' row per (product_id, variant_id, location_id),
  enforced by partial unique indexes. New demand for the same key adds to
  quantity_needed; a writer that loses the insert race merges instead.
  Ordered, received and cancelled rows are never merged into.
- Status flow:
      pending -> ordered -> received
      pending | ordered -> cancelled
- Receiving may restock the location's pool (warehouse locations feed central
  stock, franchise locations their own stock). Stock moves first, so an item
  is only marked received once its stock has landed.
"""

QUEUE_STATUSES = ("pending", "ordered", "received", "cancelled")
PRIORITIES = ("low", "normal", "high", "urgent")

_TRANSITIONS = {
    ("pending", "ordered"),
    ("ordered", "received"),
    ("pending", "cancelled"),
    ("ordered", "cancelled"),
}


def resolve_procurement_location(product: Product) -> Location | None:
    """The product's own location, else the default location, else None."""
    if product.location_id is not None:
        location = db.session.get(Location, product.location_id)
        if location is not None and location.is_active:
            return location
    return get_default_location()


def _pending_for_key(product_id: int, variant_id: int | None, location_id: int):
    q = db.session.query(ProcurementQueueItem).filter(
        ProcurementQueueItem.product_id == product_id,
        ProcurementQueueItem.location_id == location_id,
        ProcurementQueueItem.status == "pending",
    )
    if variant_id is None:
        q = q.filter(ProcurementQueueItem.variant_id.is_(None))
    else:
        q = q.filter(ProcurementQueueItem.variant_id == variant_id)
    return q.order_by(ProcurementQueueItem.id.asc()).first()


def _merge_demand(item: ProcurementQueueItem, quantity: int, priority: str) -> None:
    item.quantity_needed += quantity
    if PRIORITIES.index(priority) > PRIORITIES.index(item.priority):
        item.priority = priority


def enqueue_demand(
    product_id: int,
    variant_id: int | None,
    location_id: int,
    quantity: int,
    *,
    actor: Actor,
    priority: str = "normal",
    notes: str | None = None,
    source_order_id: int | None = None,
) -> ProcurementQueueItem:
    """
    Record replenishment demand, merging into the open pending row for the key.

    Commits.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")
    get_location(location_id)
    product = get_product(product_id)
    if variant_id is not None:
        get_variant(product, variant_id)

    item = _pending_for_key(product_id, variant_id, location_id)
    if item is not None:
        _merge_demand(item, quantity, priority)
        event_type = "procurement.demand_merged"
        db.session.flush()
    else:
        item = ProcurementQueueItem(
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            quantity_needed=quantity,
            status="pending",
            priority=priority,
            notes=notes,
            source_order_id=source_order_id,
            created_by=actor.label,
        )
        db.session.add(item)
        event_type = "procurement.demand_created"
        try:
            db.session.flush()
        except IntegrityError:
            # a concurrent writer created the pending row first
            db.session.rollback()
            item = _pending_for_key(product_id, variant_id, location_id)
            if item is None:
                raise
            _merge_demand(item, quantity, priority)
            event_type = "procurement.demand_merged"
            db.session.flush()

    append_audit_event(
        event_type=event_type,
        entity_type="procurement_queue",
        entity_id=item.id,
        actor=actor,
        order_id=source_order_id,
        payload={"quantity_added": quantity, "quantity_needed": item.quantity_needed},
    )
    db.session.commit()
    return item


def enqueue_for_product(
    product_id: int,
    variant_id: int | None,
    quantity: int,
    *,
    actor: Actor,
    source_order_id: int | None = None,
    notes: str | None = None,
) -> ProcurementQueueItem | None:
    """
    Enqueue demand at the product's procurement location.

    Returns None (and logs) when no location can be resolved.
    """
    product = get_product(product_id)
    location = resolve_procurement_location(product)
    if location is None:
        current_app.logger.warning(
            "No procurement location for product %s; demand of %s not queued (order %s)",
            product_id, quantity, source_order_id,
        )
        return None
    return enqueue_demand(
        product.id,
        variant_id,
        location.id,
        quantity,
        actor=actor,
        notes=notes,
        source_order_id=source_order_id,
    )


def get_item(item_id: int) -> ProcurementQueueItem:
    item = db.session.get(ProcurementQueueItem, item_id)
    if item is None:
        raise NotFound(f"Procurement item {item_id} not found", details={"item_id": item_id})
    return item


def list_queue(
    *,
    status: str | None = None,
    location_id: int | None = None,
    limit: int = 200,
) -> list[ProcurementQueueItem]:
    q = db.session.query(ProcurementQueueItem)
    if status:
        if status not in QUEUE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(QUEUE_STATUSES)}")
        q = q.filter(ProcurementQueueItem.status == status)
    if location_id is not None:
        q = q.filter(ProcurementQueueItem.location_id == location_id)
    return q.order_by(ProcurementQueueItem.created_at.desc(), ProcurementQueueItem.id.desc()).limit(limit).all()


def transition_item(
    item_id: int,
    to_status: str,
    *,
    actor: Actor,
    restock: bool = False,
    quantity_received: int | None = None,
) -> ProcurementQueueItem:
    """
    Move a queue item along its status flow.

    With restock=True a 'received' transition adds quantity_received
    (default: quantity_needed) to the location's stock pool.
    """
    if to_status not in QUEUE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(QUEUE_STATUSES)}")

    item = get_item(item_id)
    from_status = item.status
    if (from_status, to_status) not in _TRANSITIONS:
        raise InvalidTransition(
            f"Cannot move procurement item {item_id} from '{from_status}' to '{to_status}'",
            details={"item_id": item_id, "from_status": from_status, "to_status": to_status},
        )

    if to_status == "received" and restock:
        # stock lands before the status flips; a failed restock leaves the item 'ordered'
        location = get_location(item.location_id)
        pool_location_id = None if location.kind == "warehouse" else location.id
        inventory_service.restock(
            product_id=item.product_id,
            variant_id=item.variant_id,
            location_id=pool_location_id,
            quantity=quantity_received if quantity_received is not None else item.quantity_needed,
            actor=actor,
            note=f"Procurement item {item.id} received",
        )
        item = get_item(item_id)

    now = utcnow()
    item.status = to_status
    if to_status == "ordered":
        item.ordered_at = now
    elif to_status == "received":
        item.received_at = now

    append_audit_event(
        event_type="procurement.status_changed",
        entity_type="procurement_queue",
        entity_id=item.id,
        actor=actor,
        order_id=item.source_order_id,
        occurred_at=now,
        payload={"from_status": from_status, "to_status": to_status},
    )
    db.session.commit()
    return item
