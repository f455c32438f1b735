# Overview: Service-layer operations for inventory; the only writer of live stock counters.

# backend/storefront/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InsufficientStock, StaleReservation, StockConflict, ValidationError, VariantRequired
from ..models import CentralStock, LocationStock, StockHistory
from .actor import Actor
from .catalog_service import describe_item, get_location, get_product, get_variant, requires_variant
from .concurrency import DB_RETRYABLE, run_with_retry
"""
Inventory Invariants (authoritative)

Stock model:
- Two pools: central stock (table `stock`) and franchise stock (table
  `location_stock`, keyed by location). StockPool hides the difference; a
  pool is identified by an optional location_id (None = central).
- Within a pool, a line item hits variant stock when it names a variant and
  product-level stock otherwise.

Business invariants:
- quantity never goes negative (service check + CHECK constraint).
- Every mutation is a compare-and-swap:
      UPDATE ... SET quantity = :new WHERE id = :id AND quantity = :previous
  An affected-row count of 0 means somebody else moved the row first
  (StaleReservation); the caller re-reads and retries, bounded, then gives up
  with StockConflict. There is never a blind overwrite.
- Every mutation appends one StockHistory row in the same DB transaction, with
  previous/new quantities exactly as swapped.

Reservation:
- check_and_reserve() reads only. It rejects the whole request on the first
  failing line (VariantRequired, InsufficientStock, ...) and otherwise returns
  a plan carrying the snapshot each commit will swap from.
- Lines for the same stock key are summed before checking.
"""


@dataclass(frozen=True)
class StockPool:
    """A stock pool: central (location_id=None) or one franchise location."""
    location_id: int | None = None

    @classmethod
    def for_location(cls, location_id: int | None) -> "StockPool":
        if location_id is not None:
            get_location(location_id)
        return cls(location_id=location_id)

    @property
    def is_central(self) -> bool:
        return self.location_id is None

    @property
    def model(self):
        return CentralStock if self.is_central else LocationStock

    @property
    def name(self) -> str:
        if self.is_central:
            return "central warehouse"
        return f"franchise location {self.location_id}"

    def _key_filters(self, product_id: int, variant_id: int | None) -> list:
        model = self.model
        filters = [model.product_id == product_id]
        if variant_id is None:
            filters.append(model.variant_id.is_(None))
        else:
            filters.append(model.variant_id == variant_id)
        if not self.is_central:
            filters.append(model.location_id == self.location_id)
        return filters

    def find(self, product_id: int, variant_id: int | None):
        return db.session.query(self.model).filter(*self._key_filters(product_id, variant_id)).first()

    def quantity(self, product_id: int, variant_id: int | None) -> int:
        value = (
            db.session.query(self.model.quantity)
            .filter(*self._key_filters(product_id, variant_id))
            .scalar()
        )
        return int(value or 0)

    def current_quantity(self, record_id: int) -> int:
        """Fresh read of a single stock row (bypasses the identity map)."""
        value = db.session.query(self.model.quantity).filter(self.model.id == record_id).scalar()
        return int(value or 0)

    def get_or_create(self, product_id: int, variant_id: int | None):
        record = self.find(product_id, variant_id)
        if record is not None:
            return record

        kwargs: dict[str, Any] = {"product_id": product_id, "variant_id": variant_id, "quantity": 0}
        if not self.is_central:
            kwargs["location_id"] = self.location_id
        record = self.model(**kwargs)
        db.session.add(record)
        try:
            db.session.flush()
        except IntegrityError:
            # Lost a provisioning race; the other writer's row is the one to use
            db.session.rollback()
            record = self.find(product_id, variant_id)
            if record is None:
                raise
        return record

    def compare_and_swap(self, record_id: int, previous: int, new: int) -> bool:
        model = self.model
        stmt = (
            update(model)
            .where(model.id == record_id, model.quantity == previous)
            .values(quantity=new)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        return result.rowcount == 1


@dataclass(frozen=True)
class ReservationLine:
    pool: StockPool
    stock_record_id: int
    product_id: int
    variant_id: int | None
    description: str
    requested: int
    previous_quantity: int
    new_quantity: int
    line_numbers: tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {
            "pool": "central" if self.pool.is_central else "franchise",
            "location_id": self.pool.location_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "requested": self.requested,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "line_numbers": list(self.line_numbers),
        }


@dataclass(frozen=True)
class ReservationPlan:
    pool: StockPool
    lines: tuple[ReservationLine, ...]

    def to_dict(self) -> dict:
        return {
            "location_id": self.pool.location_id,
            "lines": [line.to_dict() for line in self.lines],
        }


def _item_value(item: Any, key: str):
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def _insufficient(description: str, pool: StockPool, available: int, requested: int, **ids) -> InsufficientStock:
    return InsufficientStock(
        f"Insufficient stock for {description} at {pool.name}. "
        f"Available: {available}, Requested: {requested}",
        available=available,
        requested=requested,
        details={
            "pool": "central" if pool.is_central else "franchise",
            "location_id": pool.location_id,
            **ids,
        },
    )


def check_and_reserve(items: Iterable[Any], location_id: int | None = None) -> ReservationPlan:
    """
    Validate requested quantities against the right pool and return a plan.

    Reads only; nothing is written. Raises LocationNotFound, ProductNotFound,
    VariantRequired or InsufficientStock for the first offending line.
    """
    pool = StockPool.for_location(location_id)

    # (product_id, variant_id) -> accumulated request
    wanted: dict[tuple[int, int | None], dict[str, Any]] = {}

    for index, item in enumerate(items, start=1):
        product_id = _item_value(item, "product_id")
        variant_id = _item_value(item, "variant_id")
        quantity = _item_value(item, "quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Line {index}: quantity must be a positive integer")

        product = get_product(product_id)
        variant = None
        if variant_id is not None:
            variant = get_variant(product, variant_id)
        elif requires_variant(product):
            raise VariantRequired(
                f"Product '{product.name}' requires variant selection",
                details={"product_id": product.id, "line_number": index},
            )

        key = (product.id, variant.id if variant is not None else None)
        entry = wanted.setdefault(
            key,
            {"requested": 0, "description": describe_item(product, variant), "line_numbers": []},
        )
        entry["requested"] += quantity
        entry["line_numbers"].append(index)

    if not wanted:
        raise ValidationError("At least one line item is required")

    lines: list[ReservationLine] = []
    for (product_id, variant_id), entry in wanted.items():
        record = pool.find(product_id, variant_id)
        available = int(record.quantity) if record is not None else 0
        requested = entry["requested"]
        if record is None or available < requested:
            raise _insufficient(
                entry["description"], pool, available, requested,
                product_id=product_id, variant_id=variant_id,
            )
        lines.append(
            ReservationLine(
                pool=pool,
                stock_record_id=record.id,
                product_id=product_id,
                variant_id=variant_id,
                description=entry["description"],
                requested=requested,
                previous_quantity=available,
                new_quantity=available - requested,
                line_numbers=tuple(entry["line_numbers"]),
            )
        )

    return ReservationPlan(pool=pool, lines=tuple(lines))


def _append_history(
    *,
    pool: StockPool,
    product_id: int,
    variant_id: int | None,
    change_type: str,
    previous: int,
    new: int,
    actor: Actor,
    order_id: int | None = None,
    note: str | None = None,
) -> StockHistory:
    entry = StockHistory(
        product_id=product_id,
        variant_id=variant_id,
        location_id=pool.location_id,
        change_type=change_type,
        quantity_change=new - previous,
        previous_quantity=previous,
        new_quantity=new,
        order_id=order_id,
        created_by=actor.label,
        note=note[:255] if note else None,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def commit_line(line: ReservationLine, *, order_id: int, actor: Actor) -> StockHistory:
    """
    Decrement one planned stock row and append its history entry.

    Does not commit. Raises StaleReservation if the live quantity is no longer
    the planned previous_quantity.
    """
    if not line.pool.compare_and_swap(line.stock_record_id, line.previous_quantity, line.new_quantity):
        raise StaleReservation(
            f"Stock for {line.description} changed since it was checked",
            details={
                "product_id": line.product_id,
                "variant_id": line.variant_id,
                "location_id": line.pool.location_id,
                "expected_quantity": line.previous_quantity,
            },
        )
    return _append_history(
        pool=line.pool,
        product_id=line.product_id,
        variant_id=line.variant_id,
        change_type="sale",
        previous=line.previous_quantity,
        new=line.new_quantity,
        actor=actor,
        order_id=order_id,
        note=f"Order {order_id}",
    )


def refresh_line(line: ReservationLine) -> ReservationLine:
    """Re-plan a line from the live quantity; InsufficientStock if it no longer fits."""
    available = line.pool.current_quantity(line.stock_record_id)
    if available < line.requested:
        raise _insufficient(
            line.description, line.pool, available, line.requested,
            product_id=line.product_id, variant_id=line.variant_id,
        )
    return replace(line, previous_quantity=available, new_quantity=available - line.requested)


def commit_reservation(
    plan: ReservationPlan,
    *,
    order_id: int,
    actor: Actor,
    attempts: int | None = None,
    backoff_base: float | None = None,
) -> list[StockHistory]:
    """
    Commit every planned line, each in its own DB transaction.

    A stale line is re-read and retried up to `attempts` times; after that
    StockConflict is raised. InsufficientStock from a re-read propagates as is.
    Lines already committed stay committed; the caller decides how to flag
    the order.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_COMMIT_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_COMMIT_BACKOFF_SECONDS", 0.05)

    histories: list[StockHistory] = []
    for planned in plan.lines:
        state = {"line": planned}

        def _op():
            entry = commit_line(state["line"], order_id=order_id, actor=actor)
            db.session.commit()
            return entry

        def _refresh(exc, attempt):
            state["line"] = refresh_line(state["line"])

        try:
            histories.append(
                run_with_retry(
                    _op,
                    attempts=attempts,
                    backoff_base=backoff_base,
                    retry_on=(StaleReservation,) + DB_RETRYABLE,
                    on_retry=_refresh,
                )
            )
        except StaleReservation as exc:
            raise StockConflict(
                f"Stock for {planned.description} kept changing; gave up after {attempts} attempts",
                details={
                    **exc.details,
                    "order_id": order_id,
                    "attempts": attempts,
                    "committed_lines": len(histories),
                },
            ) from exc

    return histories


def apply_stock_change(
    *,
    product_id: int,
    variant_id: int | None = None,
    location_id: int | None = None,
    quantity_change: int,
    change_type: str,
    actor: Actor,
    note: str | None = None,
    attempts: int | None = None,
) -> StockHistory:
    """
    Restock or correct a pool outside of a sale.

    Same compare-and-swap and history rules as sales. A change that would take
    stock below zero raises InsufficientStock.
    """
    if not isinstance(quantity_change, int) or isinstance(quantity_change, bool) or quantity_change == 0:
        raise ValidationError("quantity_change must be a non-zero integer")
    if attempts is None:
        attempts = current_app.config.get("STOCK_COMMIT_ATTEMPTS", 3)

    pool = StockPool.for_location(location_id)
    product = get_product(product_id)
    variant = get_variant(product, variant_id) if variant_id is not None else None
    description = describe_item(product, variant)

    def _op() -> StockHistory:
        record = pool.get_or_create(product.id, variant_id)
        previous = pool.current_quantity(record.id)
        new = previous + quantity_change
        if new < 0:
            raise _insufficient(
                description, pool, previous, -quantity_change,
                product_id=product.id, variant_id=variant_id,
            )
        if not pool.compare_and_swap(record.id, previous, new):
            raise StaleReservation(f"Stock for {description} changed during {change_type}")
        entry = _append_history(
            pool=pool,
            product_id=product.id,
            variant_id=variant_id,
            change_type=change_type,
            previous=previous,
            new=new,
            actor=actor,
            note=note,
        )
        db.session.commit()
        return entry

    try:
        return run_with_retry(
            _op,
            attempts=attempts,
            backoff_base=current_app.config.get("STOCK_COMMIT_BACKOFF_SECONDS", 0.05),
            retry_on=(StaleReservation,) + DB_RETRYABLE,
        )
    except StaleReservation as exc:
        raise StockConflict(
            f"Stock for {description} kept changing; gave up after {attempts} attempts",
            details={"product_id": product.id, "variant_id": variant_id, "location_id": location_id},
        ) from exc


def restock(
    *,
    product_id: int,
    quantity: int,
    actor: Actor,
    variant_id: int | None = None,
    location_id: int | None = None,
    note: str | None = None,
) -> StockHistory:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer for restock")
    return apply_stock_change(
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        quantity_change=quantity,
        change_type="restock",
        actor=actor,
        note=note,
    )


def adjust_stock(
    *,
    product_id: int,
    quantity_change: int,
    actor: Actor,
    variant_id: int | None = None,
    location_id: int | None = None,
    note: str | None = None,
) -> StockHistory:
    return apply_stock_change(
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        quantity_change=quantity_change,
        change_type="adjustment",
        actor=actor,
        note=note,
    )


def get_quantity(product_id: int, variant_id: int | None = None, location_id: int | None = None) -> int:
    return StockPool(location_id=location_id).quantity(product_id, variant_id)


def list_stock(location_id: int | None = None, product_id: int | None = None) -> list:
    pool = StockPool.for_location(location_id)
    q = db.session.query(pool.model)
    if not pool.is_central:
        q = q.filter(pool.model.location_id == location_id)
    if product_id is not None:
        q = q.filter(pool.model.product_id == product_id)
    return q.order_by(pool.model.product_id.asc(), pool.model.id.asc()).all()


def list_stock_history(
    *,
    product_id: int | None = None,
    variant_id: int | None = None,
    location_id: int | None = None,
    order_id: int | None = None,
    limit: int = 100,
) -> list[StockHistory]:
    q = db.session.query(StockHistory)
    if product_id is not None:
        q = q.filter(StockHistory.product_id == product_id)
    if variant_id is not None:
        q = q.filter(StockHistory.variant_id == variant_id)
    if location_id is not None:
        q = q.filter(StockHistory.location_id == location_id)
    if order_id is not None:
        q = q.filter(StockHistory.order_id == order_id)
    return q.order_by(StockHistory.id.asc()).limit(limit).all()
