# Overview: Settlement orchestrator; turns a checkout request into an order, stock moves and bookkeeping.

"""
Settlement Pipeline

    parse request -> check_and_reserve -> create order (pending)
        -> commit_reservation -> finalize (stock_status + tasks) -> run tasks

1. Validation and every inventory error (VariantRequired, InsufficientStock,
   LocationNotFound, ProductNotFound) happen before anything is written.
2. The order is committed before stock so each stock_history row can point
   at it.
3. If the stock commit fails the order stays 'pending' with
   stock_status='stock_inconsistent', the failure is audited, and the error is
   re-raised carrying order_id. A database failure during the stock commit is
   raised as PersistenceError, also carrying order_id. No bookkeeping tasks
   are created.
4. Once stock is committed the order is never reported as failed. Marking
   stock_status='committed' and inserting the SettlementTask rows happen in one
   transaction; if that transaction or a task run cannot be persisted the
   result comes back with bookkeeping_pending=True and
   recover_unfinished_orders() finishes the job later.
5. Bookkeeping runs as SettlementTask rows: one 'financial' task per order and
   one 'procurement' task per line. Each task runs in isolation; a failure is
   logged and recorded on the task and never unwinds the order. Failed tasks
   are replayed with replay_tasks() until they reach
   SETTLEMENT_TASK_MAX_ATTEMPTS, then parked as 'dead_letter'.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import InsufficientStock, NotFound, PersistenceError, StockConflict, ValidationError
from ..models import Order, OrderLine, SettlementTask, StockHistory
from ..time_utils import utcnow
from .actor import SYSTEM_ACTOR, Actor
from .catalog_service import get_product, get_variant
from .inventory_service import check_and_reserve, commit_reservation
from .order_service import create_order, get_order, mark_stock_status
from .settlement_schemas import SettlementRequest, parse_settlement_request
from . import ledger_service, procurement_service


TASK_TYPES = ("financial", "procurement")
TASK_STATUSES = ("pending", "done", "skipped", "failed", "dead_letter")
REPLAYABLE_STATUSES = ("pending", "failed")


@dataclass
class SettlementResult:
    order_id: int
    status: str
    order: Order | None = None
    tasks: list[SettlementTask] = field(default_factory=list)
    # stock is committed but finalization or a task run was not persisted
    bookkeeping_pending: bool = False

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "status": self.status,
            "bookkeeping_pending": self.bookkeeping_pending,
            "tasks": [task.to_dict() for task in self.tasks],
        }


def settle_order(payload: Any, *, actor: Actor = SYSTEM_ACTOR) -> SettlementResult:
    """
    Settle one checkout request.

    Raises ValidationError / inventory errors before any write, StockConflict or
    InsufficientStock (with details['order_id']) when the stock commit fails,
    and PersistenceError when the database rejects the work. A PersistenceError
    raised after the order row exists carries details['order_id'].
    """
    request = parse_settlement_request(
        payload,
        require_total_match=current_app.config.get("REQUIRE_DECLARED_TOTAL_MATCH", True),
    )
    try:
        return _settle(request, actor)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Settlement failed at the persistence layer")
        raise PersistenceError("Order could not be persisted; please retry") from exc


def _line_snapshots(request: SettlementRequest) -> list[dict[str, Any]]:
    rows = []
    for item in request.items:
        product = get_product(item.product_id)
        name = product.name
        if item.variant_id is not None:
            variant = get_variant(product, item.variant_id)
            name = f"{product.name} ({variant.label})"
        rows.append(
            {
                "product_id": product.id,
                "variant_id": item.variant_id,
                "product_name": name[:255],
                "unit_price_cents": item.unit_price_snapshot,
                "unit_cost_cents": item.unit_cost_snapshot,
                "quantity": item.quantity,
            }
        )
    return rows


def _flag_stock_inconsistent(order_id: int, actor: Actor, note: str, payload: dict) -> None:
    """Best-effort flag; a failure here leaves the order for recover_unfinished_orders()."""
    db.session.rollback()
    current_app.logger.error("Order %s flagged stock_inconsistent after stock commit failure: %s", order_id, note)
    try:
        mark_stock_status(get_order(order_id), "stock_inconsistent", actor=actor, note=note, payload=payload)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Order %s could not be flagged stock_inconsistent", order_id)


def _settle(request: SettlementRequest, actor: Actor) -> SettlementResult:
    plan = check_and_reserve(request.items, location_id=request.franchise_location_id)

    order = create_order(
        customer_email=request.customer_email,
        customer_id=request.customer_id,
        lines=_line_snapshots(request),
        actor=actor,
        franchise_location_id=request.franchise_location_id,
        delivery_info=request.delivery_info,
    )
    order_id = order.id
    order_status = order.status

    try:
        commit_reservation(plan, order_id=order_id, actor=actor)
    except (StockConflict, InsufficientStock) as exc:
        _flag_stock_inconsistent(order_id, actor, exc.message, {"kind": exc.kind, **exc.details})
        exc.details["order_id"] = order_id
        raise
    except SQLAlchemyError as exc:
        _flag_stock_inconsistent(
            order_id,
            actor,
            "Stock commit was rejected by the database",
            {"kind": PersistenceError.kind, "error": type(exc).__name__},
        )
        raise PersistenceError(
            f"Stock for order {order_id} could not be committed; please retry",
            details={"order_id": order_id},
        ) from exc

    # Stock is taken from here on; persistence failures are reported, not raised.
    try:
        order = get_order(order_id)
        tasks = finalize_order(order, actor=actor)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Order %s: stock committed but finalization was not persisted; left for recovery", order_id
        )
        return SettlementResult(order_id=order_id, status=order_status, order=order, bookkeeping_pending=True)

    pending = False
    for task in tasks:
        try:
            run_task(task, actor=actor)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(
                "Order %s: settlement task outcome was not persisted; left for replay", order_id
            )
            pending = True
            break
    return SettlementResult(
        order_id=order_id, status=order_status, order=order, tasks=tasks, bookkeeping_pending=pending
    )


def create_settlement_tasks(order: Order) -> list[SettlementTask]:
    """Add the bookkeeping tasks for an order to the session (caller commits)."""
    tasks = [SettlementTask(order_id=order.id, task_type="financial", status="pending", attempts=0)]
    for line in order.lines:
        tasks.append(
            SettlementTask(
                order_id=order.id,
                task_type="procurement",
                order_line_number=line.line_number,
                status="pending",
                attempts=0,
            )
        )
    db.session.add_all(tasks)
    return tasks


def finalize_order(order: Order, *, actor: Actor, note: str | None = None) -> list[SettlementTask]:
    """Mark stock committed and create the bookkeeping tasks in a single commit."""
    tasks = list_tasks(order_id=order.id)
    if not tasks:
        tasks = create_settlement_tasks(order)
    mark_stock_status(order, "committed", actor=actor, note=note)
    return tasks


def _order_line(order_id: int, line_number: int) -> OrderLine:
    line = (
        db.session.query(OrderLine)
        .filter(OrderLine.order_id == order_id, OrderLine.line_number == line_number)
        .first()
    )
    if line is None:
        raise NotFound(f"Order {order_id} has no line {line_number}")
    return line


def _execute(task: SettlementTask, actor: Actor) -> str:
    """Run one task body. Returns the final status ('done' or 'skipped')."""
    if task.task_type == "financial":
        ledger_service.compute_and_record(get_order(task.order_id))
        return "done"

    if task.task_type == "procurement":
        line = _order_line(task.order_id, task.order_line_number)
        item = procurement_service.enqueue_for_product(
            line.product_id,
            line.variant_id,
            line.quantity,
            actor=actor,
            source_order_id=task.order_id,
        )
        return "done" if item is not None else "skipped"

    raise ValidationError(f"Unknown settlement task type '{task.task_type}'")


def run_task(task: SettlementTask, *, actor: Actor = SYSTEM_ACTOR) -> SettlementTask:
    """
    Execute a task and record its outcome. Never raises for task-body failures.
    """
    task_id = task.id
    task.attempts = (task.attempts or 0) + 1
    db.session.commit()

    try:
        status = _execute(task, actor)
    except Exception as exc:
        db.session.rollback()
        task = db.session.get(SettlementTask, task_id)
        max_attempts = current_app.config.get("SETTLEMENT_TASK_MAX_ATTEMPTS", 5)
        task.status = "dead_letter" if task.attempts >= max_attempts else "failed"
        task.last_error = f"{type(exc).__name__}: {exc}"[:2000]
        db.session.commit()
        current_app.logger.exception(
            "Settlement task %s (%s) for order %s failed on attempt %s",
            task_id, task.task_type, task.order_id, task.attempts,
        )
        return task

    task = db.session.get(SettlementTask, task_id)
    task.status = status
    task.last_error = "No procurement location could be resolved" if status == "skipped" else None
    task.completed_at = utcnow()
    db.session.commit()
    return task


def list_tasks(
    *,
    status: str | None = None,
    order_id: int | None = None,
    limit: int = 200,
) -> list[SettlementTask]:
    q = db.session.query(SettlementTask)
    if status:
        if status not in TASK_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(TASK_STATUSES)}")
        q = q.filter(SettlementTask.status == status)
    if order_id is not None:
        q = q.filter(SettlementTask.order_id == order_id)
    return q.order_by(SettlementTask.id.asc()).limit(limit).all()


def replay_tasks(order_id: int | None = None, *, actor: Actor = SYSTEM_ACTOR) -> list[SettlementTask]:
    """Re-run every pending or failed task (optionally for one order)."""
    q = db.session.query(SettlementTask).filter(SettlementTask.status.in_(REPLAYABLE_STATUSES))
    if order_id is not None:
        q = q.filter(SettlementTask.order_id == order_id)
    tasks = q.order_by(SettlementTask.id.asc()).all()

    replayed = [run_task(task, actor=actor) for task in tasks]
    if replayed:
        current_app.logger.info("Replayed %s settlement task(s)", len(replayed))
    return replayed


# ---------------------------------------------------------------------------
# Recovery of orders whose stock_status was never resolved
# ---------------------------------------------------------------------------


def unfinished_orders_query(grace_seconds: int | None = None):
    if grace_seconds is None:
        grace_seconds = current_app.config.get("SETTLEMENT_RECOVERY_GRACE_SECONDS", 300)
    cutoff = utcnow() - timedelta(seconds=grace_seconds)
    return db.session.query(Order).filter(Order.stock_status == "pending", Order.created_at <= cutoff)


def _stock_fully_committed(order: Order) -> bool:
    expected = {(line.product_id, line.variant_id) for line in order.lines}
    recorded = {
        (row.product_id, row.variant_id)
        for row in db.session.query(StockHistory.product_id, StockHistory.variant_id)
        .filter(StockHistory.order_id == order.id, StockHistory.change_type == "sale")
        .all()
    }
    return bool(expected) and recorded == expected


def recover_unfinished_orders(
    *,
    actor: Actor = SYSTEM_ACTOR,
    grace_seconds: int | None = None,
) -> list[Order]:
    """
    Resolve orders still at stock_status='pending' after the grace period.

    Orders whose every line has a sale history row are finalized and their
    tasks run; the rest are flagged stock_inconsistent for manual review.
    """
    orders = unfinished_orders_query(grace_seconds).order_by(Order.id.asc()).all()
    recovered = []
    for order in orders:
        if _stock_fully_committed(order):
            tasks = finalize_order(order, actor=actor, note="Recovered after interrupted settlement")
            for task in tasks:
                if task.status in REPLAYABLE_STATUSES:
                    run_task(task, actor=actor)
        else:
            mark_stock_status(
                order,
                "stock_inconsistent",
                actor=actor,
                note="Stock commit did not complete for every line",
                payload={"kind": "stock_commit_incomplete"},
            )
        recovered.append(order)

    if recovered:
        current_app.logger.warning("Recovered %s unfinished order(s)", len(recovered))
    return recovered
