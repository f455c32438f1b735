# Overview: Financial transaction ledger; per-order tax and profit figures and period totals.

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import FinancialTransaction, Order, OrderLine, Product
from ..money import HUNDRED, quantize_money, round_cents
from ..time_utils import period_bounds, to_utc_z
from .tax_service import TaxSettings, get_active_tax_config
"""
Ledger Invariants (authoritative)

- One FinancialTransaction per (order_id, transaction_type); recomputing an
  order updates its row instead of inserting a second one.
- All amounts are integer cents, rounded half-up once per figure.
- cost comes from the order line snapshots (unit_cost_cents * quantity),
  never from the current catalog.
- import_vat is the reclaimable portion only, so
      profit_before_tax = revenue - (cost - import_vat) - tax
      net_profit_after_tax = profit_before_tax - corporate_tax
  hold exactly on the stored integers.
- Corporate tax is only levied on positive profit.
"""

SALE = "sale"


@dataclass(frozen=True)
class TransactionAmounts:
    revenue_amount_cents: int
    tax_amount_cents: int
    cost_amount_cents: int
    import_vat_amount_cents: int
    corporate_tax_amount_cents: int
    profit_before_tax_cents: int
    net_profit_after_tax_cents: int

    def to_dict(self) -> dict:
        return asdict(self)


def compute_transaction_amounts(total_cents: int, cost_cents: int, settings: TaxSettings) -> TransactionAmounts:
    """Pure ledger arithmetic for one order total and its snapshot cost."""
    total = Decimal(total_cents)
    rate = Decimal(settings.tax_rate)

    if settings.tax_inclusive:
        tax = round_cents(total * rate / (HUNDRED + rate))
        revenue = total_cents - tax
    else:
        tax = round_cents(total * rate / HUNDRED)
        revenue = total_cents

    import_vat = round_cents(
        Decimal(cost_cents)
        * Decimal(settings.import_vat_rate) / HUNDRED
        * Decimal(settings.import_vat_reclaim_rate) / HUNDRED
    )

    profit_before_tax = revenue - (cost_cents - import_vat) - tax
    corporate_tax = 0
    if profit_before_tax > 0:
        corporate_tax = round_cents(Decimal(profit_before_tax) * Decimal(settings.corporate_tax_rate) / HUNDRED)

    return TransactionAmounts(
        revenue_amount_cents=revenue,
        tax_amount_cents=tax,
        cost_amount_cents=cost_cents,
        import_vat_amount_cents=import_vat,
        corporate_tax_amount_cents=corporate_tax,
        profit_before_tax_cents=profit_before_tax,
        net_profit_after_tax_cents=profit_before_tax - corporate_tax,
    )


def order_cost_cents(order: Order) -> int:
    return sum(line.line_cost_cents for line in order.lines)


def _apply(tx: FinancialTransaction, amounts: TransactionAmounts, settings: TaxSettings, currency: str) -> None:
    for key, value in amounts.to_dict().items():
        setattr(tx, key, value)
    tx.currency = currency
    tx.tax_rate = settings.tax_rate
    tx.tax_inclusive = settings.tax_inclusive
    tx.import_vat_rate = settings.import_vat_rate
    tx.corporate_tax_rate = settings.corporate_tax_rate
    tx.import_vat_reclaim_rate = settings.import_vat_reclaim_rate


def get_transaction(order_id: int, transaction_type: str = SALE) -> FinancialTransaction | None:
    return (
        db.session.query(FinancialTransaction)
        .filter(
            FinancialTransaction.order_id == order_id,
            FinancialTransaction.transaction_type == transaction_type,
        )
        .first()
    )


def compute_and_record(order: Order, tax_config: Optional[TaxSettings] = None) -> FinancialTransaction:
    """
    Compute the sale figures for an order and upsert its ledger row.

    Uses the active tax configuration when tax_config is not given.
    Commits.
    """
    settings = tax_config or get_active_tax_config()
    amounts = compute_transaction_amounts(order.total_cents, order_cost_cents(order), settings)

    tx = get_transaction(order.id)
    if tx is None:
        tx = FinancialTransaction(order_id=order.id, transaction_type=SALE)
        _apply(tx, amounts, settings, order.currency)
        db.session.add(tx)
        try:
            db.session.commit()
            return tx
        except IntegrityError:
            # Concurrent recompute inserted first; update that row instead
            db.session.rollback()
            tx = get_transaction(order.id)
            if tx is None:
                raise

    _apply(tx, amounts, settings, order.currency)
    db.session.commit()
    return tx


def summarize(start: str | None = None, end: str | None = None, *, range_name: str | None = None) -> dict:
    """Totals for the accounting dashboard over [start, end] (or a named range)."""
    start_dt, end_dt = period_bounds(start, end, range_name=range_name)

    totals = (
        db.session.query(
            func.count(FinancialTransaction.id),
            func.coalesce(func.sum(FinancialTransaction.revenue_amount_cents), 0),
            func.coalesce(func.sum(FinancialTransaction.tax_amount_cents), 0),
            func.coalesce(func.sum(FinancialTransaction.cost_amount_cents), 0),
            func.coalesce(func.sum(FinancialTransaction.import_vat_amount_cents), 0),
            func.coalesce(func.sum(FinancialTransaction.corporate_tax_amount_cents), 0),
            func.coalesce(func.sum(FinancialTransaction.profit_before_tax_cents), 0),
            func.coalesce(func.sum(FinancialTransaction.net_profit_after_tax_cents), 0),
        )
        .filter(
            FinancialTransaction.transaction_type == SALE,
            FinancialTransaction.created_at >= start_dt,
            FinancialTransaction.created_at <= end_dt,
        )
        .one()
    )
    (count, revenue, tax, cost, import_vat, corporate_tax, profit_before_tax, net_profit) = totals

    inconsistent = (
        db.session.query(func.count(Order.id))
        .filter(
            Order.stock_status == "stock_inconsistent",
            Order.created_at >= start_dt,
            Order.created_at <= end_dt,
        )
        .scalar()
    )

    return {
        "period": {"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)},
        "transaction_count": int(count),
        "total_revenue_cents": int(revenue),
        "total_tax_cents": int(tax),
        "total_cost_cents": int(cost),
        "total_import_vat_cents": int(import_vat),
        "total_corporate_tax_cents": int(corporate_tax),
        "gross_profit_cents": int(profit_before_tax),
        "net_profit_cents": int(net_profit),
        "stock_inconsistent_orders": int(inconsistent or 0),
    }


# Orders that count as sold for per-product profitability
SOLD_ORDER_STATUSES = ("confirmed", "processing", "shipped", "delivered")


def _margin(profit_cents: int, revenue_cents: int) -> str:
    if revenue_cents <= 0:
        return "0.00"
    return str(quantize_money(Decimal(profit_cents) * HUNDRED / Decimal(revenue_cents)))


def products_profit(
    start: str | None = None,
    end: str | None = None,
    *,
    range_name: str | None = None,
) -> dict:
    """
    Per-product revenue, cost and profit over the window.

    Built from order line snapshots of orders past 'pending' and not
    cancelled. Products are ordered by profit, highest first.
    """
    start_dt, end_dt = period_bounds(start, end, range_name=range_name)

    rows = (
        db.session.query(
            OrderLine.product_id,
            Product.name,
            Product.category,
            func.sum(OrderLine.quantity),
            func.sum(OrderLine.line_total_cents),
            func.sum(OrderLine.unit_cost_cents * OrderLine.quantity),
        )
        .join(Order, Order.id == OrderLine.order_id)
        .join(Product, Product.id == OrderLine.product_id)
        .filter(
            Order.status.in_(SOLD_ORDER_STATUSES),
            Order.created_at >= start_dt,
            Order.created_at <= end_dt,
        )
        .group_by(OrderLine.product_id, Product.name, Product.category)
        .all()
    )

    products = []
    for product_id, name, category, units, revenue, cost in rows:
        units, revenue, cost = int(units or 0), int(revenue or 0), int(cost or 0)
        profit = revenue - cost
        products.append(
            {
                "product_id": product_id,
                "product_name": name,
                "category": category,
                "units_sold": units,
                "revenue_cents": revenue,
                "cost_cents": cost,
                "avg_selling_price_cents": round_cents(Decimal(revenue) / units) if units else 0,
                "avg_cost_cents": round_cents(Decimal(cost) / units) if units else 0,
                "profit_cents": profit,
                "profit_margin": _margin(profit, revenue),
            }
        )
    products.sort(key=lambda p: (-p["profit_cents"], p["product_id"]))

    return {
        "period": {"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)},
        "products": products,
        "total_revenue_cents": sum(p["revenue_cents"] for p in products),
        "total_profit_cents": sum(p["profit_cents"] for p in products),
    }
