from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Order aggregate (created once by settlement, in status 'pending').

    The order row is written BEFORE stock is committed so stock_history rows
    can reference it even when the commit later fails; stock_status records
    whether that commit completed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_email = db.Column(db.String(255), nullable=False, index=True)
    customer_id = db.Column(db.String(64), nullable=True, index=True)

    # pending | confirmed | processing | shipped | delivered | cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # pending | committed | stock_inconsistent
    stock_status = db.Column(db.String(24), nullable=False, default="pending", index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    # NULL = sold from central stock
    franchise_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    delivery_info = db.Column(db.JSON, nullable=True)

    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    cancelled_reason = db.Column(db.String(255), nullable=True)

    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.line_number",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} stock_status={self.stock_status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_email": self.customer_email,
            "customer_id": self.customer_id,
            "status": self.status,
            "stock_status": self.stock_status,
            "total_cents": self.total_cents,
            "currency": self.currency,
            "franchise_location_id": self.franchise_location_id,
            "delivery_info": self.delivery_info,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_reason": self.cancelled_reason,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """
    One sold item. Price and cost are snapshots taken at sale time and are
    never re-read from the catalog afterwards.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_lines_number"),
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="lines")

    @property
    def line_cost_cents(self) -> int:
        return self.unit_cost_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product_name,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }
