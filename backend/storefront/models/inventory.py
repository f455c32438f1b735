from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CentralStock(db.Model):
    """
    Central warehouse stock for a product (variant_id NULL) or a variant.

    quantity is mutated only by inventory_service, always through a
    compare-and-swap UPDATE so it can never go negative.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "variant_id", name="uq_stock_product_variant"),
        # NULL variant_id values never collide in a plain UNIQUE, so product-level rows get their own index
        db.Index(
            "uq_stock_product_no_variant",
            "product_id",
            unique=True,
            sqlite_where=db.text("variant_id IS NULL"),
            postgresql_where=db.text("variant_id IS NULL"),
        ),
        db.CheckConstraint("quantity >= 0", name="ck_stock_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pool": "central",
            "location_id": None,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class LocationStock(db.Model):
    """Franchise stock, counted separately per location."""
    __tablename__ = "location_stock"
    __table_args__ = (
        db.UniqueConstraint("location_id", "product_id", "variant_id", name="uq_location_stock_key"),
        db.Index(
            "uq_location_stock_no_variant",
            "location_id",
            "product_id",
            unique=True,
            sqlite_where=db.text("variant_id IS NULL"),
            postgresql_where=db.text("variant_id IS NULL"),
        ),
        db.CheckConstraint("quantity >= 0", name="ck_location_stock_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pool": "franchise",
            "location_id": self.location_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockHistory(db.Model):
    """
    Append-only audit of every stock mutation.

    Invariant: new_quantity == previous_quantity + quantity_change, and
    previous_quantity equals the live quantity the row was swapped from.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.CheckConstraint(
            "new_quantity = previous_quantity + quantity_change",
            name="ck_stock_history_arithmetic",
        ),
        db.Index("ix_stock_history_key", "product_id", "variant_id", "location_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    # NULL = central stock
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    # sale | restock | adjustment
    change_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    created_by = db.Column(db.String(128), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "change_type": self.change_type,
            "quantity_change": self.quantity_change,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "order_id": self.order_id,
            "created_by": self.created_by,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
