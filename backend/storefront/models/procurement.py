from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProcurementQueueItem(db.Model):
    """
    Replenishment worklist entry.

    At most one 'pending' row exists per (product_id, variant_id, location_id);
    new demand is added to its quantity_needed until someone marks it ordered.
    """
    __tablename__ = "procurement_queue"
    __table_args__ = (
        db.CheckConstraint("quantity_needed > 0", name="ck_procurement_queue_qty_pos"),
        db.Index("ix_procurement_queue_key_status", "product_id", "variant_id", "location_id", "status"),
        # one pending row per key; product-level rows (variant_id NULL) need their own index
        db.Index(
            "uq_procurement_queue_pending_variant",
            "product_id",
            "variant_id",
            "location_id",
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
        db.Index(
            "uq_procurement_queue_pending_no_variant",
            "product_id",
            "location_id",
            unique=True,
            sqlite_where=db.text("status = 'pending' AND variant_id IS NULL"),
            postgresql_where=db.text("status = 'pending' AND variant_id IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity_needed = db.Column(db.Integer, nullable=False)

    # pending | ordered | received | cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # low | normal | high | urgent
    priority = db.Column(db.String(16), nullable=False, default="normal")

    notes = db.Column(db.Text, nullable=True)
    source_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    ordered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "quantity_needed": self.quantity_needed,
            "status": self.status,
            "priority": self.priority,
            "notes": self.notes,
            "source_order_id": self.source_order_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "ordered_at": to_utc_z(self.ordered_at),
            "received_at": to_utc_z(self.received_at),
        }
