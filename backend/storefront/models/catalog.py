from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Location(db.Model):
    """
    A stocking location: the central warehouse or a franchise outlet.

    Franchise stock is counted per location in location_stock; warehouse
    locations map onto the central stock table.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_locations_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # warehouse | franchise
    kind = db.Column(db.String(16), nullable=False, default="franchise")

    # Procurement falls back to this location when a product has none
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} code={self.code!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "kind": self.kind,
            "is_default": self.is_default,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog product (read-only from the settlement core's point of view).

    has_variants=True means the product is sold through ProductVariant rows;
    a line item for it must name a variant as long as one is active.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True, index=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    cost_cents = db.Column(db.Integer, nullable=True)

    has_variants = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Home location for replenishment (procurement queue)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    location = db.relationship("Location")
    variants = db.relationship("ProductVariant", back_populates="product", lazy=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "has_variants": self.has_variants,
            "is_active": self.is_active,
            "location_id": self.location_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    __tablename__ = "product_variants"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=True)

    # e.g. {"size": "L", "color": "Red"}
    attributes = db.Column(db.JSON, nullable=False, default=dict)

    # None means "use product price/cost"
    price_cents = db.Column(db.Integer, nullable=True)
    cost_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="variants")

    @property
    def label(self) -> str:
        if self.attributes:
            return ", ".join(f"{k}: {v}" for k, v in sorted(self.attributes.items()))
        return self.sku or f"variant {self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "attributes": self.attributes or {},
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CustomDutyRate(db.Model):
    """Category -> customs duty rate (percent), consumed by the pricing calculator."""
    __tablename__ = "custom_duty_rates"
    __table_args__ = (
        db.UniqueConstraint("category", name="uq_custom_duty_rates_category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(128), nullable=False)
    duty_rate = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "duty_rate": str(self.duty_rate),
            "description": self.description,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }
