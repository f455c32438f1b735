# Overview: Read-only catalog lookups (products, variants, locations) used by settlement.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import LocationNotFound, ProductNotFound
from ..models import Location, Product, ProductVariant


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        raise ProductNotFound(
            f"Product {product_id} not found",
            details={"product_id": product_id},
        )
    return product


def get_variant(product: Product, variant_id: int) -> ProductVariant:
    """Resolve a variant and make sure it belongs to the product."""
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None or not variant.is_active or variant.product_id != product.id:
        raise ProductNotFound(
            f"Variant {variant_id} not found for product '{product.name}'",
            details={"product_id": product.id, "variant_id": variant_id},
        )
    return variant


def has_active_variants(product: Product) -> bool:
    return (
        db.session.query(ProductVariant.id)
        .filter(ProductVariant.product_id == product.id, ProductVariant.is_active.is_(True))
        .first()
        is not None
    )


def requires_variant(product: Product) -> bool:
    """A product flagged has_variants only needs a selection if a variant is actually sellable."""
    return bool(product.has_variants) and has_active_variants(product)


def get_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if location is None or not location.is_active:
        raise LocationNotFound(
            f"Location {location_id} not found",
            details={"location_id": location_id},
        )
    return location


def get_default_location() -> Location | None:
    """
    Default Location Provider.

    DEFAULT_PROCUREMENT_LOCATION_CODE wins when configured; otherwise the
    active location flagged is_default. Returns None when neither exists.
    """
    code = current_app.config.get("DEFAULT_PROCUREMENT_LOCATION_CODE")
    if code:
        location = (
            db.session.query(Location)
            .filter(Location.code == code, Location.is_active.is_(True))
            .first()
        )
        if location is not None:
            return location
        current_app.logger.warning("Configured default location %r not found", code)

    return (
        db.session.query(Location)
        .filter(Location.is_default.is_(True), Location.is_active.is_(True))
        .order_by(Location.id.asc())
        .first()
    )


def describe_item(product: Product, variant: ProductVariant | None = None) -> str:
    """Human-readable item name for error messages."""
    if variant is None:
        return f"'{product.name}'"
    return f"'{product.name}' ({variant.label})"
