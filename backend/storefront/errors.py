# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class StorefrontError(Exception):
    """
    Base class for every error the settlement core reports to a caller.

    kind is machine-readable and stable; message is for humans and names the
    offending product/variant whenever one is known.
    """
    kind = "storefront_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class ValidationError(StorefrontError, ValueError):
    """400-level input problem (malformed request, missing fields)."""
    kind = "validation_error"


class InvalidInput(ValidationError):
    """Calculator input is missing or outside its allowed range."""
    kind = "invalid_input"


class ProductNotFound(StorefrontError):
    kind = "product_not_found"
    http_status = 404


class LocationNotFound(StorefrontError):
    kind = "location_not_found"
    http_status = 404


class VariantRequired(StorefrontError):
    """Product has active variants but the line item did not select one."""
    kind = "variant_required"


class InsufficientStock(StorefrontError):
    kind = "insufficient_stock"
    http_status = 409

    def __init__(self, message: str, *, available: int, requested: int, details: dict | None = None):
        merged = dict(details or {})
        merged.update({"available": available, "requested": requested})
        super().__init__(message, merged)
        self.available = available
        self.requested = requested


class StaleReservation(StorefrontError):
    """Live quantity drifted between check and commit; retry from a fresh read."""
    kind = "stale_reservation"
    http_status = 409


class StockConflict(StorefrontError):
    """Optimistic stock commit kept losing races; retries exhausted."""
    kind = "stock_conflict"
    http_status = 409


class InvalidTransition(StorefrontError):
    kind = "invalid_transition"
    http_status = 409


class NotFound(StorefrontError):
    kind = "not_found"
    http_status = 404


class PersistenceError(StorefrontError):
    """Underlying store unavailable or rejected the write."""
    kind = "persistence_error"
    http_status = 503
