# backend/storefront/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Single-currency storefront
    STOREFRONT_CURRENCY = os.environ.get("STOREFRONT_CURRENCY", "ZAR")

    # Procurement falls back to this location code, then to the is_default location
    DEFAULT_PROCUREMENT_LOCATION_CODE = os.environ.get("DEFAULT_PROCUREMENT_LOCATION_CODE")

    # Optimistic stock commit
    STOCK_COMMIT_ATTEMPTS = int(os.environ.get("STOCK_COMMIT_ATTEMPTS", "3"))
    STOCK_COMMIT_BACKOFF_SECONDS = float(os.environ.get("STOCK_COMMIT_BACKOFF_SECONDS", "0.05"))

    # Post-commit bookkeeping tasks move to dead_letter after this many failures
    SETTLEMENT_TASK_MAX_ATTEMPTS = int(os.environ.get("SETTLEMENT_TASK_MAX_ATTEMPTS", "5"))

    REQUIRE_DECLARED_TOTAL_MATCH = _env_bool("REQUIRE_DECLARED_TOTAL_MATCH", True)

    # Orders left with stock_status='pending' longer than this are picked up by recovery
    SETTLEMENT_RECOVERY_GRACE_SECONDS = int(os.environ.get("SETTLEMENT_RECOVERY_GRACE_SECONDS", "300"))
