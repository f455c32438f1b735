# Overview: Cents/Decimal conversion helpers shared by pricing and accounting.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any, *, field: str = "value") -> Decimal:
    """Coerce int/float/str/Decimal to a finite Decimal without float artefacts."""
    result = _coerce_decimal(value, field)
    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return result


def _coerce_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            raise ValueError(f"{field} must be a number")
        try:
            return Decimal(text)
        except InvalidOperation:
            raise ValueError(f"{field} must be a number")
    raise ValueError(f"{field} must be a number")


def quantize_money(amount: Decimal) -> Decimal:
    # nearest-cent rounding (half-up)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_cents(amount: Decimal) -> int:
    """Round a Decimal amount already expressed in cents to an integer (half-up)."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_cents(amount: Decimal) -> int:
    """Major units (e.g. rand) -> integer cents, half-up."""
    return round_cents(amount * HUNDRED)
