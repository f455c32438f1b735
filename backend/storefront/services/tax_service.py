# Overview: Tax Configuration Provider; active tax settings with defaults.

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any

from ..extensions import db
from ..errors import ValidationError
from ..models import TaxConfiguration
from ..money import to_decimal
from .actor import Actor
from .audit_service import append_audit_event


DEFAULT_TAX_RATE = Decimal("15.00")
DEFAULT_IMPORT_VAT_RATE = Decimal("15.00")
DEFAULT_CORPORATE_TAX_RATE = Decimal("27.00")
DEFAULT_IMPORT_VAT_RECLAIM_RATE = Decimal("100.00")


@dataclass(frozen=True)
class TaxSettings:
    tax_rate: Decimal = DEFAULT_TAX_RATE
    tax_inclusive: bool = False
    import_vat_rate: Decimal = DEFAULT_IMPORT_VAT_RATE
    corporate_tax_rate: Decimal = DEFAULT_CORPORATE_TAX_RATE
    import_vat_reclaim_rate: Decimal = DEFAULT_IMPORT_VAT_RECLAIM_RATE

    def to_dict(self) -> dict:
        data = asdict(self)
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in data.items()}


def _settings_from_row(row: TaxConfiguration) -> TaxSettings:
    def _rate(value, default: Decimal) -> Decimal:
        return default if value is None else Decimal(value)

    return TaxSettings(
        tax_rate=_rate(row.tax_rate, DEFAULT_TAX_RATE),
        tax_inclusive=bool(row.tax_inclusive),
        import_vat_rate=_rate(row.import_vat_rate, DEFAULT_IMPORT_VAT_RATE),
        corporate_tax_rate=_rate(row.corporate_tax_rate, DEFAULT_CORPORATE_TAX_RATE),
        import_vat_reclaim_rate=_rate(row.import_vat_reclaim_rate, DEFAULT_IMPORT_VAT_RECLAIM_RATE),
    )


def get_active_tax_config() -> TaxSettings:
    """Active configuration, or the defaults (15 / exclusive / 15 / 27 / 100) if none."""
    row = (
        db.session.query(TaxConfiguration)
        .filter(TaxConfiguration.is_active.is_(True))
        .order_by(TaxConfiguration.id.desc())
        .first()
    )
    if row is None:
        return TaxSettings()
    return _settings_from_row(row)


RATE_FIELDS = ("tax_rate", "import_vat_rate", "corporate_tax_rate", "import_vat_reclaim_rate")


def _validated_rate(payload: dict, key: str, *, maximum: Decimal = Decimal("100")) -> Decimal | None:
    if key not in payload or payload[key] is None:
        return None
    try:
        value = to_decimal(payload[key], field=key)
    except ValueError as e:
        raise ValidationError(str(e))
    if value < 0 or value > maximum:
        raise ValidationError(f"{key} must be between 0 and {maximum}")
    return value


def set_tax_config(payload: dict[str, Any], *, actor: Actor) -> TaxConfiguration:
    """
    Activate a new tax configuration, keeping previous rows as history.

    Omitted keys inherit from the currently active settings.
    """
    unknown = set(payload) - {"tax_inclusive", *RATE_FIELDS}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    current = get_active_tax_config()
    tax_inclusive = payload.get("tax_inclusive", current.tax_inclusive)
    if not isinstance(tax_inclusive, bool):
        raise ValidationError("tax_inclusive must be a boolean")

    # every value is validated before the active row is touched
    rates = {}
    for key in RATE_FIELDS:
        value = _validated_rate(payload, key)
        rates[key] = getattr(current, key) if value is None else value

    (
        db.session.query(TaxConfiguration)
        .filter(TaxConfiguration.is_active.is_(True))
        .update({"is_active": False}, synchronize_session=False)
    )

    row = TaxConfiguration(
        tax_inclusive=tax_inclusive,
        **rates,
        is_active=True,
        updated_by=actor.label,
    )
    db.session.add(row)
    db.session.flush()

    append_audit_event(
        event_type="tax_config.updated",
        entity_type="tax_configuration",
        entity_id=row.id,
        actor=actor,
        payload=_settings_from_row(row).to_dict(),
    )
    db.session.commit()
    return row
