from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class TaxConfiguration(db.Model):
    """
    Tax configuration rows; exactly one is expected to be active.

    All rates are percentages (15.00 = 15%). import_vat_reclaim_rate is the
    share of import VAT the business can reclaim against cost; 100 reproduces
    the full-reclaim policy, lower values model capped or delayed reclaim.
    """
    __tablename__ = "tax_configuration"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    tax_rate = db.Column(db.Numeric(6, 2), nullable=False, default=15)
    tax_inclusive = db.Column(db.Boolean, nullable=False, default=False)
    import_vat_rate = db.Column(db.Numeric(6, 2), nullable=False, default=15)
    corporate_tax_rate = db.Column(db.Numeric(6, 2), nullable=False, default=27)
    import_vat_reclaim_rate = db.Column(db.Numeric(6, 2), nullable=False, default=100)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    updated_by = db.Column(db.String(128), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tax_rate": str(self.tax_rate),
            "tax_inclusive": self.tax_inclusive,
            "import_vat_rate": str(self.import_vat_rate),
            "corporate_tax_rate": str(self.corporate_tax_rate),
            "import_vat_reclaim_rate": str(self.import_vat_reclaim_rate),
            "is_active": self.is_active,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }


class FinancialTransaction(db.Model):
    """
    One row per settled order and transaction type.

    profit_before_tax = revenue - (cost - import_vat) - tax
    net_profit_after_tax = profit_before_tax - corporate_tax
    Corporate tax is only levied on positive profit.
    """
    __tablename__ = "financial_transactions"
    __table_args__ = (
        db.UniqueConstraint("order_id", "transaction_type", name="uq_financial_transactions_order_type"),
        db.CheckConstraint("corporate_tax_amount_cents >= 0", name="ck_financial_transactions_corp_tax_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # sale | refund
    transaction_type = db.Column(db.String(16), nullable=False, default="sale")

    revenue_amount_cents = db.Column(db.Integer, nullable=False)
    tax_amount_cents = db.Column(db.Integer, nullable=False)
    cost_amount_cents = db.Column(db.Integer, nullable=False)
    import_vat_amount_cents = db.Column(db.Integer, nullable=False)
    corporate_tax_amount_cents = db.Column(db.Integer, nullable=False)
    profit_before_tax_cents = db.Column(db.Integer, nullable=False)
    net_profit_after_tax_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    # Rates used, so a row can be audited without the config history
    tax_rate = db.Column(db.Numeric(6, 2), nullable=False)
    tax_inclusive = db.Column(db.Boolean, nullable=False)
    import_vat_rate = db.Column(db.Numeric(6, 2), nullable=False)
    corporate_tax_rate = db.Column(db.Numeric(6, 2), nullable=False)
    import_vat_reclaim_rate = db.Column(db.Numeric(6, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "transaction_type": self.transaction_type,
            "revenue_amount_cents": self.revenue_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "cost_amount_cents": self.cost_amount_cents,
            "import_vat_amount_cents": self.import_vat_amount_cents,
            "corporate_tax_amount_cents": self.corporate_tax_amount_cents,
            "profit_before_tax_cents": self.profit_before_tax_cents,
            "net_profit_after_tax_cents": self.net_profit_after_tax_cents,
            "currency": self.currency,
            "tax_rate": str(self.tax_rate),
            "tax_inclusive": self.tax_inclusive,
            "import_vat_rate": str(self.import_vat_rate),
            "corporate_tax_rate": str(self.corporate_tax_rate),
            "import_vat_reclaim_rate": str(self.import_vat_reclaim_rate),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductCostBreakdown(db.Model):
    """Saved landed-cost calculator output for a product or variant."""
    __tablename__ = "product_cost_breakdown"
    __table_args__ = (
        db.UniqueConstraint("product_id", "variant_id", name="uq_product_cost_breakdown_item"),
        db.Index(
            "uq_product_cost_breakdown_no_variant",
            "product_id",
            unique=True,
            sqlite_where=db.text("variant_id IS NULL"),
            postgresql_where=db.text("variant_id IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    base_cost_cents = db.Column(db.Integer, nullable=False)
    transport_cost_per_unit_cents = db.Column(db.Integer, nullable=False, default=0)
    transport_cost_per_shipment_cents = db.Column(db.Integer, nullable=False, default=0)
    transport_cost_allocated_per_unit_cents = db.Column(db.Integer, nullable=False, default=0)
    custom_duty_rate = db.Column(db.Numeric(6, 2), nullable=False)
    custom_duty_amount_cents = db.Column(db.Integer, nullable=False)
    import_vat_amount_cents = db.Column(db.Integer, nullable=False)
    total_landed_cost_cents = db.Column(db.Integer, nullable=False)
    effective_cost_cents = db.Column(db.Integer, nullable=False)
    suggested_selling_price_cents = db.Column(db.Integer, nullable=True)
    desired_profit_margin = db.Column(db.Numeric(6, 2), nullable=False)

    calculated_by = db.Column(db.String(128), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "base_cost_cents": self.base_cost_cents,
            "transport_cost_per_unit_cents": self.transport_cost_per_unit_cents,
            "transport_cost_per_shipment_cents": self.transport_cost_per_shipment_cents,
            "transport_cost_allocated_per_unit_cents": self.transport_cost_allocated_per_unit_cents,
            "custom_duty_rate": str(self.custom_duty_rate),
            "custom_duty_amount_cents": self.custom_duty_amount_cents,
            "import_vat_amount_cents": self.import_vat_amount_cents,
            "total_landed_cost_cents": self.total_landed_cost_cents,
            "effective_cost_cents": self.effective_cost_cents,
            "suggested_selling_price_cents": self.suggested_selling_price_cents,
            "desired_profit_margin": str(self.desired_profit_margin),
            "calculated_by": self.calculated_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
