# Overview: Flask CLI command groups for bootstrap, tax settings, pricing and settlement upkeep.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use 'flask db upgrade' for migrated environments).
# - python -m flask system seed-defaults
#   Idempotent demo data: warehouse + franchise locations, tax config, duty rates, products, stock.
#
# Tax configuration:
# - python -m flask tax show
# - python -m flask tax set --tax-rate 15 --tax-inclusive --import-vat-reclaim-rate 100
#
# Pricing:
# - python -m flask pricing calculate --base-cost 100 --category electronics --margin 30
#
# Settlement upkeep:
# - python -m flask settlement replay-tasks [--order-id 12]
#   Re-run pending/failed post-commit bookkeeping tasks.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import StorefrontError
from .models import CentralStock, CustomDutyRate, Location, LocationStock, Product, ProductVariant, TaxConfiguration
from .services import pricing_service, settlement_service, tax_service
from .services.actor import make_actor


actor_option = click.option('--actor', 'actor_id', default=None, help='Actor id recorded on audit rows (default: system)')


def _fail(e: StorefrontError):
    raise click.ClickException(f"{e.kind}: {e.message}")


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema created")


@system_group.command('seed-defaults')
@with_appcontext
def seed_defaults():
    """
    Seed a small storefront so a fresh environment is immediately usable.

    Safe to rerun: rows are matched by code/name/category and skipped when present.
    """
    created = {"locations": 0, "duty_rates": 0, "products": 0, "variants": 0, "stock_rows": 0, "tax_config": 0}

    warehouse = db.session.query(Location).filter_by(code="WH-MAIN").first()
    if warehouse is None:
        warehouse = Location(code="WH-MAIN", name="Main Warehouse", kind="warehouse", is_default=True)
        db.session.add(warehouse)
        created["locations"] += 1

    franchise = db.session.query(Location).filter_by(code="FR-CPT").first()
    if franchise is None:
        franchise = Location(code="FR-CPT", name="Cape Town Franchise", kind="franchise")
        db.session.add(franchise)
        created["locations"] += 1
    db.session.flush()

    if db.session.query(TaxConfiguration).filter_by(is_active=True).first() is None:
        db.session.add(TaxConfiguration(updated_by="system"))
        created["tax_config"] += 1

    for category, rate, description in (
        ("electronics", 15, "Consumer electronics"),
        ("clothing", 45, "Apparel and textiles"),
        ("books", 0, "Printed books"),
    ):
        if db.session.query(CustomDutyRate).filter_by(category=category).first() is None:
            db.session.add(CustomDutyRate(category=category, duty_rate=rate, description=description))
            created["duty_rates"] += 1

    catalog = (
        ("Wireless Earbuds", "electronics", 89900, 52000, None),
        ("Cotton T-Shirt", "clothing", 24900, 11000, [{"size": "S"}, {"size": "M"}, {"size": "L"}]),
        ("Field Notes Journal", "books", 15900, 7000, None),
    )
    for name, category, price, cost, variants in catalog:
        product = db.session.query(Product).filter_by(name=name).first()
        if product is not None:
            continue
        product = Product(
            name=name,
            category=category,
            price_cents=price,
            cost_cents=cost,
            has_variants=bool(variants),
            location_id=warehouse.id,
        )
        db.session.add(product)
        db.session.flush()
        created["products"] += 1

        keys = [None]
        if variants:
            keys = []
            for attrs in variants:
                variant = ProductVariant(
                    product_id=product.id,
                    sku=f"{product.id}-{attrs['size']}",
                    attributes=attrs,
                    price_cents=price,
                    cost_cents=cost,
                )
                db.session.add(variant)
                db.session.flush()
                keys.append(variant.id)
                created["variants"] += 1

        for variant_id in keys:
            db.session.add(CentralStock(product_id=product.id, variant_id=variant_id, quantity=25))
            db.session.add(
                LocationStock(location_id=franchise.id, product_id=product.id, variant_id=variant_id, quantity=5)
            )
            created["stock_rows"] += 2

    db.session.commit()
    for key, count in created.items():
        click.echo(f"PASS {key}: {count} created")


@click.group('tax')
def tax_group():
    """Tax configuration commands."""


@tax_group.command('show')
@with_appcontext
def tax_show():
    """Print the active tax configuration."""
    click.echo(json.dumps(tax_service.get_active_tax_config().to_dict(), indent=2))


@tax_group.command('set')
@click.option('--tax-rate', type=str, default=None)
@click.option('--tax-inclusive/--tax-exclusive', default=None)
@click.option('--import-vat-rate', type=str, default=None)
@click.option('--corporate-tax-rate', type=str, default=None)
@click.option('--import-vat-reclaim-rate', type=str, default=None)
@actor_option
@with_appcontext
def tax_set(tax_rate, tax_inclusive, import_vat_rate, corporate_tax_rate, import_vat_reclaim_rate, actor_id):
    """Activate a new tax configuration; omitted options keep their current value."""
    payload = {
        "tax_rate": tax_rate,
        "tax_inclusive": tax_inclusive,
        "import_vat_rate": import_vat_rate,
        "corporate_tax_rate": corporate_tax_rate,
        "import_vat_reclaim_rate": import_vat_reclaim_rate,
    }
    payload = {k: v for k, v in payload.items() if v is not None}
    if not payload:
        raise click.UsageError("Nothing to change")
    try:
        row = tax_service.set_tax_config(payload, actor=make_actor(actor_id))
    except StorefrontError as e:
        _fail(e)
    click.echo(json.dumps(row.to_dict(), indent=2))


@click.group('pricing')
def pricing_group():
    """Landed-cost calculator."""


@pricing_group.command('calculate')
@click.option('--base-cost', required=True, type=str, help='Supplier cost per unit (major units)')
@click.option('--duty-rate', type=str, default=None, help='Customs duty percent')
@click.option('--category', default=None, help='Look the duty rate up by product category')
@click.option('--transport-per-unit', type=str, default=None)
@click.option('--transport-per-shipment', type=str, default=None)
@click.option('--products-in-shipment', type=int, default=None)
@click.option('--proportion', type=str, default=None, help='Product share of shipment cost (0-1)')
@click.option('--margin', type=str, default=None, help='Desired profit margin percent')
@with_appcontext
def pricing_calculate(base_cost, duty_rate, category, transport_per_unit, transport_per_shipment,
                      products_in_shipment, proportion, margin):
    """Print a cost breakdown and suggested selling price."""
    payload = {
        "base_cost": base_cost,
        "custom_duty_rate": duty_rate,
        "category": category,
        "transport_cost_per_unit": transport_per_unit,
        "transport_cost_per_shipment": transport_per_shipment,
        "total_products_in_shipment": products_in_shipment,
        "product_cost_proportion": proportion,
        "desired_profit_margin": margin,
    }
    settings = tax_service.get_active_tax_config()
    payload.setdefault("import_vat_rate", settings.import_vat_rate)
    payload.setdefault("sales_vat_rate", settings.tax_rate)
    payload.setdefault("corporate_tax_rate", settings.corporate_tax_rate)
    payload.setdefault("import_vat_reclaim_rate", settings.import_vat_reclaim_rate)
    try:
        breakdown = pricing_service.calculate_cost_breakdown(pricing_service.resolve_calculator_payload(payload))
    except StorefrontError as e:
        _fail(e)
    click.echo(json.dumps(breakdown.to_dict(), indent=2))


@click.group('settlement')
def settlement_group():
    """Settlement upkeep commands."""


@settlement_group.command('replay-tasks')
@click.option('--order-id', type=int, default=None)
@actor_option
@with_appcontext
def replay_tasks(order_id, actor_id):
    """Re-run pending/failed post-commit tasks (financial ledger, procurement)."""
    tasks = settlement_service.replay_tasks(order_id, actor=make_actor(actor_id))
    if not tasks:
        click.echo("PASS Nothing to replay")
        return
    for task in tasks:
        click.echo(
            f"{task.status.upper():12} task {task.id} ({task.task_type}) order {task.order_id}"
            f" attempts={task.attempts}" + (f" error={task.last_error}" if task.last_error else "")
        )


@settlement_group.command('recover-orders')
@click.option('--grace-seconds', type=click.IntRange(min=0), default=None,
              help='Only orders older than this (default SETTLEMENT_RECOVERY_GRACE_SECONDS).')
@actor_option
@with_appcontext
def recover_orders(grace_seconds, actor_id):
    """Finish or flag orders whose settlement stopped after the stock commit."""
    orders = settlement_service.recover_unfinished_orders(
        actor=make_actor(actor_id), grace_seconds=grace_seconds
    )
    if not orders:
        click.echo("PASS Nothing to recover")
        return
    for order in orders:
        click.echo(f"{order.stock_status.upper():18} order {order.id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tax_group)
    app.cli.add_command(pricing_group)
    app.cli.add_command(settlement_group)
