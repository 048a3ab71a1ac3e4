# Overview: Flask CLI command groups for bootstrap and maintenance jobs.

# backend/depot/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--demo]
#   Idempotent bootstrap: creates tables and default categories (plus demo data with --demo).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Lots:
# - python -m flask lots reclassify
#   Re-derive every lot status from its expiration date (schedule daily).
#
# Stock:
# - python -m flask stock audit
#   Compare each product's stock counter with its movement ledger; exits 1 on mismatch.
# - python -m flask stock low
#   List active products at or below their minimum stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Client, Driver, Product
from .services import catalog_service, lot_service, stock_service


DEFAULT_CATEGORIES = [
    ("Beverages", "Water, soft drinks, juices"),
    ("Dry goods", "Rice, flour, sugar, pasta"),
    ("Cleaning", "Detergents and housekeeping supplies"),
    ("Linen", "Towels, sheets, amenities"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--demo', is_flag=True, help='Also create a demo product, client and driver')
@with_appcontext
def init_system(demo):
    """
    Initialize the depot database.

    Creates:
    - All tables (if missing)
    - Default categories
    - With --demo: one product with initial stock, one client, one driver
    """
    click.echo("START Initializing depot...")
    db.create_all()

    created = 0
    for name, description in DEFAULT_CATEGORIES:
        if db.session.query(Category.id).filter_by(name=name).first():
            continue
        db.session.add(Category(name=name, description=description))
        created += 1
    db.session.commit()
    click.echo(f"PASS Categories: {created} created, {len(DEFAULT_CATEGORIES) - created} already present")

    if demo:
        beverages = db.session.query(Category).filter_by(name="Beverages").first()
        if not db.session.query(Product.id).filter_by(reference="DEMO-WATER-15").first():
            catalog_service.create_product(
                patch={
                    "reference": "DEMO-WATER-15",
                    "name": "Mineral water 1.5L",
                    "category_id": beverages.id,
                    "unit_of_measure": "bottle",
                    "unit_price_cents": 1000,
                    "minimum_stock": 24,
                },
                initial_stock=120,
                actor_id="cli",
            )
            click.echo("PASS Created demo product DEMO-WATER-15 with 120 in stock")
        if not db.session.query(Client.id).first():
            db.session.add(Client(name="Demo Hotel", address="1 Harbour Road", city="Douala"))
            click.echo("PASS Created demo client")
        if not db.session.query(Driver.id).first():
            db.session.add(Driver(name="Demo Driver", vehicle="Van", plate_number="LT-000-AA"))
            click.echo("PASS Created demo driver")
        db.session.commit()

    click.echo("DONE Depot initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("DONE Database reset")


@click.group('lots')
def lots_group():
    """Lot maintenance commands."""


@lots_group.command('reclassify')
@with_appcontext
def reclassify_lots():
    """Re-derive lot statuses (GOOD / NEAR_EXPIRY / EXPIRED) for today."""
    result = lot_service.reclassify_lots()
    for change in result["changed"]:
        click.echo(f"  {change['lot_number']} (lot {change['lot_id']}): {change['from']} -> {change['to']}")
    click.echo(f"PASS {len(result['changed'])} lot(s) reclassified")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('audit')
@with_appcontext
def audit_stock():
    """Compare stock counters with the movement ledger."""
    mismatches = stock_service.audit_stock_ledger()
    if not mismatches:
        click.echo("PASS Every product matches its movement ledger")
        return

    for row in mismatches:
        click.echo(
            f"FAIL {row['product_name']} (product {row['product_id']}): "
            f"counter {row['current_stock']}, ledger {row['ledger_balance']}"
        )
    raise SystemExit(1)


@stock_group.command('low')
@with_appcontext
def low_stock():
    """List products at or below their minimum stock."""
    products = catalog_service.low_stock_products()
    if not products:
        click.echo("PASS No product below its minimum")
        return

    for product in products:
        click.echo(f"{product.reference:<16} {product.name:<32} {product.current_stock:>6} / min {product.minimum_stock}")
    click.echo(f"WARN {len(products)} product(s) at or below minimum stock")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(lots_group)
    app.cli.add_command(stock_group)
