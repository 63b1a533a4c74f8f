# Overview: Flask CLI command groups for bootstrap, settings, demo data and ledger maintenance.

# backend/attarhouse/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "attarhouse:create_app" (PowerShell: $env:FLASK_APP="attarhouse:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use "flask db upgrade" for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system wipe --yes
#   Clear orders, ledger entries and stock but keep catalog, parties and settings.
#
# Settings:
# - python -m flask settings get gst_rate
# - python -m flask settings set gst_rate 12
#
# Catalog:
# - python -m flask catalog seed-demo
#   Idempotently create demo products, gift sets, attars, stock and parties.
#
# Ledger:
# - python -m flask ledger reconcile
#   Report parties whose stored balance differs from SUM(debit) - SUM(credit).
# - python -m flask ledger reconcile --fix
#   Overwrite mismatched balances with the ledger-derived value.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .item_refs import ItemRef
from .models import (
    Product, ProductSet, Attar, StockRecord,
    Party, PartyItemPrice, Transaction,
    Order, OrderItem,
)
from .models.parties import PARTY_CUSTOMER, PARTY_SUPPLIER
from .services import settings_service, ledger_service
from .services.catalog_service import get_stock_record
from .services.settings_service import SettingsError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables (idempotent)."""
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask catalog seed-demo' for sample data.")


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """
    Clear transactional data while preserving master data.

    Keeps: products, gift sets, attars, parties, party prices, settings.
    Removes: orders, order items, ledger entries, stock records.
    Party balances are reset to zero.
    """
    if not yes:
        click.confirm("WARN This will DELETE all orders, ledger entries and stock. Are you sure?", abort=True)

    click.echo("WIPE  Clearing transactional data...")

    # Delete in FK-safe order (children before parents)
    tables = [
        ("Transaction", Transaction),
        ("OrderItem", OrderItem),
        ("Order", Order),
        ("StockRecord", StockRecord),
    ]

    total_deleted = 0
    for name, model in tables:
        count = db.session.query(model).delete()
        if count:
            click.echo(f"  DELETE {name}: {count} rows")
            total_deleted += count

    reset = db.session.query(Party).filter(Party.balance != 0).update({Party.balance: 0})
    db.session.commit()

    if total_deleted == 0:
        click.echo("PASS Nothing to delete, database was already clean.")
    else:
        click.echo(f"\nPASS Wiped {total_deleted} total rows.")
    if reset:
        click.echo(f"   Reset balances on {reset} parties.")


@click.group('settings')
def settings_group():
    """Shop settings (gst_rate, company details)."""


@settings_group.command('get')
@click.argument('key')
@with_appcontext
def get_setting_cli(key):
    """Print a setting value."""
    if key == settings_service.GST_RATE_KEY:
        try:
            click.echo(settings_service.load_order_settings().gst_rate)
        except SettingsError as e:
            raise click.ClickException(str(e))
        return
    value = settings_service.get_setting(key)
    if value is None:
        raise click.ClickException(f"Setting '{key}' is not set")
    click.echo(value)


@settings_group.command('set')
@click.argument('key')
@click.argument('value')
@with_appcontext
def set_setting_cli(key, value):
    """Create or update a setting."""
    try:
        row = settings_service.set_setting(key, value)
    except SettingsError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    db.session.commit()
    click.echo(f"PASS {row.key} = {row.value}")


DEMO_CATALOG = [
    (Product, "PRD-OUD-50", "Oud Royale 50ml", "1499.00", "900.00", 40),
    (Product, "PRD-MSK-100", "White Musk 100ml", "999.00", "600.00", 25),
    (ProductSet, "SET-EID-3", "Eid Gift Set (3 x 10ml)", "1299.00", "800.00", 10),
    (Attar, "ATR-ROSE-12", "Rose Attar 12ml", "450.00", "250.00", 60),
    (Attar, "ATR-SAND-12", "Sandalwood Attar 12ml", "650.00", "380.00", None),
]

DEMO_PARTIES = [
    ("Noor Fragrances", PARTY_CUSTOMER, "9000000001", "noor@example.com", "12 Market Road"),
    ("Kannauj Distillers", PARTY_SUPPLIER, "9000000002", "orders@kannauj.example.com", "Kannauj"),
]


@click.group('catalog')
def catalog_group():
    """Catalog data helpers."""


@catalog_group.command('seed-demo')
@click.option('--gst-rate', default=None, help='Also set gst_rate (e.g. 18)')
@with_appcontext
def seed_demo(gst_rate):
    """
    Create demo catalog items, stock and parties (idempotent by SKU / name).

    The sandalwood attar is left without a stock record so the
    purchase-creates-stock path can be tried from the API.
    """
    created = 0
    items = {}
    for model, sku, name, price, cost_price, quantity in DEMO_CATALOG:
        item = db.session.query(model).filter_by(sku=sku).first()
        if item is None:
            item = model(sku=sku, name=name, price=Decimal(price), cost_price=Decimal(cost_price))
            db.session.add(item)
            db.session.flush()
            created += 1
            click.echo(f"  CREATE {model.__name__} {sku}")
        items[sku] = item

        if quantity is not None and get_stock_record(item.item_ref) is None:
            db.session.add(StockRecord(item_kind=item.item_kind, item_id=item.id, quantity=quantity))

    parties = {}
    for name, kind, phone, email, address in DEMO_PARTIES:
        party = db.session.query(Party).filter_by(name=name).first()
        if party is None:
            party = Party(name=name, kind=kind, phone=phone, email=email, address=address, balance=0)
            db.session.add(party)
            db.session.flush()
            created += 1
            click.echo(f"  CREATE Party {name} ({kind})")
        parties[name] = party

    # One negotiated price so the pricing resolver has something to show
    customer = parties["Noor Fragrances"]
    rose = items["ATR-ROSE-12"]
    ref = ItemRef(rose.item_kind, rose.id)
    exists = (
        db.session.query(PartyItemPrice)
        .filter_by(party_id=customer.id, item_kind=ref.kind, item_id=ref.id)
        .first()
    )
    if exists is None:
        db.session.add(PartyItemPrice(party_id=customer.id, item_kind=ref.kind, item_id=ref.id, price=Decimal("230.00")))

    if gst_rate is not None:
        try:
            settings_service.set_setting(settings_service.GST_RATE_KEY, gst_rate)
        except SettingsError as e:
            db.session.rollback()
            raise click.ClickException(str(e))

    db.session.commit()
    click.echo(f"PASS Demo data ready ({created} new rows).")


@click.group('ledger')
def ledger_group():
    """Party ledger maintenance."""


@ledger_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Rewrite mismatched balances from the ledger')
@with_appcontext
def reconcile_cli(fix):
    """
    Check Party.balance against SUM(debit) - SUM(credit).
    """
    mismatches = ledger_service.reconcile_balances(fix=fix)
    if not mismatches:
        click.echo("PASS All party balances match the ledger.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Party':<30} {'Stored':>15} {'Ledger':>15} {'Difference':>15}")
    click.echo("="*90)
    for row in mismatches:
        click.echo(
            f"{row['party_id']:<6} {row['name'][:30]:<30} "
            f"{row['stored_balance']:>15} {row['ledger_balance']:>15} {row['difference']:>15}"
        )
    click.echo("="*90 + "\n")

    if fix:
        db.session.commit()
        click.echo(f"PASS Fixed {len(mismatches)} party balance(s).")
    else:
        click.echo(f"WARN {len(mismatches)} mismatched balance(s). Re-run with --fix to correct.")
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(settings_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(ledger_group)
