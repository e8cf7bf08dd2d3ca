# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tillcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system verify-ledger --tenant-id 1
#   Check every product's current_stock against its latest stock movement.
#
# Tenants:
# - python -m flask tenants list
# - python -m flask tenants create --name "Corner Store" --code CORNER --country India --prefix "CS-"
#
# Tax slabs:
# - python -m flask taxes seed --tenant-id 1 [--country "United Kingdom"]
#   Seed the standard slabs for the country (tenant's country by default).
# - python -m flask taxes list --tenant-id 1
#
# Stock:
# - python -m flask stock adjust --tenant-id 1 --product-id 3 --type IN --quantity 24 --notes "Delivery"
# - python -m flask stock movements --tenant-id 1 [--product-id 3]
#
# Invoices:
# - python -m flask invoices show --tenant-id 1 --number INV-000042
# - python -m flask invoices list --tenant-id 1 [--status HELD]

import click
from flask.cli import with_appcontext

from .context import RequestContext
from .errors import EngineError
from .extensions import db
from .models import INVOICE_STATUSES, MOVEMENT_TYPES
from .services import invoice_service, stock_ledger_service, tax_slab_service, tenant_service


def _cents(value: int | None) -> str:
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    return f"{sign}{abs(value) // 100}.{abs(value) % 100:02d}"


def _tenant_ctx(tenant_id: int) -> RequestContext:
    tenant_service.validate_tenant_active(tenant_id)
    return RequestContext(tenant_id=tenant_id, role="admin")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables from the models."""
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

    click.echo("PASS Database reset complete. Create a tenant with 'python -m flask tenants create'.")


@system_group.command('verify-ledger')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def verify_ledger_cli(tenant_id):
    """Compare current_stock with the newest stock movement for every product."""
    try:
        mismatches = stock_ledger_service.verify_ledger(_tenant_ctx(tenant_id))
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return

    if not mismatches:
        click.echo("PASS Stock ledger is consistent.")
        return
    for row in mismatches:
        click.echo(
            f"FAIL product {row['product_id']}: current_stock={row['current_stock']} "
            f"ledger={row['ledger_stock']}"
        )


@click.group('tenants')
def tenants_group():
    """Tenant (shop) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants_cli():
    """List all tenants."""
    tenants = tenant_service.list_tenants()
    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Country':<16} {'Prefix':<8} {'Active'}")
    click.echo("="*80)
    for t in tenants:
        active_str = "Yes" if t.is_active else "No"
        click.echo(f"{t.id:<5} {t.name:<30} {t.code or '-':<12} {t.country:<16} {t.invoice_prefix or '-':<8} {active_str}")
    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant (shop) name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--country', default=None, help='Country (selects the tax slab set)')
@click.option('--prefix', default=None, help='Invoice number prefix, e.g. "CS-"')
@click.option('--seed-taxes/--no-seed-taxes', default=True, show_default=True, help='Seed country tax slabs')
@with_appcontext
def create_tenant_cli(name, code, country, prefix, seed_taxes):
    """Create a new tenant."""
    try:
        tenant = tenant_service.create_tenant(name=name, code=code, country=country, invoice_prefix=prefix)
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    if seed_taxes:
        created = tax_slab_service.ensure_default_tax_slabs(RequestContext(tenant_id=tenant.id))
        click.echo(f"PASS Seeded {len(created)} tax slabs for {tenant.country}")


@click.group('taxes')
def taxes_group():
    """Tax slab commands."""


@taxes_group.command('seed')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--country', default=None, help="Defaults to the tenant's country")
@with_appcontext
def seed_taxes_cli(tenant_id, country):
    """Seed standard slabs for a country (no-op if slabs exist)."""
    try:
        created = tax_slab_service.ensure_default_tax_slabs(_tenant_ctx(tenant_id), country=country)
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return
    if not created:
        click.echo("WARN Tax slabs already exist, nothing seeded.")
        return
    for slab in created:
        marker = " (default)" if slab.is_default else ""
        click.echo(f"PASS {slab.name}: {slab.rate_bps} bps{marker}")


@taxes_group.command('list')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def list_taxes_cli(tenant_id):
    try:
        slabs = tax_slab_service.list_tax_slabs(_tenant_ctx(tenant_id))
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return
    for s in slabs:
        parts = " + ".join(
            f"{name} {rate}"
            for name, rate in ((s.component1_name, s.component1_rate_bps), (s.component2_name, s.component2_rate_bps))
            if name
        )
        flags = ("D" if s.is_default else "-") + ("A" if s.is_active else "-")
        click.echo(f"{s.id:<5} {s.country:<16} {s.name:<20} {s.rate_bps:>6} bps {flags} {parts}")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('adjust')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--type', 'movement_type', type=click.Choice(MOVEMENT_TYPES), required=True)
@click.option('--quantity', type=int, required=True, help='Units (absolute count for ADJUSTMENT)')
@click.option('--reference', default=None)
@click.option('--notes', default=None)
@with_appcontext
def adjust_stock_cli(tenant_id, product_id, movement_type, quantity, reference, notes):
    """Record a manual stock movement."""
    try:
        movement = stock_ledger_service.adjust_stock(
            _tenant_ctx(tenant_id),
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            reference=reference,
            notes=notes,
        )
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(
        f"PASS {movement.movement_type} {movement.quantity}: "
        f"{movement.previous_stock} -> {movement.new_stock} (movement {movement.id})"
    )


@stock_group.command('movements')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--product-id', type=int, default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_movements_cli(tenant_id, product_id, limit):
    try:
        movements = stock_ledger_service.list_stock_movements(_tenant_ctx(tenant_id), product_id=product_id, limit=limit)
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return
    for m in movements:
        click.echo(
            f"{m.id:<6} product={m.product_id:<5} {m.movement_type:<10} {m.quantity:>6} "
            f"{m.previous_stock:>6} -> {m.new_stock:<6} {m.reference or ''}"
        )


@click.group('invoices')
def invoices_group():
    """Invoice inspection commands."""


@invoices_group.command('show')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--number', required=True, help='Invoice number, e.g. INV-000042')
@with_appcontext
def show_invoice_cli(tenant_id, number):
    """Print an invoice with its items and tax breakdown."""
    try:
        invoice = invoice_service.get_invoice_by_number(_tenant_ctx(tenant_id), number)
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo("=" * 60)
    click.echo(f"{invoice.invoice_number}  [{invoice.status}]  {invoice.customer_name or 'Walk-in'}")
    click.echo("-" * 60)
    for item in invoice.items:
        click.echo(
            f"{item.line_number:>3}. {item.product_name:<28} {item.quantity:>4} x "
            f"{_cents(item.unit_price_cents):>9} = {_cents(item.line_total_cents):>10}"
        )
    click.echo("-" * 60)
    click.echo(f"{'Subtotal':<44}{_cents(invoice.subtotal_cents):>16}")
    if invoice.discount_amount_cents:
        click.echo(f"{'Discount':<44}{'-' + _cents(invoice.discount_amount_cents):>16}")
    for line in invoice.tax_lines:
        click.echo(f"{'  incl. ' + line.tax_name:<44}{_cents(line.amount_cents):>16}")
    click.echo(f"{'TOTAL':<44}{_cents(invoice.total_cents):>16}")
    click.echo(f"{'Paid (' + invoice.payment_method + ')':<44}{_cents(invoice.amount_tendered_cents):>16}")
    if invoice.change_given_cents:
        click.echo(f"{'Change':<44}{_cents(invoice.change_given_cents):>16}")
    click.echo("=" * 60)


@invoices_group.command('list')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--status', type=click.Choice(INVOICE_STATUSES), default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_invoices_cli(tenant_id, status, limit):
    try:
        invoices = invoice_service.list_invoices(_tenant_ctx(tenant_id), status=status, limit=limit)
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        return
    for inv in invoices:
        click.echo(f"{inv.invoice_number:<16} {inv.status:<10} {_cents(inv.total_cents):>12} {inv.payment_method}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(taxes_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(invoices_group)
