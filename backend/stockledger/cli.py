# Overview: Flask CLI command groups for bootstrap, inspection, and ledger maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--tenant "Tenant Name"]
#   Idempotent bootstrap: creates a default tenant, warehouse, customer and product.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --name "Acme Corp" --code "ACME"
#   Create a new tenant with a default warehouse.
#
# Ledger maintenance:
# - python -m flask ledger verify [--tenant-id 1]
#   Compare materialized stock balances against a full ledger replay.
# - python -m flask ledger rebuild [--tenant-id 1] [--yes]
#   Overwrite drifted balances with ledger replay values.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, Product, Tenant, Warehouse
from .services import balance_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tenant', 'tenant_name', default='Default Tenant', help='Tenant name')
@click.option('--tenant-code', default='DEFAULT', help='Tenant code')
@with_appcontext
def init_system(tenant_name, tenant_code):
    """
    Initialize a usable ledger: tenant, warehouse, customer and product.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing stock ledger...")

    db.create_all()

    # 1. Ensure default tenant exists
    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        tenant = Tenant(name=tenant_name, code=tenant_code, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    # 2. Default warehouse
    warehouse = db.session.query(Warehouse).filter_by(tenant_id=tenant.id).first()
    if not warehouse:
        warehouse = Warehouse(tenant_id=tenant.id, name="Main Warehouse")
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created warehouse: {warehouse.name} (ID: {warehouse.id})")
    else:
        click.echo(f"PASS Using existing warehouse: {warehouse.name} (ID: {warehouse.id})")

    # 3. Default customer
    customer = db.session.query(Customer).filter_by(tenant_id=tenant.id).first()
    if not customer:
        customer = Customer(tenant_id=tenant.id, name="Walk-in Customer")
        db.session.add(customer)
        db.session.commit()
        click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")

    # 4. Sample product
    product = db.session.query(Product).filter_by(tenant_id=tenant.id).first()
    if not product:
        product = Product(tenant_id=tenant.id, sku="SAMPLE-001", name="Sample Product", unit="adet", price_cents=1000)
        db.session.add(product)
        db.session.commit()
        click.echo(f"PASS Created product: {product.sku} (ID: {product.id})")

    click.echo("PASS Initialization complete. Send X-Tenant-ID: %d with API requests." % tenant.id)


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()
    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo(f"{'ID':<5} {'Code':<12} {'Active':<7} Name")
    click.echo("-" * 50)
    for tenant in tenants:
        click.echo(f"{tenant.id:<5} {tenant.code or '':<12} {str(tenant.is_active):<7} {tenant.name}")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', default=None, help='Short unique code')
@click.option('--warehouse', 'warehouse_name', default='Main Warehouse', help='Default warehouse name')
@with_appcontext
def create_tenant_cli(name, code, warehouse_name):
    """Create a tenant with one warehouse."""
    if code and db.session.query(Tenant).filter_by(code=code).first():
        click.echo(f"FAIL Tenant code already exists: {code}")
        raise SystemExit(1)

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.flush()
    db.session.add(Warehouse(tenant_id=tenant.id, name=warehouse_name))
    db.session.commit()
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")


@click.group('ledger')
def ledger_group():
    """Stock ledger verification and repair."""


@ledger_group.command('verify')
@click.option('--tenant-id', type=int, default=None, help='Limit to one tenant')
@with_appcontext
def verify_ledger(tenant_id):
    """Report balances that disagree with the movement ledger. Exits 1 on drift."""
    drift = balance_service.verify_balances(tenant_id)
    if not drift:
        click.echo("PASS Balances match the ledger.")
        return

    click.echo(f"FAIL {len(drift)} balance(s) drifted from the ledger:")
    for entry in drift:
        click.echo(
            f"  tenant={entry['tenant_id']} product={entry['product_id']} "
            f"warehouse={entry['warehouse_id']} materialized={entry['materialized']} "
            f"ledger={entry['ledger']}"
        )
    raise SystemExit(1)


@ledger_group.command('rebuild')
@click.option('--tenant-id', type=int, default=None, help='Limit to one tenant')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def rebuild_ledger(tenant_id, yes):
    """Recompute drifted balances from the movement ledger."""
    if not yes:
        click.confirm("WARN This overwrites stock balances. Continue?", abort=True)

    try:
        changed = balance_service.rebuild_balances(tenant_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    click.echo(f"PASS Rebuilt {changed} balance(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(ledger_group)
