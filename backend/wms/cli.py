# Overview: Flask CLI command groups for bootstrap, master data and stock inspection.

# backend/wms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--warehouse-code MAIN]
#   Idempotent bootstrap: default warehouse and one user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Master data:
# - python -m flask users list
# - python -m flask users create --name "Jan" --email jan@wms.local --role WAREHOUSE
# - python -m flask products create --sku ABC-1 --name "Widget" [--ean 5901234123457]
# - python -m flask locations create --barcode A-01-01 [--zone A] [--warehouse-code MAIN]
# - python -m flask locations status --barcode A-01-01 --status BLOCKED [--reason "Damaged rack"]
#
# Stock:
# - python -m flask stock show --product ABC-1 [--location A-01-01]
#   Print on-hand rows for a product and/or location.
# - python -m flask stock receive --product ABC-1 --location A-01-01 --qty 10 [--user-id 1]
#   Create and confirm a PZ document in one step.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import WarehouseError
from .models import User, Warehouse
from .models.catalog import (
    LOCATION_STATUS_ACTIVE,
    LOCATION_STATUS_BLOCKED,
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_WAREHOUSE,
)
from .services import catalog_service, document_service, stock_service
from .services.catalog_service import normalize_barcode


ROLES = [ROLE_ADMIN, ROLE_MANAGER, ROLE_WAREHOUSE]


def _get_warehouse(code: str) -> Warehouse:
    warehouse = db.session.query(Warehouse).filter_by(code=code).first()
    if not warehouse:
        raise click.ClickException(f"Warehouse {code} not found. Run 'python -m flask system init' first.")
    return warehouse


def _acting_user_id(user_id):
    if user_id is not None:
        return user_id
    admin = db.session.query(User).filter_by(role=ROLE_ADMIN, is_active=True).order_by(User.id.asc()).first()
    if not admin:
        raise click.ClickException("No active admin user; pass --user-id")
    return admin.id


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--warehouse-code', default='MAIN', help='Default warehouse code')
@click.option('--warehouse-name', default='Main Warehouse', help='Default warehouse name')
@with_appcontext
def init_system(warehouse_code, warehouse_name):
    """
    Initialize the warehouse system.

    Creates (if missing):
    - Default warehouse
    - Users: admin@wms.local (ADMIN), manager@wms.local (MANAGER),
      warehouse@wms.local (WAREHOUSE)
    """
    click.echo("START Initializing warehouse system...")

    warehouse = db.session.query(Warehouse).filter_by(code=warehouse_code).first()
    if not warehouse:
        warehouse = Warehouse(code=warehouse_code, name=warehouse_name, is_active=True)
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created warehouse: {warehouse.code} (ID: {warehouse.id})")
    else:
        click.echo(f"PASS Using existing warehouse: {warehouse.code} (ID: {warehouse.id})")

    click.echo("\nUSERS Creating default users...")
    default_users = [
        ("Administrator", "admin@wms.local", ROLE_ADMIN),
        ("Manager", "manager@wms.local", ROLE_MANAGER),
        ("Warehouse", "warehouse@wms.local", ROLE_WAREHOUSE),
    ]
    for name, email, role in default_users:
        user = db.session.query(User).filter_by(email=email).first()
        if user:
            click.echo(f"   SKIP {email} already exists (ID: {user.id})")
            continue
        user = User(name=name, email=email, role=role, is_active=True)
        db.session.add(user)
        db.session.commit()
        click.echo(f"   PASS {email} -> {role} (ID: {user.id})")

    click.echo("\nDONE System initialized.")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<30} {user.role:<10} {status}")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, role):
    if db.session.query(User).filter_by(email=email).first():
        raise click.ClickException(f"User {email} already exists")
    user = User(name=name, email=email, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {email} (ID: {user.id}, role: {role})")


@click.group('products')
def products_group():
    """Product master data."""


@products_group.command('create')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--ean', default=None)
@click.option('--unit', default='szt')
@with_appcontext
def create_product_cli(sku, name, ean, unit):
    try:
        product = catalog_service.create_product(sku=sku, name=name, ean=ean, unit=unit)
    except WarehouseError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


@click.group('locations')
def locations_group():
    """Location master data."""


@locations_group.command('create')
@click.option('--barcode', required=True)
@click.option('--zone', default=None)
@click.option('--warehouse-code', default='MAIN')
@with_appcontext
def create_location_cli(barcode, zone, warehouse_code):
    warehouse = _get_warehouse(warehouse_code)
    try:
        location = catalog_service.create_location(warehouse_id=warehouse.id, barcode=barcode, zone=zone)
    except WarehouseError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created location {location.barcode} (ID: {location.id})")


@locations_group.command('status')
@click.option('--barcode', required=True)
@click.option('--status', type=click.Choice([LOCATION_STATUS_ACTIVE, LOCATION_STATUS_BLOCKED]), required=True)
@click.option('--reason', default=None, help='Block reason')
@click.option('--user-id', type=int, default=None, help='Acting user (defaults to first admin)')
@with_appcontext
def location_status_cli(barcode, status, reason, user_id):
    """Block or unblock a location."""
    user_id = _acting_user_id(user_id)
    try:
        location = catalog_service.find_location_by_barcode(barcode)
        location = catalog_service.update_location_status(
            location_id=location.id, user_id=user_id, status=status, block_reason=reason
        )
    except WarehouseError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS {location.barcode} -> {location.status}")


@click.group('stock')
def stock_group():
    """Stock inspection and quick receipts."""


@stock_group.command('show')
@click.option('--product', 'product_code', default=None, help='EAN or SKU')
@click.option('--location', 'location_barcode', default=None, help='Location barcode')
@with_appcontext
def show_stock(product_code, location_barcode):
    try:
        result = stock_service.get_stock_by_code(product_code=product_code, location_barcode=location_barcode)
    except WarehouseError as e:
        raise click.ClickException(e.message)

    if "stock" in result:
        click.echo(f"{result['product']['sku']} @ {result['location']['barcode']}: {result['stock']['qty']}")
        return

    for row in result.get("stocks", []):
        container = f" [{row['container']}]" if row["container"] else ""
        click.echo(f"{row['product_sku']:<20} {row['location']:<12}{container} {row['qty']:>8}")
    click.echo(f"TOTAL {result.get('total_qty', 0)}")


@stock_group.command('receive')
@click.option('--product', 'product_code', required=True, help='EAN or SKU')
@click.option('--location', 'location_barcode', required=True, help='Destination location barcode')
@click.option('--qty', type=int, required=True)
@click.option('--user-id', type=int, default=None, help='Acting user (defaults to first admin)')
@click.option('--warehouse-code', default='MAIN')
@with_appcontext
def receive_stock(product_code, location_barcode, qty, user_id, warehouse_code):
    """Create and confirm a single-line PZ document."""
    warehouse = _get_warehouse(warehouse_code)
    user_id = _acting_user_id(user_id)

    # Resolve everything before a document number is allocated
    try:
        stock_service.require_positive_qty(qty)
        catalog_service.find_active_product_by_code(product_code)
        catalog_service.find_location_by_barcode(location_barcode)
    except WarehouseError as e:
        raise click.ClickException(e.message)

    document = None
    try:
        document = document_service.create_document(
            user_id=user_id,
            document_type=document_service.DOC_TYPE_PZ,
            warehouse_id=warehouse.id,
            notes="CLI receipt",
        )
        document_service.add_document_line(
            document_id=document.id,
            user_id=user_id,
            product_code=product_code,
            qty=qty,
            to_location_barcode=location_barcode,
        )
        document, _ = document_service.confirm_document(document_id=document.id, user_id=user_id)
    except WarehouseError as e:
        if document is not None:
            document_service.cancel_document(document_id=document.id, user_id=user_id, reason=e.message)
        raise click.ClickException(e.message)

    click.echo(f"PASS {document.number} confirmed: +{qty} {product_code} @ {normalize_barcode(location_barcode)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(stock_group)
