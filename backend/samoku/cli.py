# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (development; production uses `flask db upgrade`).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users create-admin --email admin@samoku.local --password "Password123!"
#   Create an admin account (prompts if options are omitted).
# - python -m flask users list [--role vendor]
#   List users with role and active status.
#
# Dropshipping:
# - python -m flask dropshipping sync
#   Copy mirrored provider stock levels onto local products.
#
# Demo data:
# - python -m flask seed demo
#   Admin, two approved vendor stores with products, and a customer.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_VENDOR, VALID_ROLES
from .services import catalog_service, dropshipping_service
from .services.auth_service import PasswordValidationError, create_user

# Default password meets requirements:
# - 8+ chars, uppercase, lowercase, digit, special char
DEMO_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask seed demo' for sample data.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_admin(email, password, full_name):
    """
    Create an admin account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(email=email, password=password, full_name=full_name, role=ROLE_ADMIN)
        click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ServiceError as e:
        click.echo(f"FAIL Failed to create admin: {str(e)}")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<10} {'Active':<8} {'Stores'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        stores_str = ", ".join(s.name for s in user.stores) or "-"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<10} {active_str:<8} {stores_str}")

    click.echo("="*90 + "\n")


@click.group('dropshipping')
def dropshipping_group():
    """Dropshipping maintenance commands."""


@dropshipping_group.command('sync')
@with_appcontext
def sync_dropshipping():
    """Copy mirrored provider stock levels onto local products."""
    result = dropshipping_service.sync_inventory()
    click.echo(
        f"PASS Processed {result['processed']} mirrors, "
        f"updated {result['updated']}, failed {result['failed']}"
    )
    for error in result["errors"]:
        click.echo(f"  WARN {error['product']}: {error['error']}")


@click.group('seed')
def seed_group():
    """Sample data for local development."""


DEMO_STORES = [
    {
        "email": "vendor.a@samoku.local",
        "store": "Alpha Outfitters",
        "rate_bps": 500,
        "products": [
            ("A-TEE", "Organic Tee", 3000, 25),
            ("A-CAP", "Canvas Cap", 1800, 8),
        ],
    },
    {
        "email": "vendor.b@samoku.local",
        "store": "Beta Home",
        "rate_bps": 1000,
        "products": [
            ("B-LAMP", "Desk Lamp", 8000, 12),
            ("B-MUG", "Stoneware Mug", 1200, 40),
        ],
    },
]


@seed_group.command('demo')
@with_appcontext
def seed_demo():
    """
    Create demo accounts, stores and products.

    Idempotent: does nothing if the demo admin already exists.
    All passwords default to: "Password123!"
    """
    if db.session.query(User).filter_by(email="admin@samoku.local").first():
        click.echo("SKIP Demo data already present.")
        return

    create_user("admin@samoku.local", DEMO_PASSWORD, "Demo Admin", ROLE_ADMIN)
    click.echo("PASS admin@samoku.local (admin)")

    for demo in DEMO_STORES:
        vendor = create_user(demo["email"], DEMO_PASSWORD, demo["store"] + " Owner", ROLE_VENDOR)
        store = catalog_service.create_store(vendor, demo["store"])
        catalog_service.approve_store(store.id)
        catalog_service.set_commission_rate(store.id, demo["rate_bps"])
        for sku, name, price_cents, stock in demo["products"]:
            catalog_service.create_product(
                store.id, sku=sku, name=name, price_cents=price_cents, stock_quantity=stock
            )
        click.echo(f"PASS {vendor.email} (vendor) -> {store.name}, {len(demo['products'])} products")

    create_user("customer@samoku.local", DEMO_PASSWORD, "Demo Customer", ROLE_CUSTOMER)
    click.echo("PASS customer@samoku.local (customer)")
    click.echo("\nSECURITY Change demo passwords before exposing this instance!")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(dropshipping_group)
    app.cli.add_command(seed_group)
