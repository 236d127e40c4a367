# Overview: Flask CLI command groups for bootstrap, inspection, and demo data.

# backend/stockpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--company "Acme Store"]
#   Idempotent bootstrap: creates tables, the company profile and one user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Jane" --email jane@example.com --password "Password123!" --role SALES
#   Create a user (prompts if options are omitted).
#
# Demo data:
# - python -m flask seed demo
#   Small catalog (two products with size/colour variants) plus an opening stock entry.

import click
from flask.cli import with_appcontext

from . import permissions
from .errors import LedgerError
from .extensions import db
from .models import Category, ProductVariant, User
from .services import catalog_service, settings_service, stock_entry_service, user_service
from .services.auth_service import PasswordValidationError


DEFAULT_PASSWORD = "Password123!"

DEFAULT_USERS = [
    ("Super Admin", "superadmin@stockpos.local", permissions.SUPER_ADMIN),
    ("Admin", "admin@stockpos.local", permissions.ADMIN),
    ("Sales", "sales@stockpos.local", permissions.SALES),
    ("Warehouse", "warehouse@stockpos.local", permissions.WAREHOUSE),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default=None, help='Company name for invoices')
@with_appcontext
def init_system(company_name):
    """
    Initialize the system: tables, company profile and default users.

    Creates:
    - All tables (if missing)
    - The company profile (invoice prefix INV, stock entry prefix SE)
    - One user per role, all with password "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing system...")

    db.create_all()

    profile = settings_service.get_company_profile()
    if company_name:
        profile.name = company_name
    db.session.commit()
    click.echo(f"PASS Company profile: {profile.name} (invoice prefix {profile.invoice_prefix})")

    click.echo("\nUSERS Creating default users...")
    for name, email, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            user_service.create_user(
                {"name": name, "email": email, "role": role, "password": DEFAULT_PASSWORD}
            )
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except LedgerError as e:
            click.echo(f"FAIL Failed to create user '{email}': {e.message}")

    click.echo("\n" + "="*60)
    click.echo("DONE System Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for _, email, role in DEFAULT_USERS:
        click.echo(f"   {role:<12} -> {email:<28} / {DEFAULT_PASSWORD}")
    click.echo("")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (used to log in)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(permissions.ROLES), case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = user_service.create_user(
            {"name": name, "email": email, "role": role.upper(), "password": password}
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except LedgerError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        return

    click.echo(f"PASS Created user: {user.email} with role '{user.role}' (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<32} {'Role':<12} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<32} {user.role:<12} {active_str}")

    click.echo("="*90 + "\n")


@click.group('seed')
def seed_group():
    """Demo data commands."""


DEMO_PRODUCTS = [
    {
        "category": "Apparel",
        "name": "Basic T-Shirt",
        "sku_prefix": "TSHIRT",
        "types": [("Size", ["S", "M", "L"]), ("Colour", ["Black", "White"])],
        "cost_price_cents": 450,
        "selling_price_cents": 1200,
        "quantity": 20,
    },
    {
        "category": "Accessories",
        "name": "Canvas Tote",
        "sku_prefix": "TOTE",
        "types": [("Colour", ["Natural", "Navy"])],
        "cost_price_cents": 300,
        "selling_price_cents": 900,
        "quantity": 12,
    },
]


def _option_combinations(variant_types):
    combos = [[]]
    for variant_type in variant_types:
        combos = [combo + [option] for combo in combos for option in variant_type.options]
    return combos


@seed_group.command('demo')
@with_appcontext
def seed_demo():
    """
    Create a small demo catalog and receive opening stock for it.

    Requires 'system init' first (stock is recorded by the super admin).
    """
    actor = db.session.query(User).filter_by(role=permissions.SUPER_ADMIN).order_by(User.id.asc()).first()
    if not actor:
        click.echo("FAIL No super admin found. Run 'python -m flask system init' first.")
        return

    if db.session.query(ProductVariant.id).first():
        click.echo("WARN  Catalog already has variants, skipping demo seed.")
        return

    entry_items = []
    try:
        for demo in DEMO_PRODUCTS:
            category = db.session.query(Category).filter_by(name=demo["category"]).first()
            if not category:
                category = catalog_service.create_category({"name": demo["category"]})

            product = catalog_service.create_product(
                {
                    "name": demo["name"],
                    "category_id": category.id,
                    "variant_types": [{"name": n, "options": opts} for n, opts in demo["types"]],
                },
                user_id=actor.id,
            )

            for combo in _option_combinations(product.variant_types):
                sku = "-".join([demo["sku_prefix"]] + [o.value.upper() for o in combo])
                variant = catalog_service.create_variant(
                    product.id,
                    {
                        "sku": sku,
                        "option_ids": [o.id for o in combo],
                        "cost_price_cents": demo["cost_price_cents"],
                        "selling_price_cents": demo["selling_price_cents"],
                        "min_stock_level": 5,
                    },
                    user_id=actor.id,
                )
                entry_items.append({
                    "variant_id": variant.id,
                    "quantity": demo["quantity"],
                    "cost_price_cents": demo["cost_price_cents"],
                })
            click.echo(f"PASS Created product: {product.name}")

        entry = stock_entry_service.create_stock_entry(
            recorded_by_id=actor.id,
            items=entry_items,
            notes="Opening stock (demo)",
        )
    except LedgerError as e:
        click.echo(f"FAIL Demo seed failed: {e.message}")
        return

    click.echo(f"PASS Stock entry {entry.entry_number}: {entry.total_quantity} units over {len(entry_items)} variants")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(seed_group)
