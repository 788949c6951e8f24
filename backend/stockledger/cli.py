# Overview: Flask CLI command groups for bootstrap, inspection, and stock corrections.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Demo categories, suppliers, products and opening stock.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and active status.
# - python -m flask users create --email admin@stockledger.local --password "Password123" --first-name Ada --last-name Admin --role admin
#   Create a user (prompts if options are omitted).
#
# Stock inspection/correction:
# - python -m flask stock levels [--low]
#   Print derived stock levels (only products at or below reorder level with --low).
# - python -m flask stock adjust --sku SKU-001 --quantity 5 --actor-email admin@stockledger.local --notes "Cycle count"
#   Append an adjustment movement. The ledger is never edited in place.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import NotFoundError, ValidationError
from .models import Category, Supplier, Product, User, ROLES
from .services.auth_service import create_user
from .services import inventory_service, stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, the transaction log included!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


DEMO_CATEGORIES = [
    ("Beverages", "Drinks and juices"),
    ("Snacks", "Chips, biscuits and sweets"),
    ("Household", "Cleaning and home supplies"),
]

DEMO_SUPPLIERS = [
    ("Fresh Foods Ltd", "Mary Otieno", "orders@freshfoods.example"),
    ("Home Essentials Co", "Peter Kamau", "sales@homeessentials.example"),
]

# sku, name, category, supplier, price_cents, unit, reorder_level, opening stock
DEMO_PRODUCTS = [
    ("BEV-001", "Mineral Water 500ml", "Beverages", "Fresh Foods Ltd", 5000, "bottle", 24, 120),
    ("BEV-002", "Orange Juice 1L", "Beverages", "Fresh Foods Ltd", 18000, "carton", 10, 40),
    ("SNK-001", "Salted Crisps 150g", "Snacks", "Fresh Foods Ltd", 12000, "packet", 15, 60),
    ("SNK-002", "Chocolate Bar", "Snacks", "Fresh Foods Ltd", 9000, "piece", 20, 8),
    ("HSE-001", "Dish Soap 750ml", "Household", "Home Essentials Co", 25000, "bottle", 5, 12),
]


@system_group.command('seed')
@with_appcontext
def seed():
    """Insert demo catalog rows and an opening stock-in per product."""
    if db.session.query(Product).count():
        click.echo("SKIP Products already exist; seed only runs on an empty catalog.")
        return

    categories = {}
    for name, description in DEMO_CATEGORIES:
        category = Category(name=name, description=description)
        db.session.add(category)
        categories[name] = category

    suppliers = {}
    for name, contact, email in DEMO_SUPPLIERS:
        supplier = Supplier(name=name, contact_person=contact, email=email)
        db.session.add(supplier)
        suppliers[name] = supplier

    products = []
    for sku, name, category, supplier, price, unit, reorder, opening in DEMO_PRODUCTS:
        product = Product(
            sku=sku,
            name=name,
            category=categories[category],
            supplier=suppliers[supplier],
            price_cents=price,
            unit_of_measure=unit,
            reorder_level=reorder,
        )
        db.session.add(product)
        products.append((product, opening))

    db.session.commit()

    for product, opening in products:
        inventory_service.append_transaction(
            product_id=product.id,
            transaction_type="in",
            quantity=opening,
            actor_id=None,
            notes="Opening stock",
        )

    click.echo(f"PASS Seeded {len(categories)} categories, {len(suppliers)} suppliers, {len(products)} products.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, password, first_name, last_name, role):
    """Create a new user."""
    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
    except ValidationError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.display_name} ({user.email}) with role '{role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Role':<10} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.display_name:<25} {user.role:<10} {active_str}")

    click.echo("="*80 + "\n")


@click.group('stock')
def stock_group():
    """Stock inspection and correction commands."""


@stock_group.command('levels')
@click.option('--low', is_flag=True, help='Only products at or below reorder level')
@with_appcontext
def stock_levels(low):
    """Print derived stock levels."""
    levels = stock_service.low_stock_products() if low else stock_service.all_stock_levels()

    if not levels:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'SKU':<12} {'Name':<35} {'Stock':>8} {'Reorder':>8}  Status")
    click.echo("="*80)

    for level in levels:
        if level.is_out_of_stock:
            status = "OUT"
        elif level.is_low_stock:
            status = "LOW"
        else:
            status = "OK"
        click.echo(
            f"{level.sku:<12} {level.name:<35} {level.current_stock:>8} {level.reorder_level:>8}  {status}"
        )

    click.echo("="*80 + "\n")


@stock_group.command('adjust')
@click.option('--sku', required=True, help='Product SKU')
@click.option('--quantity', type=int, required=True, help='Units to add back (must be > 0)')
@click.option('--actor-email', required=True, help='Email of the user making the correction')
@click.option('--notes', required=True, help='Why the correction is needed')
@with_appcontext
def stock_adjust(sku, quantity, actor_email, notes):
    """Append an adjustment movement for one product."""
    product = db.session.query(Product).filter_by(sku=sku).first()
    if not product:
        click.echo(f"FAIL Product with SKU '{sku}' not found")
        return

    actor = db.session.query(User).filter_by(email=actor_email.strip().lower()).first()
    if not actor:
        click.echo(f"FAIL User '{actor_email}' not found")
        return

    try:
        tx = inventory_service.append_transaction(
            product_id=product.id,
            transaction_type="adjustment",
            quantity=quantity,
            actor_id=actor.id,
            notes=notes,
        )
    except (ValidationError, NotFoundError) as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(
        f"PASS Transaction {tx.id}: adjustment of {quantity} for {sku}; "
        f"stock now {stock_service.current_stock(product.id)}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
