# Overview: Flask CLI command groups for bootstrap and demo data.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables and the default admin user (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username ana --email ana@tienda.local --password "Password123!"
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#
# Demo data:
# - python -m flask demo seed
#   Categories, products, customers and a few sales. Safe to rerun.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Customer, Product, Sale, User
from .services.auth_service import create_user, PasswordValidationError
from .services import sales_service
from .services.sales_service import SaleError
from .validation import UniquenessError, NotFoundError


DEFAULT_ADMIN = ("admin", "admin@tienda.local", "Password123!")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create the schema and the default admin user.

    Default credentials: admin / Password123!

    SECURITY: Change the password immediately in production!
    """
    click.echo("START Initializing Tienda...")

    db.create_all()
    click.echo("PASS Tables created")

    username, email, password = DEFAULT_ADMIN
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"WARN  User '{username}' already exists, skipping...")
    else:
        create_user(username=username, email=email, password=password)
        click.echo(f"PASS Created user: {username} ({email})")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   {username} -> {email} / {password}")


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
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(username, email, password):
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
        create_user(username=username, email=email, password=password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except UniquenessError as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(f"PASS Created user: {username} ({email})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"\n{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Last login'}")
    click.echo("=" * 90)
    for user in users:
        last_login = str(user.last_login_at)[:19] if user.last_login_at else "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {str(user.is_active):<8} {last_login}")


DEMO_CATEGORIES = [
    ("Bebidas", "Refrescos, jugos y agua"),
    ("Abarrotes", "Productos secos y enlatados"),
    ("Limpieza", "Articulos de limpieza del hogar"),
]

# (category, code, name, price_cents, cost_cents, stock, min_stock)
DEMO_PRODUCTS = [
    ("Bebidas", "BEB-001", "Agua 600ml", 100, 45, 120, 24),
    ("Bebidas", "BEB-002", "Refresco cola 2L", 250, 160, 40, 12),
    ("Bebidas", "BEB-003", "Jugo de naranja 1L", 325, 210, 6, 8),
    ("Abarrotes", "ABA-001", "Arroz 1kg", 180, 120, 60, 10),
    ("Abarrotes", "ABA-002", "Frijol negro 1kg", 220, 150, 35, 10),
    ("Abarrotes", "ABA-003", "Aceite vegetal 1L", 399, 280, 4, 6),
    ("Limpieza", "LIM-001", "Detergente 1kg", 450, 300, 25, 5),
    ("Limpieza", "LIM-002", "Jabon de trastes", 175, 95, 3, 5),
]

DEMO_CUSTOMERS = [
    ("Maria Lopez", "maria.lopez@example.com", "5550-1001", "0102030405"),
    ("Carlos Perez", "carlos.perez@example.com", "5550-1002", "0203040506"),
]

# (customer email or None, payment method, discount cents, [(code, qty)])
DEMO_SALES = [
    (None, "cash", 0, [("BEB-001", 3), ("ABA-001", 2)]),
    ("maria.lopez@example.com", "card", 100, [("LIM-001", 1), ("BEB-002", 2)]),
    ("carlos.perez@example.com", "transfer", 0, [("ABA-002", 4)]),
]


@click.group('demo')
def demo_group():
    """Demo data commands."""


@demo_group.command('seed')
@with_appcontext
def seed_demo():
    """
    Seed a small store so a fresh environment is immediately usable.

    Safe to rerun: categories, products and customers are matched by
    name/code/email and skipped when present; sales are only recorded on an
    empty sales table.
    """
    user = db.session.query(User).order_by(User.id).first()
    if not user:
        click.echo("FAIL No user found. Run 'python -m flask system init' first.")
        return

    created = {"categories": 0, "products": 0, "customers": 0, "sales": 0}

    categories = {}
    for name, description in DEMO_CATEGORIES:
        category = db.session.query(Category).filter_by(name=name).first()
        if not category:
            category = Category(name=name, description=description)
            db.session.add(category)
            created["categories"] += 1
        categories[name] = category
    db.session.flush()

    products = {}
    for category_name, code, name, price_cents, cost_cents, stock, min_stock in DEMO_PRODUCTS:
        product = db.session.query(Product).filter_by(code=code).first()
        if not product:
            product = Product(
                category_id=categories[category_name].id,
                code=code,
                name=name,
                price_cents=price_cents,
                cost_cents=cost_cents,
                stock=stock,
                min_stock=min_stock,
            )
            db.session.add(product)
            created["products"] += 1
        products[code] = product

    customers = {}
    for name, email, phone, document in DEMO_CUSTOMERS:
        customer = db.session.query(Customer).filter_by(email=email).first()
        if not customer:
            customer = Customer(name=name, email=email, phone=phone, document=document)
            db.session.add(customer)
            created["customers"] += 1
        customers[email] = customer

    db.session.commit()

    if db.session.query(Sale.id).first() is None:
        for customer_email, payment_method, discount_cents, lines in DEMO_SALES:
            try:
                sale = sales_service.record_sale(
                    user_id=user.id,
                    customer_id=customers[customer_email].id if customer_email else None,
                    items=[(products[code].id, qty) for code, qty in lines],
                    payment_method=payment_method,
                    discount_cents=discount_cents,
                )
            except (SaleError, NotFoundError) as e:
                click.echo(f"WARN  Skipped demo sale: {str(e)}")
                continue
            created["sales"] += 1
            click.echo(f"PASS Recorded {sale.invoice_number} total {sale.to_dict()['total']}")

    click.echo("\nDONE Demo data seeded:")
    for key, count in created.items():
        click.echo(f"   {key:<12} +{count}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(demo_group)
