# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent). Use `flask db upgrade` for migrated databases.
# - python -m flask system seed-demo
#   Idempotent demo data: business, branch, owner, cashier and sample products.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Work sessions:
# - python -m flask sessions list [--user-id ID] [--open-only]
#   List work sessions with their running totals.
# - python -m flask sessions close-all --user-id ID
#   Close every open session of a user (logout).
#
# Purchases:
# - python -m flask purchases receive-due [--now 2026-10-19T18:00:00Z]
#   Receive scheduled purchases whose expected delivery time has passed.
#
# Team:
# - python -m flask team reset-benefit --branch-id ID --user-id ID
#   Pay out (zero) a cashier's accrued bonification.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, BranchUser, Business, BusinessUser, Product, ProductPresentation, User, BASE_VARIANT
from .services import purchase_service, work_session_service
from .services.branch_service import reset_user_benefit
from .time_utils import parse_iso_datetime
from .validation import NotFoundError


DEMO_PRODUCTS = [
    # name, price_cents, cost_cents, stock, bonification_cents, extra presentations
    ("Agua 500ml", 150, 90, 48, 2, [("pack", 6, 800), ("caja", 24, 3000)]),
    ("Galletas Maria", 120, 70, 30, 1, [("pack", 6, 650)]),
    ("Cafe molido 250g", 900, 600, 12, 10, []),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


@system_group.command('seed-demo')
@click.option('--business', 'business_name', default='Demo Store', help='Business name')
@with_appcontext
def seed_demo(business_name):
    """
    Seed a demo business with one branch, an owner, a cashier and a few products.

    Safe to run more than once: existing rows are reused.
    """
    click.echo("START Seeding demo data...")

    business = db.session.query(Business).filter_by(name=business_name).first()
    if business is None:
        business = Business(name=business_name, tax_id="00000000-0", location="Centro")
        db.session.add(business)
        db.session.flush()
        click.echo(f"PASS Created business: {business.name} ({business.id})")

    branch = db.session.query(Branch).filter_by(business_id=business.id).order_by(Branch.created_at.asc()).first()
    if branch is None:
        branch = Branch(business_id=business.id, name="Sucursal Principal", location=business.location)
        db.session.add(branch)
        db.session.flush()
        click.echo(f"PASS Created branch: {branch.name} ({branch.id})")

    owner = _ensure_user("owner@retailcore.local", "Owner")
    if db.session.query(BusinessUser).filter_by(business_id=business.id, user_id=owner.id).first() is None:
        db.session.add(BusinessUser(business_id=business.id, user_id=owner.id, role="owner"))

    cashier = _ensure_user("cashier@retailcore.local", "Cashier")
    if db.session.query(BranchUser).filter_by(branch_id=branch.id, user_id=cashier.id).first() is None:
        db.session.add(BranchUser(branch_id=branch.id, user_id=cashier.id, role="cashier"))

    for name, price, cost, stock, bonus, extra in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(branch_id=branch.id, name=name).first() is not None:
            continue
        product = Product(
            branch_id=branch.id,
            name=name,
            price_cents=price,
            cost_cents=cost,
            stock=stock,
            bonification_cents=bonus,
            created_by_user_id=owner.id,
        )
        product.presentations.append(ProductPresentation(variant=BASE_VARIANT, units=1, price_cents=price))
        for variant, units, variant_price in extra:
            product.presentations.append(ProductPresentation(variant=variant, units=units, price_cents=variant_price))
        db.session.add(product)
        click.echo(f"PASS Created product: {name}")

    db.session.commit()

    click.echo("\nDONE Demo data ready")
    click.echo(f"   owner   -> X-User-Id: {owner.id}")
    click.echo(f"   cashier -> X-User-Id: {cashier.id}")
    click.echo(f"   branch  -> X-Branch-Id: {branch.id}")


def _ensure_user(email: str, name: str) -> User:
    user = db.session.query(User).filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=name)
        db.session.add(user)
        db.session.flush()
    return user


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for demo data.")


@click.group('sessions')
def sessions_group():
    """Cashier work session commands."""


@sessions_group.command('list')
@click.option('--user-id', help='Filter by user ID')
@click.option('--branch-id', help='Filter by branch ID')
@click.option('--open-only', is_flag=True, help='Only open sessions')
@with_appcontext
def list_sessions_cli(user_id, branch_id, open_only):
    sessions = work_session_service.list_sessions(user_id=user_id, branch_id=branch_id, open_only=open_only)
    if not sessions:
        click.echo("No sessions found.")
        return
    for s in sessions:
        state = "OPEN" if s.is_open else "CLOSED"
        click.echo(
            f"{s.id}  user={s.user_id} branch={s.branch_id} {state} "
            f"total={s.total_sales_cents} bonus={s.total_bonus_cents} by_method={dict(s.payment_totals or {})}"
        )


@sessions_group.command('close-all')
@click.option('--user-id', required=True, help='User whose open sessions are closed')
@with_appcontext
def close_all_sessions(user_id):
    closed = work_session_service.close_session(user_id)
    click.echo(f"PASS Closed {closed} session(s).")


@click.group('purchases')
def purchases_group():
    """Purchase order commands."""


@purchases_group.command('receive-due')
@click.option('--now', 'now_text', help='ISO-8601 reference time (default: current UTC time)')
@with_appcontext
def receive_due_cli(now_text):
    """Receive pending or approved purchases whose delivery time has passed."""
    try:
        now = parse_iso_datetime(now_text)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 date-time", param_hint="--now")

    results = purchase_service.receive_due_purchases(now)
    if not results:
        click.echo("No scheduled purchases are due.")
        return
    for result in results:
        if result.success:
            click.echo(f"PASS Received purchase {result.purchase_id}")
        else:
            click.echo(f"WARN Purchase {result.purchase_id}: {result.error} ({result.error_kind})")
    received = sum(1 for r in results if r.success)
    click.echo(f"DONE Received {received} of {len(results)} due purchase(s).")


@click.group('team')
def team_group():
    """Branch membership commands."""


@team_group.command('reset-benefit')
@click.option('--branch-id', required=True, help='Branch ID')
@click.option('--user-id', required=True, help='Cashier user ID')
@with_appcontext
def reset_benefit_cli(branch_id, user_id):
    try:
        cleared = reset_user_benefit(branch_id, user_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Cleared {cleared} cents of accrued bonification.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(purchases_group)
    app.cli.add_command(team_group)
