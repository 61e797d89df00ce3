# Overview: Flask CLI command groups for bootstrap, credit aging, and ledger checks.

# backend/agripos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the default admin staff and the hen/duck egg products.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Accounts:
# - python -m flask accounts list [--kind FARMER]
#   List accounts with balance, limit and credit status.
# - python -m flask accounts age [--as-of 2026-10-19]
#   Recompute and persist every account's credit status from aging.
#
# Ledger:
# - python -m flask ledger reconcile [--account-id 5]
#   Compare each balance with the sum of its ledger entries; exits 1 on drift.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import LedgerError
from .models import Product, Staff
from .models.inventory import CATEGORY_DUCK_EGGS, CATEGORY_HEN_EGGS, PRODUCT_TYPE_EGGS
from .services import account_service, ledger_service
from .services.auth_service import create_staff
from .time_utils import parse_iso_datetime


def _cents(value: int) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{abs(value) // 100:,}.{abs(value) % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', default='Password123!', help='Password for the default admin')
@with_appcontext
def init_system(admin_password):
    """
    Initialize the ledger database.

    Creates:
    - All tables (if missing)
    - Admin staff: admin / Password123! (all permissions)
    - Products "Fresh Hen Eggs" and "Fresh Duck Eggs" (stocked by collections)

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing AgriPOS ledger...")
    db.create_all()
    click.echo("PASS Tables ready")

    if not db.session.query(Staff).filter_by(username="admin").first():
        try:
            create_staff(
                username="admin",
                password=admin_password,
                first_name="Store",
                last_name="Admin",
                position="ADMIN",
                employee_id="EMP-0001",
            )
        except LedgerError as e:
            raise click.ClickException(e.message)
        click.echo("PASS Created admin staff (username: admin)")
    else:
        click.echo("PASS Admin staff already exists")

    egg_products = [
        ("EGG-HEN-DZ", "Fresh Hen Eggs", CATEGORY_HEN_EGGS, 300, 270),
        ("EGG-DUCK-DZ", "Fresh Duck Eggs", CATEGORY_DUCK_EGGS, 480, 440),
    ]
    for sku, name, category, selling, wholesale in egg_products:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"PASS Product {sku} already exists")
            continue
        db.session.add(Product(
            sku=sku,
            name=name,
            product_type=PRODUCT_TYPE_EGGS,
            category=category,
            unit="dozen",
            selling_price_cents=selling,
            wholesale_price_cents=wholesale,
            stock=0,
            minimum_stock=10,
        ))
        click.echo(f"PASS Created product {sku}")
    db.session.commit()

    click.echo("\nDONE AgriPOS ledger initialized")


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

    click.echo("PASS Database reset complete. Run 'flask system init' to bootstrap.")


@click.group('accounts')
def accounts_group():
    """Customer and vendor account commands."""


@accounts_group.command('list')
@click.option('--kind', default=None, help='FARMER, REGULAR, WHOLESALE or VENDOR')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive accounts')
@with_appcontext
def list_accounts(kind, include_inactive):
    """List accounts with balance, limit and credit status."""
    try:
        accounts = account_service.list_accounts(kind=kind, active_only=not include_inactive)
    except LedgerError as e:
        raise click.ClickException(e.message)

    if not accounts:
        click.echo("No accounts found")
        return

    click.echo(f"{'ID':>5}  {'KIND':<10} {'NAME':<28} {'BALANCE':>14} {'LIMIT':>14}  STATUS")
    for a in accounts:
        click.echo(
            f"{a.id:>5}  {a.kind:<10} {a.name[:28]:<28} {_cents(a.credit_balance_cents):>14} "
            f"{_cents(a.credit_limit_cents):>14}  {a.credit_status}{'' if a.is_active else ' (inactive)'}"
        )


@accounts_group.command('age')
@click.option('--as-of', default=None, help='ISO date to age against (default: now)')
@with_appcontext
def age_accounts(as_of):
    """Recompute and persist every account's credit status."""
    try:
        as_of_dt = parse_iso_datetime(as_of)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 date or datetime", param_hint="--as-of")

    changes = account_service.refresh_credit_statuses(as_of_dt)
    if not changes:
        click.echo("PASS All credit statuses up to date")
        return
    for change in changes:
        click.echo(f"UPDATE account {change['account_id']}: {change['from']} -> {change['to']}")
    click.echo(f"PASS Updated {len(changes)} account(s)")


@click.group('ledger')
def ledger_group():
    """Ledger consistency commands."""


@ledger_group.command('reconcile')
@click.option('--account-id', type=int, default=None, help='Reconcile one account')
@with_appcontext
def reconcile(account_id):
    """Compare balances with ledger sums; exits with status 1 on drift."""
    try:
        if account_id is not None:
            results = [ledger_service.reconcile_account(account_id)]
        else:
            results = ledger_service.reconcile_all()
    except LedgerError as e:
        raise click.ClickException(e.message)

    drifted = [r for r in results if not r["balanced"]]
    for r in drifted:
        click.echo(
            f"DRIFT account {r['account_id']}: balance {_cents(r['credit_balance_cents'])}, "
            f"ledger {_cents(r['ledger_sum_cents'])}, drift {_cents(r['drift_cents'])}"
        )

    if drifted:
        click.echo(f"FAIL {len(drifted)} of {len(results)} account(s) out of balance")
        raise SystemExit(1)
    click.echo(f"PASS {len(results)} account(s) reconciled")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(ledger_group)
