# Overview: Flask CLI command groups for bootstrap and stock inspection.

# backend/pharmapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init --username owner --name "Store Owner"
#   Create all tables (if missing) and the owner account (prompts for a password).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username asha --name "Asha" --role cashier
#   Create a user (prompts if options are omitted).
#
# Stock inspection:
# - python -m flask stock low
#   Medicines at or below their reorder level.
# - python -m flask stock expiring --days 30
#   Batches with stock expiring within the window.

import click
from flask.cli import with_appcontext

from .errors import PharmacyError
from .extensions import db
from .models import User
from .models.auth import ROLES
from .services import auth_service, reporting_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--username', default='owner', help='Owner username')
@click.option('--name', default='Store Owner', help='Owner display name')
@click.option('--email', default=None, help='Owner email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
@with_appcontext
def init_system(username, name, email, password):
    """
    Create tables and the owner account.

    Idempotent: existing tables are left alone, and no account is created
    when users already exist.
    """
    click.echo("START Initializing PharmaPOS...")
    db.create_all()
    click.echo("PASS Tables ready")

    if db.session.query(User.id).first() is not None:
        click.echo("PASS Users already exist, skipping owner account")
        return

    try:
        user = auth_service.create_user(username=username, password=password, name=name, email=email)
    except PharmacyError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created owner: {user.username} (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', default=None, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default='cashier', prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, email, password, role):
    """
    Create a new user.

    Password must be 8+ characters with an uppercase letter, a lowercase
    letter and a digit.
    """
    try:
        user = auth_service.create_user(username=username, password=password, name=name, email=email, role=role)
    except PharmacyError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<10} {'Active'}")
    click.echo("="*80)

    for user in users:
        active = "yes" if user.is_active else "no"
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<25} {user.role:<10} {active}")

    click.echo("="*80)
    click.echo(f"Total: {len(users)} users\n")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('low')
@with_appcontext
def low_stock():
    """Medicines at or below their reorder level, lowest stock first."""
    rows = reporting_service.get_low_stock_medicines()
    if not rows:
        click.echo("No medicines below reorder level.")
        return

    click.echo(f"{'ID':<6} {'Medicine':<40} {'Stock':>7} {'Reorder':>8}")
    for row in rows:
        click.echo(f"{row['id']:<6} {row['name'][:40]:<40} {row['total_stock']:>7} {row['reorder_level']:>8}")


@stock_group.command('expiring')
@click.option('--days', type=int, default=None, help='Window in days (default EXPIRY_ALERT_DAYS)')
@with_appcontext
def expiring(days):
    """Batches with stock that expire within the window, soonest first."""
    try:
        rows = reporting_service.get_expiring_batches(days)
    except PharmacyError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    if not rows:
        click.echo("No batches expiring in the window.")
        return

    click.echo(f"{'Batch':<8} {'Medicine':<32} {'Batch No':<16} {'Expiry':<22} {'Qty':>6}")
    for row in rows:
        click.echo(
            f"{row['id']:<8} {row['medicine_name'][:32]:<32} {row['batch_number'][:16]:<16} "
            f"{row['expiry_date']:<22} {row['quantity']:>6}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
