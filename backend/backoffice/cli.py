# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--email admin@backoffice.local --password "Password123!"]
#   Idempotent bootstrap: creates tables and the default ADMIN user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --name "Ana" --email ana@example.com --password "secret1" --role MANAGER
#
# Inventory:
# - python -m flask inventory low-stock
#   Print every active product at or under its minimum stock.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import USER_ROLES, User
from .services import auth_service, inventory_service

DEFAULT_ADMIN_EMAIL = "admin@backoffice.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Administrator', help='Admin display name')
@click.option('--email', default=DEFAULT_ADMIN_EMAIL, show_default=True, help='Admin email')
@click.option('--password', default=DEFAULT_ADMIN_PASSWORD, show_default=True, help='Admin password')
@with_appcontext
def init_system(name, email, password):
    """
    Create tables and the default ADMIN user.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing back-office...")

    db.create_all()
    click.echo("PASS Schema ready")

    existing = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if existing:
        click.echo(f"PASS Using existing admin: {existing.email} (ID: {existing.id})")
        return

    try:
        user = auth_service.create_user(name=name, email=email, password=password, role="ADMIN")
    except ServiceError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


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
    """User management commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='SALESPERSON', show_default=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """Create a user."""
    try:
        user = auth_service.create_user(name=name, email=email, password=password, role=role)
    except ServiceError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<30} {'Role':<12} {'Active'}")
    click.echo("=" * 80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<30} {user.role:<12} {active_str}")

    click.echo("=" * 80 + "\n")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """Print inventory rows at or under their minimum."""
    rows = inventory_service.low_stock_alerts()
    if not rows:
        click.echo("PASS No low-stock products.")
        return

    click.echo(f"{'Code':<20} {'Product':<30} {'Qty':>6} {'Min':>6} {'Status':<8} {'Location'}")
    for inv in rows:
        click.echo(
            f"{inv.product.code:<20} {inv.product.name[:30]:<30} {inv.quantity:>6} "
            f"{inv.min_stock:>6} {inv.status:<8} {inv.location or '-'}"
        )
    click.echo(f"WARN {len(rows)} product(s) at or under minimum stock")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
