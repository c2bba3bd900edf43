# Overview: Flask CLI command groups for bootstrap, user creation and maintenance.

# backend/marketplace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-email admin@marketplace.local] [--admin-password ...]
#   Idempotent: creates all tables and a default admin user.
#
# Users:
# - python -m flask users create --email seller@example.com --password "secret1" --role seller
#   Create a user. Customers need --seller-id; prefer POST /api/customers for
#   customers so the customer record is created too.
# - python -m flask users list
#   List users with role and active status.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked sessions older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, VALID_ROLES, ROLE_ADMIN
from .services import session_service
from .services.auth_service import create_user
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@marketplace.local', show_default=True)
@click.option('--admin-password', default='admin123', show_default=True)
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Create tables and a default admin.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing marketplace...")
    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter_by(role=ROLE_ADMIN).first()
    if existing:
        click.echo(f"WARN  Admin already exists ({existing.email}), skipping...")
        return

    try:
        user = create_user(admin_email, admin_password, ROLE_ADMIN, display_name="Administrator")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Could not create admin: {e}")
        return
    click.echo(f"PASS Created admin: {user.email}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--display-name', default=None, help='Display name')
@click.option('--business-name', default=None, help='Business name')
@click.option('--seller-id', type=int, default=None, help='Owning seller (customers only)')
@with_appcontext
def create_user_cli(email, password, role, display_name, business_name, seller_id):
    """Create a user. Passwords need at least 6 characters."""
    try:
        user = create_user(
            email,
            password,
            role,
            display_name=display_name,
            business_name=business_name,
            seller_id=seller_id,
        )
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        seller = f" seller={user.seller_id}" if user.seller_id else ""
        click.echo(f"{user.id:>4}  {user.email:<40} {user.role:<9} {status}{seller}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
