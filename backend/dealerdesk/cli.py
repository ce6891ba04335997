# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/dealerdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the sys_admin account (admin / Password123!).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired/revoked session tokens older than 30 days.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username ged1 --email ged1@dealerdesk.local --password "Password123!" --role ged
#   Create a user (prompts if options are omitted).
# - python -m flask users set-role ged1 adv
#   Replace a user's role.
# - python -m flask users seed
#   Create one demo account per role (<role>@dealerdesk.local / Password123!).
# - python -m flask users reset-passwords --password "NewPass123!"
#   Set one password on every account that is not a sys_admin.
#
# VN order inspection:
# - python -m flask orders list [--status FACTURATION] [--limit 20]
#   List recent orders.
# - python -m flask orders stages VN-2026-0001
#   Show an order's stage timeline.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import order_service, session_service
from .services.auth_service import (
    create_user,
    set_user_role,
    reset_passwords,
    PasswordValidationError,
    UserNotFoundError,
)
from .services.order_service import OrderNotFoundError
from .workflow.capture import read_stage_entry
from .workflow.roles import Role, ROLE_VALUES
from .workflow.stages import STAGES, STAGE_NAMES, UnknownStageError


DEFAULT_PASSWORD = "Password123!"
SEED_EMAIL_DOMAIN = "dealerdesk.local"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize DealerDesk: create the sys_admin account if missing.

    Creates:
    - User: admin/admin@dealerdesk.local with role sys_admin
    - Password defaults to: "Password123!"

    SECURITY: Change the password immediately in production!
    """
    click.echo("START Initializing DealerDesk...")

    existing = db.session.query(User).filter_by(username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user("admin", f"admin@{SEED_EMAIL_DOMAIN}", DEFAULT_PASSWORD, role=Role.SYS_ADMIN, full_name="Administrator")
            click.echo(f"PASS Created user: admin (admin@{SEED_EMAIL_DOMAIN}) with role 'sys_admin'")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create user 'admin': {e}")
            return

    click.echo("\n" + "=" * 60)
    click.echo("DONE DealerDesk initialized")
    click.echo("=" * 60)
    click.echo(f"\nDefault credentials (CHANGE IN PRODUCTION!): admin / {DEFAULT_PASSWORD}")
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


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} stale session(s)")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found. Run: python -m flask system init")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<16} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        role = user.role.value if user.role else "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<32} {role:<16} {'Yes' if user.is_active else 'No'}")
    click.echo("=" * 80 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLE_VALUES), default=Role.CDV.value, show_default=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
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
        user = create_user(username, email, password, role=role, full_name=full_name)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role.value}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
    except ValueError as e:
        click.echo(f"FAIL {e}")


@users_group.command('set-role')
@click.argument('username')
@click.argument('role', type=click.Choice(ROLE_VALUES))
@with_appcontext
def set_role_cli(username, role):
    """Replace a user's role."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    try:
        set_user_role(user.id, role)
    except (UserNotFoundError, ValueError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS {username} now has role '{role}'")


@users_group.command('seed')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for every seeded account')
@with_appcontext
def seed_users_cli(password):
    """Create one demo account per role. Existing accounts are skipped."""
    created = 0
    for role in Role:
        username = role.value
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username, f"{username}@{SEED_EMAIL_DOMAIN}", password, role=role, full_name=role.label)
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {e}")
            continue
        created += 1
        click.echo(f"PASS Created user: {username} with role '{role.value}'")
    click.echo(f"\nDONE {created} account(s) created")


@users_group.command('reset-passwords')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='New password')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_passwords_cli(password, yes):
    """Set one password on every account that is not a sys_admin."""
    if not yes:
        click.confirm("WARN Reset the password of every non-sys_admin account?", abort=True)
    try:
        count = reset_passwords(password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    click.echo(f"PASS Reset {count} password(s); their sessions were revoked")


# =============================================================================
# VN ORDER INSPECTION
# =============================================================================

@click.group('orders')
def orders_group():
    """VN order inspection commands."""


@orders_group.command('list')
@click.option('--status', type=click.Choice(STAGE_NAMES), default=None, help='Stage filter')
@click.option('--search', default=None, help='Customer name, phone, order number or VIN')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_orders_cli(status, search, limit):
    """List recent VN orders."""
    try:
        result = order_service.list_orders(search=search, status=status, limit=limit)
    except UnknownStageError as e:
        click.echo(f"FAIL {e}")
        return

    if not result["items"]:
        click.echo("No orders found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'Number':<16} {'Customer':<28} {'Vehicle':<24} {'Status':<14} {'Balance'}")
    click.echo("=" * 90)
    for order in result["items"]:
        vehicle = f"{order.vehicle_brand} {order.vehicle_model}"
        click.echo(
            f"{order.order_number:<16} {order.customer_name[:27]:<28} {vehicle[:23]:<24} "
            f"{order.status:<14} {float(order.remaining_balance or 0):,.2f}"
        )
    click.echo("=" * 90)
    click.echo(f"{len(result['items'])} of {result['count']} order(s)\n")


@orders_group.command('stages')
@click.argument('order_number')
@with_appcontext
def order_stages_cli(order_number):
    """Show an order's stage timeline."""
    try:
        order = order_service.get_order_by_number(order_number)
    except OrderNotFoundError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"\n{order.order_number}  {order.customer_name}  ({order.status})")
    for descriptor in STAGES:
        entry = read_stage_entry(order.stage_completion_dates, descriptor.name)
        if entry.get("completed_at"):
            marker = f"DONE {entry['completed_at']}"
        elif descriptor.name == order.status:
            marker = "CURRENT"
        else:
            marker = ""
        click.echo(f"  {descriptor.label:<16} {marker}")
    click.echo("")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(orders_group)
