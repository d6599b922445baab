# Overview: Flask CLI command groups for bootstrap, stock inspection and target reporting.

# backend/salesops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--branch-code HQ --branch-name "Head Office"]
#   Idempotent bootstrap: creates tables, a default branch, category and one user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--branch-id 1]
#
# Stock:
# - python -m flask stock low [--branch-id 1]
#   Stocks at or below their minimum level.
#
# Targets:
# - python -m flask targets progress 3 [--as-of 2025-01-31]

import click
from flask.cli import with_appcontext

from .errors import SalesOpsError
from .extensions import db
from .models import Branch, ProductCategory, User
from .permissions import ROLE_BRANCH_ADMIN, ROLE_SALES, ROLE_SUPER_ADMIN
from .services import stock_service, target_service
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch-code', default='HQ', help='Default branch code')
@click.option('--branch-name', default='Head Office', help='Default branch name')
@with_appcontext
def init_system(branch_code, branch_name):
    """
    Initialize the system: tables, default branch, default category and users.

    Creates (if missing):
    - Branch <branch-code>
    - Product category CIG (Cigarettes)
    - Users: admin@salesops.local (super_admin),
             branch.admin@salesops.local (branch_admin),
             sales@salesops.local (sales)
    """
    click.echo("START Initializing sales system...")
    db.create_all()

    branch = db.session.query(Branch).filter_by(code=branch_code).first()
    if not branch:
        branch = Branch(code=branch_code, name=branch_name, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    category = db.session.query(ProductCategory).filter_by(code="CIG").first()
    if not category:
        category = ProductCategory(code="CIG", name="Cigarettes", is_active=True)
        db.session.add(category)
        db.session.commit()
        click.echo(f"PASS Created category: {category.name} (ID: {category.id})")

    default_users = [
        ("Administrator", "admin@salesops.local", ROLE_SUPER_ADMIN, None),
        ("Branch Admin", "branch.admin@salesops.local", ROLE_BRANCH_ADMIN, branch.id),
        ("Sales Agent", "sales@salesops.local", ROLE_SALES, branch.id),
    ]
    for name, email, role, branch_id in default_users:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        user = User(name=name, email=email, role=role, branch_id=branch_id, is_active=True)
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user: {email} (ID: {user.id}) with role '{role}'")

    click.echo("\n" + "=" * 60)
    click.echo("DONE System Initialized Successfully!")
    click.echo("=" * 60)
    click.echo("\nAPI callers identify themselves with the X-Actor-Id header (user ID).")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection commands."""


@users_group.command('list')
@click.option('--branch-id', type=int, default=None, help='Filter by branch')
@with_appcontext
def list_users(branch_id):
    """List users with role, branch and active status."""
    q = db.session.query(User)
    if branch_id is not None:
        q = q.filter(User.branch_id == branch_id)
    users = q.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<14} {'Branch':<7} Active")
    click.echo("-" * 70)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<35} {user.role:<14} {str(user.branch_id or '-'):<7} "
            f"{'yes' if user.is_active else 'no'}"
        )


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('low')
@click.option('--branch-id', type=int, default=None, help='Limit to one branch')
@with_appcontext
def low_stock(branch_id):
    """List stocks at or below their minimum level."""
    stocks = stock_service.low_stock_alerts(branch_id)
    if not stocks:
        click.echo("PASS No low stock.")
        return
    click.echo(f"{'Branch':<8} {'Product':<25} {'Qty':>6} {'Min':>6}")
    click.echo("-" * 48)
    for stock in stocks:
        click.echo(
            f"{stock.branch.code:<8} {stock.product.code:<25} {stock.quantity:>6} {stock.minimum_stock:>6}"
        )


@click.group('targets')
def targets_group():
    """Sales target reporting commands."""


@targets_group.command('progress')
@click.argument('target_id', type=int)
@click.option('--as-of', default=None, help='Cut-off date (YYYY-MM-DD), default today')
@with_appcontext
def target_progress(target_id, as_of):
    """Show progress of one target."""
    try:
        as_of_date = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--as-of")
    try:
        target = target_service.get_target(target_id)
    except SalesOpsError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    result = target_service.progress(target, as_of_date)
    click.echo(
        f"Target {target.id} ({target.type}, {target.period_type} "
        f"{result['start_date']}..{result['end_date']})"
    )
    click.echo(f"  current: {result['current']}")
    click.echo(f"  goal:    {result['goal']}")
    click.echo(f"  percent: {result['percent']}%")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(targets_group)
