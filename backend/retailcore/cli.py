# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent). Use `flask db upgrade` for migrated deployments.
#
# Branches:
# - python -m flask branches create --name "Mumbai Central" --code MUM01 [--tax-rate-bps 1800]
# - python -m flask branches list [--all]
# - python -m flask branches set-active MUM01 [--inactive]
#
# Users:
# - python -m flask users create --email admin@retail.local --full-name Admin --role admin
# - python -m flask users create --email c1@retail.local --full-name "Cashier One" --role cashier --branch-id 1
# - python -m flask users unlock admin@retail.local
# - python -m flask users set-active c1@retail.local [--inactive]
# - python -m flask users revoke-tokens admin@retail.local
#
# Permissions:
# - python -m flask perms list [--role cashier] [--category SALES]
# - python -m flask perms check admin@retail.local sales.refund
# - python -m flask perms migrate-legacy
#   Rewrite stored colon-notation grants ("sales:read") to dot-notation.
#
# Products and stock:
# - python -m flask products create --sku ABC-1 --name "Widget" --price-cents 11800 [--cost-cents 6000]
# - python -m flask inventory receive --sku ABC-1 --branch-id 1 --quantity 10 [--reorder-level 2]
# - python -m flask inventory stock --sku ABC-1 --branch-id 1

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Branch, Product
from .permissions import (
    PERMISSION_DEFINITIONS,
    default_permissions_for,
    effective_permissions,
    has_permission,
    normalize_role,
)
from .services import auth_service, branch_service, inventory_service, products_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK Database tables created")


@click.group('branches')
def branches_group():
    """Branch management commands."""


@branches_group.command('create')
@click.option('--name', prompt=True, help='Branch name')
@click.option('--code', prompt=True, help='Unique branch code (2-10 uppercase letters/digits)')
@click.option('--tax-rate-bps', type=int, default=1800, show_default=True, help='Tax rate in basis points')
@with_appcontext
def create_branch_cli(name, code, tax_rate_bps):
    try:
        branch = branch_service.create_branch(name, code, tax_rate_bps)
    except DomainError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"OK Branch {branch.code} created (id={branch.id})")


@branches_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive branches')
@with_appcontext
def list_branches_cli(include_inactive):
    for branch in branch_service.list_branches(include_inactive=include_inactive):
        status = "active" if branch.is_active else "inactive"
        click.echo(f"{branch.id}\t{branch.code}\t{branch.name}\t{branch.tax_rate_bps}bps\t{status}")


@branches_group.command('set-active')
@click.argument('code')
@click.option('--inactive', is_flag=True, help='Deactivate instead of activate')
@with_appcontext
def set_branch_active_cli(code, inactive):
    branch = db.session.query(Branch).filter_by(code=code.strip().upper()).first()
    if not branch:
        raise click.ClickException(f"Branch {code} not found")
    branch_service.set_branch_active(branch.id, not inactive)
    click.echo(f"OK Branch {branch.code} {'deactivated' if inactive else 'activated'}")


@click.group('users')
def users_group():
    """User administration commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', prompt=True, help='Role (admin, regional manager, store manager, inventory manager, cashier, viewer)')
@click.option('--branch-id', type=int, default=None, help='Branch (required for branch-scoped roles)')
@with_appcontext
def create_user_cli(email, full_name, password, role, branch_id):
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
        user = auth_service.create_user(email, password, full_name, role, branch_id=branch_id)
    except DomainError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"OK User {user.email} created (id={user.id}, role={user.role}, branch={user.branch_id})")


@users_group.command('unlock')
@click.argument('email')
@with_appcontext
def unlock_user_cli(email):
    user = auth_service.get_user_by_email(email)
    if not user:
        raise click.ClickException(f"User {email} not found")
    auth_service.unlock_user(user.id)
    click.echo(f"OK {user.email} unlocked")


@users_group.command('set-active')
@click.argument('email')
@click.option('--inactive', is_flag=True, help='Deactivate instead of activate (also revokes refresh tokens)')
@with_appcontext
def set_user_active_cli(email, inactive):
    user = auth_service.get_user_by_email(email)
    if not user:
        raise click.ClickException(f"User {email} not found")
    auth_service.set_user_active(user.id, not inactive)
    click.echo(f"OK {user.email} {'deactivated' if inactive else 'activated'}")


@users_group.command('revoke-tokens')
@click.argument('email')
@with_appcontext
def revoke_tokens_cli(email):
    """Log a user out everywhere."""
    user = auth_service.get_user_by_email(email)
    if not user:
        raise click.ClickException(f"User {email} not found")
    removed = auth_service.logout_everywhere(user.id)
    click.echo(f"OK {removed} refresh tokens revoked for {user.email}")


@click.group('perms')
def perms_group():
    """Permission inspection and migration commands."""


@perms_group.command('list')
@click.option('--role', default=None, help='Only permissions granted by default to this role')
@click.option('--category', default=None, help='Only permissions in this category')
def list_perms_cli(role, category):
    allowed = default_permissions_for(role) if role else None
    if role and not allowed:
        raise click.ClickException(f"Unknown role {role!r}")
    for code, name, _description, perm_category in PERMISSION_DEFINITIONS:
        if allowed is not None and code not in allowed:
            continue
        if category and perm_category != category.upper():
            continue
        click.echo(f"{code:<24}{perm_category:<14}{name}")
    if role:
        click.echo(f"-- role: {normalize_role(role)}")


@perms_group.command('check')
@click.argument('email')
@click.argument('permission')
@with_appcontext
def check_perm_cli(email, permission):
    user = auth_service.get_user_by_email(email)
    if not user:
        raise click.ClickException(f"User {email} not found")
    granted = has_permission(effective_permissions(user), permission)
    click.echo(f"{'ALLOW' if granted else 'DENY'} {user.email} ({user.role}) {permission}")


@perms_group.command('migrate-legacy')
@with_appcontext
def migrate_legacy_cli():
    changed = auth_service.migrate_legacy_permissions()
    click.echo(f"OK {changed} users migrated to dot-notation permissions")


@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('create')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True, help='Tax-inclusive selling price')
@click.option('--cost-cents', type=int, default=0)
@with_appcontext
def create_product_cli(sku, name, price_cents, cost_cents):
    try:
        product = products_service.create_product(sku, name, price_cents, cost_cents)
    except DomainError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"OK Product {product.sku} created (id={product.id})")


@click.group('inventory')
def inventory_group():
    """Branch stock commands."""


@inventory_group.command('receive')
@click.option('--sku', required=True)
@click.option('--branch-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--reorder-level', type=int, default=None)
@with_appcontext
def receive_stock_cli(sku, branch_id, quantity, reorder_level):
    product = db.session.query(Product).filter_by(sku=sku.strip().upper()).first()
    if not product:
        raise click.ClickException(f"Product {sku} not found")
    try:
        stock = inventory_service.receive_stock(product.id, branch_id, quantity, reorder_level=reorder_level)
    except DomainError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"OK {product.sku} @ branch {branch_id}: quantity={stock.quantity}")


@inventory_group.command('stock')
@click.option('--sku', required=True)
@click.option('--branch-id', type=int, required=True)
@with_appcontext
def show_stock_cli(sku, branch_id):
    product = db.session.query(Product).filter_by(sku=sku.strip().upper()).first()
    if not product:
        raise click.ClickException(f"Product {sku} not found")
    branch = branch_service.get_branch(branch_id)
    if not branch:
        raise click.ClickException(f"Branch {branch_id} not found")
    available = inventory_service.get_available_quantity(product.id, branch.id)
    low = inventory_service.is_below_reorder_level(product.id, branch.id)
    click.echo(f"{product.sku} @ {branch.code}: available={available}{' (reorder)' if low else ''}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(products_group)
    app.cli.add_command(inventory_group)
