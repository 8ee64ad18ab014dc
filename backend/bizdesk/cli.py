# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bizdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Prefer `flask db upgrade` once migrations are in use.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory inspection/maintenance (account scoped):
# - python -m flask inventory low-stock --account acme
#   List products at or below their low-stock threshold.
# - python -m flask inventory expiring --account acme [--within-days 14]
#   List products expiring soon.
# - python -m flask inventory refresh-days-left [--account acme]
#   Recompute days_left for products with an expiry date (all accounts if omitted).
#
# Approvals:
# - python -m flask approvals pending --account acme
#   List requests awaiting a decision.
#
# Reports:
# - python -m flask reports general --account acme --start 2026-01-01 [--end 2026-01-31]
#   Print the general stock report as JSON.

import json

import click
from flask.cli import with_appcontext

from .errors import BizDeskError
from .extensions import db
from .scope import Scope
from .services import approval_service, catalog_service, reporting_service


def _scope(account: str) -> Scope:
    try:
        return Scope(account_id=account, actor="cli")
    except BizDeskError as exc:
        raise click.UsageError(exc.message)


account_option = click.option('--account', 'account', required=True, help='Account id (tenant)')


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete.")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock inspection and maintenance."""


@inventory_group.command('low-stock')
@account_option
@with_appcontext
def low_stock(account):
    """List products at or below their low-stock threshold."""
    products = catalog_service.list_low_stock(_scope(account))
    if not products:
        click.echo("No low-stock products.")
        return
    for p in products:
        click.echo(f"{p.id}\t{p.name}\tboxes={p.quantity_box}\tkg={p.quantity_kg}")


@inventory_group.command('expiring')
@account_option
@click.option('--within-days', type=int, default=None, help='Defaults to EXPIRY_WARNING_DAYS')
@with_appcontext
def expiring(account, within_days):
    """List products expiring soon, soonest first."""
    try:
        products = catalog_service.list_expiring(_scope(account), within_days=within_days)
    except BizDeskError as exc:
        raise click.ClickException(exc.message)
    if not products:
        click.echo("No products expiring in the window.")
        return
    for p in products:
        click.echo(f"{p.id}\t{p.name}\texpires={p.expiry_date:%Y-%m-%d}\tdays_left={p.days_left}")


@inventory_group.command('refresh-days-left')
@click.option('--account', 'account', default=None, help='Account id; all accounts if omitted')
@with_appcontext
def refresh_days_left(account):
    """Recompute days_left for products with an expiry date."""
    scope = _scope(account) if account else None
    changed = catalog_service.refresh_days_left(scope)
    click.echo(f"PASS Updated days_left on {changed} product(s).")


# =============================================================================
# APPROVALS
# =============================================================================

@click.group('approvals')
def approvals_group():
    """Approval queue inspection."""


@approvals_group.command('pending')
@account_option
@with_appcontext
def pending(account):
    """List movements and damages awaiting a decision."""
    queue = approval_service.list_pending(_scope(account))
    if not queue["movements"]:
        click.echo("Nothing pending.")
        return
    for m in queue["movements"]:
        detail = m["field_changed"] or f"boxes={m['box_change']} kg={m['kg_change']}"
        click.echo(
            f"{m['id']}\t{m['movement_type']}\tproduct={m['product_id']} ({m['product_name']})"
            f"\t{detail}\tby={m['performed_by']}\treason={m['reason']}"
        )


# =============================================================================
# REPORTS
# =============================================================================

@click.group('reports')
def reports_group():
    """Report generation."""


@reports_group.command('general')
@account_option
@click.option('--start', required=True, help='ISO-8601 date or datetime')
@click.option('--end', default=None, help='ISO-8601 date or datetime; defaults to now')
@with_appcontext
def general(account, start, end):
    """Print the general stock report as JSON."""
    try:
        window = reporting_service.ReportWindow.parse(start, end)
        report = reporting_service.general_report(_scope(account), window)
    except BizDeskError as exc:
        raise click.ClickException(exc.message)
    click.echo(json.dumps(report.to_dict(), indent=2))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(approvals_group)
    app.cli.add_command(reports_group)
