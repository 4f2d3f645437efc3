# Overview: Flask CLI command groups for bootstrap, stock operations, and reports.

# backend/smartstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="smartstock").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock ledger:
# - python -m flask stock add 3 50 --reason "Initial stock"
#   Append an IN movement of 50 units for product 3.
# - python -m flask stock remove 3 5 --reason "Damaged"
#   Append an OUT movement if product 3 holds at least 5 units.
# - python -m flask stock show 3 [--history]
#   Print current stock (and optionally every movement) for product 3.
#
# Reports:
# - python -m flask reports summary [--start 2024-01-01] [--end 2024-01-31] [--cost-basis snapshot]
# - python -m flask reports stock-status [--threshold 10]
# - python -m flask reports recommendations

import click
from flask.cli import with_appcontext

from .errors import InventoryError
from .extensions import db
from .money_utils import present
from .services import catalog_service, reporting_service, stock_service
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('add')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@click.option('--reason', default=None, help='Why the stock came in')
@click.option('--reference', default=None, help='External reference (e.g. PO number)')
@with_appcontext
def add_stock(product_id, quantity, reason, reference):
    """Record QUANTITY units of PRODUCT_ID coming into stock."""
    try:
        movement = stock_service.record_addition(product_id, quantity, reason, reference)
    except InventoryError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(
        f"PASS Movement {movement.id}: +{quantity} for product {product_id}. "
        f"Current stock: {stock_service.current_stock(product_id)}"
    )


@stock_group.command('remove')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@click.option('--reason', default=None, help='Why the stock went out')
@click.option('--reference', default=None, help='External reference')
@with_appcontext
def remove_stock(product_id, quantity, reason, reference):
    """Record QUANTITY units of PRODUCT_ID leaving stock."""
    try:
        movement = stock_service.record_removal(product_id, quantity, reason, reference)
    except InventoryError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(
        f"PASS Movement {movement.id}: -{quantity} for product {product_id}. "
        f"Current stock: {stock_service.current_stock(product_id)}"
    )


@stock_group.command('show')
@click.argument('product_id', type=int)
@click.option('--history', 'show_history', is_flag=True, help='List every movement')
@with_appcontext
def show_stock(product_id, show_history):
    """Print the current stock of PRODUCT_ID."""
    try:
        product = catalog_service.get_product(product_id)
    except InventoryError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"{product.sku}  {product.name}: {stock_service.current_stock(product_id)} in stock")
    if show_history:
        for m in stock_service.history(product_id):
            click.echo(f"  {to_utc_z(m.created_at)}  {m.movement_type:<3} {m.quantity:>6}  {m.reason or ''}")


@click.group('reports')
def reports_group():
    """Business report commands."""


@reports_group.command('summary')
@click.option('--start', type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help='First day (YYYY-MM-DD)')
@click.option('--end', type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help='Last day (YYYY-MM-DD)')
@click.option('--cost-basis', type=click.Choice(reporting_service.COST_BASES), default=reporting_service.COST_BASIS_CURRENT)
@with_appcontext
def summary_report(start, end, cost_basis):
    """Revenue, cost, profit, margin and ROI over a date window."""
    try:
        report = present(reporting_service.summary(
            start.date() if start else None,
            end.date() if end else None,
            cost_basis=cost_basis,
        ))
    except reporting_service.ReportError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"Window:        {report['start']} .. {report['end']}")
    click.echo(f"Sales:         {report['sales_count']}")
    click.echo(f"Revenue:       {report['revenue']}")
    click.echo(f"Cost:          {report['cost']}")
    click.echo(f"Profit:        {report['profit']}")
    click.echo(f"Margin %:      {report['profit_margin_percent']}")
    click.echo(f"ROI %:         {report['roi_percent']}")
    click.echo(f"Turnover rate: {report['turnover_rate']}")


@reports_group.command('stock-status')
@click.option('--threshold', type=int, default=stock_service.LOW_STOCK_THRESHOLD, help='Low-stock threshold')
@with_appcontext
def stock_status_report(threshold):
    """Count products that are in stock, low, or out of stock."""
    status = reporting_service.stock_status(threshold)
    click.echo(f"In stock:     {status['in_stock']}")
    click.echo(f"Low stock:    {status['low_stock']} (< {threshold})")
    click.echo(f"Out of stock: {status['out_of_stock']}")


@reports_group.command('recommendations')
@with_appcontext
def recommendations_report():
    """Rule-based suggestions from stock levels and recent sales."""
    recommendations = reporting_service.recommendations()
    if not recommendations:
        click.echo("No recommendations.")
        return
    for rec in recommendations:
        click.echo(f"[{rec['type'].upper()}] {rec['title']}: {rec['message']} ({rec['action']})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(reports_group)
