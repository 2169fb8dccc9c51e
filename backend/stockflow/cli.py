# Overview: Flask CLI command groups for bootstrap and stock ledger inspection.

# backend/stockflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockflow (PowerShell: $env:FLASK_APP="stockflow"); Flask finds create_app().
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock ledger inspection:
# - python -m flask ledger verify
#   Compare every variant's current_stock with the sum of its ledger entries.
# - python -m flask ledger history 42
#   Print the ledger entries of variant 42, oldest first.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import NotFound
from .services import ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create database tables for every model."""
    from . import models  # noqa: F401

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


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """
    Check current_stock == SUM(ledger quantity) for every variant.

    Exits with status 1 when any variant is out of sync.
    """
    mismatches = ledger_service.verify_stock_consistency()
    if not mismatches:
        click.echo("PASS Stock cache matches the ledger for every variant.")
        return

    click.echo(f"FAIL {len(mismatches)} variant(s) out of sync:")
    click.echo(f"{'Variant':<10} {'SKU':<20} {'Stock':>10} {'Ledger':>10}")
    click.echo("-" * 54)
    for row in mismatches:
        click.echo(
            f"{row['variant_id']:<10} {(row['sku'] or '-'):<20} "
            f"{row['current_stock']:>10} {row['ledger_balance']:>10}"
        )
    raise SystemExit(1)


@ledger_group.command('history')
@click.argument('variant_id', type=int)
@with_appcontext
def ledger_history(variant_id):
    """Print a variant's ledger entries with a running balance."""
    try:
        entries = ledger_service.history_for(variant_id)
    except NotFound as exc:
        raise click.ClickException(exc.message)

    if not entries:
        click.echo(f"No ledger entries for variant {variant_id}.")
        return

    click.echo(f"{'ID':<8} {'When':<21} {'Type':<18} {'Delta':>8} {'Balance':>9}  Reference")
    click.echo("=" * 90)
    balance = 0
    for entry in entries:
        balance += entry.quantity
        ref = f"{entry.reference_type}:{entry.reference_id}" if entry.reference_type else "-"
        when = entry.created_at.strftime("%Y-%m-%d %H:%M:%S") if entry.created_at else "-"
        click.echo(
            f"{entry.id:<8} {when:<21} {entry.movement_type:<18} "
            f"{entry.quantity:>+8} {balance:>9}  {ref}"
        )
    click.echo("=" * 90)
    click.echo(f"Current stock: {ledger_service.get_variant_stock(variant_id)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
