# Overview: Flask CLI command groups for bootstrap, cashbook and integrity checks.

# backend/yuandi/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent: create any missing tables.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Cashbook:
# - python -m flask cashbook open --amount 10000000
#   Record the opening balance (only into an empty cashbook).
# - python -m flask cashbook balance
#   Print the current balance and entry count.
#
# Integrity:
# - python -m flask integrity check
#   Run inventory/cashbook/order-status checks; exit code 1 on any violation.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CashbookTransaction
from .services.cashbook_service import get_current_balance, record_opening_balance
from .services.integrity_service import DatabaseIntegrityValidator


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create missing tables. Safe to run repeatedly.

    Production databases should be upgraded with `flask db upgrade` instead.
    """
    click.echo("START Initializing YUANDI database...")
    db.create_all()
    click.echo("PASS Tables ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask cashbook open --amount N' to seed cash.")


@click.group('cashbook')
def cashbook_group():
    """Cashbook inspection and bootstrap commands."""


@cashbook_group.command('open')
@click.option('--amount', type=int, required=True, help='Opening cash balance in KRW')
@with_appcontext
def open_cashbook(amount):
    """Record the opening balance. Refused once the cashbook has entries."""
    if db.session.query(CashbookTransaction.id).first() is not None:
        raise click.ClickException("Cashbook already has entries; use an adjustment instead.")
    if amount <= 0:
        raise click.ClickException("--amount must be > 0")

    entry = record_opening_balance(amount)
    click.echo(f"PASS Opening balance recorded: {entry.balance:,} KRW (entry #{entry.id})")


@cashbook_group.command('balance')
@with_appcontext
def show_balance():
    """Print the current cashbook balance."""
    count = db.session.query(CashbookTransaction).count()
    click.echo(f"Balance: {get_current_balance():,} KRW ({count} entries)")


@click.group('integrity')
def integrity_group():
    """Read-only consistency checks."""


@integrity_group.command('check')
@with_appcontext
def integrity_check():
    """Run all integrity checks; exit 1 when any fails."""
    report = DatabaseIntegrityValidator().validate_system_integrity()

    for name, ok in (
        ("inventory", report.inventory),
        ("cashbook", report.cashbook),
        ("orders", report.orders),
    ):
        click.echo(f"{'PASS' if ok else 'FAIL'} {name}")

    for issue in report.issues:
        click.echo(f"  - {issue}")

    if not report.overall:
        raise SystemExit(1)
    click.echo("PASS All integrity checks passed.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(cashbook_group)
    app.cli.add_command(integrity_group)
