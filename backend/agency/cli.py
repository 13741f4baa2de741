# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/agency/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates missing tables and seeds document counters.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Document numbering:
# - python -m flask sequences show
#   Show the last issued invoice/ticket numbers.
# - python -m flask sequences sync
#   Raise counters to the highest number already issued (never lowers them).
#
# Ledger inspection:
# - python -m flask ledger verify [--kind customer|agent|vendor]
#   Replay every transaction row and report pools whose balance_after chain
#   or current balance disagree. Exits 1 when anything is off.
#
# Reports:
# - python -m flask reports dashboard
#   Print headline dashboard figures.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import balance_service, reporting_service, sequence_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the back office: create tables and seed the invoice and
    ticket counters from whatever numbers already exist.
    """
    click.echo("START Initializing agency ledger...")

    db.create_all()
    click.echo("PASS Tables ready")

    for document_type in sequence_service.SEQUENCES:
        seq = sequence_service.sync_sequence_from_existing(document_type)
        click.echo(
            f"PASS {document_type} counter at {seq.last_number} "
            f"(next {sequence_service.format_number(document_type, seq.last_number + 1)})"
        )
    db.session.commit()

    click.echo("\nDONE Initialization complete.")


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


@click.group('sequences')
def sequences_group():
    """Invoice and ticket number counters."""


@sequences_group.command('show')
@with_appcontext
def show_sequences():
    """
    List document counters.

    Example:
        flask sequences show
    """
    sequences = sequence_service.list_sequences()
    if not sequences:
        click.echo("No counters yet. Run 'flask system init' or issue a document.")
        return

    click.echo(f"{'Type':<10} {'Last':<10} {'Next'}")
    for seq in sequences:
        next_value = sequence_service.format_number(seq.document_type, seq.last_number + 1)
        click.echo(f"{seq.document_type:<10} {seq.last_number:<10} {next_value}")


@sequences_group.command('sync')
@with_appcontext
def sync_sequences():
    """Raise each counter to the highest issued number (used after imports)."""
    for document_type in sequence_service.SEQUENCES:
        seq = sequence_service.sync_sequence_from_existing(document_type)
        click.echo(f"PASS {document_type} counter at {seq.last_number}")
    db.session.commit()


@click.group('ledger')
def ledger_group():
    """Balance ledger inspection."""


@ledger_group.command('verify')
@click.option(
    '--kind',
    type=click.Choice(sorted(balance_service.PARTY_KINDS)),
    help='Only check one party kind',
)
@with_appcontext
def verify_ledgers(kind):
    """
    Replay transaction rows and compare against stored balances.

    Example:
        flask ledger verify
        flask ledger verify --kind vendor
    """
    checks = balance_service.verify_all_ledgers(kind)

    bad = [check for check in checks if not check.is_consistent]
    click.echo(f"Checked {len(checks)} pool(s)")

    for check in bad:
        click.echo(
            f"FAIL {check.kind} {check.party_id} {check.pool}: "
            f"balance {check.current_balance} replayed {check.replayed_balance} "
            f"bad rows {check.mismatched_row_ids or '-'}"
        )

    if bad:
        click.echo(f"FAIL {len(bad)} pool(s) out of balance")
        sys.exit(1)
    click.echo("PASS All ledgers consistent")


@click.group('reports')
def reports_group():
    """Read-only business reports."""


@reports_group.command('dashboard')
@with_appcontext
def dashboard():
    """Print the dashboard headline figures."""
    metrics = reporting_service.get_dashboard_metrics()
    for key, value in metrics.items():
        if isinstance(value, list):
            continue
        click.echo(f"{key:<24} {value}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sequences_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(reports_group)
