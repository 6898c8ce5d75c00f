# Overview: Flask CLI command groups for bootstrap, ingestion triggers, and maintenance.

# backend/orderhub/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to orderhub (PowerShell: $env:FLASK_APP="orderhub").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Menu:
# - python -m flask menu sync [--trigger scheduled] [--timeout 60]
#   Fetch the GloriaFood menu and rebuild the stored tree. Point cron at this.
# - python -m flask menu sync --every 3600
#   Keep running and sync on a fixed interval (for hosts without cron).
#
# Orders:
# - python -m flask orders poll [--timeout 30]
#   Pull pending orders from GloriaFood (alternative to the webhook).
#
# Inspection:
# - python -m flask events list [--event-type menu_sync] [--limit 20]
#   Show the most recent ingestion events.
#
# Maintenance:
# - python -m flask maintenance cleanup-events --retention-days 90
#   Delete ingestion events older than the retention window.
# - python -m flask maintenance cleanup-leases
#   Drop expired menu sync leases.

import time

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import event_log_service
from .services import maintenance_service
from .services.concurrency import Deadline
from .services.ingestion_gateway import build_gateway


def _deadline(timeout):
    return Deadline(timeout) if timeout else Deadline.none()


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask menu sync' to load the menu.")


@click.group('menu')
def menu_group():
    """Menu synchronization commands."""


def _run_menu_sync(trigger, timeout) -> bool:
    try:
        stats = build_gateway().sync_menu(trigger=trigger, deadline=_deadline(timeout))
    except Exception as e:
        click.echo(f"FAIL Menu sync failed: {str(e)}", err=True)
        return False

    counts = stats.to_dict()
    click.echo(
        f"PASS Menu synchronized: {counts['categories']} categories, {counts['items']} items, "
        f"{counts['sizes']} sizes, {counts['optionGroups']} new option groups, {counts['options']} new options"
    )
    return True


@menu_group.command('sync')
@click.option('--trigger', type=click.Choice(['manual', 'scheduled']), default='scheduled', show_default=True)
@click.option('--timeout', type=float, default=None, help='Time budget in seconds for the whole sync')
@click.option('--every', type=int, default=None, help='Repeat every N seconds until interrupted')
@with_appcontext
def sync_menu_cli(trigger, timeout, every):
    """
    Fetch the GloriaFood menu and rebuild the stored tree.

    Exits non-zero on failure so cron can alert. With --every, failures are
    reported and the next run is still scheduled.
    """
    if not every:
        if not _run_menu_sync(trigger, timeout):
            raise click.exceptions.Exit(1)
        return

    click.echo(f"START Syncing menu every {every}s (Ctrl+C to stop)")
    while True:
        _run_menu_sync(trigger, timeout)
        time.sleep(every)


@click.group('orders')
def orders_group():
    """Order ingestion commands."""


@orders_group.command('poll')
@click.option('--timeout', type=float, default=None, help='Time budget in seconds for the whole batch')
@with_appcontext
def poll_orders_cli(timeout):
    """Pull pending orders from GloriaFood and ingest them."""
    try:
        result = build_gateway().pull_orders(deadline=_deadline(timeout))
    except Exception as e:
        click.echo(f"FAIL Order poll failed: {str(e)}", err=True)
        raise click.exceptions.Exit(1)

    summary = result.summary()
    click.echo(
        f"PASS {result.message}: {summary['created']} new, "
        f"{summary['duplicate']} duplicate, {summary['rejected']} rejected"
    )
    for entry in result.results:
        if entry["status"] == "rejected":
            click.echo(f"   rejected {entry['external_id']}: {entry['error']}")


@click.group('events')
def events_group():
    """Ingestion event log inspection."""


@events_group.command('list')
@click.option('--event-type', default=None, help='order_received, order_poll or menu_sync')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_events_cli(event_type, limit):
    events = event_log_service.list_events(db.session, limit=limit, event_type=event_type)
    if not events:
        click.echo("No events.")
        return
    for ev in events:
        line = f"{ev.created_at}  {ev.event_type:<15} {ev.status:<8}"
        if ev.error_message:
            line += f" {ev.error_message}"
        click.echo(line)


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_events_cli(retention_days):
    """
    Cleanup old ingestion events.

    Default retention: 90 days.
    """
    try:
        deleted = maintenance_service.cleanup_ingestion_events(retention_days=retention_days)
    except ValueError as e:
        click.echo(f"FAIL Error: {str(e)}", err=True)
        raise click.exceptions.Exit(1)
    click.echo(f"Deleted {deleted} ingestion events older than {retention_days} days.")


@maintenance_group.command('cleanup-leases')
@with_appcontext
def cleanup_leases_cli():
    """Drop menu sync leases left behind by crashed syncs."""
    deleted = maintenance_service.cleanup_expired_leases()
    click.echo(f"Deleted {deleted} expired menu sync leases.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(menu_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(events_group)
    app.cli.add_command(maintenance_group)
