# Overview: Flask CLI command groups for bootstrap, inventory inspection, and maintenance.

# backend/gasbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory inspection/adjustment:
# - python -m flask inventory counts --owner shop-1
#   Print FULL/EMPTY cylinder counts and stove counts for one owner.
# - python -m flask inventory add --owner shop-1 --type 14.2kg --status FULL --quantity 10
#   Add cylinder units.
# - python -m flask inventory remove --owner shop-1 --type 19kg --status EMPTY --quantity 3
#   Remove cylinder units (all-or-nothing).
#
# Maintenance:
# - python -m flask maintenance sweep-retention [--owner shop-1]
#   Delete expired Paid+Delivered bookings and old lending records now.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service
from .services import retention_service
from .services.inventory_service import InsufficientStockError
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("PASS Database tables created.")


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


@click.group('inventory')
def inventory_group():
    """Inventory inspection and adjustment."""


@inventory_group.command('counts')
@click.option('--owner', 'owner_key', required=True, help='Owner key')
@with_appcontext
def inventory_counts(owner_key):
    counts = inventory_service.get_inventory_counts(owner_key=owner_key)

    click.echo(f"Cylinders for {owner_key}:")
    for cylinder_type, by_status in counts["cylinders"].items():
        click.echo(f"  {cylinder_type:<8} FULL={by_status['FULL']:<5} EMPTY={by_status['EMPTY']}")

    if counts["stoves"]:
        click.echo("Stoves:")
        for model, by_status in counts["stoves"].items():
            click.echo(f"  {model:<16} AVAILABLE={by_status['AVAILABLE']:<5} LENT={by_status['LENT']}")


@inventory_group.command('add')
@click.option('--owner', 'owner_key', required=True, help='Owner key')
@click.option('--type', 'cylinder_type', required=True, help='Cylinder type, e.g. 14.2kg')
@click.option('--status', type=click.Choice(inventory_service.CYLINDER_STATUSES), default='FULL', show_default=True)
@click.option('--quantity', type=int, required=True)
@with_appcontext
def inventory_add(owner_key, cylinder_type, status, quantity):
    try:
        ids = inventory_service.add_cylinders(
            owner_key=owner_key,
            cylinder_type=cylinder_type,
            status=status,
            quantity=quantity,
        )
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"Added {len(ids)} {cylinder_type} {status} cylinder(s).")


@inventory_group.command('remove')
@click.option('--owner', 'owner_key', required=True, help='Owner key')
@click.option('--type', 'cylinder_type', required=True, help='Cylinder type, e.g. 14.2kg')
@click.option('--status', type=click.Choice(inventory_service.CYLINDER_STATUSES), default='FULL', show_default=True)
@click.option('--quantity', type=int, required=True)
@with_appcontext
def inventory_remove(owner_key, cylinder_type, status, quantity):
    try:
        ids = inventory_service.remove_cylinders(
            owner_key=owner_key,
            cylinder_type=cylinder_type,
            status=status,
            quantity=quantity,
        )
    except (ValidationError, InsufficientStockError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Removed {len(ids)} {cylinder_type} {status} cylinder(s).")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('sweep-retention')
@click.option('--owner', 'owner_key', default=None, help='Limit to one owner (default: all owners)')
@with_appcontext
def sweep_retention_cli(owner_key):
    """
    Run the retention sweep now.

    Bookings: Paid + Delivered, untouched for BOOKING_RETENTION_HOURS.
    Lending records: returned LENDING_RETENTION_DAYS ago or more.
    """
    result = retention_service.run_retention_sweep(owner_key=owner_key)
    click.echo(
        f"Deleted {result['bookings_deleted']} booking(s) and "
        f"{result['lending_records_deleted']} lending record(s)."
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(maintenance_group)
