# Overview: Flask CLI command groups for bootstrap, order rechecks and tier validation.

# backend/tierstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to tierstock (PowerShell: $env:FLASK_APP="tierstock").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (no data is touched).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Actors:
# - python -m flask actors list [--role agent]
# - python -m flask actors create --name "HQ" --role hq
#   Set HQ_ACTOR_ID to the printed id.
# - python -m flask actors assign --master-agent-id 2 --agent-id 5
#
# Orders:
# - python -m flask orders recheck-pending --limit 50
#   Ask the payment gateway about every pending order with a payment reference.
#
# Commission tiers:
# - python -m flask tiers check --role marketer [--branch-id 3]
#   Report overlapping sales/ROAS bands (exit code 1 when any overlap).

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import LedgerError
from .models.actors import VALID_ROLES
from .services import actor_service
from .services import settlement_service
from .services.incentive_service import find_overlapping_tiers, load_commission_tiers


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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


@click.group('actors')
def actors_group():
    """Tier identity commands."""


@actors_group.command('list')
@click.option('--role', type=click.Choice(VALID_ROLES), default=None)
@with_appcontext
def list_actors(role):
    actors = actor_service.list_actors(role=role)
    if not actors:
        click.echo("No actors found.")
        return
    for actor in actors:
        click.echo(f"{actor.id:>5}  {actor.role:<13} {actor.name} ({actor.staff_code or '-'})")


@actors_group.command('create')
@click.option('--name', required=True)
@click.option('--role', type=click.Choice(VALID_ROLES), required=True)
@click.option('--staff-code', default=None)
@with_appcontext
def create_actor(name, role, staff_code):
    try:
        actor = actor_service.create_actor(name=name, role=role, staff_code=staff_code)
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created {actor.role} '{actor.name}' (ID: {actor.id})")


@actors_group.command('assign')
@click.option('--master-agent-id', type=int, required=True)
@click.option('--agent-id', type=int, required=True)
@with_appcontext
def assign_agent(master_agent_id, agent_id):
    try:
        actor_service.assign_agent(master_agent_id=master_agent_id, agent_id=agent_id)
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Agent {agent_id} now buys from master agent {master_agent_id}")


@click.group('orders')
def orders_group():
    """Pending order maintenance."""


@orders_group.command('recheck-pending')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def recheck_pending(limit):
    """Recheck pending orders against the payment gateway."""
    try:
        rows = settlement_service.recheck_pending_orders(limit=limit)
    except LedgerError as e:
        raise click.ClickException(str(e))
    if not rows:
        click.echo("No pending orders with a payment reference.")
        return

    settled = failed = errors = 0
    for row in rows:
        if row["error"]:
            errors += 1
            click.echo(f"FAIL Order {row['order_id']}: {row['error']}")
        elif row["settled"]:
            settled += 1
            click.echo(f"PASS Order {row['order_id']} settled")
        elif row["status"] == "failed":
            failed += 1
            click.echo(f"WARN Order {row['order_id']} payment failed")
    click.echo(f"Checked {len(rows)}: {settled} settled, {failed} failed, {errors} errors")


@click.group('tiers')
def tiers_group():
    """Commission tier validation."""


@tiers_group.command('check')
@click.option('--role', type=click.Choice(VALID_ROLES), required=True)
@click.option('--branch-id', type=int, default=None)
@with_appcontext
def check_tiers(role, branch_id):
    """Report commission tiers whose sales and ROAS bands overlap."""
    tiers = load_commission_tiers(role=role, branch_id=branch_id)
    if not tiers:
        click.echo(f"WARN No commission tiers configured for {role}")
        return

    overlaps = find_overlapping_tiers(tiers)
    if not overlaps:
        click.echo(f"PASS {len(tiers)} tiers, no overlaps")
        return

    for a, b in overlaps:
        click.echo(
            f"FAIL Tier {a.id} [{a.min_sales_cents}..{a.max_sales_cents or 'inf'}] "
            f"overlaps tier {b.id} [{b.min_sales_cents}..{b.max_sales_cents or 'inf'}]"
        )
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(actors_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(tiers_group)
