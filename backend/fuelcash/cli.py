# Overview: Flask CLI command group for bootstrap, inspection, and chain checks.

# backend/fuelcash/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "fuelcash:create_app" (PowerShell: $env:FLASK_APP="fuelcash:create_app").
# - Use: python -m flask cash <command> [options]
#
# Bootstrap:
# - python -m flask cash init-db
#   Create all tables (idempotent).
# - python -m flask cash reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask cash create-user --name "Ravi" --role manager --station-id 1
#   Create a station staff member.
# - python -m flask cash create-station --name "Highway 9" --code HW9 --manager-id 2 --owner-id 1
#   Create a station with its manager and owner.
# - python -m flask cash set-threshold --station-id 1 --context handover --abs-cents 5000 --pct-bps 150
#   Override variance tolerance for one station.
#
# Inspection:
# - python -m flask cash handovers --station-id 1 --status DISPUTED --limit 20
#   List recent handovers.
# - python -m flask cash settlements --station-id 1 --limit 10
#   Settlement history, most recent first.
# - python -m flask cash verify-chain --station-id 1
#   Report broken previous-handover links (exit code 1 if any).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.users import ROLES
from .services import handover_service, identity_service, settlement_service, station_service
from .services.identity_service import IdentityError
from .services.station_service import StationError, THRESHOLD_CONFIG_KEYS
from .services.variance_service import format_cents


@click.group('cash')
def cash_group():
    """Cash custody bootstrap and inspection commands."""


@cash_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@cash_group.command('reset-db')
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


@cash_group.command('create-user')
@click.option('--name', required=True, help='Display name')
@click.option('--role', type=click.Choice(list(ROLES)), default='employee', show_default=True)
@click.option('--email', help='Email address')
@click.option('--station-id', type=int, help='Home station ID')
@click.option('--manager-id', type=int, help='Reporting manager user ID')
@with_appcontext
def create_user_cli(name, role, email, station_id, manager_id):
    """Create a station staff member."""
    try:
        user = identity_service.create_user(
            name,
            role,
            email=email,
            station_id=station_id,
            manager_user_id=manager_id,
        )
    except IdentityError as e:
        click.echo(f"FAIL Error: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user {user.id}: {user.name} ({user.role})")


@cash_group.command('create-station')
@click.option('--name', required=True, help='Station name')
@click.option('--code', help='Short station code')
@click.option('--manager-id', type=int, help='Assigned manager user ID')
@click.option('--owner-id', type=int, help='Owner user ID')
@with_appcontext
def create_station_cli(name, code, manager_id, owner_id):
    """Create a station."""
    try:
        station = station_service.create_station(
            name,
            code=code,
            manager_user_id=manager_id,
            owner_user_id=owner_id,
        )
    except StationError as e:
        click.echo(f"FAIL Error: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created station {station.id}: {station.name}")
    click.echo(f"   Manager: {station.manager_user_id or 'Not assigned'}")
    click.echo(f"   Owner:   {station.owner_user_id or 'Not assigned'}")


@cash_group.command('set-threshold')
@click.option('--station-id', type=int, required=True, help='Station ID')
@click.option('--context', type=click.Choice(sorted(THRESHOLD_CONFIG_KEYS)), required=True)
@click.option('--abs-cents', type=click.IntRange(min=0), help='Absolute variance threshold in cents')
@click.option('--pct-bps', type=click.IntRange(min=0), help='Percentage threshold in basis points (200 = 2%)')
@with_appcontext
def set_threshold_cli(station_id, context, abs_cents, pct_bps):
    """Override variance tolerance for one station."""
    if abs_cents is None and pct_bps is None:
        click.echo("FAIL Provide --abs-cents and/or --pct-bps")
        raise SystemExit(1)

    abs_key, pct_key = THRESHOLD_CONFIG_KEYS[context]
    if abs_cents is not None:
        station_service.set_station_config(station_id, abs_key, str(abs_cents))
    if pct_bps is not None:
        station_service.set_station_config(station_id, pct_key, str(pct_bps))

    thresholds = station_service.get_variance_thresholds(station_id, context)
    click.echo(
        f"PASS {context} tolerance for station {station_id}: "
        f"{format_cents(thresholds.abs_threshold_cents)} or {thresholds.pct_threshold}%"
    )


@cash_group.command('handovers')
@click.option('--station-id', type=int, required=True, help='Station ID')
@click.option('--status', type=click.Choice(['PENDING', 'CONFIRMED', 'DISPUTED', 'RESOLVED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max handovers to show')
@with_appcontext
def list_handovers_cli(station_id, status, limit):
    """List recent handovers for a station."""
    rows, total = handover_service.list_station_handovers(station_id, status=status, per_page=limit)

    if not rows:
        click.echo("No handovers found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<6} {'Date':<12} {'Stage':<22} {'From':<6} {'To':<6} {'Expected':>12} {'Actual':>12} {'Status':<10} {'Prev'}")
    click.echo("="*110)

    for h in rows:
        actual = format_cents(h.actual_amount_cents) if h.actual_amount_cents is not None else "-"
        click.echo(
            f"{h.id:<6} {h.occurred_on.isoformat():<12} {h.stage_type:<22} "
            f"{str(h.from_user_id or '-'):<6} {str(h.to_user_id or '-'):<6} "
            f"{format_cents(h.expected_amount_cents):>12} {actual:>12} {h.status:<10} {h.previous_handover_id or '-'}"
        )

    click.echo("="*110)
    click.echo(f"Showing {len(rows)} of {total}\n")


@cash_group.command('settlements')
@click.option('--station-id', type=int, required=True, help='Station ID')
@click.option('--limit', type=int, default=10, help='Max settlements to show')
@with_appcontext
def list_settlements_cli(station_id, limit):
    """Settlement history, most recent first."""
    rows = settlement_service.get_settlement_history(station_id, limit)

    if not rows:
        click.echo("No settlements found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Date':<12} {'Expected':>12} {'Counted':>12} {'Variance':>12} {'Status':<14} {'Readings'}")
    click.echo("="*90)

    for s in rows:
        click.echo(
            f"{s.id:<6} {s.settlement_date.isoformat():<12} {format_cents(s.expected_cash_cents):>12} "
            f"{format_cents(s.actual_cash_cents):>12} {format_cents(s.variance_cents):>12} "
            f"{s.status:<14} {len(s.linked_reading_ids)}"
        )

    click.echo("="*90 + "\n")


@cash_group.command('verify-chain')
@click.option('--station-id', type=int, required=True, help='Station ID')
@with_appcontext
def verify_chain_cli(station_id):
    """Report handovers whose previous-handover link is broken."""
    issues = handover_service.verify_chain_integrity(station_id)

    if not issues:
        click.echo(f"PASS Custody chain intact for station {station_id}")
        return

    click.echo(f"FAIL {len(issues)} broken link(s) for station {station_id}:")
    for issue in issues:
        click.echo(f"   handover {issue.handover_id} -> {issue.previous_handover_id or '-'}: {issue.problem}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(cash_group)
