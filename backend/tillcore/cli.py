# Overview: Flask CLI command groups for bootstrap, cash sessions and outbox delivery.

# backend/tillcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to tillcore (PowerShell: $env:FLASK_APP="tillcore").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables and the walk-in customer (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Cash session:
# - python -m flask cash status
#   Show the open session and its totals per payment method.
# - python -m flask cash open --amount 100 --user-id 1
#   Open the cash session with an opening float.
# - python -m flask cash close --amount 250 --user-id 1
#   Close the open cash session.
#
# Outbox:
# - python -m flask outbox deliver --limit 100
#   Deliver pending post-commit tasks (cash movements of committed sales).
# - python -m flask outbox list --status failed
#   List outbox tasks, optionally filtered by status.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import PosError
from .services import customer_service, outbox_service, register_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables and make sure the walk-in customer exists."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()

    customer = customer_service.get_or_create_default_customer()
    db.session.commit()
    click.echo(f"PASS Walk-in customer ready (id={customer.id}).")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to initialize.")


@click.group('cash')
def cash_group():
    """Cash session commands."""


@cash_group.command('status')
@with_appcontext
def cash_status():
    """Show the open cash session."""
    session = register_service.get_open_session()
    if session is None:
        click.echo("Cash register is closed.")
        return

    summary = register_service.session_summary(session.id)
    click.echo(f"Session #{session.id} open since {summary['session']['opened_at']}")
    click.echo(f"  Opening amount: {summary['session']['opening_amount']:.2f}")
    for method, amount in sorted(summary["totals_by_method"].items()):
        click.echo(f"  {method:<15} {amount:>12.2f}")
    click.echo(f"  Expected cash:  {summary['expected_cash']:.2f}")


@cash_group.command('open')
@click.option('--amount', default="0", help='Opening float')
@click.option('--user-id', type=int, default=None, help='User opening the session')
@click.option('--notes', default=None, help='Optional notes')
@with_appcontext
def cash_open(amount, user_id, notes):
    """Open the cash session."""
    try:
        session = register_service.open_session(user_id, amount, notes)
    except PosError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Cash session #{session.id} opened with {session.opening_amount}.")


@cash_group.command('close')
@click.option('--amount', default=None, help='Counted closing amount')
@click.option('--user-id', type=int, default=None, help='User closing the session')
@click.option('--notes', default=None, help='Optional notes')
@with_appcontext
def cash_close(amount, user_id, notes):
    """Close the open cash session."""
    try:
        session = register_service.close_session(user_id, amount, notes)
    except PosError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Cash session #{session.id} closed.")


@click.group('outbox')
def outbox_group():
    """Post-commit task delivery."""


@outbox_group.command('deliver')
@click.option('--limit', type=int, default=100, help='Max tasks to deliver')
@with_appcontext
def outbox_deliver(limit):
    """Deliver pending tasks, oldest first."""
    result = outbox_service.deliver_pending(limit=limit)
    click.echo(
        f"Processed {result['processed']}: {result['delivered']} delivered, {result['failed']} not delivered."
    )
    if result["failed"]:
        raise SystemExit(1)


@outbox_group.command('list')
@click.option(
    '--status',
    type=click.Choice([outbox_service.STATUS_PENDING, outbox_service.STATUS_DELIVERED, outbox_service.STATUS_FAILED]),
    help='Filter by status',
)
@with_appcontext
def outbox_list(status):
    """List outbox tasks."""
    tasks = outbox_service.get_tasks(status=status)
    if not tasks:
        click.echo("No tasks found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<6} {'Kind':<16} {'Sale':<8} {'Status':<10} {'Attempts':<9} {'Last error'}")
    click.echo("=" * 90)
    for task in tasks:
        click.echo(
            f"{task.id:<6} {task.kind:<16} {str(task.sale_id or '-'):<8} {task.status:<10} "
            f"{task.attempts:<9} {(task.last_error or '')[:40]}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(cash_group)
    app.cli.add_command(outbox_group)
