# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Branches:
# - python -m flask branches create --name "Centro" --code CEN --timezone America/Argentina/Buenos_Aires --petty-cash 10000
# - python -m flask branches update --branch-id 1 --petty-cash 15000 --weekday-hours 09:00-20:00 --closed-sunday
# - python -m flask branches list
#
# Users:
# - python -m flask users create --username ana --role MANAGER --branch-id 1 --pin 1234
# - python -m flask users list
#
# Registers:
# - python -m flask registers create --branch-id 1 --number 1 --name "Front Counter"
# - python -m flask registers list --branch-id 1 [--all]
# - python -m flask registers sessions --status OPEN --limit 20
#
# Denominations:
# - python -m flask denominations seed
#   Load the default peso catalog (skips values that already exist).
# - python -m flask denominations list [--all]
#
# Cash desk maintenance:
# - python -m flask cash redeliver-reopen --session-id 42
#   Re-emit the audit event and owner alert of the latest reopen (idempotent).

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .errors import CashDeskError
from .extensions import db
from .models import Denomination, User
from .models.auth import ROLES
from .models.registers import SESSION_STATUSES
from .services import auth_service, branch_service, denomination_service, register_service, reopen_service


# value, label, active
DEFAULT_DENOMINATIONS = [
    ("20000", "$20.000", True),
    ("10000", "$10.000", True),
    ("2000", "$2.000", True),
    ("1000", "$1.000", True),
    ("500", "$500", True),
    ("200", "$200", True),
    ("100", "$100", True),
    ("50", "$50", True),
    ("20", "$20", False),
    ("10", "$10", False),
]


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

    click.echo("PASS Database reset complete. Run 'python -m flask denominations seed' next.")


@click.group('branches')
def branches_group():
    """Branch configuration."""


@branches_group.command('create')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--timezone', 'tz', default=None, help='IANA timezone, e.g. America/Argentina/Buenos_Aires')
@click.option('--petty-cash', default='0', help='Minimum float left in a drawer after closing')
@with_appcontext
def create_branch_cli(name, code, tz, petty_cash):
    try:
        branch = branch_service.create_branch({
            "name": name,
            "code": code,
            "timezone": tz,
            "petty_cash_amount": petty_cash,
        })
    except CashDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created branch {branch.id}: {branch.name} ({branch.code})")


@branches_group.command('update')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@click.option('--timezone', 'tz', default=None, help='IANA timezone')
@click.option('--petty-cash', default=None, help='Minimum float left in a drawer after closing')
@click.option('--weekday-hours', default=None, help='Opening-closing, e.g. 09:00-20:00')
@click.option('--sunday-hours', default=None, help='Opening-closing, e.g. 10:00-14:00')
@click.option('--closed-sunday', is_flag=True, help='Clear Sunday hours')
@with_appcontext
def update_branch_cli(branch_id, tz, petty_cash, weekday_hours, sunday_hours, closed_sunday):
    """
    Update branch cash configuration.

    Example:
        flask branches update --branch-id 1 --petty-cash 15000 --closed-sunday
    """
    patch = {}
    if tz is not None:
        patch["timezone"] = tz
    if petty_cash is not None:
        patch["petty_cash_amount"] = petty_cash
    if weekday_hours is not None:
        patch["weekday_opening_time"], patch["weekday_closing_time"] = _split_hours(weekday_hours)
    if closed_sunday:
        patch["sunday_opening_time"] = None
        patch["sunday_closing_time"] = None
    elif sunday_hours is not None:
        patch["sunday_opening_time"], patch["sunday_closing_time"] = _split_hours(sunday_hours)
    if not patch:
        raise click.UsageError("Nothing to update.")

    try:
        branch = branch_service.update_branch(branch_id, patch)
    except CashDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Updated branch {branch.id}: {', '.join(sorted(patch))}")


def _split_hours(value: str) -> tuple[str, str]:
    opening, sep, closing = value.partition('-')
    if not sep or not opening.strip() or not closing.strip():
        raise click.BadParameter(f"expected HH:MM-HH:MM, got {value!r}")
    return opening.strip(), closing.strip()


@branches_group.command('list')
@with_appcontext
def list_branches_cli():
    branches = branch_service.list_branches()
    if not branches:
        click.echo("No branches found.")
        return
    click.echo(f"{'ID':<5} {'Code':<10} {'Name':<30} {'Timezone':<32} {'Petty cash':<12}")
    for b in branches:
        click.echo(f"{b.id:<5} {b.code:<10} {b.name:<30} {b.timezone or '-':<32} {b.petty_cash_amount}")


@click.group('users')
def users_group():
    """User bootstrap (authentication itself happens upstream)."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--branch-id', type=int, help='Branch (omit for owners)')
@click.option('--full-name', help='Display name')
@click.option('--pin', help='4-6 digit supervisor PIN')
@with_appcontext
def create_user_cli(username, role, branch_id, full_name, pin):
    try:
        user = auth_service.create_user(username, role, branch_id=branch_id, full_name=full_name, pin=pin)
    except CashDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.id}: {user.username} ({user.role})")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<10} {'Branch':<8} {'PIN':<5} {'Active'}")
    for u in users:
        click.echo(
            f"{u.id:<5} {u.username:<20} {u.role:<10} {u.branch_id or '-':<8} "
            f"{'yes' if u.pin_hash else 'no':<5} {'yes' if u.is_active else 'no'}"
        )


@click.group('registers')
def registers_group():
    """Register setup and session inspection."""


@registers_group.command('create')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@click.option('--number', 'register_number', type=int, required=True, help='Register number (unique per branch)')
@click.option('--name', required=True, help='Display name')
@with_appcontext
def create_register_cli(branch_id, register_number, name):
    try:
        register = register_service.create_register({
            "branch_id": branch_id,
            "register_number": register_number,
            "name": name,
        })
    except CashDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created register {register.id}: #{register.register_number} {register.name}")


@registers_group.command('list')
@click.option('--branch-id', type=int, help='Filter by branch ID')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive registers')
@with_appcontext
def list_registers_cli(branch_id, include_inactive):
    registers = register_service.list_registers(branch_id, include_inactive=include_inactive)
    if not registers:
        click.echo("No registers found.")
        return
    click.echo(f"{'ID':<5} {'Branch':<8} {'Number':<8} {'Name':<30} {'Active':<8} {'Session'}")
    for r in registers:
        click.echo(
            f"{r.id:<5} {r.branch_id:<8} {r.register_number:<8} {r.name:<30} "
            f"{'yes' if r.is_active else 'no':<8} {r.current_session_id or '-'}"
        )


@registers_group.command('sessions')
@click.option('--register-id', type=int, help='Filter by register ID')
@click.option('--status', type=click.Choice(list(SESSION_STATUSES)), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(register_id, status, limit):
    """
    List register sessions.

    Example:
        flask registers sessions
        flask registers sessions --register-id 1
        flask registers sessions --status OPEN
    """
    result = register_service.list_sessions(register_id=register_id, status=status, page=1, per_page=limit)
    sessions = result["items"]

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Number':<18} {'Register':<9} {'Opener':<7} {'Status':<10} {'Opened':<22} {'Cash diff':<12}")
    click.echo("="*110)

    for s in sessions:
        diff = s["discrepancy"]["cash"]
        diff_str = f"{Decimal(diff):+.2f}" if diff is not None else "-"
        click.echo(
            f"{s['id']:<5} {s['session_number']:<18} {s['register_id']:<9} {s['opener_id']:<7} "
            f"{s['status']:<10} {s['opened_at']:<22} {diff_str:<12}"
        )
    click.echo("="*110 + "\n")


@click.group('denominations')
def denominations_group():
    """Denomination catalog."""


@denominations_group.command('seed')
@with_appcontext
def seed_denominations_cli():
    """Load the default catalog; existing values are left untouched."""
    created = 0
    for order, (value, label, active) in enumerate(DEFAULT_DENOMINATIONS):
        exists = db.session.query(Denomination).filter(Denomination.value == Decimal(value)).first()
        if exists:
            continue
        denomination_service.create_denomination({
            "value": value,
            "label": label,
            "display_order": order,
            "is_active": active,
        })
        created += 1
    click.echo(f"PASS Seeded {created} denomination(s).")


@denominations_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive denominations')
@with_appcontext
def list_denominations_cli(include_inactive):
    for d in denomination_service.list_denominations(include_inactive=include_inactive):
        click.echo(f"{d.id:<5} {d.label:<12} {d.value:>12} order={d.display_order:<4} {'active' if d.is_active else 'inactive'}")


@click.group('cash')
def cash_group():
    """Cash desk maintenance."""


@cash_group.command('redeliver-reopen')
@click.option('--session-id', type=int, required=True, help='Reopened session ID')
@with_appcontext
def redeliver_reopen_cli(session_id):
    """Re-emit the audit event and owner alert for a session's latest reopen."""
    try:
        key = reopen_service.redeliver_reopen_notifications(session_id)
    except CashDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Reopen notifications delivered ({key}).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(users_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(denominations_group)
    app.cli.add_command(cash_group)
