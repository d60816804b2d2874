# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/worktime/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: seeds the default time model and lists policy settings.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Employees:
# - python -m flask employees list
# - python -m flask employees create --name "Jane Doe" --timezone Europe/Berlin --tracking
#
# Time models:
# - python -m flask models seed-default
#   Create the standard 40h week as default model (no-op if a default exists).
#
# Time clock maintenance:
# - python -m flask timeclock sweep
#   Auto-complete open days of all tracked employees (same logic as on read).
# - python -m flask timeclock validate-day --employee-id 1 --date 2026-03-02
#   Print the sequence validation of one stored day.
#
# Balances:
# - python -m flask balances recompute --year 2026 --month 3 [--employee-id 1]
#   Recompute a month and cascade forward to the current month.
# - python -m flask balances resume
#   Finish balance cascades that were interrupted.
# - python -m flask balances show --employee-id 1 [--year 2026]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Employee
from .services import balance_service, settings_service, time_model_service, timekeeping_service
from .validation import InvalidInput
from .time_utils import get_zone


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Idempotent bootstrap of the time-tracking core."""
    click.echo("START Initializing worktime...")

    model = time_model_service.seed_default_time_model()
    click.echo(f"PASS Default time model: {model.name} (ID: {model.id}, {model.weekly_minutes} min/week)")

    click.echo("\nLIST Policy settings:")
    for setting in settings_service.get_all_settings():
        marker = "" if setting["is_default"] else " (override)"
        click.echo(f"   {setting['key']:<30} {setting['value']}{marker}")

    click.echo("\nDONE worktime initialized")


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


# =============================================================================
# EMPLOYEES
# =============================================================================

@click.group('employees')
def employees_group():
    """Employee directory commands."""


@employees_group.command('list')
@with_appcontext
def list_employees():
    employees = db.session.query(Employee).order_by(Employee.id.asc()).all()
    if not employees:
        click.echo("No employees found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Tracking':<9} {'Active':<7} {'Model':<6} {'Time zone'}")
    click.echo("=" * 80)
    for e in employees:
        click.echo(
            f"{e.id:<5} {e.name:<30} {'yes' if e.time_tracking_enabled else 'no':<9} "
            f"{'yes' if e.is_active else 'no':<7} {e.time_model_id or '-':<6} {e.timezone or '-'}"
        )
    click.echo("=" * 80 + "\n")


@employees_group.command('create')
@click.option('--name', required=True, help='Display name')
@click.option('--email', default=None, help='Email address (unique)')
@click.option('--timezone', 'tz_name', default=None, help='IANA time zone (default: app default)')
@click.option('--region', default=None, help='Holiday region code')
@click.option('--model-id', type=int, default=None, help='Time model ID (default model if omitted)')
@click.option('--tracking/--no-tracking', default=True, help='Enable time tracking')
@click.option('--initial-balance', type=int, default=0, help='Opening balance in minutes')
@with_appcontext
def create_employee(name, email, tz_name, region, model_id, tracking, initial_balance):
    if tz_name:
        try:
            get_zone(tz_name)
        except ValueError as e:
            click.echo(f"FAIL {e}")
            return
    if model_id is not None:
        try:
            time_model_service.get_time_model(model_id)
        except InvalidInput as e:
            click.echo(f"FAIL {e}")
            return

    employee = Employee(
        name=name,
        email=email,
        timezone=tz_name,
        region=region,
        time_model_id=model_id,
        time_tracking_enabled=tracking,
        initial_balance_minutes=initial_balance,
    )
    db.session.add(employee)
    db.session.commit()
    click.echo(f"PASS Created employee: {employee.name} (ID: {employee.id})")


# =============================================================================
# TIME MODELS
# =============================================================================

@click.group('models')
def models_group():
    """Time model commands."""


@models_group.command('seed-default')
@with_appcontext
def seed_default_model():
    model = time_model_service.seed_default_time_model()
    click.echo(f"PASS Default time model: {model.name} (ID: {model.id})")


# =============================================================================
# TIME CLOCK
# =============================================================================

@click.group('timeclock')
def timeclock_group():
    """Time clock maintenance commands."""


@timeclock_group.command('sweep')
@with_appcontext
def sweep():
    """Auto-complete open days of every tracked employee."""
    swept = timekeeping_service.sweep_stale_days()
    if not swept:
        click.echo("PASS No open days found")
        return
    for employee_id, days in swept.items():
        click.echo(f"WARN  Employee {employee_id}: auto-completed {', '.join(d.isoformat() for d in days)}")
    click.echo(f"PASS Swept {sum(len(d) for d in swept.values())} day(s)")


@timeclock_group.command('validate-day')
@click.option('--employee-id', type=int, required=True)
@click.option('--date', 'day', type=click.DateTime(formats=["%Y-%m-%d"]), required=True)
@with_appcontext
def validate_day(employee_id, day):
    try:
        result = timekeeping_service.validate_day(employee_id=employee_id, day=day.date())
    except InvalidInput as e:
        click.echo(f"FAIL {e}")
        return
    if result.valid:
        click.echo(f"PASS Sequence valid, state after last entry: {result.state}")
        return
    for warning in result.warnings:
        click.echo(f"WARN  {warning.message}")
    click.echo(f"FAIL {len(result.warnings)} warning(s), state after last entry: {result.state}")


# =============================================================================
# BALANCES
# =============================================================================

@click.group('balances')
def balances_group():
    """Overtime ledger commands."""


@balances_group.command('recompute')
@click.option('--year', type=int, required=True)
@click.option('--month', type=int, required=True)
@click.option('--employee-id', type=int, default=None, help='Only this employee (default: all tracked)')
@with_appcontext
def recompute(year, month, employee_id):
    try:
        if employee_id is not None:
            rows = [balance_service.recompute_month(employee_id=employee_id, year=year, month=month)]
        else:
            rows = balance_service.recompute_all(year=year, month=month)
    except InvalidInput as e:
        click.echo(f"FAIL {e}")
        return
    for row in rows:
        click.echo(f"PASS Employee {row.employee_id} {row.year}-{row.month:02d}: balance {row.balance_minutes} min")


@balances_group.command('resume')
@with_appcontext
def resume():
    """Finish interrupted balance cascades."""
    processed = balance_service.process_pending_recomputes()
    if not processed:
        click.echo("PASS No pending cascades")
        return
    for employee_id, months in processed.items():
        click.echo(f"PASS Employee {employee_id}: recomputed {months} month(s)")


@balances_group.command('show')
@click.option('--employee-id', type=int, required=True)
@click.option('--year', type=int, default=None)
@with_appcontext
def show(employee_id, year):
    try:
        data = balance_service.get_balance(employee_id=employee_id, year=year)
    except InvalidInput as e:
        click.echo(f"FAIL {e}")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'Month':<9} {'Carry':>8} {'Overtime':>9} {'Adjust':>8} {'Payout':>8} {'Balance':>9}")
    click.echo("=" * 72)
    for m in data["months"]:
        click.echo(
            f"{m['year']}-{m['month']:02d}  {m['carryover_minutes']:>8} {m['overtime_minutes']:>9} "
            f"{m['adjustment_minutes']:>8} {m['payout_minutes']:>8} {m['balance_minutes']:>9}"
        )
    click.echo("=" * 72)
    click.echo(f"Current balance: {data['current_balance_minutes']} min")
    if data["overtime_limit_exceeded"]:
        click.echo("WARN  Overtime limit exceeded")
    elif data["overtime_warning"]:
        click.echo("WARN  Overtime warning threshold reached")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(employees_group)
    app.cli.add_command(models_group)
    app.cli.add_command(timeclock_group)
    app.cli.add_command(balances_group)
