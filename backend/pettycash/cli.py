# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pettycash/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, both balance rows, default categories and default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role, approval limit, lock and active status.
# - python -m flask users create --name "Jane" --email jane@pettycash.local --role approver --approval-limit 50000
#   Create a user (prompts if options are omitted). --password is optional; without it the user signs in by OTP.
# - python -m flask users migrate-legacy-roles --dry-run
#   Rewrite stored custodian/handler roles to employee.
#
# Balances:
# - python -m flask balance show
#   Ledger balance, committed and available for both accounts.
# - python -m flask balance reconcile
#   Consistency checks for both accounts.
#
# Maintenance:
# - python -m flask maintenance cleanup-otps --older-than-hours 24
# - python -m flask maintenance cleanup-sessions --retention-days 30

import click
from flask.cli import with_appcontext

from .errors import PettyCashError
from .extensions import db
from .models import Category, User
from .models.expenses import ACCOUNT_TYPES
from .permissions import LEGACY_ROLE_ALIASES, ROLES
from .services import auth_service, ledger_service, maintenance_service, report_service
from .validation import cents_to_str, to_cents


DEFAULT_CATEGORIES = (
    ("Office Supplies", "SUPPLY", "Stationery, printer ink and small office items"),
    ("Travel & Transportation", "TRAVEL", "Local conveyance, fuel and parking"),
    ("Food & Beverages", "FOOD", "Team meals and refreshments"),
    ("Maintenance & Repairs", "MAINT", "Minor repairs and upkeep"),
    ("Training & Development", "TRAIN", "Courses, books and workshops"),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--with-users/--no-users', default=True, show_default=True, help='Create default users')
@with_appcontext
def init_system(with_users):
    """
    Initialize the petty cash system.

    Creates:
    - All tables (if missing)
    - Balance rows for petty_cash_bank and petty_cash_physical
    - Default expense categories
    - Users: admin/manager/approver/employee/auditor @pettycash.local
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing petty cash system...")
    db.create_all()

    for account_type in ACCOUNT_TYPES:
        ledger_service.ensure_balance(account_type)
    db.session.commit()
    click.echo("PASS Balance rows ready")

    created = 0
    for name, code, description in DEFAULT_CATEGORIES:
        if db.session.query(Category).filter_by(code=code).first():
            continue
        db.session.add(Category(name=name, code=code, description=description, budget_limit_cents=0))
        created += 1
    db.session.commit()
    click.echo(f"PASS Categories ready ({created} created)")

    if not with_users:
        click.echo("PASS System initialization complete")
        return

    default_password = "Password123!"
    default_users = [
        ("Admin User", "admin@pettycash.local", "admin", None),
        ("Manager User", "manager@pettycash.local", "manager", 10000000),
        ("Approver User", "approver@pettycash.local", "approver", 5000000),
        ("Jane Employee", "employee@pettycash.local", "employee", None),
        ("Audit User", "auditor@pettycash.local", "auditor", None),
    ]
    for name, email, role, limit in default_users:
        if auth_service.find_user_by_email(email):
            click.echo(f"SKIP {email} already exists")
            continue
        auth_service.create_user(
            name=name,
            email=email,
            password=default_password,
            role=role,
            approval_limit_cents=limit,
        )
        click.echo(f"PASS Created {role}: {email}")

    click.echo("\nPASS System initialization complete")
    click.echo(f"   All default users use password: {default_password}")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', default=None, help='Password (optional; OTP-only when omitted)')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--approval-limit', default=None, help='Approval limit in major units (approver/manager)')
@with_appcontext
def create_user_cli(name, email, password, role, approval_limit):
    """Create a user."""
    try:
        user = auth_service.create_user(
            name=name,
            email=email,
            password=password,
            role=role,
            approval_limit_cents=to_cents(approval_limit, "approval_limit"),
        )
    except PettyCashError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.id}: {user.email} ({user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Email':<32} {'Role':<10} {'Effective':<10} {'Limit':<14} {'Active':<8} {'Locked'}")
    click.echo("="*100)

    for user in users:
        limit = cents_to_str(user.approval_limit_cents) or "-"
        active_str = "Yes" if user.is_active else "No"
        locked_str = "Yes" if user.is_locked() else "No"
        click.echo(
            f"{user.id:<5} {user.email:<32} {user.role:<10} {user.effective_role:<10} "
            f"{limit:<14} {active_str:<8} {locked_str}"
        )

    click.echo("="*100 + "\n")


@users_group.command('migrate-legacy-roles')
@click.option('--dry-run', is_flag=True, help='Only report what would change')
@with_appcontext
def migrate_legacy_roles(dry_run):
    """
    Rewrite stored legacy roles (custodian, handler) to their current role.

    Authorization already treats them as employee; this only tidies the data.
    """
    users = db.session.query(User).filter(User.role.in_(list(LEGACY_ROLE_ALIASES))).all()
    if not users:
        click.echo("No users to migrate.")
        return

    for user in users:
        target = LEGACY_ROLE_ALIASES[user.role]
        click.echo(f"  - {user.name} ({user.email}): {user.role} -> {target}")
        if not dry_run:
            user.role = target

    if dry_run:
        click.echo(f"DRY RUN {len(users)} user(s) would be updated")
        return
    db.session.commit()
    click.echo(f"PASS Updated {len(users)} user(s)")


@click.group('balance')
def balance_group():
    """Ledger inspection commands."""


@balance_group.command('show')
@with_appcontext
def show_balance():
    """Current, committed and available per account."""
    overview = ledger_service.get_balance_overview()
    click.echo(f"{'Account':<22} {'Current':>14} {'Committed':>14} {'Available':>14}")
    for row in overview["accounts"]:
        click.echo(
            f"{row['account_type']:<22} {row['current_balance']:>14} "
            f"{row['committed']:>14} {row['available']:>14}"
        )
    click.echo(f"{'TOTAL':<22} {overview['total_current']:>14} {'':>14} {overview['total_available']:>14}")
    db.session.rollback()


@balance_group.command('reconcile')
@with_appcontext
def reconcile_balance():
    """Run the ledger consistency checks; exits non-zero on any mismatch."""
    report = report_service.reconciliation()
    for account in report["accounts"]:
        status = "PASS" if account["is_consistent"] else "FAIL"
        click.echo(f"{status} {account['account_type']}: current {account['current_balance']}")
        for check, passed in account["checks"].items():
            click.echo(f"     {check}: {'ok' if passed else 'MISMATCH'}")
    db.session.rollback()
    if not report["is_consistent"]:
        raise SystemExit(1)


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-otps')
@click.option('--older-than-hours', type=int, default=24, show_default=True)
@with_appcontext
def cleanup_otps_cli(older_than_hours):
    """Delete OTPs that expired more than the given number of hours ago."""
    deleted = maintenance_service.cleanup_otps(older_than_hours=older_than_hours)
    click.echo(f"Deleted {deleted} expired OTPs.")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked session tokens older than the retention window."""
    deleted = maintenance_service.cleanup_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} session tokens older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(balance_group)
    app.cli.add_command(maintenance_group)
