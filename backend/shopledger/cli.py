# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--cash-name "Cash Box"] [--admin-password "..."]
#   Idempotent: creates tables, an admin user and a default cash account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username clerk --password "..."
#
# Ledger maintenance:
# - python -m flask ledger recompute --account-id 3
# - python -m flask ledger recompute --all
#   Rebuild running balances and account balances from transaction history.
# - python -m flask ledger verify
#   Report accounts whose stored balances disagree with their history.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Account, User
from .models.accounts import ACCOUNT_TYPE_CASH
from .services import account_balance_service as ledger
from .services.account_service import create_account
from .services.auth_service import create_user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--cash-name', default='Cash Box', help='Name of the default cash account')
@click.option('--admin-username', default='admin', help='Username of the first user')
@click.option('--admin-password', default='Password123!', help='Password of the first user')
@with_appcontext
def init_system(cash_name, admin_username, admin_password):
    """
    Create tables, the first user and the default cash account.

    Safe to re-run: existing rows are left alone.
    """
    click.echo("START Initializing shop ledger...")
    db.create_all()

    if db.session.query(User).filter_by(username=admin_username).first():
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            create_user(admin_username, admin_password)
            click.echo(f"PASS Created user: {admin_username}")
        except LedgerError as e:
            click.echo(f"FAIL Failed to create user '{admin_username}': {e.message}")

    cash = ledger.get_default_account(ACCOUNT_TYPE_CASH)
    if cash:
        click.echo(f"PASS Using existing cash account: {cash.name} (ID: {cash.id})")
    else:
        cash = create_account({"type": ACCOUNT_TYPE_CASH, "name": cash_name, "is_default": True})
        click.echo(f"PASS Created default cash account: {cash.name} (ID: {cash.id})")

    click.echo("DONE Shop ledger initialized. Change the default password in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DANGER: Drop all tables and recreate schema. Deletes all data."""
    if not yes:
        click.confirm("This will DELETE ALL DATA. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(username, password):
    """Create a new user (password hashed with bcrypt)."""
    try:
        create_user(username, password)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {username}")


@click.group('ledger')
def ledger_group():
    """Ledger maintenance commands."""


@ledger_group.command('recompute')
@click.option('--account-id', type=int, help='Recompute one account')
@click.option('--all', 'all_accounts', is_flag=True, help='Recompute every account')
@with_appcontext
def recompute_cli(account_id, all_accounts):
    """Rebuild running balances from transaction history."""
    if account_id is None and not all_accounts:
        raise click.UsageError("Pass --account-id N or --all")

    account_ids = [account_id] if account_id is not None else [
        a.id for a in db.session.query(Account).order_by(Account.id.asc())
    ]
    for aid in account_ids:
        try:
            balance = ledger.recompute_account_ledger(aid)
        except LedgerError as e:
            raise click.ClickException(e.message)
        click.echo(f"PASS Account {aid}: balance {balance}")


@ledger_group.command('verify')
@with_appcontext
def verify_cli():
    """Exit status 1 when any account has drifted."""
    drifted = 0
    for account in db.session.query(Account).order_by(Account.id.asc()):
        report = ledger.verify_account_ledger(account.id)
        if report["ok"]:
            click.echo(f"PASS Account {account.id} ({account.label}): {report['stored_balance']}")
            continue
        drifted += 1
        click.echo(
            f"FAIL Account {account.id} ({account.label}): stored {report['stored_balance']}, "
            f"history {report['computed_balance']}, "
            f"{len(report['drifted_transaction_ids'])} entr(y/ies) with wrong running balance"
        )
    if drifted:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
