# Overview: Flask CLI commands for bootstrap and ledger maintenance.

# backend/pos_engine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask db upgrade
#   Create/upgrade the schema (Flask-Migrate).
# - python -m flask pos seed-defaults
#   Insert default government discounts, discount reasons, membership tiers and customer groups.
# - python -m flask pos set-pin --username manager
#   Set a user's supervisor PIN (prompts, hidden input).
# - python -m flask pos verify-ledgers
#   Replay stock and loyalty ledgers and report drift. Exits 1 when drift is found.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Customer, Product, User
from .services import loyalty_ledger, stock_ledger
from .services.authorization_service import set_supervisor_pin
from .services.seed_service import seed_defaults


@click.group('pos')
def pos_group():
    """Sale engine bootstrap and maintenance commands."""


@pos_group.command('seed-defaults')
@with_appcontext
def seed_defaults_command():
    """Insert missing default configuration rows (idempotent)."""
    created = seed_defaults()
    for kind, count in created.items():
        click.echo(f"PASS {kind}: {count} created")


@pos_group.command('set-pin')
@click.option('--username', required=True, help='User to set the supervisor PIN for')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='4-6 digit PIN')
@with_appcontext
def set_pin_command(username, pin):
    """Set or replace a user's supervisor PIN."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        raise SystemExit(1)
    try:
        set_supervisor_pin(user.id, pin)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Supervisor PIN set for {username}")


@pos_group.command('verify-ledgers')
@with_appcontext
def verify_ledgers_command():
    """Replay every product's stock ledger and every customer's points ledger."""
    problems = 0

    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        report = stock_ledger.verify_product(product)
        if report:
            problems += 1
            click.echo(f"FAIL stock {report}")

    for customer in db.session.query(Customer).order_by(Customer.id.asc()).all():
        report = loyalty_ledger.verify_customer(customer)
        if report:
            problems += 1
            click.echo(f"FAIL loyalty {report}")

    if problems:
        click.echo(f"WARN {problems} ledger problem(s) found")
        raise SystemExit(1)
    click.echo("PASS Stock and loyalty ledgers agree with current balances")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(pos_group)
