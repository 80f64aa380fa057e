# Overview: Flask CLI command groups for bootstrap and account/calendar maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--email admin@backoffice.local] [--password "Password123!"]
#   Create all tables (if missing) and an initial admin user. Idempotent.
# - python -m flask system seed-catalog
#   Load the example services ("Reclamacao" progressive, "Atraso" tiered).
#
# Users:
# - python -m flask users list
# - python -m flask users create --first-name Ana --email ana@backoffice.local --password "Password123!" [--admin]
# - python -m flask users token --email ana@backoffice.local
#   Issue a session token (there is no login endpoint).
#
# Holidays (commission day classification):
# - python -m flask holidays add 2026-12-25 "Natal"
# - python -m flask holidays list

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Holiday, Service, User
from .services import auth_service, catalog_service, session_service
from .time_utils import parse_iso_date


DEFAULT_ADMIN_EMAIL = "admin@backoffice.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"

EXAMPLE_CATALOG = [
    {
        "name": "Reclamacao",
        "description": "Complaint handling, billed per bracket",
        "pricing_mode": "progressive",
        "price_ranges": [
            {"sale_type": "common", "min_quantity": 1, "max_quantity": 10, "unit_price_cents": 4000},
            {"sale_type": "common", "min_quantity": 11, "max_quantity": None, "unit_price_cents": 1500},
        ],
    },
    {
        "name": "Atraso",
        "description": "Late-payment handling, one rate per quantity tier",
        "pricing_mode": "tiered",
        "price_ranges": [
            {"sale_type": "common", "min_quantity": 1, "max_quantity": 5, "unit_price_cents": 3000},
            {"sale_type": "common", "min_quantity": 6, "max_quantity": None, "unit_price_cents": 2500},
            {"sale_type": "package_sale", "min_quantity": 1, "max_quantity": None, "unit_price_cents": 2200},
        ],
    },
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--email', default=DEFAULT_ADMIN_EMAIL, help='Admin email')
@click.option('--password', default=DEFAULT_ADMIN_PASSWORD, help='Admin password')
@with_appcontext
def init_system(email, password):
    """
    Create missing tables and the initial admin user.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing back office...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(email=email.lower()).first()
    if existing:
        click.echo(f"WARN  User '{email}' already exists, skipping...")
        return

    try:
        user = auth_service.create_user(first_name="Admin", email=email, password=password, is_admin=True)
    except ServiceError as e:
        click.echo(f"FAIL Failed to create admin: {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created admin user: {user.email} (ID: {user.id})")


@system_group.command('seed-catalog')
@with_appcontext
def seed_catalog():
    """Create the example services unless they already exist."""
    for spec in EXAMPLE_CATALOG:
        if db.session.query(Service).filter_by(name=spec["name"]).first():
            click.echo(f"WARN  Service '{spec['name']}' already exists, skipping...")
            continue
        service = catalog_service.create_service(dict(spec))
        click.echo(f"PASS Created service: {service.name} ({service.pricing_mode}, ID: {service.id})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = auth_service.list_users(include_inactive=True)
    if not users:
        click.echo("No users found.")
        return
    click.echo(f"{'ID':<5} {'Name':<30} {'Email':<35} {'Admin':<6} {'Active'}")
    for u in users:
        click.echo(f"{u.id:<5} {u.full_name:<30} {u.email:<35} {'yes' if u.is_admin else 'no':<6} {'yes' if u.is_active else 'no'}")


@users_group.command('create')
@click.option('--first-name', prompt=True)
@click.option('--last-name', default="")
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--admin', is_flag=True, default=False)
@with_appcontext
def create_user_cli(first_name, last_name, email, password, admin):
    try:
        user = auth_service.create_user(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
            is_admin=admin,
        )
    except ServiceError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}, admin={user.is_admin})")


@users_group.command('token')
@click.option('--email', required=True)
@with_appcontext
def issue_token_cli(email):
    """Issue a bearer token for an active user."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        raise SystemExit(1)
    try:
        session, token = session_service.create_session(user.id)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(token)
    click.echo(f"Expires at {session.expires_at.isoformat()}Z", err=True)


@click.group('holidays')
def holidays_group():
    """Non-working dates used by the commission report."""


@holidays_group.command('add')
@click.argument('day')
@click.argument('name')
@with_appcontext
def add_holiday_cli(day, name):
    try:
        parsed = parse_iso_date(day)
    except ValueError:
        click.echo(f"FAIL Invalid date: {day} (use YYYY-MM-DD)")
        raise SystemExit(1)
    holiday = db.session.query(Holiday).filter_by(date=parsed).first()
    if holiday:
        holiday.name = name
        holiday.is_active = True
    else:
        db.session.add(Holiday(date=parsed, name=name, is_active=True))
    db.session.commit()
    click.echo(f"PASS Holiday {parsed.isoformat()} - {name}")


@holidays_group.command('list')
@with_appcontext
def list_holidays_cli():
    for h in db.session.query(Holiday).order_by(Holiday.date.asc()).all():
        click.echo(f"{h.date.isoformat()}  {'active' if h.is_active else 'inactive':<8}  {h.name}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(holidays_group)
