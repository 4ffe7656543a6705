# Overview: Flask CLI command groups for bootstrap, approval chain setup, and reminders.

# backend/gudang/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Approval chains:
# - python -m flask divisions list
# - python -m flask divisions create --name "Gudang A" [--description "..."]
# - python -m flask levels list [--division "Gudang A"]
# - python -m flask levels create --division "Gudang A" --name Supervisor --email spv@example.com [--order 1]
#
# Approval workflow:
# - python -m flask approvals pending
#   List delivery notes waiting for approval with their current approver.
# - python -m flask approvals remind [--note-id 12]
#   Re-send approval emails (type=reminder) with fresh links.

import click
from flask.cli import with_appcontext

from .errors import ApprovalNotFoundError
from .extensions import db
from .models import DeliveryNote
from .services import approval_level_service, approval_service
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset.')
@with_appcontext
def reset_db_command(yes: bool):
    """Drop and recreate all tables (DEV/TEST only)."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@click.group('divisions')
def divisions_group():
    """Division management."""


@divisions_group.command('list')
@with_appcontext
def list_divisions_command():
    for division in approval_level_service.list_divisions():
        click.echo(f"{division.id}\t{division.name}\t{len(division.approval_levels)} level(s)")


@divisions_group.command('create')
@click.option('--name', required=True)
@click.option('--description', default=None)
@with_appcontext
def create_division_command(name: str, description: str | None):
    try:
        division = approval_level_service.create_division(name, description)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Created division {division.id}: {division.name}")


@click.group('levels')
def levels_group():
    """Approval level management."""


def _division_id(name: str) -> int:
    division = approval_level_service.get_division_by_name(name)
    if division is None:
        raise click.ClickException(f"Division {name!r} not found")
    return division.id


@levels_group.command('list')
@click.option('--division', 'division_name', default=None, help='Division name filter.')
@with_appcontext
def list_levels_command(division_name: str | None):
    division_id = _division_id(division_name) if division_name else None
    for level in approval_level_service.list_levels(division_id):
        click.echo(f"{level.id}\t{level.division.name}\t{level.level_order}\t{level.name}\t{level.email}")


@levels_group.command('create')
@click.option('--division', 'division_name', required=True)
@click.option('--name', required=True)
@click.option('--email', required=True)
@click.option('--order', 'level_order', type=int, default=None)
@with_appcontext
def create_level_command(division_name: str, name: str, email: str, level_order: int | None):
    payload = {
        "division_id": _division_id(division_name),
        "name": name,
        "email": email,
        "level_order": level_order,
    }
    try:
        level = approval_level_service.create_level(payload)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Created level {level.id}: {level.name} (order {level.level_order})")


@click.group('approvals')
def approvals_group():
    """Delivery note approval workflow."""


@approvals_group.command('pending')
@with_appcontext
def pending_command():
    rows = approval_service.pending_notes()
    if not rows:
        click.echo("No delivery notes pending approval.")
        return
    for note, record in rows:
        approver = record.approval_level.name if record else "-"
        click.echo(f"{note.delivery_number}\t{note.customer_name}\t{approver}")


@approvals_group.command('remind')
@click.option('--note-id', type=int, default=None, help='Only remind for this delivery note.')
@with_appcontext
def remind_command(note_id: int | None):
    if note_id is not None:
        note = db.session.get(DeliveryNote, note_id)
        if note is None:
            raise click.ClickException(f"Delivery note {note_id} not found")
        notes = [note]
    else:
        notes = [note for note, _ in approval_service.pending_notes()]

    sent = failed = 0
    for note in notes:
        try:
            result = approval_service.send_reminder(note)
        except ApprovalNotFoundError as e:
            click.echo(f"{note.delivery_number}: skipped ({e})")
            continue
        if result.success:
            sent += 1
            click.echo(f"{note.delivery_number}: reminder sent to {result.recipient}")
        elif result.skipped:
            click.echo(f"{note.delivery_number}: {result.error}")
        else:
            failed += 1
            click.echo(f"{note.delivery_number}: failed ({result.error})")
    click.echo(f"Reminders sent: {sent}, failed: {failed}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(divisions_group)
    app.cli.add_command(levels_group)
    app.cli.add_command(approvals_group)
