"""
Flask CLI commands for one-off administrative tasks.

Usage:
    flask init-db                     # Create tables (SQLite) / show schema hint (Supabase)
    flask fire-reminders              # Fire every reminder due now
    flask fire-reminders --dry-run    # Only list what is due
    flask due-plants                  # List plants that need watering
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from plantcare.extensions import get_assistant
from plantcare.utils.dates import parse_iso, utc_now


@click.command("init-db")
@with_appcontext
def init_db_command() -> None:
    """Create the storage schema if it does not exist yet."""
    backend_name = current_app.config.get("STORAGE_BACKEND", "sqlite")
    if backend_name == "supabase":
        click.echo("Supabase tables are managed by supabase/schema.sql. Apply it with the SQL editor.")
        return

    get_assistant().store.backend.init_schema()
    click.echo(f"Database ready at {current_app.config.get('DATABASE_PATH')}")


@click.command("fire-reminders")
@click.option("--dry-run", is_flag=True, default=False,
              help="List due reminders without firing them.")
@with_appcontext
def fire_reminders_command(dry_run: bool) -> None:
    """Fire every reminder that is due now."""
    assistant = get_assistant()

    if dry_run:
        now = utc_now()
        due = [
            r for r in assistant.schedule.list_reminders()
            if parse_iso(r["next_fire_time"]) <= now
        ]
        click.echo(f"{len(due)} reminder(s) due. Dry run - nothing fired.")
        for reminder in due:
            click.echo(f"  {reminder['id']}  {reminder['description']}")
        return

    result = assistant.process_due_reminders()
    if not result["success"]:
        click.echo(f"Failed: {result['error']}")
        raise SystemExit(1)

    for reminder in result["data"]:
        click.echo(f"  Fired: {reminder['description']}")
    click.echo(f"\nDone. {result['message']}")


@click.command("due-plants")
@with_appcontext
def due_plants_command() -> None:
    """List plants that need watering, most urgent first."""
    result = get_assistant().check_due()
    if not result["success"]:
        click.echo(f"Failed: {result['error']}")
        raise SystemExit(1)

    click.echo(result["message"])
    for plant in result["data"]:
        last = plant.get("last_watered") or "never"
        click.echo(f"  {plant['name']} ({plant['type']}) - last watered: {last}")
