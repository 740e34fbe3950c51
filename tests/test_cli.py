"""Flask CLI commands."""

from __future__ import annotations

from plantcare.extensions import get_assistant


def test_init_db(app):
    result = app.test_cli_runner().invoke(args=["init-db"])
    assert result.exit_code == 0
    assert "Database ready at :memory:" in result.output


def test_due_plants(app):
    with app.app_context():
        get_assistant().add_plant({"name": "Fernie", "type": "Boston Fern"})

    result = app.test_cli_runner().invoke(args=["due-plants"])
    assert result.exit_code == 0
    assert "Fernie (Boston Fern) - last watered: never" in result.output


def test_fire_reminders_dry_run_then_fire(app):
    with app.app_context():
        assistant = get_assistant()
        assistant.schedule_reminder({"after": 0}, "water the ferns")

    runner = app.test_cli_runner()
    dry = runner.invoke(args=["fire-reminders", "--dry-run"])
    assert dry.exit_code == 0
    assert "1 reminder(s) due. Dry run - nothing fired." in dry.output

    fired = runner.invoke(args=["fire-reminders"])
    assert fired.exit_code == 0
    assert "Fired: water the ferns" in fired.output
    assert "1 reminder(s) fired." in fired.output

    with app.app_context():
        assert get_assistant().conversation_messages()["data"][0]["text"] == "Scheduled reminder: water the ferns"
