"""
Application factory and global configuration.

Creates the Flask app, configures rate limiting, builds the storage backend
and the care services, registers the JSON API, and starts the background
job that fires due reminders. This file keeps startup/config concerns
together and avoids domain logic here.
"""

from __future__ import annotations
import os
from flask import Flask
from dotenv import load_dotenv  # <-- ensure .env is loaded for local dev
from .extensions import ASSISTANT_KEY, limiter
from .routes.api import api_bp
from .services.assistant import CareAssistant
from .services.notifications import ConversationLog
from .services.plants import PlantStore
from .services.reminders import ScheduleManager
from .services.storage import init_storage


def _start_reminder_scheduler(app: Flask, assistant: CareAssistant) -> None:
    """
    Poll for due reminders on an APScheduler interval job.

    Fired reminders reach the conversation log through the ScheduleManager
    listener registered in create_app().
    """
    try:
        from apscheduler.schedulers.background import BackgroundScheduler

        scheduler = BackgroundScheduler(timezone="UTC")

        def run_due_reminders():
            with app.app_context():
                result = assistant.process_due_reminders()
                if not result["success"]:
                    app.logger.warning(f"[Scheduler] Reminder poll failed: {result['error']}")

        interval = app.config.get("REMINDER_POLL_SECONDS", 30)
        scheduler.add_job(
            func=run_due_reminders,
            trigger="interval",
            seconds=interval,
            id="fire_due_reminders",
            name="Fire Due Plant Care Reminders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        scheduler.start()
        app.logger.info(f"[Scheduler] Reminder poll scheduled every {interval}s")

        # Shutdown scheduler gracefully on app exit
        import atexit
        atexit.register(lambda: scheduler.shutdown(wait=False))
        app.extensions["plantcare_scheduler"] = scheduler

    except Exception as e:
        app.logger.warning(f"[Scheduler] Failed to initialize reminder scheduler: {e}")


def create_app(config_object: str | type | None = None) -> Flask:
    # Load .env early (for local dev)
    # override=False so production env vars are not overwritten by a stale .env file
    load_dotenv(override=False)

    app = Flask(__name__)

    # --- Load central config.py first ---
    # Allow APP_CONFIG to override (e.g., plantcare.config.ProdConfig)
    cfg_path = config_object or os.getenv("APP_CONFIG", "plantcare.config.ProdConfig")
    try:
        app.config.from_object(cfg_path)
    except (ImportError, AttributeError) as e:
        app.logger.warning(f"Could not load config object {cfg_path}: {e}")

    limiter.init_app(app)

    if not app.config.get("RATELIMIT_ENABLED", True):
        limiter.enabled = False

    # --- Services ---
    backend = init_storage(app)
    store = PlantStore(backend)
    schedule = ScheduleManager(backend)
    conversation = ConversationLog(app.config.get("CONVERSATION_LOG_MAX_MESSAGES", 200))
    schedule.add_listener(conversation.append_reminder)

    assistant = CareAssistant(store, schedule, conversation)
    app.extensions[ASSISTANT_KEY] = assistant

    # Blueprints
    app.register_blueprint(api_bp, url_prefix="/api/v1")

    # --- Background reminder polling ---
    if not app.config.get("TESTING", False) and app.config.get("REMINDER_POLLING_ENABLED", True):
        _start_reminder_scheduler(app, assistant)

    # Register CLI commands
    from plantcare.cli import due_plants_command, fire_reminders_command, init_db_command
    app.cli.add_command(init_db_command)
    app.cli.add_command(fire_reminders_command)
    app.cli.add_command(due_plants_command)

    return app
