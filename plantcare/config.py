"""
Centralized configuration for all environments.

Select a config by setting:
  APP_CONFIG=plantcare.config.DevConfig      # local dev
  APP_CONFIG=plantcare.config.ProdConfig     # production (default if unset)
  APP_CONFIG=plantcare.config.TestConfig     # pytest

Notes:
- STORAGE_BACKEND picks "sqlite" (default) or "supabase"
- Rate limiting uses Flask-Limiter v3 keys (RATELIMIT_*).
"""

from __future__ import annotations
import os
from plantcare.constants import DEFAULT_HISTORY_LIMIT as _DEFAULT_HISTORY_LIMIT


class BaseConfig:
    DEBUG = False
    TESTING = False

    # Storage
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "sqlite").strip().lower()
    DATABASE_PATH = os.getenv("DATABASE_PATH", "instance/plantcare.db")

    # Supabase (Database) - only used when STORAGE_BACKEND=supabase
    SUPABASE_URL = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Reminder polling (APScheduler background job)
    REMINDER_POLLING_ENABLED = os.getenv("REMINDER_POLLING_ENABLED", "true").lower() == "true"
    REMINDER_POLL_SECONDS = int(os.getenv("REMINDER_POLL_SECONDS", "30"))
    # Let POST /reminders/poll take an "as_of" time (tests only)
    REMINDER_POLL_ACCEPTS_AS_OF = False

    # Conversation log: fired reminders kept for the chat layer to pick up
    CONVERSATION_LOG_MAX_MESSAGES = int(os.getenv("CONVERSATION_LOG_MAX_MESSAGES", "200"))

    # Watering history page size when the caller does not pass ?limit=
    DEFAULT_HISTORY_LIMIT = _DEFAULT_HISTORY_LIMIT
    MAX_HISTORY_LIMIT = 100

    # Flask-Limiter v3
    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "120 per minute; 5000 per day")
    RATELIMIT_MUTATIONS = os.getenv("RATELIMIT_MUTATIONS", "30 per minute")


class ProdConfig(BaseConfig):
    """Production settings (selected by default if APP_CONFIG is unset)."""
    pass


class DevConfig(BaseConfig):
    """Developer-friendly settings."""
    ENV = "development"
    DEBUG = True
    DATABASE_PATH = os.getenv("DATABASE_PATH", "instance/plantcare-dev.db")
    # Poll more often so reminders show up quickly while testing by hand
    REMINDER_POLL_SECONDS = int(os.getenv("REMINDER_POLL_SECONDS", "5"))
    RATELIMIT_MUTATIONS = "300 per minute"


class TestConfig(BaseConfig):
    """CI/pytest settings."""
    TESTING = True
    DEBUG = True
    STORAGE_BACKEND = "sqlite"
    DATABASE_PATH = ":memory:"
    # Tests drive reminders explicitly; no background thread
    REMINDER_POLLING_ENABLED = False
    REMINDER_POLL_ACCEPTS_AS_OF = True
    # Usually disable the limiter in tests to avoid flakiness
    RATELIMIT_ENABLED = False
