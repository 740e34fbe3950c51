"""
Third-party extensions wiring.

Initializes shared Flask extension instances so other modules can import
configured objects without circular dependencies.
"""

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Limiter is initialized by create_app() with app config for storage/limits.
# Routes apply per-endpoint limits with @limiter.limit("X per minute") etc.
limiter = Limiter(key_func=get_remote_address)

# Key under app.extensions holding the CareAssistant built by create_app()
ASSISTANT_KEY = "plantcare"


def get_assistant():
    """The CareAssistant wired into the current app."""
    return current_app.extensions[ASSISTANT_KEY]
