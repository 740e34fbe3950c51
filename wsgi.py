"""
Production WSGI entry point for Gunicorn.

Gunicorn will import this file and look for a top-level variable named `app`.
Run a single worker: reminders are polled in-process and the SQLite backend
is guarded by in-process locks.

Usage:
    gunicorn -w 1 -k gthread --threads 8 -b 0.0.0.0:$PORT wsgi:app
"""

from plantcare import create_app

# Gunicorn looks for a top-level 'app' variable here.
app = create_app()
