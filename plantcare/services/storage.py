"""
Storage backend selection.

Picks the backend named by STORAGE_BACKEND ("sqlite" or "supabase") and
builds it from app config. Called once from the app factory.
"""

from __future__ import annotations
from plantcare.services.sqlite_backend import SQLiteBackend
from plantcare.services import supabase_client

STORAGE_BACKENDS = ("sqlite", "supabase")


def init_storage(app):
    backend_name = (app.config.get("STORAGE_BACKEND") or "sqlite").strip().lower()

    if backend_name not in STORAGE_BACKENDS:
        raise RuntimeError(
            f"Unknown STORAGE_BACKEND {backend_name!r}; expected one of {', '.join(STORAGE_BACKENDS)}."
        )

    if backend_name == "supabase":
        client = supabase_client.init_supabase(app)
        app.logger.info("[Storage] Using Supabase backend")
        return supabase_client.SupabaseBackend(client)

    database_path = app.config.get("DATABASE_PATH", "instance/plantcare.db")
    backend = SQLiteBackend(database_path)
    app.logger.info(f"[Storage] Using SQLite backend at {database_path}")
    return backend
