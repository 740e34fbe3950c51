"""
Supabase client initialization and storage backend.

Provides the managed-Postgres alternative to the SQLite backend:
- plants / watering_history / health_issues / reminders tables
- cascade deletion through ON DELETE CASCADE foreign keys (one statement)
- watering inserts through the `record_watering` database function so the
  history row and plants.last_watered change atomically

The matching schema lives in supabase/schema.sql.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
from flask import current_app, has_app_context
from supabase import create_client, Client
import logging

from plantcare.utils.errors import StorageError

logger = logging.getLogger(__name__)


def _safe_log_error(message: str) -> None:
    """Log through the Flask app when there is one, otherwise the module logger."""
    if has_app_context():
        current_app.logger.error(message)
    else:
        logger.error(message)


# Global client instance (initialized once per app)
_supabase_admin: Optional[Client] = None   # Admin client (service role key)


def init_supabase(app) -> Client:
    """
    Initialize the Supabase admin client with app config.

    The service role key is required: plant data is written server-side on
    behalf of the chat layer, so row-level security is bypassed here.

    Call this from the Flask app factory.
    """
    global _supabase_admin

    url = app.config.get("SUPABASE_URL", "")
    service_key = app.config.get("SUPABASE_SERVICE_ROLE_KEY", "")

    if not url or not service_key:
        raise RuntimeError(
            "STORAGE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
        )

    _supabase_admin = create_client(url, service_key)
    app.logger.info("Supabase admin client initialized successfully")
    return _supabase_admin


def _first(response) -> Optional[Dict[str, Any]]:
    data = getattr(response, "data", None)
    if data and len(data) > 0:
        return data[0]
    return None


class SupabaseBackend:
    """Storage backend backed by a Supabase (PostgREST) client."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def _execute(self, action: str, query):
        try:
            return query.execute()
        except Exception as e:
            _safe_log_error(f"[Supabase] Error {action}: {e}")
            raise StorageError(f"Error {action}: {e}") from e

    def init_schema(self) -> None:
        # Tables are managed by supabase/schema.sql migrations.
        return None

    # --- Plants ---------------------------------------------------------------

    def insert_plant(self, row: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute("creating plant", self._client.table("plants").insert(row))
        plant = _first(response)
        if plant is None:
            raise StorageError("Failed to create plant")
        return plant

    def fetch_plant(self, plant_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            f"getting plant {plant_id}",
            self._client.table("plants").select("*").eq("id", plant_id).limit(1),
        )
        return _first(response)

    def fetch_plants(self) -> List[Dict[str, Any]]:
        response = self._execute(
            "listing plants",
            self._client.table("plants").select("*").order("created_at", desc=True),
        )
        return response.data or []

    def update_plant(self, plant_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not changes:
            return self.fetch_plant(plant_id)
        response = self._execute(
            f"updating plant {plant_id}",
            self._client.table("plants").update(changes).eq("id", plant_id),
        )
        return _first(response)

    def delete_plant_cascade(self, plant_id: str) -> Optional[Dict[str, Any]]:
        # Foreign keys cascade to watering_history and health_issues inside
        # the same DELETE statement; the response carries the removed row.
        response = self._execute(
            f"deleting plant {plant_id}",
            self._client.table("plants").delete().eq("id", plant_id),
        )
        return _first(response)

    # --- Watering history -----------------------------------------------------

    def insert_watering(self, event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self._execute(
            f"recording watering for plant {event['plant_id']}",
            self._client.rpc("record_watering", {
                "p_id": event["id"],
                "p_plant_id": event["plant_id"],
                "p_watered_at": event["watered_at"],
                "p_notes": event.get("notes"),
            }),
        )
        return _first(response)

    def fetch_watering_history(self, plant_id: str, limit: int) -> List[Dict[str, Any]]:
        response = self._execute(
            f"getting watering history for plant {plant_id}",
            (self._client
             .table("watering_history")
             .select("*")
             .eq("plant_id", plant_id)
             .order("watered_at", desc=True)
             .limit(limit)),
        )
        return response.data or []

    # --- Health issues --------------------------------------------------------

    def insert_health_issue(self, row: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute(
            "recording health issue", self._client.table("health_issues").insert(row)
        )
        issue = _first(response)
        if issue is None:
            raise StorageError("Failed to record health issue")
        return issue

    def fetch_health_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            f"getting health issue {issue_id}",
            self._client.table("health_issues").select("*").eq("id", issue_id).limit(1),
        )
        return _first(response)

    def fetch_health_issues(self, plant_id: str, include_resolved: bool) -> List[Dict[str, Any]]:
        query = self._client.table("health_issues").select("*").eq("plant_id", plant_id)
        if not include_resolved:
            query = query.eq("resolved", False)
        response = self._execute(
            f"listing health issues for plant {plant_id}",
            query.order("created_at", desc=True),
        )
        return response.data or []

    def update_health_issue(self, issue_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not changes:
            return self.fetch_health_issue(issue_id)
        response = self._execute(
            f"updating health issue {issue_id}",
            self._client.table("health_issues").update(changes).eq("id", issue_id),
        )
        return _first(response)

    # --- Reminders ------------------------------------------------------------

    def insert_reminder(self, row: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute("creating reminder", self._client.table("reminders").insert(row))
        reminder = _first(response)
        if reminder is None:
            raise StorageError("Failed to create reminder")
        return reminder

    def fetch_reminders(self) -> List[Dict[str, Any]]:
        response = self._execute(
            "listing reminders",
            self._client.table("reminders").select("*").order("next_fire_time", desc=False),
        )
        return response.data or []

    def update_reminder(self, reminder_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self._execute(
            f"updating reminder {reminder_id}",
            self._client.table("reminders").update(changes).eq("id", reminder_id),
        )
        return _first(response)

    def delete_reminder(self, reminder_id: str) -> bool:
        response = self._execute(
            f"deleting reminder {reminder_id}",
            self._client.table("reminders").delete().eq("id", reminder_id),
        )
        return _first(response) is not None
