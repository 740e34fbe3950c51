"""
Plant store: plants, watering history and health issues.

Owns the plant-care data model on top of a storage backend (SQLite or
Supabase). Validation failures raise ValidationError and backend failures
raise StorageError; an unknown plant or issue id is not an error and comes
back as None (or an empty list for history lookups).

All writes that affect one plant (update, watering, health issue changes,
removal) are serialized per plant id, so a cascade delete can never race a
watering insert into leaving an orphaned history row.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional
import logging
import uuid

from plantcare.constants import DEFAULT_HISTORY_LIMIT
from plantcare.utils.dates import parse_iso, to_iso, utc_now, whole_days_between
from plantcare.utils.errors import ValidationError
from plantcare.utils.locks import KeyedLock
from plantcare.utils.validation import (
    MAX_DESCRIPTION_LEN,
    clean_text,
    validate_plant_fields,
)

logger = logging.getLogger(__name__)


def is_due(plant: Mapping[str, Any], now: datetime) -> bool:
    """
    A plant is due when it was never watered, or when the whole days since
    its last watering reach its watering frequency.
    """
    last_watered = plant.get("last_watered")
    if not last_watered:
        return True
    elapsed = whole_days_between(parse_iso(last_watered), now)
    return elapsed >= int(plant["water_frequency_days"])


def _due_sort_key(plant: Mapping[str, Any]):
    # Never-watered plants first, then the longest-dry plants
    last_watered = plant.get("last_watered")
    if not last_watered:
        return (0, "")
    return (1, to_iso(parse_iso(last_watered)))


class PlantStore:
    """Plant collection with watering history and health issue tracking."""

    def __init__(self, backend, clock: Callable[[], datetime] = utc_now) -> None:
        self._backend = backend
        self._clock = clock
        self._plant_locks = KeyedLock()

    @property
    def backend(self):
        return self._backend

    def _now(self) -> str:
        return to_iso(self._clock())

    # --- Plants ---------------------------------------------------------------

    def add_plant(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Add a plant to the collection.

        Args:
            fields: name and type (required), location, light_requirement,
                water_frequency_days (default 7) and notes. camelCase keys from
                the chat tool layer are accepted as well.

        Returns:
            The stored plant row.

        Raises:
            ValidationError: missing name/type or a bad watering frequency.
        """
        payload, error = validate_plant_fields(fields)
        if error:
            raise ValidationError(error)

        row = {
            "id": str(uuid.uuid4()),
            **payload,
            "last_watered": None,
            "created_at": self._now(),
        }
        plant = self._backend.insert_plant(row)
        logger.info(f"[PlantStore] Added plant {plant['id']} ({plant['name']})")
        return plant

    def get_plant(self, plant_id: str) -> Optional[Dict[str, Any]]:
        return self._backend.fetch_plant(plant_id)

    def list_plants(self) -> List[Dict[str, Any]]:
        """All plants, newest first."""
        return self._backend.fetch_plants()

    def update_plant(self, plant_id: str, fields: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply a partial update. Invalid input raises ValidationError before
        anything is written, so the stored plant stays unchanged.

        Returns:
            The updated plant, or None if the plant does not exist.
        """
        changes, error = validate_plant_fields(fields, partial=True)
        if error:
            raise ValidationError(error)

        with self._plant_locks.hold(plant_id):
            plant = self._backend.fetch_plant(plant_id)
            if not plant:
                return None
            if not changes:
                return plant
            updated = self._backend.update_plant(plant_id, changes)

        logger.info(f"[PlantStore] Updated plant {plant_id}: {', '.join(sorted(changes))}")
        return updated

    def remove_plant(self, plant_id: str) -> Optional[Dict[str, Any]]:
        """
        Remove a plant together with its watering history and health issues.

        Returns:
            The removed plant, or None if it did not exist.
        """
        with self._plant_locks.hold(plant_id):
            removed = self._backend.delete_plant_cascade(plant_id)

        if removed:
            logger.info(f"[PlantStore] Removed plant {plant_id} ({removed.get('name')}) with its history")
        return removed

    # --- Watering -------------------------------------------------------------

    def record_watering(self, plant_id: str, notes: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Record that a plant was watered now.

        The history row and the plant's last_watered timestamp are written
        in one transaction and carry the same timestamp.

        Returns:
            The watering event, or None if the plant does not exist.
        """
        with self._plant_locks.hold(plant_id):
            if not self._backend.fetch_plant(plant_id):
                return None
            event = {
                "id": str(uuid.uuid4()),
                "plant_id": plant_id,
                "watered_at": self._now(),
                "notes": clean_text(notes) or None,
            }
            recorded = self._backend.insert_watering(event)

        if recorded:
            logger.info(f"[PlantStore] Recorded watering for plant {plant_id}")
        return recorded

    def get_watering_history(self, plant_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """Most recent watering events first, at most `limit` of them."""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise ValidationError("History limit must be a non-negative whole number.")
        if limit == 0:
            return []
        return self._backend.fetch_watering_history(plant_id, limit)

    def list_plants_due_for_watering(self) -> List[Dict[str, Any]]:
        """Plants that need water, never-watered first, then by last watering ascending."""
        now = self._clock()
        due = [plant for plant in self._backend.fetch_plants() if is_due(plant, now)]
        due.sort(key=_due_sort_key)
        return due

    # --- Health issues --------------------------------------------------------

    def record_health_issue(
        self,
        plant_id: str,
        description: str,
        diagnosis: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Record a health issue (symptoms as described by the user).

        Returns:
            The new issue, or None if the plant does not exist.
        """
        text = clean_text(description, MAX_DESCRIPTION_LEN)
        if not text:
            raise ValidationError("Please describe the symptoms.")

        with self._plant_locks.hold(plant_id):
            if not self._backend.fetch_plant(plant_id):
                return None
            issue = self._backend.insert_health_issue({
                "id": str(uuid.uuid4()),
                "plant_id": plant_id,
                "description": text,
                "diagnosis": clean_text(diagnosis, MAX_DESCRIPTION_LEN) or None,
                "resolved": False,
                "created_at": self._now(),
                "resolved_at": None,
            })

        logger.info(f"[PlantStore] Recorded health issue {issue['id']} for plant {plant_id}")
        return issue

    def list_health_issues(self, plant_id: str, include_resolved: bool = False) -> List[Dict[str, Any]]:
        """Newest issues first; resolved ones only when include_resolved is set."""
        return self._backend.fetch_health_issues(plant_id, bool(include_resolved))

    def get_health_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        return self._backend.fetch_health_issue(issue_id)

    def _update_issue(self, issue_id: str, build_changes) -> Optional[Dict[str, Any]]:
        issue = self._backend.fetch_health_issue(issue_id)
        if not issue:
            return None

        # Issues are written under their plant's lock so a removal cannot interleave
        with self._plant_locks.hold(issue["plant_id"]):
            current = self._backend.fetch_health_issue(issue_id)
            if not current:
                return None
            changes = build_changes(current)
            if not changes:
                return current
            return self._backend.update_health_issue(issue_id, changes)

    def resolve_health_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        """
        Mark an issue resolved. Resolving twice keeps the original resolved_at.

        Returns:
            The issue, or None if it does not exist.
        """
        def changes(issue):
            if issue.get("resolved"):
                return {}
            return {"resolved": True, "resolved_at": self._now()}

        resolved = self._update_issue(issue_id, changes)
        if resolved:
            logger.info(f"[PlantStore] Health issue {issue_id} resolved")
        return resolved

    def set_diagnosis(self, issue_id: str, diagnosis: str) -> Optional[Dict[str, Any]]:
        """Attach diagnosis text produced by the reasoning layer to an issue."""
        text = clean_text(diagnosis, MAX_DESCRIPTION_LEN)
        if not text:
            raise ValidationError("Diagnosis text is required.")
        return self._update_issue(issue_id, lambda issue: {"diagnosis": text})
