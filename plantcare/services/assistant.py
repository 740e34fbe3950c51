"""
Care assistant facade.

The entry point the chat tool layer (and the JSON API) calls. Each method
maps one intent (add a plant, record a watering, check what needs water,
log symptoms, schedule a reminder...) onto the plant store and the reminder
scheduler, and shapes the outcome as a response dict:

    {"success": True, "message": "...", "data": ...}
    {"success": False, "error": "...", "error_type": "not_found"}

error_type is one of validation, not_found, invalid_trigger or database.
Methods never raise for expected failures.
"""

from __future__ import annotations
from datetime import datetime
from functools import wraps
from typing import Any, Dict, Mapping, Optional

from plantcare.constants import DEFAULT_HISTORY_LIMIT
from plantcare.services.notifications import ConversationLog
from plantcare.services.plants import PlantStore
from plantcare.services.reminders import ScheduleManager
from plantcare.utils.errors import CareError, sanitize_error

Response = Dict[str, Any]


def _ok(message: str, data: Any = None) -> Response:
    return {"success": True, "message": message, "data": data}


def _fail(error_type: str, error: str) -> Response:
    return {"success": False, "error": error, "error_type": error_type}


def _plant_not_found(plant_id: str) -> Response:
    return _fail(
        "not_found",
        f"Plant with ID {plant_id} not found. List your plants to see their IDs.",
    )


def _handles_errors(action: str):
    """Turn CareError subclasses raised below into failure responses."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except CareError as e:
                return _fail(e.error_type, sanitize_error(e, e.error_type, action))
        return wrapper
    return decorator


class CareAssistant:
    """Stateless orchestration over a PlantStore and a ScheduleManager."""

    def __init__(
        self,
        store: PlantStore,
        schedule: ScheduleManager,
        conversation: Optional[ConversationLog] = None,
    ) -> None:
        self.store = store
        self.schedule = schedule
        self.conversation = conversation

    # --- Plants ---------------------------------------------------------------

    @_handles_errors("Failed to add plant")
    def add_plant(self, fields: Mapping[str, Any]) -> Response:
        plant = self.store.add_plant(fields)
        days = plant["water_frequency_days"]
        return _ok(
            f"Successfully added {plant['name']} ({plant['type']}) to your plant collection! "
            f"Plant ID: {plant['id']}. I'll remind you to water it every {days} days.",
            plant,
        )

    @_handles_errors("Failed to list plants")
    def list_plants(self) -> Response:
        plants = self.store.list_plants()
        if not plants:
            return _ok("You don't have any plants tracked yet. Add your first plant to get started!", [])
        return _ok(f"You have {len(plants)} plant(s) in your collection.", plants)

    @_handles_errors("Failed to get plant")
    def get_plant(self, plant_id: str) -> Response:
        plant = self.store.get_plant(plant_id)
        if not plant:
            return _plant_not_found(plant_id)
        return _ok(f"{plant['name']} ({plant['type']})", plant)

    @_handles_errors("Failed to update plant")
    def update_plant(self, plant_id: str, fields: Mapping[str, Any]) -> Response:
        plant = self.store.update_plant(plant_id, fields)
        if not plant:
            return _plant_not_found(plant_id)
        return _ok(f"Updated {plant['name']}.", plant)

    @_handles_errors("Failed to remove plant")
    def remove_plant(self, plant_id: str) -> Response:
        removed = self.store.remove_plant(plant_id)
        if not removed:
            return _plant_not_found(plant_id)
        return _ok(
            f"Successfully removed {removed['name']} from your collection. "
            "All watering history and health records for this plant have been deleted.",
            removed,
        )

    # --- Watering -------------------------------------------------------------

    @_handles_errors("Failed to record watering")
    def water_plant(self, plant_id: str, notes: Optional[str] = None) -> Response:
        plant = self.store.get_plant(plant_id)
        if not plant:
            return _plant_not_found(plant_id)
        event = self.store.record_watering(plant_id, notes)
        if not event:
            return _plant_not_found(plant_id)
        return _ok(f"Recorded watering for {plant['name']}! Last watered: {event['watered_at']}", event)

    @_handles_errors("Failed to get watering history")
    def get_watering_history(self, plant_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> Response:
        plant = self.store.get_plant(plant_id)
        if not plant:
            return _plant_not_found(plant_id)
        history = self.store.get_watering_history(plant_id, limit)
        if not history:
            return _ok(f"{plant['name']} hasn't been watered yet according to our records.", [])
        return _ok(f"Last {len(history)} watering(s) for {plant['name']}.", history)

    @_handles_errors("Failed to check watering needs")
    def check_due(self) -> Response:
        due = self.store.list_plants_due_for_watering()
        if not due:
            return _ok("Great news! All your plants are well-watered. No plants need watering right now.", [])
        names = ", ".join(plant["name"] for plant in due)
        return _ok(f"{len(due)} plant(s) need watering: {names}", due)

    # --- Health ---------------------------------------------------------------

    @_handles_errors("Failed to record health issue")
    def diagnose(self, plant_id: str, symptoms: str) -> Response:
        """Record the symptoms; the diagnosis itself comes from the reasoning layer."""
        plant = self.store.get_plant(plant_id)
        if not plant:
            return _plant_not_found(plant_id)
        issue = self.store.record_health_issue(plant_id, symptoms)
        if not issue:
            return _plant_not_found(plant_id)
        return _ok(
            f"I've recorded this health issue for {plant['name']}. "
            f"Based on the symptoms \"{issue['description']}\", this could be related to "
            "watering, light, humidity, pests, or nutrients.",
            issue,
        )

    @_handles_errors("Failed to get health issues")
    def view_health_issues(self, plant_id: str, include_resolved: bool = False) -> Response:
        plant = self.store.get_plant(plant_id)
        if not plant:
            return _plant_not_found(plant_id)
        issues = self.store.list_health_issues(plant_id, include_resolved)
        if not issues:
            return _ok(f"No health issues recorded for {plant['name']}. That's great!", [])
        return _ok(f"{len(issues)} health issue(s) recorded for {plant['name']}.", issues)

    @_handles_errors("Failed to resolve health issue")
    def resolve_health_issue(self, issue_id: str) -> Response:
        issue = self.store.resolve_health_issue(issue_id)
        if not issue:
            return _fail("not_found", f"Health issue with ID {issue_id} not found.")
        return _ok("Marked the health issue as resolved.", issue)

    @_handles_errors("Failed to record diagnosis")
    def record_diagnosis(self, issue_id: str, diagnosis: str) -> Response:
        issue = self.store.set_diagnosis(issue_id, diagnosis)
        if not issue:
            return _fail("not_found", f"Health issue with ID {issue_id} not found.")
        return _ok("Saved the diagnosis for this health issue.", issue)

    # --- Reminders ------------------------------------------------------------

    @_handles_errors("Failed to schedule reminder")
    def schedule_reminder(
        self,
        trigger: Any,
        description: Optional[str] = None,
        plant_id: Optional[str] = None,
    ) -> Response:
        plant = None
        if plant_id:
            plant = self.store.get_plant(plant_id)
            if not plant:
                return _plant_not_found(plant_id)
            description = description or f"Time to water {plant['name']}!"

        reminder = self.schedule.schedule(trigger, description or "", plant_id=plant_id)
        subject = plant["name"] if plant else "you"
        return _ok(
            f"Watering reminder scheduled for {subject} "
            f"(type: {reminder['trigger_kind']}, next: {reminder['next_fire_time']}).",
            reminder,
        )

    @_handles_errors("Failed to list reminders")
    def list_reminders(self) -> Response:
        reminders = self.schedule.list_reminders()
        if not reminders:
            return _ok("No watering reminders scheduled.", [])
        return _ok(f"{len(reminders)} reminder(s) scheduled.", reminders)

    @_handles_errors("Failed to cancel reminder")
    def cancel_reminder(self, reminder_id: str) -> Response:
        if not self.schedule.cancel(reminder_id):
            return _fail("not_found", f"Reminder {reminder_id} not found.")
        return _ok(f"Reminder {reminder_id} has been successfully canceled.", {"id": reminder_id})

    @_handles_errors("Failed to process due reminders")
    def process_due_reminders(self, as_of: Optional[datetime] = None) -> Response:
        """Fire due reminders; listeners (the conversation log) receive each one."""
        fired = self.schedule.due_reminders(as_of)
        return _ok(f"{len(fired)} reminder(s) fired.", fired)

    # --- Conversation ---------------------------------------------------------

    def conversation_messages(self, limit: Optional[int] = None) -> Response:
        if self.conversation is None:
            return _ok("No conversation log configured.", [])
        messages = self.conversation.messages(limit)
        return _ok(f"{len(messages)} message(s).", messages)
