"""
Defines JSON endpoints used by the chat tool layer and front end.

Endpoints:
- /plants: List and add plants
- /plants/<id>: Get, update, remove a plant
- /plants/<id>/water, /plants/<id>/watering-history: Watering log
- /plants/due: Plants that need watering now
- /plants/<id>/diagnose, /plants/<id>/health-issues: Health tracking
- /health-issues/<id>/resolve, /health-issues/<id>/diagnosis
- /reminders: Schedule, list, cancel and poll reminders
- /messages: Conversation log of fired reminders
"""

from flask import Blueprint, current_app, jsonify, request
from ..extensions import get_assistant, limiter
from ..utils.validation import is_valid_uuid


api_bp = Blueprint("api", __name__)

_STATUS_BY_ERROR = {
    "validation": 400,
    "invalid_trigger": 400,
    "not_found": 404,
    "database": 500,
}


def _mutation_limit():
    return current_app.config["RATELIMIT_MUTATIONS"]


@api_bp.before_request
def _enforce_ajax_for_mutations():
    """Enforce X-Requested-With header on all state-changing API requests.

    Custom headers cannot be set by cross-origin requests without CORS and
    HTML forms cannot set them, so only same-origin JavaScript (or a trusted
    server-side tool caller) gets through.
    """
    if request.method in ("POST", "PUT", "DELETE", "PATCH"):
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            return jsonify({
                "success": False,
                "error": "Invalid request. Please refresh the page and try again."
            }), 403


def _respond(result: dict, success_status: int = 200):
    if result.get("success"):
        return jsonify(result), success_status
    return jsonify(result), _STATUS_BY_ERROR.get(result.get("error_type"), 500)


def _bad_request(message: str):
    return jsonify({"success": False, "error": message, "error_type": "validation"}), 400


def _not_found(kind: str, item_id: str):
    return jsonify({
        "success": False,
        "error": f"{kind} with ID {item_id} not found.",
        "error_type": "not_found",
    }), 404


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _truthy(value) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


# --- Plants ------------------------------------------------------------------

@api_bp.route("/plants", methods=["GET"])
def list_plants():
    """List all plants, newest first."""
    return _respond(get_assistant().list_plants())


@api_bp.route("/plants", methods=["POST"])
@limiter.limit(_mutation_limit)
def add_plant():
    """
    Add a plant.

    Request body (JSON):
        {
            "name": "Fernie", "type": "Boston Fern",
            "location": "...", "light_requirement": "...",
            "water_frequency_days": 3, "notes": "..."
        }
    """
    data = _json_body()
    if data is None:
        return _bad_request("Invalid request body")
    return _respond(get_assistant().add_plant(data), 201)


@api_bp.route("/plants/due", methods=["GET"])
def plants_due():
    """Plants needing water, never-watered first."""
    return _respond(get_assistant().check_due())


@api_bp.route("/plants/<plant_id>", methods=["GET"])
def get_plant(plant_id: str):
    if not is_valid_uuid(plant_id):
        return _not_found("Plant", plant_id)
    return _respond(get_assistant().get_plant(plant_id))


@api_bp.route("/plants/<plant_id>", methods=["PATCH", "PUT"])
@limiter.limit(_mutation_limit)
def update_plant(plant_id: str):
    if not is_valid_uuid(plant_id):
        return _not_found("Plant", plant_id)
    data = _json_body()
    if data is None:
        return _bad_request("Invalid request body")
    return _respond(get_assistant().update_plant(plant_id, data))


@api_bp.route("/plants/<plant_id>", methods=["DELETE"])
@limiter.limit(_mutation_limit)
def remove_plant(plant_id: str):
    """Remove a plant along with its watering history and health issues."""
    if not is_valid_uuid(plant_id):
        return _not_found("Plant", plant_id)
    return _respond(get_assistant().remove_plant(plant_id))


# --- Watering ----------------------------------------------------------------

@api_bp.route("/plants/<plant_id>/water", methods=["POST"])
@limiter.limit(_mutation_limit)
def water_plant(plant_id: str):
    if not is_valid_uuid(plant_id):
        return _not_found("Plant", plant_id)
    data = _json_body() or {}
    return _respond(get_assistant().water_plant(plant_id, data.get("notes")), 201)


@api_bp.route("/plants/<plant_id>/watering-history", methods=["GET"])
def watering_history(plant_id: str):
    if not is_valid_uuid(plant_id):
        return _not_found("Plant", plant_id)
    limit = request.args.get("limit", type=int)
    if limit is None:
        limit = current_app.config.get("DEFAULT_HISTORY_LIMIT", 10)
    limit = min(limit, current_app.config.get("MAX_HISTORY_LIMIT", 100))
    return _respond(get_assistant().get_watering_history(plant_id, limit))


# --- Health issues -----------------------------------------------------------

@api_bp.route("/plants/<plant_id>/diagnose", methods=["POST"])
@limiter.limit(_mutation_limit)
def diagnose(plant_id: str):
    """
    Record symptoms for a plant.

    Request body (JSON):
        {"symptoms": "leaves turning brown at the edges"}
    """
    if not is_valid_uuid(plant_id):
        return _not_found("Plant", plant_id)
    data = _json_body()
    if data is None:
        return _bad_request("Invalid request body")
    return _respond(get_assistant().diagnose(plant_id, data.get("symptoms", "")), 201)


@api_bp.route("/plants/<plant_id>/health-issues", methods=["GET"])
def health_issues(plant_id: str):
    if not is_valid_uuid(plant_id):
        return _not_found("Plant", plant_id)
    include_resolved = _truthy(request.args.get("include_resolved"))
    return _respond(get_assistant().view_health_issues(plant_id, include_resolved))


@api_bp.route("/health-issues/<issue_id>/resolve", methods=["POST"])
@limiter.limit(_mutation_limit)
def resolve_health_issue(issue_id: str):
    if not is_valid_uuid(issue_id):
        return _not_found("Health issue", issue_id)
    return _respond(get_assistant().resolve_health_issue(issue_id))


@api_bp.route("/health-issues/<issue_id>/diagnosis", methods=["POST"])
@limiter.limit(_mutation_limit)
def record_diagnosis(issue_id: str):
    """Store diagnosis text produced by the reasoning layer."""
    if not is_valid_uuid(issue_id):
        return _not_found("Health issue", issue_id)
    data = _json_body()
    if data is None:
        return _bad_request("Invalid request body")
    return _respond(get_assistant().record_diagnosis(issue_id, data.get("diagnosis", "")))


# --- Reminders ---------------------------------------------------------------

@api_bp.route("/reminders", methods=["GET"])
def list_reminders():
    return _respond(get_assistant().list_reminders())


@api_bp.route("/reminders", methods=["POST"])
@limiter.limit(_mutation_limit)
def schedule_reminder():
    """
    Schedule a reminder.

    Request body (JSON):
        {
            "trigger": {"after": 30} | {"at": "2025-06-01T09:00:00Z"} | {"cron": "0 9 * * *"},
            "description": "Water Fernie",      (optional when plant_id is given)
            "plant_id": "..."                    (optional)
        }
    """
    data = _json_body()
    if data is None:
        return _bad_request("Invalid request body")
    return _respond(
        get_assistant().schedule_reminder(
            data.get("trigger"),
            description=data.get("description"),
            plant_id=data.get("plant_id"),
        ),
        201,
    )


@api_bp.route("/reminders/<reminder_id>", methods=["DELETE"])
@limiter.limit(_mutation_limit)
def cancel_reminder(reminder_id: str):
    return _respond(get_assistant().cancel_reminder(reminder_id))


@api_bp.route("/reminders/poll", methods=["POST"])
@limiter.limit(_mutation_limit)
def poll_reminders():
    """
    Fire reminders due by the server clock.

    A client-supplied "as_of" is honoured only when REMINDER_POLL_ACCEPTS_AS_OF
    is set (tests); production always polls at the server clock.
    """
    as_of = None
    if current_app.config.get("REMINDER_POLL_ACCEPTS_AS_OF", False):
        as_of = (_json_body() or {}).get("as_of")
    return _respond(get_assistant().process_due_reminders(as_of))


# --- Conversation ------------------------------------------------------------

@api_bp.route("/messages", methods=["GET"])
def messages():
    limit = request.args.get("limit", type=int)
    return _respond(get_assistant().conversation_messages(limit))
