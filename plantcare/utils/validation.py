"""
Input validation and normalization.

Trims and bounds field lengths, filters suspicious characters while allowing
natural punctuation, coerces the watering frequency, and builds a clean
payload for the plant store.
"""

from __future__ import annotations
import re
from typing import Any, Dict, Mapping, Optional, Tuple
from plantcare.constants import (
    DEFAULT_WATER_FREQUENCY_DAYS,
    MAX_WATER_FREQUENCY_DAYS,
    PLANT_FIELD_ALIASES,
    PLANT_FIELDS,
)

# Allowlist regex: we REMOVE anything NOT in this set.
# Includes letters/numbers in any script (Déliciosa, 月下美人), space and common
# lightweight punctuation used in names.
_SAFE_CHARS_PATTERN = re.compile(r"[^\w\s\-\.,'()/&]+")

# UUID validation pattern (RFC 4122 compliant)
_UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)

MAX_NAME_LEN = 80
MAX_LOCATION_LEN = 80
MAX_NOTES_LEN = 1000
MAX_DESCRIPTION_LEN = 1200

# Short labels go through the strict allowlist; free text only loses control chars
_LABEL_FIELDS = {
    "name": MAX_NAME_LEN,
    "type": MAX_NAME_LEN,
    "location": MAX_LOCATION_LEN,
    "light_requirement": MAX_LOCATION_LEN,
}


def _soft_sanitize(text: str, max_len: int) -> str:
    """
    Normalizes names/locations:
    - strip whitespace
    - bound length
    - remove dangerous HTML event handlers and keywords
    - remove disallowed characters via allowlist
    - collapse double spaces
    """
    t = (text or "").strip()
    if not t:
        return ""
    t = t[:max_len]

    dangerous_keywords = [
        'onerror', 'onload', 'onclick', 'onmouseover', 'onfocus',
        'javascript:', 'data:', 'vbscript:'
    ]
    for keyword in dangerous_keywords:
        t = re.sub(re.escape(keyword), '', t, flags=re.IGNORECASE)

    t = _SAFE_CHARS_PATTERN.sub("", t)
    t = re.sub(r"\s{2,}", " ", t)
    return t.strip()


def clean_text(text: Optional[str], max_len: int = MAX_NOTES_LEN) -> str:
    """
    Free text (notes, symptoms, diagnoses) is a bit more permissive:
    - strip & bound length
    - remove control chars only; keep reasonable punctuation
    - normalize repeated tabs/spaces
    """
    t = (text or "").strip()
    if not t:
        return ""
    t = t[:max_len]
    t = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", t)
    t = re.sub(r"[ \t]{2,}", " ", t)
    return t


def parse_water_frequency(value: Any) -> Tuple[Optional[int], Optional[str]]:
    """
    Coerce a watering frequency into whole days.

    Returns:
        Tuple of (days, error_message). Exactly one of them is None.
    """
    if isinstance(value, bool):
        return None, "Water frequency must be a whole number of days."

    if isinstance(value, float):
        if not value.is_integer():
            return None, "Water frequency must be a whole number of days."
        value = int(value)

    if isinstance(value, str):
        value = value.strip()
        if not re.fullmatch(r"-?\d+", value):
            return None, "Water frequency must be a whole number of days."
        value = int(value)

    if not isinstance(value, int):
        return None, "Water frequency must be a whole number of days."

    if value < 1 or value > MAX_WATER_FREQUENCY_DAYS:
        return None, f"Water frequency must be between 1 and {MAX_WATER_FREQUENCY_DAYS} days."
    return value, None


def validate_plant_fields(
    fields: Mapping[str, Any],
    partial: bool = False,
) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Validates plant data and returns (payload, error_message).

    Accepts column names and the camelCase keys used by the chat tool layer.
    With partial=False (creating a plant) the payload holds every plant field,
    with defaults filled in. With partial=True only the provided fields are
    returned, and an explicit None clears an optional field.
    """
    normalized: Dict[str, Any] = {}
    for key, value in (fields or {}).items():
        normalized[PLANT_FIELD_ALIASES.get(key, key)] = value

    unknown = sorted(set(normalized) - set(PLANT_FIELDS))
    if unknown:
        return {}, f"Unknown plant field(s): {', '.join(unknown)}"

    payload: Dict[str, Any] = {}

    for field, max_len in _LABEL_FIELDS.items():
        if field not in normalized:
            continue
        raw = normalized[field]
        if raw is not None and not isinstance(raw, str):
            return {}, f"Plant {field.replace('_', ' ')} must be text."
        payload[field] = _soft_sanitize(raw or "", max_len) or None

    if "notes" in normalized:
        raw_notes = normalized["notes"]
        if raw_notes is not None and not isinstance(raw_notes, str):
            return {}, "Plant notes must be text."
        payload["notes"] = clean_text(raw_notes) or None

    if normalized.get("water_frequency_days") is not None:
        days, error = parse_water_frequency(normalized["water_frequency_days"])
        if error:
            return {}, error
        payload["water_frequency_days"] = days
    elif "water_frequency_days" in normalized and partial:
        return {}, "Water frequency is required."

    # Required fields must be present on create and non-empty whenever given
    for field, label in (("name", "Plant name"), ("type", "Plant type")):
        if field in payload and not payload[field]:
            return {}, f"{label} is required."
        if not partial and field not in payload:
            return {}, f"{label} is required."

    if not partial:
        for field in PLANT_FIELDS:
            payload.setdefault(field, None)
        if payload["water_frequency_days"] is None:
            payload["water_frequency_days"] = DEFAULT_WATER_FREQUENCY_DAYS

    return payload, None


def is_valid_uuid(value: str | None) -> bool:
    """
    Check if a string is a valid UUID (RFC 4122 format).

    Example:
        >>> is_valid_uuid("550e8400-e29b-41d4-a716-446655440000")
        True
        >>> is_valid_uuid("invalid")
        False
    """
    if not value or not isinstance(value, str):
        return False
    return bool(_UUID_PATTERN.match(value))
