"""
Shared constants used across the application.

This module contains constants that need to be consistent across
different parts of the application (validation, services, API responses).
"""

# Watering schedule defaults and bounds (days between waterings)
DEFAULT_WATER_FREQUENCY_DAYS = 7
MAX_WATER_FREQUENCY_DAYS = 365

# Default number of watering events returned by history lookups
DEFAULT_HISTORY_LIMIT = 10

# Plant fields a caller may set. Keep in sync with the plants table.
PLANT_FIELDS = (
    "name",
    "type",
    "location",
    "light_requirement",
    "water_frequency_days",
    "notes",
)

# The chat tool layer speaks camelCase; the store speaks column names.
PLANT_FIELD_ALIASES = {
    "lightRequirement": "light_requirement",
    "waterFrequencyDays": "water_frequency_days",
    "species": "type",
}

# Reminder trigger kinds
TRIGGER_AT = "at"
TRIGGER_AFTER = "after"
TRIGGER_CRON = "cron"
TRIGGER_KINDS = (TRIGGER_AT, TRIGGER_AFTER, TRIGGER_CRON)

# Schedule types used by the chat tool layer, mapped onto trigger kinds
TOOL_SCHEDULE_TYPES = {
    "scheduled": (TRIGGER_AT, "date"),
    "delayed": (TRIGGER_AFTER, "delayInSeconds"),
    "cron": (TRIGGER_CRON, "cron"),
}
