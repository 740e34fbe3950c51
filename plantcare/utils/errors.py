"""
Error types and helpers for sanitizing user-facing messages and logging.

Provides consistent error handling across the application:
- A small exception hierarchy raised by the service layer
- Sanitized messages so storage internals never reach end users
- Context-aware logging that works with or without a Flask app context

"Not found" is not an exception: services return None (or
False for deletions) and callers turn that into a friendly message.
"""

from __future__ import annotations
import logging
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

# User-friendly generic error messages
GENERIC_MESSAGES = {
    "database": "We're experiencing technical difficulties. Please try again.",
    "validation": "The information provided is invalid. Please check and try again.",
    "invalid_trigger": "That reminder schedule could not be understood. Please check and try again.",
    "not_found": "The requested item was not found.",
}


class CareError(Exception):
    """Base class for errors raised by the plant care services."""

    error_type = "database"


class ValidationError(CareError):
    """Bad input shape or range (empty name, non-positive frequency, ...)."""

    error_type = "validation"


class InvalidTriggerError(CareError):
    """A reminder trigger is malformed or its cron expression does not parse."""

    error_type = "invalid_trigger"


class StorageError(CareError):
    """The backing store failed; the operation left no partial state behind."""

    error_type = "database"


def _get_logger() -> logging.Logger:
    """Prefer the Flask app logger, fall back to the module logger outside a request."""
    if has_app_context():
        return current_app.logger
    return logger


def sanitize_error(
    error: Exception,
    error_type: str = "database",
    log_prefix: str = ""
) -> str:
    """
    Sanitize error message for user display and log full details.

    Validation and trigger errors are written for end users, so their text is
    returned verbatim. Everything else is replaced by a generic message and
    logged with its stack trace.

    Args:
        error: The exception that occurred
        error_type: Type of error (database, validation, invalid_trigger, not_found)
        log_prefix: Optional prefix for log message context

    Returns:
        User-friendly error message

    Examples:
        >>> try:
        ...     store.add_plant(fields)
        ... except CareError as e:
        ...     message = sanitize_error(e, e.error_type, "Failed to add plant")
    """
    error_message = str(error)
    log_message = f"{log_prefix}: {error_message}" if log_prefix else error_message

    if error_type in ["validation", "invalid_trigger", "not_found"]:
        # Expected errors (user mistakes), log as info
        _get_logger().info(f"Expected error - {log_message}")
        return error_message or GENERIC_MESSAGES.get(error_type, GENERIC_MESSAGES["validation"])

    _get_logger().error(f"Unexpected error - {log_message}", exc_info=True)
    return GENERIC_MESSAGES.get(error_type, GENERIC_MESSAGES["database"])


def log_warning(message: str, **context) -> None:
    """
    Log a warning with optional context.

    Examples:
        >>> log_warning("Reminder listener failed", reminder_id="123")
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | Context: {context_str}"

    _get_logger().warning(message)
