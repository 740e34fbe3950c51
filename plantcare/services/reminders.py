"""
Reminder scheduling for plant care.

Keeps one-off ("at" an instant, or "after" a delay) and recurring ("cron")
reminders, computes when each fires next, and hands fired reminders to
registered listeners (the conversation log, in the app). Reminders are
persisted through the storage backend and reloaded on startup.

Cron expressions use the standard five crontab fields and are evaluated in
UTC with APScheduler's CronTrigger. Crontab conventions are kept: Sunday is
weekday 0 (or 7), and when both day-of-month and day-of-week are restricted
a day matching either one fires.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import logging
import re
import threading
import uuid

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from cachetools import LRUCache, cached

from plantcare.constants import (
    TOOL_SCHEDULE_TYPES,
    TRIGGER_AFTER,
    TRIGGER_AT,
    TRIGGER_CRON,
    TRIGGER_KINDS,
)
from plantcare.utils.dates import parse_iso, to_iso, utc_now
from plantcare.utils.errors import InvalidTriggerError, StorageError, ValidationError, log_warning
from plantcare.utils.validation import MAX_DESCRIPTION_LEN, clean_text

logger = logging.getLogger(__name__)

CRON_CACHE_MAX_ENTRIES = 256

ReminderListener = Callable[[Dict[str, Any]], None]


# crontab numbers weekdays from Sunday (0 and 7); APScheduler numbers them from Monday
_CRONTAB_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")
_NUMERIC_WEEKDAY_ITEM = re.compile(r"^(\*|\d+)(?:-(\d+))?(?:/(\d+))?$")


def _weekday_names(field: str) -> str:
    """Rewrite numeric crontab weekdays as names APScheduler reads unambiguously."""
    names: List[str] = []
    for item in field.split(","):
        match = _NUMERIC_WEEKDAY_ITEM.match(item)
        if not match:
            # already named (mon-fri, sun, ...)
            names.append(item)
            continue
        start, end, step = match.groups()
        if start == "*":
            if end is not None:
                raise ValueError(f"Invalid day-of-week item {item!r}")
            first, last = 0, 6
        else:
            first = int(start)
            last = int(end) if end is not None else (7 if step else first)
        step_size = int(step) if step else 1
        if last > 7 or first > last or step_size < 1:
            raise ValueError(f"Invalid day-of-week item {item!r}")
        for day in range(first, last + 1, step_size):
            name = _CRONTAB_WEEKDAYS[day]
            if name not in names:
                names.append(name)
    return ",".join(names)


@cached(cache=LRUCache(maxsize=CRON_CACHE_MAX_ENTRIES), lock=threading.Lock())
def _cron_trigger(expression: str) -> BaseTrigger:
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Wrong number of fields; got {len(fields)}, expected 5")
    minute, hour, day, month, day_of_week = fields
    day_of_week = _weekday_names(day_of_week)

    def build(day_field: str, weekday_field: str) -> CronTrigger:
        return CronTrigger(
            minute=minute, hour=hour, day=day_field, month=month,
            day_of_week=weekday_field, timezone="UTC",
        )

    # crontab fires when either restricted day field matches; APScheduler requires both
    if not day.startswith("*") and not fields[4].startswith("*"):
        return OrTrigger([build(day, "*"), build("*", day_of_week)])
    return build(day, day_of_week)


def parse_cron(expression: str) -> BaseTrigger:
    """Parse a five-field crontab expression, raising InvalidTriggerError if it is malformed."""
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidTriggerError("Cron expression must be a non-empty string.")
    normalized = " ".join(expression.split())
    try:
        return _cron_trigger(normalized)
    except (ValueError, TypeError) as e:
        raise InvalidTriggerError(f"Invalid cron expression {expression!r}: {e}") from e


def next_cron_fire(expression: str, after: datetime) -> Optional[datetime]:
    """First occurrence strictly after `after`, or None if the expression never fires again."""
    trigger = parse_cron(expression)
    return trigger.get_next_fire_time(None, after + timedelta(microseconds=1))


def normalize_trigger(trigger: Any) -> Tuple[str, Any]:
    """
    Reduce a trigger to (kind, value).

    Accepted shapes:
        {"at": datetime | ISO string}
        {"after": seconds | timedelta}
        {"cron": "*/5 * * * *"}
    and the chat tool layer's schedule objects:
        {"type": "scheduled", "date": ...}
        {"type": "delayed", "delayInSeconds": ...}
        {"type": "cron", "cron": ...}
    """
    if not isinstance(trigger, Mapping):
        raise InvalidTriggerError("Trigger must be an object such as {\"after\": 30}.")

    if "type" in trigger:
        kind_and_key = TOOL_SCHEDULE_TYPES.get(trigger.get("type"))
        if not kind_and_key:
            raise InvalidTriggerError(f"Not a valid schedule type: {trigger.get('type')!r}")
        kind, key = kind_and_key
        if trigger.get(key) is None:
            raise InvalidTriggerError(f"Schedule type {trigger['type']!r} requires {key!r}.")
        return kind, trigger[key]

    kinds = [key for key in trigger if key in TRIGGER_KINDS]
    if len(kinds) != 1 or len(trigger) != 1:
        raise InvalidTriggerError("Trigger must have exactly one of 'at', 'after' or 'cron'.")
    return kinds[0], trigger[kinds[0]]


def resolve_trigger(trigger: Any, now: datetime) -> Tuple[str, str, datetime]:
    """
    Validate a trigger and compute its first fire time.

    Returns:
        (kind, payload, next_fire_time) where payload is the stored text form.
    """
    kind, value = normalize_trigger(trigger)

    if kind == TRIGGER_AT:
        try:
            when = parse_iso(value)
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidTriggerError(f"Invalid date for reminder: {value!r}") from e
        return kind, to_iso(when), when

    if kind == TRIGGER_AFTER:
        if isinstance(value, timedelta):
            seconds = value.total_seconds()
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = float(value)
        else:
            raise InvalidTriggerError(f"Delay must be a number of seconds, got {value!r}.")
        if seconds < 0:
            raise InvalidTriggerError("Delay cannot be negative.")
        return kind, f"{seconds:g}", now + timedelta(seconds=seconds)

    # cron: the first occurrence at or after now
    trigger_obj = parse_cron(value)
    first = trigger_obj.get_next_fire_time(None, now)
    if first is None:
        raise InvalidTriggerError(f"Cron expression {value!r} never fires.")
    return kind, " ".join(value.split()), first


class ScheduleManager:
    """
    Holds active reminders and fires them when polled.

    Lifecycle per reminder:
        scheduled -> fired (removed)               one-off
        scheduled -> fired -> scheduled (next)     recurring
        scheduled -> cancelled (removed)

    One lock serializes scheduling, cancellation and polling, so a cancelled
    reminder never fires and a recurring one never advances twice for the
    same occurrence.
    """

    def __init__(self, backend, clock: Callable[[], datetime] = utc_now) -> None:
        self._backend = backend
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: List[ReminderListener] = []
        self._reminders: Dict[str, Dict[str, Any]] = {
            row["id"]: row for row in backend.fetch_reminders()
        }
        if self._reminders:
            logger.info(f"[Reminders] Loaded {len(self._reminders)} active reminder(s)")

    def add_listener(self, listener: ReminderListener) -> None:
        """Register a callback receiving {reminder_id, description, plant_id, fired_at}."""
        with self._lock:
            self._listeners.append(listener)

    def schedule(
        self,
        trigger: Any,
        description: str,
        plant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a reminder.

        Raises:
            InvalidTriggerError: malformed trigger or unparseable cron expression
            ValidationError: empty description
        """
        text = clean_text(description, MAX_DESCRIPTION_LEN)
        if not text:
            raise ValidationError("Reminder description is required.")

        now = self._clock()
        kind, payload, next_fire = resolve_trigger(trigger, now)

        row = {
            "id": str(uuid.uuid4()),
            "plant_id": plant_id,
            "trigger_kind": kind,
            "trigger_payload": payload,
            "description": text,
            "next_fire_time": to_iso(next_fire),
            "created_at": to_iso(now),
        }
        with self._lock:
            stored = self._backend.insert_reminder(row)
            self._reminders[row["id"]] = stored

        logger.info(f"[Reminders] Scheduled {kind} reminder {row['id']} for {row['next_fire_time']}")
        return dict(stored)

    def get_reminder(self, reminder_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            return dict(reminder) if reminder else None

    def list_reminders(self) -> List[Dict[str, Any]]:
        """Active reminders, soonest first."""
        with self._lock:
            reminders = [dict(r) for r in self._reminders.values()]
        reminders.sort(key=lambda r: parse_iso(r["next_fire_time"]))
        return reminders

    def cancel(self, reminder_id: str) -> bool:
        """Cancel a reminder. Returns False if no such reminder is active."""
        with self._lock:
            if reminder_id not in self._reminders:
                return False
            self._backend.delete_reminder(reminder_id)
            del self._reminders[reminder_id]

        logger.info(f"[Reminders] Cancelled reminder {reminder_id}")
        return True

    def due_reminders(self, as_of: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Fire every reminder whose next fire time is at or before `as_of`.

        One-off reminders are removed once returned. Recurring reminders are
        returned once and advance to their first occurrence strictly after
        `as_of`, so several missed occurrences collapse into one firing.

        Returns:
            The fired reminders as they were when they fired.
        """
        if as_of is None:
            as_of = self._clock()
        else:
            try:
                as_of = parse_iso(as_of)
            except (TypeError, ValueError, AttributeError) as e:
                raise ValidationError(f"Invalid time to check reminders against: {as_of!r}") from e
        fired: List[Dict[str, Any]] = []

        with self._lock:
            pending = sorted(self._reminders.values(), key=lambda r: parse_iso(r["next_fire_time"]))
            for reminder in pending:
                if parse_iso(reminder["next_fire_time"]) > as_of:
                    break
                try:
                    self._advance(reminder, as_of)
                except StorageError as e:
                    # Left unchanged in memory and in storage; the next poll retries it
                    log_warning("Could not advance due reminder", reminder_id=reminder["id"], error=e)
                    continue
                fired.append(dict(reminder))
                self._publish(reminder, as_of)

        if fired:
            logger.info(f"[Reminders] Fired {len(fired)} reminder(s) as of {to_iso(as_of)}")
        return fired

    def _advance(self, reminder: Dict[str, Any], as_of: datetime) -> None:
        reminder_id = reminder["id"]
        if reminder["trigger_kind"] == TRIGGER_CRON:
            upcoming = next_cron_fire(reminder["trigger_payload"], as_of)
            if upcoming is not None:
                updated = self._backend.update_reminder(
                    reminder_id, {"next_fire_time": to_iso(upcoming)}
                )
                self._reminders[reminder_id] = updated or {
                    **reminder, "next_fire_time": to_iso(upcoming)
                }
                return

        self._backend.delete_reminder(reminder_id)
        del self._reminders[reminder_id]

    def _publish(self, reminder: Dict[str, Any], fired_at: datetime) -> None:
        event = {
            "reminder_id": reminder["id"],
            "description": reminder["description"],
            "plant_id": reminder.get("plant_id"),
            "fired_at": to_iso(fired_at),
        }
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # A broken listener must not undo or block the state change
                log_warning("Reminder listener failed", reminder_id=reminder["id"], error=e)
