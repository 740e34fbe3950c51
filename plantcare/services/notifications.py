"""
Conversation log for fired reminders.

Stands in for the chat transcript owned by the chat agent: each fired
reminder is appended as a user message ("Scheduled reminder: ...") that the
chat layer picks up on its next turn.
"""

from __future__ import annotations
from collections import deque
from typing import Any, Deque, Dict, List, Optional
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 200


class ConversationLog:
    """Bounded, thread-safe list of messages; the oldest fall off first."""

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES) -> None:
        self._messages: Deque[Dict[str, Any]] = deque(maxlen=max_messages)
        self._lock = threading.Lock()

    def append_reminder(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Listener for ScheduleManager: turn a fired reminder into a chat message."""
        message = {
            "id": str(uuid.uuid4()),
            "role": "user",
            "text": f"Scheduled reminder: {event['description']}",
            "metadata": {
                "reminder_id": event.get("reminder_id"),
                "plant_id": event.get("plant_id"),
                "created_at": event.get("fired_at"),
            },
        }
        with self._lock:
            self._messages.append(message)
        logger.info(f"[Conversation] Delivered reminder {event.get('reminder_id')}")
        return message

    def messages(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Messages oldest first; with a limit, only the most recent ones."""
        with self._lock:
            items = list(self._messages)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
