"""
Per-key mutual exclusion.

Writers touching the same plant must not interleave (e.g. a cascade delete
racing a watering insert), while writers on different plants proceed in
parallel. Lock entries are reference counted and dropped once unused so the
registry does not grow with every plant ever seen.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List
import threading


class KeyedLock:
    """A registry of re-entrant locks keyed by an arbitrary hashable id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, number of holders/waiters]
        self._entries: Dict[Hashable, List] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
