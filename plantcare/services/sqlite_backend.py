"""
SQLite storage backend.

Default persistence for plants, watering history, health issues and
reminders. Every public method runs as a single transaction behind one
connection lock, so callers never observe a half-applied write and a
failure rolls back cleanly before surfacing as StorageError.

Backends exchange plain row dictionaries with the services layer; the
Supabase backend implements the same methods against Postgres.
"""

from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import logging
import sqlite3
import threading

from plantcare.utils.errors import StorageError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS plants (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    location TEXT,
    light_requirement TEXT,
    water_frequency_days INTEGER NOT NULL DEFAULT 7 CHECK (water_frequency_days > 0),
    last_watered TEXT,
    notes TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS watering_history (
    id TEXT PRIMARY KEY,
    plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
    watered_at TEXT NOT NULL,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS health_issues (
    id TEXT PRIMARY KEY,
    plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
    description TEXT NOT NULL,
    diagnosis TEXT,
    resolved INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    resolved_at TEXT,
    CHECK ((resolved = 0 AND resolved_at IS NULL) OR (resolved = 1 AND resolved_at IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS reminders (
    id TEXT PRIMARY KEY,
    plant_id TEXT,
    trigger_kind TEXT NOT NULL,
    trigger_payload TEXT NOT NULL,
    description TEXT NOT NULL,
    next_fire_time TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_watering_history_plant ON watering_history(plant_id, watered_at);
CREATE INDEX IF NOT EXISTS idx_health_issues_plant ON health_issues(plant_id, created_at);
"""

_PLANT_COLUMNS = (
    "id", "name", "type", "location", "light_requirement",
    "water_frequency_days", "last_watered", "notes", "created_at",
)
_WATERING_COLUMNS = ("id", "plant_id", "watered_at", "notes")
_ISSUE_COLUMNS = (
    "id", "plant_id", "description", "diagnosis", "resolved", "created_at", "resolved_at",
)
_REMINDER_COLUMNS = (
    "id", "plant_id", "trigger_kind", "trigger_payload", "description",
    "next_fire_time", "created_at",
)


def _issue_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["resolved"] = bool(data["resolved"])
    return data


class SQLiteBackend:
    """Thread-safe SQLite store decoupled from Flask globals."""

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._lock = threading.RLock()

        if database_path != ":memory:":
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created database directory: {db_path.parent}")

        try:
            self._conn = sqlite3.connect(database_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StorageError(f"Could not open database {database_path}: {e}") from e

        self.init_schema()

    # --- Lifecycle ------------------------------------------------------------

    def init_schema(self) -> None:
        with self._lock:
            try:
                self._conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise StorageError(f"Could not create schema: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @property
    def database_path(self) -> str:
        return self._database_path

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically; any sqlite error rolls back and becomes StorageError."""
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                logger.error(f"[SQLite] Transaction rolled back: {e}")
                raise StorageError(str(e)) from e

    def _fetch_one(self, conn: sqlite3.Connection, sql: str, *params) -> Optional[Dict[str, Any]]:
        row = conn.execute(sql, params).fetchone()
        return dict(row) if row else None

    # --- Plants ---------------------------------------------------------------

    def insert_plant(self, row: Dict[str, Any]) -> Dict[str, Any]:
        values = [row.get(col) for col in _PLANT_COLUMNS]
        placeholders = ", ".join("?" for _ in _PLANT_COLUMNS)
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO plants ({', '.join(_PLANT_COLUMNS)}) VALUES ({placeholders})",
                values,
            )
            return self._fetch_one(conn, "SELECT * FROM plants WHERE id = ?", row["id"])

    def fetch_plant(self, plant_id: str) -> Optional[Dict[str, Any]]:
        with self._transaction() as conn:
            return self._fetch_one(conn, "SELECT * FROM plants WHERE id = ?", plant_id)

    def fetch_plants(self) -> List[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM plants ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
            return [dict(r) for r in rows]

    def update_plant(self, plant_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        columns = [col for col in changes if col in _PLANT_COLUMNS and col != "id"]
        with self._transaction() as conn:
            if columns:
                assignments = ", ".join(f"{col} = ?" for col in columns)
                conn.execute(
                    f"UPDATE plants SET {assignments} WHERE id = ?",
                    [changes[col] for col in columns] + [plant_id],
                )
            return self._fetch_one(conn, "SELECT * FROM plants WHERE id = ?", plant_id)

    def delete_plant_cascade(self, plant_id: str) -> Optional[Dict[str, Any]]:
        """Delete a plant and all of its history in one transaction; returns the removed plant."""
        with self._transaction() as conn:
            plant = self._fetch_one(conn, "SELECT * FROM plants WHERE id = ?", plant_id)
            if not plant:
                return None
            conn.execute("DELETE FROM watering_history WHERE plant_id = ?", (plant_id,))
            conn.execute("DELETE FROM health_issues WHERE plant_id = ?", (plant_id,))
            conn.execute("DELETE FROM plants WHERE id = ?", (plant_id,))
            return plant

    # --- Watering history -----------------------------------------------------

    def insert_watering(self, event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Append a watering event and stamp plants.last_watered in the same transaction."""
        with self._transaction() as conn:
            updated = conn.execute(
                "UPDATE plants SET last_watered = ? WHERE id = ?",
                (event["watered_at"], event["plant_id"]),
            )
            if updated.rowcount == 0:
                return None
            conn.execute(
                f"INSERT INTO watering_history ({', '.join(_WATERING_COLUMNS)}) VALUES (?, ?, ?, ?)",
                [event.get(col) for col in _WATERING_COLUMNS],
            )
            return self._fetch_one(conn, "SELECT * FROM watering_history WHERE id = ?", event["id"])

    def fetch_watering_history(self, plant_id: str, limit: int) -> List[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                """SELECT * FROM watering_history
                   WHERE plant_id = ?
                   ORDER BY watered_at DESC, rowid DESC
                   LIMIT ?""",
                (plant_id, limit),
            ).fetchall()
            return [dict(r) for r in rows]

    # --- Health issues --------------------------------------------------------

    def insert_health_issue(self, row: Dict[str, Any]) -> Dict[str, Any]:
        values = [row.get(col) for col in _ISSUE_COLUMNS]
        values[_ISSUE_COLUMNS.index("resolved")] = int(bool(row.get("resolved")))
        placeholders = ", ".join("?" for _ in _ISSUE_COLUMNS)
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO health_issues ({', '.join(_ISSUE_COLUMNS)}) VALUES ({placeholders})",
                values,
            )
            return self._fetch_issue(conn, row["id"])

    def _fetch_issue(self, conn: sqlite3.Connection, issue_id: str) -> Optional[Dict[str, Any]]:
        row = conn.execute("SELECT * FROM health_issues WHERE id = ?", (issue_id,)).fetchone()
        return _issue_row(row) if row else None

    def fetch_health_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        with self._transaction() as conn:
            return self._fetch_issue(conn, issue_id)

    def fetch_health_issues(self, plant_id: str, include_resolved: bool) -> List[Dict[str, Any]]:
        query = "SELECT * FROM health_issues WHERE plant_id = ?"
        if not include_resolved:
            query += " AND resolved = 0"
        query += " ORDER BY created_at DESC, rowid DESC"
        with self._transaction() as conn:
            return [_issue_row(r) for r in conn.execute(query, (plant_id,)).fetchall()]

    def update_health_issue(self, issue_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        columns = [col for col in changes if col in ("diagnosis", "resolved", "resolved_at")]
        values = [int(changes[col]) if col == "resolved" else changes[col] for col in columns]
        with self._transaction() as conn:
            if columns:
                assignments = ", ".join(f"{col} = ?" for col in columns)
                conn.execute(
                    f"UPDATE health_issues SET {assignments} WHERE id = ?",
                    values + [issue_id],
                )
            return self._fetch_issue(conn, issue_id)

    # --- Reminders ------------------------------------------------------------

    def insert_reminder(self, row: Dict[str, Any]) -> Dict[str, Any]:
        placeholders = ", ".join("?" for _ in _REMINDER_COLUMNS)
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO reminders ({', '.join(_REMINDER_COLUMNS)}) VALUES ({placeholders})",
                [row.get(col) for col in _REMINDER_COLUMNS],
            )
            return self._fetch_one(conn, "SELECT * FROM reminders WHERE id = ?", row["id"])

    def fetch_reminders(self) -> List[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM reminders ORDER BY next_fire_time ASC, rowid ASC"
            ).fetchall()
            return [dict(r) for r in rows]

    def update_reminder(self, reminder_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        columns = [col for col in changes if col in ("next_fire_time", "description")]
        with self._transaction() as conn:
            if columns:
                assignments = ", ".join(f"{col} = ?" for col in columns)
                conn.execute(
                    f"UPDATE reminders SET {assignments} WHERE id = ?",
                    [changes[col] for col in columns] + [reminder_id],
                )
            return self._fetch_one(conn, "SELECT * FROM reminders WHERE id = ?", reminder_id)

    def delete_reminder(self, reminder_id: str) -> bool:
        with self._transaction() as conn:
            deleted = conn.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            return deleted.rowcount > 0
