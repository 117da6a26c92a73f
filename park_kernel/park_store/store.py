"""
Park Store: the authoritative record of animals, locations, and applied events.

Behavioral Contract:
- The event log is append-only. Entries are never updated or deleted one by one;
  only the bulk wipe removes them.
- Animals are keyed by their externally assigned id. A row may be created by any
  event kind, so every column except ``id`` and ``is_active`` may be NULL (unknown).
- Locations are keyed by (location, park_id) and only track maintenance.
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from park_kernel.models.park import Animal, Location, ParkEventLogEntry

_ANIMAL_COLUMNS = (
    "name",
    "species",
    "sex",
    "digestion_period_in_hours",
    "herbivore",
    "current_location",
    "last_fed_at",
    "added_at",
    "is_active",
    "removed_at",
    "park_id",
)
_DATETIME_COLUMNS = ("last_fed_at", "added_at", "removed_at")


def _to_db(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class ParkStore:
    """
    Authoritative park storage.
    Prototype: SQLite. Production: a relational server database.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the park tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS animals (
                id INTEGER PRIMARY KEY,
                name TEXT,
                species TEXT,
                sex TEXT,
                digestion_period_in_hours REAL,
                herbivore INTEGER,
                current_location TEXT,
                last_fed_at TEXT,
                added_at TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                removed_at TEXT,
                park_id INTEGER
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS park_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                animal_id INTEGER NOT NULL,
                park_id INTEGER NOT NULL,
                time TEXT NOT NULL,
                metadata TEXT,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_park_events_animal_id ON park_events(animal_id)
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS locations (
                location TEXT NOT NULL,
                park_id INTEGER NOT NULL,
                maintenance_performed TEXT,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (location, park_id)
            )
        """)
        self._conn.commit()

    # === ANIMALS ===

    def _check_columns(self, fields: dict) -> None:
        unknown = set(fields) - set(_ANIMAL_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown animal columns: {sorted(unknown)}")

    def get_animal(self, animal_id: int) -> Optional[Animal]:
        """Get an animal by id."""
        row = self._conn.execute(
            "SELECT * FROM animals WHERE id = ?", (animal_id,)
        ).fetchone()
        return self._deserialize_animal(row) if row else None

    def upsert_animal(self, animal_id: int, **fields) -> None:
        """
        Insert an animal, or overwrite only the supplied columns of an existing one.
        Columns not supplied keep their stored values.
        """
        self._check_columns(fields)
        columns = ["id"] + list(fields)
        placeholders = ", ".join("?" for _ in columns)
        if fields:
            assignments = ", ".join(f"{c} = excluded.{c}" for c in fields)
            conflict = f"ON CONFLICT(id) DO UPDATE SET {assignments}"
        else:
            conflict = "ON CONFLICT(id) DO NOTHING"
        self._conn.execute(
            f"INSERT INTO animals ({', '.join(columns)}) VALUES ({placeholders}) {conflict}",
            [animal_id] + [_to_db(v) for v in fields.values()],
        )
        self._conn.commit()

    def update_animal(self, animal_id: int, park_id: int, **fields) -> bool:
        """
        Update an animal by id. If no row exists yet (the event arrived before
        the animal was added), create one holding only ``park_id`` and ``fields``.

        Returns True when a new row was created.
        """
        self._check_columns(fields)
        assignments = ", ".join(f"{c} = ?" for c in fields)
        cursor = self._conn.execute(
            f"UPDATE animals SET {assignments} WHERE id = ?",
            [_to_db(v) for v in fields.values()] + [animal_id],
        )
        created = cursor.rowcount == 0
        if created:
            columns = ["id", "park_id"] + list(fields)
            self._conn.execute(
                f"INSERT INTO animals ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                [animal_id, park_id] + [_to_db(v) for v in fields.values()],
            )
        self._conn.commit()
        return created

    def count_animals(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM animals").fetchone()
        return row["cnt"]

    def delete_all_animals(self) -> int:
        cursor = self._conn.execute("DELETE FROM animals")
        self._conn.commit()
        return cursor.rowcount

    def _deserialize_animal(self, row: sqlite3.Row) -> Animal:
        data = dict(row)
        for column in _DATETIME_COLUMNS:
            data[column] = _parse_dt(data[column])
        if data["herbivore"] is not None:
            data["herbivore"] = bool(data["herbivore"])
        data["is_active"] = bool(data["is_active"])
        return Animal.model_validate(data)

    # === EVENT LOG ===

    def append_event(self, entry: ParkEventLogEntry) -> ParkEventLogEntry:
        """Append an applied event. Assigns its sequence id and ingestion time."""
        entry.created_at = datetime.now(timezone.utc)
        cursor = self._conn.execute(
            """
            INSERT INTO park_events (kind, animal_id, park_id, time, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.kind,
                entry.animal_id,
                entry.park_id,
                entry.time.isoformat(),
                json.dumps(entry.metadata) if entry.metadata is not None else None,
                entry.created_at.isoformat(),
            ),
        )
        self._conn.commit()
        entry.id = cursor.lastrowid
        return entry

    def query_events(
        self, animal_id: Optional[int] = None, limit: int = 50
    ) -> List[ParkEventLogEntry]:
        """Most recent log entries in append order, optionally for one animal."""
        if animal_id is not None:
            rows = self._conn.execute(
                "SELECT * FROM park_events WHERE animal_id = ? ORDER BY id DESC LIMIT ?",
                (animal_id, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM park_events ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._deserialize_event(r) for r in reversed(rows)]

    def count_events(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM park_events").fetchone()
        return row["cnt"]

    def delete_all_events(self) -> int:
        cursor = self._conn.execute("DELETE FROM park_events")
        self._conn.commit()
        return cursor.rowcount

    def _deserialize_event(self, row: sqlite3.Row) -> ParkEventLogEntry:
        return ParkEventLogEntry(
            id=row["id"],
            kind=row["kind"],
            animal_id=row["animal_id"],
            park_id=row["park_id"],
            time=_parse_dt(row["time"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else None,
            created_at=_parse_dt(row["created_at"]),
        )

    # === LOCATIONS ===

    def upsert_location(
        self, location: str, park_id: int, maintenance_performed: datetime
    ) -> None:
        """Record the latest maintenance time for a location."""
        now = datetime.now(timezone.utc).isoformat()
        self._conn.execute(
            """
            INSERT INTO locations (location, park_id, maintenance_performed, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(location, park_id) DO UPDATE SET
                maintenance_performed = excluded.maintenance_performed,
                updated_at = excluded.updated_at
            """,
            (location, park_id, maintenance_performed.isoformat(), now),
        )
        self._conn.commit()

    def get_location(self, location: str, park_id: int) -> Optional[Location]:
        row = self._conn.execute(
            "SELECT * FROM locations WHERE location = ? AND park_id = ?",
            (location, park_id),
        ).fetchone()
        if not row:
            return None
        return Location(
            location=row["location"],
            park_id=row["park_id"],
            maintenance_performed=_parse_dt(row["maintenance_performed"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def count_locations(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM locations").fetchone()
        return row["cnt"]

    def delete_all_locations(self) -> int:
        cursor = self._conn.execute("DELETE FROM locations")
        self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
