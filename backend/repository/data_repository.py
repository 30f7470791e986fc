"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence
from uuid import uuid4

from backend.domain.constraints import normalize_name
from backend.domain.models import (
    ActiveBooking,
    Booking,
    Coordinates,
    Desk,
    FloorPlan,
    Notification,
    NotificationDraft,
    ResourceKind,
    Room,
    TimeInterval,
    UsageEntry,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_timestamp(value: datetime) -> str:
    """Fixed-width UTC text so lexical order equals chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.sqlite_timeout_seconds,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def read_snapshot(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a read transaction (committed data only)."""
        connection = self._connect()
        try:
            connection.execute("BEGIN;")
            yield connection
        finally:
            connection.rollback()
            connection.close()

    @contextmanager
    def write_transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection holding the write lock; commit on success only."""
        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE;")
            try:
                yield connection
            except BaseException:
                connection.rollback()
                raise
            connection.commit()
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("PRAGMA journal_mode = WAL;")

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS FloorPlans (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        normalized_name TEXT NOT NULL UNIQUE,
                        floor_number INTEGER NOT NULL UNIQUE CHECK (floor_number >= 0),
                        version INTEGER NOT NULL CHECK (version >= 1),
                        last_updated TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Resources (
                        floor_id TEXT NOT NULL,
                        resource_id TEXT NOT NULL,
                        kind TEXT NOT NULL CHECK (kind IN ('room', 'desk')),
                        name TEXT,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        x REAL NOT NULL DEFAULT 0,
                        y REAL NOT NULL DEFAULT 0,
                        position INTEGER NOT NULL,
                        PRIMARY KEY (floor_id, resource_id),
                        FOREIGN KEY (floor_id) REFERENCES FloorPlans(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id TEXT PRIMARY KEY,
                        floor_id TEXT NOT NULL,
                        resource_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        CHECK (end_time > start_time),
                        FOREIGN KEY (floor_id, resource_id)
                            REFERENCES Resources(floor_id, resource_id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS UsageHistory (
                        user_id TEXT NOT NULL,
                        resource_id TEXT NOT NULL,
                        count INTEGER NOT NULL CHECK (count > 0),
                        last_booked TEXT NOT NULL,
                        PRIMARY KEY (user_id, resource_id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Notifications (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        message TEXT NOT NULL,
                        reason TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        is_read INTEGER NOT NULL DEFAULT 0 CHECK (is_read IN (0,1))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_resources_global_room_id
                    ON Resources(resource_id) WHERE kind = 'room';
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_resource_start
                    ON Bookings(floor_id, resource_id, start_time);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_user_end
                    ON Bookings(user_id, end_time);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_notifications_user_read
                    ON Notifications(user_id, is_read, created_at);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_floor_plans_if_empty(self) -> None:
        """Seed two demo floors only when no floor plan exists yet."""
        now = to_db_timestamp(datetime.now(timezone.utc))
        floors = [
            (
                "Ground Floor",
                0,
                [("101", "Atrium", 8, 10.0, 5.0), ("102", "Focus Room", 4, 25.0, 12.0)],
                [("S-1", 4.0, 3.0), ("S-2", 6.0, 3.0), ("S-3", 8.0, 3.0), ("S-4", 10.0, 3.0)],
            ),
            (
                "First Floor",
                1,
                [("201", "Boardroom", 12, 15.0, 8.0)],
                [("S-1", 4.0, 6.0), ("S-2", 6.0, 6.0), ("S-3", 8.0, 6.0)],
            ),
        ]
        try:
            with self.write_transaction() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM FloorPlans;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Floor plans already present; skipping demo seed")
                    return

                for name, floor_number, rooms, desks in floors:
                    floor_id = uuid4().hex
                    cursor.execute(
                        """
                        INSERT INTO FloorPlans (id, name, normalized_name, floor_number, version, last_updated)
                        VALUES (?, ?, ?, ?, 1, ?);
                        """,
                        (floor_id, name, normalize_name(name), floor_number, now),
                    )
                    cursor.executemany(
                        """
                        INSERT INTO Resources (floor_id, resource_id, kind, name, capacity, x, y, position)
                        VALUES (?, ?, 'room', ?, ?, ?, ?, ?);
                        """,
                        [
                            (floor_id, room_id, room_name, capacity, x, y, position)
                            for position, (room_id, room_name, capacity, x, y) in enumerate(rooms)
                        ],
                    )
                    cursor.executemany(
                        """
                        INSERT INTO Resources (floor_id, resource_id, kind, name, capacity, x, y, position)
                        VALUES (?, ?, 'desk', NULL, 1, ?, ?, ?);
                        """,
                        [
                            (floor_id, desk_id, x, y, position)
                            for position, (desk_id, x, y) in enumerate(desks)
                        ],
                    )
            logger.info("Demo seed completed with %s floor plans", len(floors))
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # ---- floor plan aggregates

    def _assemble_floor_plans(
        self,
        conn: sqlite3.Connection,
        floor_rows: Sequence[sqlite3.Row],
    ) -> list[FloorPlan]:
        if not floor_rows:
            return []
        floor_ids = [str(row["id"]) for row in floor_rows]
        placeholders = ",".join("?" for _ in floor_ids)
        cursor = conn.cursor()

        cursor.execute(
            f"""
            SELECT id, floor_id, resource_id, user_id, start_time, end_time, created_at
            FROM Bookings
            WHERE floor_id IN ({placeholders})
            ORDER BY start_time ASC, id ASC;
            """,
            tuple(floor_ids),
        )
        bookings_by_resource: dict[tuple[str, str], list[Booking]] = {}
        for row in cursor.fetchall():
            key = (str(row["floor_id"]), str(row["resource_id"]))
            bookings_by_resource.setdefault(key, []).append(
                Booking(
                    booking_id=str(row["id"]),
                    user_id=str(row["user_id"]),
                    interval=TimeInterval(
                        start=from_db_timestamp(str(row["start_time"])),
                        end=from_db_timestamp(str(row["end_time"])),
                    ),
                    created_at=from_db_timestamp(str(row["created_at"])),
                )
            )

        cursor.execute(
            f"""
            SELECT floor_id, resource_id, kind, name, capacity, x, y
            FROM Resources
            WHERE floor_id IN ({placeholders})
            ORDER BY floor_id ASC, CASE kind WHEN 'room' THEN 0 ELSE 1 END ASC, position ASC;
            """,
            tuple(floor_ids),
        )
        rooms_by_floor: dict[str, list[Room]] = {floor_id: [] for floor_id in floor_ids}
        desks_by_floor: dict[str, list[Desk]] = {floor_id: [] for floor_id in floor_ids}
        for row in cursor.fetchall():
            floor_id = str(row["floor_id"])
            resource_id = str(row["resource_id"])
            coordinates = Coordinates(x=float(row["x"]), y=float(row["y"]))
            bookings = tuple(bookings_by_resource.get((floor_id, resource_id), ()))
            if row["kind"] == ResourceKind.ROOM.value:
                rooms_by_floor[floor_id].append(
                    Room(
                        resource_id=resource_id,
                        name=str(row["name"]),
                        capacity=int(row["capacity"]),
                        coordinates=coordinates,
                        bookings=bookings,
                    )
                )
            else:
                desks_by_floor[floor_id].append(
                    Desk(resource_id=resource_id, coordinates=coordinates, bookings=bookings)
                )

        return [
            FloorPlan(
                floor_id=str(row["id"]),
                name=str(row["name"]),
                floor_number=int(row["floor_number"]),
                version=int(row["version"]),
                rooms=tuple(rooms_by_floor[str(row["id"])]),
                desks=tuple(desks_by_floor[str(row["id"])]),
                last_updated=from_db_timestamp(str(row["last_updated"])),
            )
            for row in floor_rows
        ]

    def load_floor_plan(self, conn: sqlite3.Connection, floor_id: str) -> Optional[FloorPlan]:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT id, name, floor_number, version, last_updated
            FROM FloorPlans
            WHERE id = ?;
            """,
            (floor_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._assemble_floor_plans(conn, [row])[0]

    def load_floor_plans(self, conn: sqlite3.Connection) -> list[FloorPlan]:
        """Return every aggregate ordered by floor number."""
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT id, name, floor_number, version, last_updated
            FROM FloorPlans
            ORDER BY floor_number ASC;
            """
        )
        return self._assemble_floor_plans(conn, cursor.fetchall())

    def list_other_floor_identities(
        self,
        conn: sqlite3.Connection,
        exclude_floor_id: Optional[str],
    ) -> list[sqlite3.Row]:
        """Name/number of every other floor, for uniqueness checks."""
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT id, name, normalized_name, floor_number
            FROM FloorPlans
            WHERE ? IS NULL OR id != ?
            ORDER BY floor_number ASC;
            """,
            (exclude_floor_id, exclude_floor_id),
        )
        return cursor.fetchall()

    def find_room_id_owners(
        self,
        conn: sqlite3.Connection,
        room_ids: Sequence[str],
        exclude_floor_id: Optional[str],
    ) -> dict[str, str]:
        """Map each room id already used on another floor to that floor's name."""
        if not room_ids:
            return {}
        placeholders = ",".join("?" for _ in room_ids)
        cursor = conn.cursor()
        cursor.execute(
            f"""
            SELECT r.resource_id, f.name
            FROM Resources AS r
            INNER JOIN FloorPlans AS f ON f.id = r.floor_id
            WHERE r.kind = 'room'
              AND r.resource_id IN ({placeholders})
              AND (? IS NULL OR r.floor_id != ?);
            """,
            (*room_ids, exclude_floor_id, exclude_floor_id),
        )
        return {str(row["resource_id"]): str(row["name"]) for row in cursor.fetchall()}

    def insert_floor_plan(
        self,
        conn: sqlite3.Connection,
        *,
        floor_id: str,
        name: str,
        floor_number: int,
        now: datetime,
    ) -> None:
        conn.execute(
            """
            INSERT INTO FloorPlans (id, name, normalized_name, floor_number, version, last_updated)
            VALUES (?, ?, ?, ?, 1, ?);
            """,
            (floor_id, name, normalize_name(name), floor_number, to_db_timestamp(now)),
        )

    def compare_and_set_floor_plan(
        self,
        conn: sqlite3.Connection,
        *,
        floor_id: str,
        expected_version: int,
        name: str,
        floor_number: int,
        now: datetime,
    ) -> bool:
        """Bump the version only if it still equals `expected_version`."""
        cursor = conn.cursor()
        cursor.execute(
            """
            UPDATE FloorPlans
            SET name = ?,
                normalized_name = ?,
                floor_number = ?,
                version = version + 1,
                last_updated = ?
            WHERE id = ? AND version = ?;
            """,
            (
                name,
                normalize_name(name),
                floor_number,
                to_db_timestamp(now),
                floor_id,
                expected_version,
            ),
        )
        return cursor.rowcount == 1

    def delete_resources(
        self,
        conn: sqlite3.Connection,
        floor_id: str,
        resource_ids: Iterable[str],
    ) -> None:
        """Remove resources; their bookings go with them via ON DELETE CASCADE."""
        conn.executemany(
            "DELETE FROM Resources WHERE floor_id = ? AND resource_id = ?;",
            [(floor_id, resource_id) for resource_id in resource_ids],
        )

    def upsert_resources(
        self,
        conn: sqlite3.Connection,
        floor_id: str,
        rooms: Sequence[Room],
        desks: Sequence[Desk],
    ) -> None:
        """Write the submitted resource layout, keeping bookings of retained ids."""
        rows = [
            (floor_id, room.resource_id, ResourceKind.ROOM.value, room.name, room.capacity,
             float(room.coordinates.x), float(room.coordinates.y), position)
            for position, room in enumerate(rooms)
        ] + [
            (floor_id, desk.resource_id, ResourceKind.DESK.value, None, 1,
             float(desk.coordinates.x), float(desk.coordinates.y), position)
            for position, desk in enumerate(desks)
        ]
        conn.executemany(
            """
            INSERT INTO Resources (floor_id, resource_id, kind, name, capacity, x, y, position)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (floor_id, resource_id) DO UPDATE SET
                name = excluded.name,
                capacity = excluded.capacity,
                x = excluded.x,
                y = excluded.y,
                position = excluded.position;
            """,
            rows,
        )

    def delete_floor_plan(self, conn: sqlite3.Connection, floor_id: str) -> None:
        conn.execute("DELETE FROM FloorPlans WHERE id = ?;", (floor_id,))

    # ---- bookings

    def insert_booking(
        self,
        conn: sqlite3.Connection,
        *,
        floor_id: str,
        resource_id: str,
        booking: Booking,
    ) -> None:
        conn.execute(
            """
            INSERT INTO Bookings (id, floor_id, resource_id, user_id, start_time, end_time, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                booking.booking_id,
                floor_id,
                resource_id,
                booking.user_id,
                to_db_timestamp(booking.interval.start),
                to_db_timestamp(booking.interval.end),
                to_db_timestamp(booking.created_at),
            ),
        )

    def find_booking_floor(self, conn: sqlite3.Connection, booking_id: str) -> Optional[str]:
        cursor = conn.cursor()
        cursor.execute("SELECT floor_id FROM Bookings WHERE id = ?;", (booking_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return str(row["floor_id"])

    def delete_owned_booking(
        self,
        conn: sqlite3.Connection,
        *,
        booking_id: str,
        user_id: str,
        kind: ResourceKind,
    ) -> bool:
        """Delete only when the booking sits on a `kind` resource and belongs to `user_id`."""
        cursor = conn.cursor()
        cursor.execute(
            """
            DELETE FROM Bookings
            WHERE id = ?
              AND user_id = ?
              AND EXISTS (
                  SELECT 1 FROM Resources AS r
                  WHERE r.floor_id = Bookings.floor_id
                    AND r.resource_id = Bookings.resource_id
                    AND r.kind = ?
              );
            """,
            (booking_id, user_id, kind.value),
        )
        return cursor.rowcount == 1

    def list_active_bookings_for_user(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        now: datetime,
    ) -> list[ActiveBooking]:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT
                b.id,
                b.resource_id,
                b.start_time,
                b.end_time,
                r.kind,
                r.name AS resource_name,
                f.id AS floor_id,
                f.name AS floor_name,
                f.floor_number
            FROM Bookings AS b
            INNER JOIN Resources AS r
                ON r.floor_id = b.floor_id AND r.resource_id = b.resource_id
            INNER JOIN FloorPlans AS f ON f.id = b.floor_id
            WHERE b.user_id = ? AND b.end_time > ?
            ORDER BY b.start_time ASC, b.id ASC;
            """,
            (user_id, to_db_timestamp(now)),
        )
        bookings: list[ActiveBooking] = []
        for row in cursor.fetchall():
            kind = ResourceKind(str(row["kind"]))
            resource_id = str(row["resource_id"])
            bookings.append(
                ActiveBooking(
                    booking_id=str(row["id"]),
                    kind=kind,
                    resource_id=resource_id,
                    resource_name=(
                        str(row["resource_name"])
                        if kind is ResourceKind.ROOM
                        else Desk(resource_id=resource_id).name
                    ),
                    floor_id=str(row["floor_id"]),
                    floor_name=str(row["floor_name"]),
                    floor_number=int(row["floor_number"]),
                    start_time=from_db_timestamp(str(row["start_time"])),
                    end_time=from_db_timestamp(str(row["end_time"])),
                )
            )
        return bookings

    def count_bookings(self) -> int:
        """Return persisted booking count for diagnostics and tests."""
        with self.read_snapshot() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
            return int(cursor.fetchone()["count"])

    # ---- usage history

    def increment_usage(
        self,
        conn: sqlite3.Connection,
        *,
        user_id: str,
        resource_id: str,
        now: datetime,
    ) -> None:
        conn.execute(
            """
            INSERT INTO UsageHistory (user_id, resource_id, count, last_booked)
            VALUES (?, ?, 1, ?)
            ON CONFLICT (user_id, resource_id) DO UPDATE SET
                count = count + 1,
                last_booked = excluded.last_booked;
            """,
            (user_id, resource_id, to_db_timestamp(now)),
        )

    def get_usage_history(
        self,
        conn: sqlite3.Connection,
        user_id: str,
    ) -> dict[str, UsageEntry]:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT resource_id, count, last_booked
            FROM UsageHistory
            WHERE user_id = ?
            ORDER BY resource_id ASC;
            """,
            (user_id,),
        )
        return {
            str(row["resource_id"]): UsageEntry(
                resource_id=str(row["resource_id"]),
                count=int(row["count"]),
                last_booked=from_db_timestamp(str(row["last_booked"])),
            )
            for row in cursor.fetchall()
        }

    # ---- notifications

    def insert_notifications(
        self,
        conn: sqlite3.Connection,
        drafts: Sequence[NotificationDraft],
    ) -> int:
        if not drafts:
            return 0
        conn.executemany(
            """
            INSERT INTO Notifications (user_id, message, reason, created_at)
            VALUES (?, ?, ?, ?);
            """,
            [
                (draft.user_id, draft.message, draft.reason, to_db_timestamp(draft.created_at))
                for draft in drafts
            ],
        )
        return len(drafts)

    def list_unread_notifications(
        self,
        conn: sqlite3.Connection,
        user_id: str,
    ) -> list[Notification]:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT id, user_id, message, reason, created_at, is_read
            FROM Notifications
            WHERE user_id = ? AND is_read = 0
            ORDER BY created_at DESC, id DESC;
            """,
            (user_id,),
        )
        return [
            Notification(
                notification_id=int(row["id"]),
                user_id=str(row["user_id"]),
                message=str(row["message"]),
                reason=str(row["reason"]),
                created_at=from_db_timestamp(str(row["created_at"])),
                is_read=bool(row["is_read"]),
            )
            for row in cursor.fetchall()
        ]

    def mark_notification_read(
        self,
        conn: sqlite3.Connection,
        *,
        user_id: str,
        notification_id: int,
    ) -> bool:
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE Notifications SET is_read = 1 WHERE id = ? AND user_id = ?;",
            (notification_id, user_id),
        )
        return cursor.rowcount == 1

    def mark_all_notifications_read(self, conn: sqlite3.Connection, user_id: str) -> int:
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE Notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0;",
            (user_id,),
        )
        return int(cursor.rowcount)

    def count_notifications(self, user_id: Optional[str] = None) -> int:
        """Return persisted notification count for diagnostics and tests."""
        with self.read_snapshot() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT COUNT(*) AS count
                FROM Notifications
                WHERE ? IS NULL OR user_id = ?;
                """,
                (user_id, user_id),
            )
            return int(cursor.fetchone()["count"])
