from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sensor_history.core.errors import InvalidReading, StorageUnavailable
from sensor_history.models.reading import (
    Reading,
    ReadingType,
    StorageStats,
    WriteResult,
)
from sensor_history.repositories.timestamps import from_key, to_key

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id TEXT NOT NULL CHECK (length(device_id) > 0),
    device_name TEXT NOT NULL,
    room_name TEXT,
    ts TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('temperature', 'humidity', 'pm25', 'voc')),
    value REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_readings_device ON readings(device_id);
CREATE INDEX IF NOT EXISTS idx_readings_type ON readings(type);
CREATE INDEX IF NOT EXISTS idx_readings_timestamp ON readings(ts);
CREATE INDEX IF NOT EXISTS idx_readings_device_timestamp ON readings(device_id, ts);
CREATE INDEX IF NOT EXISTS idx_readings_type_timestamp ON readings(type, ts);
"""

COLUMNS = "id, device_id, device_name, room_name, ts, type, value"

INSERT_SQL = """
INSERT INTO readings(device_id, device_name, room_name, ts, type, value)
VALUES (?, ?, ?, ?, ?, ?)
"""


def _params(reading: Reading) -> tuple[Any, ...]:
    return (
        reading.device_id,
        reading.device_name,
        reading.room_name,
        to_key(reading.timestamp),
        str(reading.type),
        reading.value,
    )


def _to_reading(row: tuple[Any, ...]) -> Reading:
    return Reading(
        device_id=str(row[1]),
        device_name=str(row[2]),
        room_name=row[3],
        timestamp=from_key(str(row[4])),
        type=ReadingType(row[5]),
        value=float(row[6]),
        record_id=int(row[0]),
    )


class SqliteReadingRepository:
    """Append-only reading store on a SQLite file in WAL mode.

    Writes share one connection behind a lock so index updates never
    interleave. Each reading thread gets its own connection and therefore sees
    only committed data. Connections open on first use and stay cached until
    ``close()``; the next call after that reopens them. A reader connection
    whose thread has exited is closed the next time another thread opens one.
    """

    def __init__(self, *, db_path: str, timeout_seconds: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout_seconds = timeout_seconds
        self._write_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._writer_conn: sqlite3.Connection | None = None
        self._readers: list[tuple[threading.Thread, sqlite3.Connection]] = []
        self._generation = 0
        self._local = threading.local()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(
                self._db_path,
                timeout=self._timeout_seconds,
                check_same_thread=False,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot open reading store at {self._db_path}") from e

    def _writer(self) -> sqlite3.Connection:
        # Caller holds the write lock.
        if self._writer_conn is None:
            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                conn.close()
                raise StorageUnavailable(
                    f"Cannot initialize reading store at {self._db_path}"
                ) from e
            self._writer_conn = conn
            logger.info("Opened reading store at %s", self._db_path)
        return self._writer_conn

    def _reader(self) -> sqlite3.Connection:
        if self._writer_conn is None:
            with self._write_lock:
                self._writer()

        cached = getattr(self._local, "conn", None)
        if cached is not None and cached[0] == self._generation:
            return cached[1]

        conn = self._connect()
        with self._state_lock:
            live: list[tuple[threading.Thread, sqlite3.Connection]] = []
            stale: list[tuple[threading.Thread, sqlite3.Connection]] = []
            for owner, reader in self._readers:
                (live if owner.is_alive() else stale).append((owner, reader))
            self._readers = [*live, (threading.current_thread(), conn)]
            self._local.conn = (self._generation, conn)
        for _, reader in stale:
            with contextlib.suppress(sqlite3.Error):
                reader.close()
        return conn

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")

    def _select(self, sql: str, params: tuple[Any, ...] = ()) -> list[Reading]:
        conn = self._reader()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable("Failed to read readings") from e
        return [_to_reading(row) for row in rows]

    def ping(self) -> None:
        conn = self._reader()
        try:
            conn.execute("SELECT 1 FROM readings LIMIT 1").fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable("Reading store is not responding") from e

    def close(self) -> None:
        with self._write_lock, self._state_lock:
            conns = [conn for _, conn in self._readers]
            if self._writer_conn is not None:
                conns.append(self._writer_conn)
            self._readers = []
            self._writer_conn = None
            self._generation += 1
        for conn in conns:
            with contextlib.suppress(sqlite3.Error):
                conn.close()
        if conns:
            logger.info("Closed reading store at %s", self._db_path)

    def put(self, reading: Reading) -> int:
        with self._write_lock:
            conn = self._writer()
            try:
                cur = conn.execute(INSERT_SQL, _params(reading))
            except sqlite3.IntegrityError as e:
                raise InvalidReading(
                    f"Rejected reading for device {reading.device_id!r}: {e}"
                ) from e
            except sqlite3.Error as e:
                raise StorageUnavailable("Failed to store reading") from e
            return int(cur.lastrowid)

    def put_batch(self, readings: Sequence[Reading]) -> WriteResult:
        if not readings:
            return WriteResult(requested=0, record_ids=[])

        record_ids: list[int | None] = []
        failures: list[tuple[int, str]] = []
        with self._write_lock:
            conn = self._writer()
            try:
                conn.execute("BEGIN IMMEDIATE")
                for position, reading in enumerate(readings):
                    conn.execute("SAVEPOINT reading")
                    try:
                        cur = conn.execute(INSERT_SQL, _params(reading))
                    except sqlite3.IntegrityError as e:
                        conn.execute("ROLLBACK TO SAVEPOINT reading")
                        conn.execute("RELEASE SAVEPOINT reading")
                        record_ids.append(None)
                        failures.append((position, str(e)))
                        logger.warning(
                            "Rejected reading %d of %d for device %r: %s",
                            position,
                            len(readings),
                            reading.device_id,
                            e,
                        )
                        continue
                    conn.execute("RELEASE SAVEPOINT reading")
                    record_ids.append(int(cur.lastrowid))
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise StorageUnavailable("Failed to store reading batch") from e

        return WriteResult(requested=len(readings), record_ids=record_ids, failures=failures)

    def delete(self, record_id: int) -> int:
        with self._write_lock:
            conn = self._writer()
            try:
                cur = conn.execute("DELETE FROM readings WHERE id = ?", (int(record_id),))
            except sqlite3.Error as e:
                raise StorageUnavailable("Failed to delete reading") from e
            return int(cur.rowcount or 0)

    def delete_where(self, *, cutoff: datetime, batch_size: int = 1) -> int:
        """Delete every reading stamped at or before ``cutoff``.

        Walks the timestamp index from the oldest entry. Each step takes the
        write lock for at most ``batch_size`` records, so ingestion can
        proceed between steps.
        """
        key = to_key(cutoff)
        batch_size = max(int(batch_size), 1)
        deleted = 0
        while True:
            with self._write_lock:
                conn = self._writer()
                try:
                    conn.execute("BEGIN IMMEDIATE")
                    rows = conn.execute(
                        """
                        SELECT id FROM readings INDEXED BY idx_readings_timestamp
                        WHERE ts <= ? ORDER BY ts ASC, id ASC LIMIT ?
                        """,
                        (key, batch_size),
                    ).fetchall()
                    if rows:
                        conn.executemany("DELETE FROM readings WHERE id = ?", rows)
                    conn.execute("COMMIT")
                except sqlite3.Error as e:
                    self._rollback(conn)
                    raise StorageUnavailable(
                        f"Retention delete failed after {deleted} readings"
                    ) from e
            if not rows:
                return deleted
            deleted += len(rows)

    def clear(self) -> int:
        with self._write_lock:
            conn = self._writer()
            try:
                cur = conn.execute("DELETE FROM readings")
            except sqlite3.Error as e:
                raise StorageUnavailable("Failed to clear readings") from e
            removed = int(cur.rowcount or 0)
        logger.warning("Cleared %d readings from %s", removed, self._db_path)
        return removed

    def scan_all(self) -> list[Reading]:
        return self._select(f"SELECT {COLUMNS} FROM readings ORDER BY id ASC")

    def scan_device(self, device_id: str) -> list[Reading]:
        return self._select(
            f"""
            SELECT {COLUMNS} FROM readings INDEXED BY idx_readings_device
            WHERE device_id = ? ORDER BY id ASC
            """,
            (device_id,),
        )

    def scan_type(self, reading_type: ReadingType) -> list[Reading]:
        return self._select(
            f"""
            SELECT {COLUMNS} FROM readings INDEXED BY idx_readings_type
            WHERE type = ? ORDER BY id ASC
            """,
            (str(ReadingType(reading_type)),),
        )

    def scan_time_range(self, *, start: datetime, end: datetime) -> list[Reading]:
        return self._select(
            f"""
            SELECT {COLUMNS} FROM readings INDEXED BY idx_readings_timestamp
            WHERE ts >= ? AND ts <= ? ORDER BY ts ASC, id ASC
            """,
            (to_key(start), to_key(end)),
        )

    def scan_device_time_range(
        self, *, device_id: str, start: datetime, end: datetime
    ) -> list[Reading]:
        return self._select(
            f"""
            SELECT {COLUMNS} FROM readings INDEXED BY idx_readings_device_timestamp
            WHERE device_id = ? AND ts >= ? AND ts <= ? ORDER BY ts ASC, id ASC
            """,
            (device_id, to_key(start), to_key(end)),
        )

    def storage_stats(self) -> StorageStats:
        conn = self._reader()
        try:
            row = conn.execute(
                """
                SELECT COUNT(*), MIN(ts), MAX(ts), COUNT(DISTINCT device_id)
                FROM readings
                """
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailable("Failed to compute storage statistics") from e

        total = int(row[0]) if row else 0
        if total == 0:
            return StorageStats(total_count=0, oldest=None, newest=None, device_count=0)
        return StorageStats(
            total_count=total,
            oldest=from_key(str(row[1])),
            newest=from_key(str(row[2])),
            device_count=int(row[3]),
        )
