from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sensor_history.core.errors import InvalidRange
from sensor_history.models.reading import (
    DeviceSnapshot,
    Reading,
    ReadingQuery,
    ReadingType,
    WriteResult,
)
from sensor_history.repositories.base import ReadingRepository

logger = logging.getLogger(__name__)

# Snapshot attribute per reading type, in decomposition order.
SNAPSHOT_FIELDS: tuple[tuple[ReadingType, str], ...] = (
    (ReadingType.TEMPERATURE, "temperature"),
    (ReadingType.HUMIDITY, "humidity"),
    (ReadingType.PM25, "pm25"),
    (ReadingType.VOC, "voc_index"),
)


def decompose_snapshot(snapshot: DeviceSnapshot) -> list[Reading]:
    readings: list[Reading] = []
    for reading_type, attr in SNAPSHOT_FIELDS:
        value = getattr(snapshot, attr)
        if value is None:
            continue
        readings.append(
            Reading(
                device_id=snapshot.device_id,
                device_name=snapshot.device_name,
                room_name=snapshot.room_name,
                timestamp=snapshot.timestamp,
                type=reading_type,
                value=value,
            )
        )
    return readings


def validate_query(query: ReadingQuery) -> None:
    if query.time_range is not None and query.time_range.start > query.time_range.end:
        raise InvalidRange(query.time_range.start, query.time_range.end)
    if query.limit is not None and query.limit < 0:
        raise ValueError("limit must be >= 0")
    if query.offset < 0:
        raise ValueError("offset must be >= 0")


class ReadingService:
    def __init__(self, repo: ReadingRepository) -> None:
        self._repo = repo

    def ingest_snapshot(self, snapshot: DeviceSnapshot) -> WriteResult:
        readings = decompose_snapshot(snapshot)
        if not readings:
            logger.debug("Snapshot for %s carried no readings", snapshot.device_id)
        return self.ingest_readings(readings)

    def ingest_readings(self, readings: Sequence[Reading]) -> WriteResult:
        result = self._repo.put_batch(readings)
        if result.failed:
            logger.warning(
                "Stored %d of %d readings, %d rejected",
                result.stored,
                result.requested,
                result.failed,
            )
        return result

    def _scan(self, query: ReadingQuery) -> Iterable[Reading]:
        time_range = query.time_range
        if query.device_id is not None and time_range is not None:
            return self._repo.scan_device_time_range(
                device_id=query.device_id, start=time_range.start, end=time_range.end
            )
        if query.device_id is not None:
            return self._repo.scan_device(query.device_id)
        if time_range is not None:
            return self._repo.scan_time_range(start=time_range.start, end=time_range.end)
        if query.types:
            rows: list[Reading] = []
            for reading_type in sorted(query.types):
                rows.extend(self._repo.scan_type(reading_type))
            return rows
        return self._repo.scan_all()

    def query(self, query: ReadingQuery) -> list[Reading]:
        validate_query(query)

        rows = self._scan(query)
        if query.types:
            rows = [r for r in rows if r.type in query.types]
        if query.room_name is not None:
            rows = [r for r in rows if r.room_name == query.room_name]

        # Newest first; equal timestamps keep insertion order.
        ordered = sorted(rows, key=lambda r: r.record_id or 0)
        ordered.sort(key=lambda r: r.timestamp, reverse=True)

        start = query.offset
        if query.limit is None:
            return ordered[start:]
        return ordered[start : start + query.limit]

    def latest(self, *, device_id: str, reading_type: ReadingType) -> Reading | None:
        rows = self.query(
            ReadingQuery(
                device_id=device_id,
                types=frozenset({ReadingType(reading_type)}),
                limit=1,
            )
        )
        return rows[0] if rows else None
