from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sensor_history.core.errors import InvalidRange, StorageUnavailable
from sensor_history.models.reading import (
    DeviceSnapshot,
    ReadingQuery,
    ReadingType,
    TimeRange,
)
from sensor_history.repositories.sqlite import SqliteReadingRepository
from sensor_history.services.readings import ReadingService, decompose_snapshot
from tests.fakes import RecordingRepository, UnavailableRepository, hourly, make_reading

WIDE = TimeRange(
    start=datetime(2000, 1, 1, tzinfo=timezone.utc),
    end=datetime(2100, 1, 1, tzinfo=timezone.utc),
)


@pytest.fixture()
def recording(store: SqliteReadingRepository) -> RecordingRepository:
    return RecordingRepository(store)


@pytest.fixture()
def service(recording: RecordingRepository) -> ReadingService:
    return ReadingService(recording)


def _snapshot(now: datetime, **values: float) -> DeviceSnapshot:
    return DeviceSnapshot(
        device_id="d1", device_name="VINDSTYRKA", room_name="Bedroom", timestamp=now, **values
    )


@pytest.mark.parametrize(
    "values",
    [
        {},
        {"temperature": 21.0},
        {"humidity": 40.0, "voc_index": 100.0},
        {"temperature": 21.0, "humidity": 40.0, "pm25": 3.0, "voc_index": 100.0},
    ],
)
def test_decompose_snapshot_yields_one_reading_per_quantity(
    now: datetime, values: dict[str, float]
) -> None:
    readings = decompose_snapshot(_snapshot(now, **values))

    assert len(readings) == len(values)
    units = {"temperature": "°C", "humidity": "%", "pm25": "μg/m³", "voc": "index"}
    for reading in readings:
        assert reading.unit == units[reading.type]
        assert reading.timestamp == now
        assert reading.room_name == "Bedroom"


def test_ingest_snapshot_stores_readings(service: ReadingService, now: datetime) -> None:
    result = service.ingest_snapshot(_snapshot(now, temperature=22.5, pm25=4.0))
    assert result.stored == 2

    rows = service.query(ReadingQuery(device_id="d1"))
    assert {r.type for r in rows} == {ReadingType.TEMPERATURE, ReadingType.PM25}


def test_empty_snapshot_stores_nothing(service: ReadingService, now: datetime) -> None:
    result = service.ingest_snapshot(_snapshot(now))
    assert result.requested == 0
    assert service.query(ReadingQuery()) == []


def test_round_trip(service: ReadingService, now: datetime) -> None:
    reading = make_reading(timestamp=now, type=ReadingType.VOC, value=123.0)
    service.ingest_readings([reading])

    rows = service.query(
        ReadingQuery(
            device_id="d1",
            types=frozenset({ReadingType.VOC}),
            time_range=TimeRange(start=now, end=now),
        )
    )
    assert rows == [reading]


@pytest.mark.parametrize(
    ("query", "expected_scan"),
    [
        (
            ReadingQuery(device_id="d1", time_range=WIDE),
            "scan_device_time_range",
        ),
        (ReadingQuery(device_id="d1"), "scan_device"),
        (ReadingQuery(time_range=WIDE), "scan_time_range"),
        (ReadingQuery(types=frozenset({ReadingType.HUMIDITY})), "scan_type"),
        (ReadingQuery(room_name="Kitchen"), "scan_all"),
    ],
)
def test_index_selection(
    service: ReadingService, recording: RecordingRepository, query: ReadingQuery, expected_scan: str
) -> None:
    service.query(query)
    assert recording.scans == [expected_scan]


def test_query_is_newest_first_with_filters(service: ReadingService, now: datetime) -> None:
    service.ingest_readings(hourly(now, 5, device_id="d1"))
    service.ingest_readings(hourly(now, 5, device_id="d2", type=ReadingType.HUMIDITY))
    service.ingest_readings(
        [make_reading(device_id="d3", timestamp=now, room_name="Kitchen", value=99.0)]
    )

    rows = service.query(ReadingQuery(types=frozenset({ReadingType.TEMPERATURE})))
    timestamps = [r.timestamp for r in rows]
    assert timestamps == sorted(timestamps, reverse=True)
    assert all(r.type == ReadingType.TEMPERATURE for r in rows)
    assert len(rows) == 6

    kitchen = service.query(ReadingQuery(room_name="Kitchen"))
    assert [r.device_id for r in kitchen] == ["d3"]


def test_equal_timestamps_keep_insertion_order(service: ReadingService, now: datetime) -> None:
    service.ingest_readings([make_reading(timestamp=now, value=float(i)) for i in range(4)])
    rows = service.query(ReadingQuery(device_id="d1"))
    assert [r.value for r in rows] == [0.0, 1.0, 2.0, 3.0]


def test_pagination_reconstructs_full_result(service: ReadingService, now: datetime) -> None:
    service.ingest_readings(hourly(now, 7, device_id="d1"))
    service.ingest_readings(hourly(now, 4, device_id="d2"))
    base = ReadingQuery(types=frozenset({ReadingType.TEMPERATURE}))
    full = service.query(base)

    pages = []
    offset = 0
    while True:
        page = service.query(
            ReadingQuery(types=base.types, limit=3, offset=offset)
        )
        if not page:
            break
        pages.extend(page)
        offset += 3

    assert pages == full
    assert [r.record_id for r in pages] == [r.record_id for r in full]


def test_offset_past_end_is_empty(service: ReadingService, now: datetime) -> None:
    service.ingest_readings(hourly(now, 2))
    assert service.query(ReadingQuery(offset=10)) == []


def test_invalid_range_is_rejected(service: ReadingService, now: datetime) -> None:
    with pytest.raises(InvalidRange):
        service.query(ReadingQuery(time_range=TimeRange(start=now, end=now - timedelta(seconds=1))))


def test_negative_pagination_is_rejected(service: ReadingService) -> None:
    with pytest.raises(ValueError):
        service.query(ReadingQuery(limit=-1))
    with pytest.raises(ValueError):
        service.query(ReadingQuery(offset=-1))


def test_latest_reading(service: ReadingService, now: datetime) -> None:
    assert service.latest(device_id="d1", reading_type=ReadingType.TEMPERATURE) is None

    service.ingest_readings(hourly(now, 3))
    service.ingest_readings([make_reading(timestamp=now + timedelta(days=1), type=ReadingType.PM25)])

    latest = service.latest(device_id="d1", reading_type=ReadingType.TEMPERATURE)
    assert latest is not None
    assert latest.timestamp == now + timedelta(hours=2)
    assert service.latest(device_id="other", reading_type=ReadingType.TEMPERATURE) is None


def test_storage_failures_propagate(now: datetime) -> None:
    service = ReadingService(UnavailableRepository())
    with pytest.raises(StorageUnavailable):
        service.query(ReadingQuery(device_id="d1"))
    with pytest.raises(StorageUnavailable):
        service.ingest_snapshot(_snapshot(now, temperature=20.0))
