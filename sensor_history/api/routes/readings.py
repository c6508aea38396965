from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sensor_history.api.deps import ReadUser, WriteUser, get_reading_service
from sensor_history.core.errors import InvalidRange, StorageUnavailable
from sensor_history.models.reading import ReadingQuery, ReadingType, TimeRange
from sensor_history.repositories.timestamps import EARLIEST_KEY_INSTANT, LATEST_KEY_INSTANT
from sensor_history.schemas.readings import (
    DEVICE_ID_PATTERN,
    ReadingBatchCreate,
    ReadingRead,
    SnapshotCreate,
    StatisticsRead,
    WriteResponse,
)
from sensor_history.services.readings import ReadingService
from sensor_history.services.statistics import summarize_by_type

router = APIRouter(prefix="/readings")

EARLIEST = EARLIEST_KEY_INSTANT
LATEST = LATEST_KEY_INSTANT
DEFAULT_STATISTICS_WINDOW = timedelta(hours=24)


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _time_range(start: datetime | None, end: datetime | None) -> TimeRange | None:
    if start is None and end is None:
        return None
    return TimeRange(
        start=_to_utc(start) if start else EARLIEST,
        end=_to_utc(end) if end else LATEST,
    )


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Storage unavailable",
    )


@router.post(
    "/snapshots",
    response_model=WriteResponse,
    status_code=status.HTTP_201_CREATED,
)
def ingest_snapshot(
    _: WriteUser,
    payload: SnapshotCreate,
    service: Annotated[ReadingService, Depends(get_reading_service)],
) -> WriteResponse:
    snapshot = payload.to_snapshot(default_timestamp=datetime.now(tz=timezone.utc))
    try:
        result = service.ingest_snapshot(snapshot)
    except StorageUnavailable as e:
        raise _unavailable() from e
    return WriteResponse.from_result(result)


@router.post(
    "",
    response_model=WriteResponse,
    status_code=status.HTTP_201_CREATED,
)
def ingest_readings(
    _: WriteUser,
    payload: ReadingBatchCreate,
    service: Annotated[ReadingService, Depends(get_reading_service)],
) -> WriteResponse:
    try:
        result = service.ingest_readings([r.to_reading() for r in payload.readings])
    except StorageUnavailable as e:
        raise _unavailable() from e
    return WriteResponse.from_result(result)


@router.get("", response_model=list[ReadingRead])
def list_readings(
    _: ReadUser,
    service: Annotated[ReadingService, Depends(get_reading_service)],
    device_id: Annotated[
        str | None, Query(min_length=1, max_length=128, pattern=DEVICE_ID_PATTERN)
    ] = None,
    room_name: Annotated[str | None, Query(min_length=1, max_length=128)] = None,
    types: Annotated[list[ReadingType] | None, Query(alias="type")] = None,
    start: Annotated[datetime | None, Query()] = None,
    end: Annotated[datetime | None, Query()] = None,
    limit: Annotated[int | None, Query(ge=1, le=10_000)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ReadingRead]:
    query = ReadingQuery(
        device_id=device_id,
        room_name=room_name,
        types=frozenset(types) if types else None,
        time_range=_time_range(start, end),
        limit=limit,
        offset=offset,
    )
    try:
        rows = service.query(query)
    except InvalidRange as e:
        raise HTTPException(status_code=400, detail="'start' must be <= 'end'") from e
    except StorageUnavailable as e:
        raise _unavailable() from e
    return [ReadingRead.from_reading(r) for r in rows]


@router.get("/latest", response_model=ReadingRead)
def latest_reading(
    _: ReadUser,
    device_id: Annotated[str, Query(min_length=1, max_length=128, pattern=DEVICE_ID_PATTERN)],
    reading_type: Annotated[ReadingType, Query(alias="type")],
    service: Annotated[ReadingService, Depends(get_reading_service)],
) -> ReadingRead:
    try:
        reading = service.latest(device_id=device_id, reading_type=reading_type)
    except StorageUnavailable as e:
        raise _unavailable() from e
    if reading is None:
        raise HTTPException(status_code=404, detail="No reading found")
    return ReadingRead.from_reading(reading)


@router.get("/statistics", response_model=list[StatisticsRead])
def reading_statistics(
    _: ReadUser,
    device_id: Annotated[str, Query(min_length=1, max_length=128, pattern=DEVICE_ID_PATTERN)],
    service: Annotated[ReadingService, Depends(get_reading_service)],
    types: Annotated[list[ReadingType] | None, Query(alias="type")] = None,
    start: Annotated[datetime | None, Query()] = None,
    end: Annotated[datetime | None, Query()] = None,
) -> list[StatisticsRead]:
    end_dt = _to_utc(end) if end else datetime.now(tz=timezone.utc)
    start_dt = _to_utc(start) if start else end_dt - DEFAULT_STATISTICS_WINDOW
    query = ReadingQuery(
        device_id=device_id,
        types=frozenset(types) if types else None,
        time_range=TimeRange(start=start_dt, end=end_dt),
    )
    try:
        rows = service.query(query)
    except InvalidRange as e:
        raise HTTPException(status_code=400, detail="'start' must be <= 'end'") from e
    except StorageUnavailable as e:
        raise _unavailable() from e
    summary = summarize_by_type(rows)
    return [StatisticsRead.from_statistics(s) for s in summary.values()]
