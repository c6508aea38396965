from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from sensor_history.models.reading import (
    DeviceSnapshot,
    Reading,
    ReadingStatistics,
    ReadingType,
    StorageStats,
    WriteResult,
)

DEVICE_ID_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9:_.-]{0,127}$"

DeviceId = Annotated[str, Field(pattern=DEVICE_ID_PATTERN)]
DeviceName = Annotated[str, Field(min_length=1, max_length=128)]
RoomName = Annotated[str, Field(min_length=1, max_length=128)]


def _to_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


def _finite(v: float | None) -> float | None:
    if v is not None and not math.isfinite(float(v)):
        raise ValueError("Reading values must be finite numbers.")
    return v


class SnapshotCreate(BaseModel):
    device_id: DeviceId
    device_name: DeviceName
    room_name: RoomName | None = None
    timestamp: datetime | None = None

    temperature: float | None = None
    humidity: float | None = None
    pm25: float | None = None
    voc_index: float | None = None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_to_utc(cls, v: datetime | None) -> datetime | None:
        return _to_utc(v) if v is not None else None

    @field_validator("temperature", "humidity", "pm25", "voc_index")
    @classmethod
    def _validate_value(cls, v: float | None) -> float | None:
        return _finite(v)

    def to_snapshot(self, *, default_timestamp: datetime) -> DeviceSnapshot:
        return DeviceSnapshot(
            device_id=self.device_id,
            device_name=self.device_name,
            room_name=self.room_name,
            timestamp=self.timestamp or default_timestamp,
            temperature=self.temperature,
            humidity=self.humidity,
            pm25=self.pm25,
            voc_index=self.voc_index,
        )


class ReadingCreate(BaseModel):
    device_id: DeviceId
    device_name: DeviceName
    room_name: RoomName | None = None
    timestamp: datetime
    type: ReadingType
    value: float

    @field_validator("timestamp")
    @classmethod
    def _timestamp_to_utc(cls, v: datetime) -> datetime:
        return _to_utc(v)

    @field_validator("value")
    @classmethod
    def _validate_value(cls, v: float) -> float:
        return float(_finite(v))

    def to_reading(self) -> Reading:
        return Reading(
            device_id=self.device_id,
            device_name=self.device_name,
            room_name=self.room_name,
            timestamp=self.timestamp,
            type=self.type,
            value=self.value,
        )


class ReadingBatchCreate(BaseModel):
    readings: list[ReadingCreate] = Field(min_length=1, max_length=1000)


class BatchFailure(BaseModel):
    position: int = Field(ge=0)
    error: str


class WriteResponse(BaseModel):
    requested: int = Field(ge=0)
    stored: int = Field(ge=0)
    failed: int = Field(ge=0)
    record_ids: list[int | None]
    failures: list[BatchFailure] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: WriteResult) -> WriteResponse:
        return cls(
            requested=result.requested,
            stored=result.stored,
            failed=result.failed,
            record_ids=result.record_ids,
            failures=[BatchFailure(position=p, error=e) for p, e in result.failures],
        )


class ReadingRead(BaseModel):
    record_id: int | None = None
    device_id: str
    device_name: str
    room_name: str | None = None
    timestamp: datetime
    type: ReadingType
    value: float
    unit: str

    @classmethod
    def from_reading(cls, reading: Reading) -> ReadingRead:
        return cls(
            record_id=reading.record_id,
            device_id=reading.device_id,
            device_name=reading.device_name,
            room_name=reading.room_name,
            timestamp=reading.timestamp,
            type=reading.type,
            value=reading.value,
            unit=reading.unit,
        )


class TimeRangeRead(BaseModel):
    start: datetime
    end: datetime


class StatisticsRead(BaseModel):
    type: ReadingType
    min: float
    max: float
    average: float
    median: float
    count: int = Field(ge=1)
    time_range: TimeRangeRead
    first: float
    last: float
    min_at: datetime
    max_at: datetime
    trend: str

    @classmethod
    def from_statistics(cls, stats: ReadingStatistics) -> StatisticsRead:
        return cls(
            type=stats.type,
            min=stats.min,
            max=stats.max,
            average=stats.average,
            median=stats.median,
            count=stats.count,
            time_range=TimeRangeRead(start=stats.time_range.start, end=stats.time_range.end),
            first=stats.first,
            last=stats.last,
            min_at=stats.min_at,
            max_at=stats.max_at,
            trend=stats.trend,
        )


class StorageStatsRead(BaseModel):
    total_count: int = Field(ge=0)
    oldest: datetime | None = None
    newest: datetime | None = None
    device_count: int = Field(ge=0)

    @classmethod
    def from_stats(cls, stats: StorageStats) -> StorageStatsRead:
        return cls(
            total_count=stats.total_count,
            oldest=stats.oldest,
            newest=stats.newest,
            device_count=stats.device_count,
        )


class SweepResponse(BaseModel):
    deleted: int = Field(ge=0)
    skipped: bool
    retry_after_seconds: int | None = None
    cutoff: datetime | None = None


class ClearResponse(BaseModel):
    deleted: int = Field(ge=0)
