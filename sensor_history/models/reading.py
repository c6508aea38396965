from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


class ReadingType(StrEnum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PM25 = "pm25"
    VOC = "voc"


UNITS: dict[ReadingType, str] = {
    ReadingType.TEMPERATURE: "°C",
    ReadingType.HUMIDITY: "%",
    ReadingType.PM25: "μg/m³",
    ReadingType.VOC: "index",
}


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Reading:
    device_id: str
    device_name: str
    timestamp: datetime
    type: ReadingType
    value: float
    room_name: str | None = None
    record_id: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ReadingType(self.type))
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))
        object.__setattr__(self, "value", float(self.value))

    @property
    def unit(self) -> str:
        return UNITS[self.type]


@dataclass(frozen=True)
class DeviceSnapshot:
    device_id: str
    device_name: str
    timestamp: datetime
    room_name: str | None = None

    temperature: float | None = None
    humidity: float | None = None
    pm25: float | None = None
    voc_index: float | None = None


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class ReadingQuery:
    device_id: str | None = None
    room_name: str | None = None
    types: frozenset[ReadingType] | None = None
    time_range: TimeRange | None = None
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class ReadingStatistics:
    type: ReadingType
    min: float
    max: float
    average: float
    median: float
    count: int
    time_range: TimeRange

    first: float
    last: float
    min_at: datetime
    max_at: datetime
    trend: str


@dataclass(frozen=True)
class StorageStats:
    total_count: int
    oldest: datetime | None
    newest: datetime | None
    device_count: int


@dataclass(frozen=True)
class WriteResult:
    requested: int
    record_ids: list[int | None]
    failures: list[tuple[int, str]] = field(default_factory=list)

    @property
    def stored(self) -> int:
        return sum(1 for rid in self.record_ids if rid is not None)

    @property
    def failed(self) -> int:
        return len(self.failures)
