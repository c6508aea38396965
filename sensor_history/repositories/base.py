from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sensor_history.models.reading import Reading, ReadingType, StorageStats, WriteResult


class ReadingRepository(Protocol):
    def ping(self) -> None: ...

    def close(self) -> None: ...

    def put(self, reading: Reading) -> int: ...

    def put_batch(self, readings: Sequence[Reading]) -> WriteResult: ...

    def delete(self, record_id: int) -> int: ...

    def delete_where(self, *, cutoff: datetime, batch_size: int = 1) -> int: ...

    def clear(self) -> int: ...

    def scan_all(self) -> list[Reading]: ...

    def scan_device(self, device_id: str) -> list[Reading]: ...

    def scan_type(self, reading_type: ReadingType) -> list[Reading]: ...

    def scan_time_range(self, *, start: datetime, end: datetime) -> list[Reading]: ...

    def scan_device_time_range(
        self, *, device_id: str, start: datetime, end: datetime
    ) -> list[Reading]: ...

    def storage_stats(self) -> StorageStats: ...
