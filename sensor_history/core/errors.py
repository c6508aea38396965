"""
Sensor History Exceptions

Small hierarchy shared by the store, the services and the HTTP layer.
"""


class SensorHistoryError(Exception):
    """Base exception for the sensor history store."""

    pass


class StorageUnavailable(SensorHistoryError):
    """The underlying database cannot be opened, read or written."""

    pass


class InvalidRange(SensorHistoryError):
    """A requested time range starts after it ends."""

    def __init__(self, start, end) -> None:
        super().__init__(f"Time range start {start.isoformat()} is after end {end.isoformat()}")
        self.start = start
        self.end = end


class InvalidReading(SensorHistoryError, ValueError):
    """The store rejected a reading that violates its constraints."""

    pass
