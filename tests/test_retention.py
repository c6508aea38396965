from __future__ import annotations

import threading
from datetime import datetime, timedelta

from sensor_history.models.reading import ReadingQuery
from sensor_history.repositories.sqlite import SqliteReadingRepository
from sensor_history.services.readings import ReadingService
from sensor_history.services.retention import RetentionService, SweepLimiter
from tests.fakes import make_reading


def test_sweep_removes_only_expired_readings(
    store: SqliteReadingRepository, now: datetime
) -> None:
    for age in (40, 10, 1):
        store.put(make_reading(device_id="d1", timestamp=now - timedelta(days=age), value=age))

    retention = RetentionService(repo=store)
    assert retention.sweep(now) == 1

    rows = ReadingService(store).query(ReadingQuery(device_id="d1"))
    assert [r.timestamp for r in rows] == [now - timedelta(days=1), now - timedelta(days=10)]


def test_sweep_is_idempotent(store: SqliteReadingRepository, now: datetime) -> None:
    store.put(make_reading(timestamp=now - timedelta(days=31)))
    retention = RetentionService(repo=store)

    assert retention.sweep(now) == 1
    assert retention.sweep(now) == 0


def test_sweep_boundary(store: SqliteReadingRepository, now: datetime) -> None:
    cutoff = now - timedelta(days=30)
    store.put(make_reading(timestamp=cutoff, value=1.0))
    store.put(make_reading(timestamp=cutoff + timedelta(microseconds=1), value=2.0))

    assert RetentionService(repo=store, batch_size=10).sweep(now) == 1
    assert [r.value for r in store.scan_all()] == [2.0]


def test_sweep_alongside_ingestion(store: SqliteReadingRepository, now: datetime) -> None:
    store.put_batch(
        [make_reading(timestamp=now - timedelta(days=60, minutes=i)) for i in range(200)]
    )
    retention = RetentionService(repo=store)
    deleted: list[int] = []

    sweeper = threading.Thread(target=lambda: deleted.append(retention.sweep(now)))
    sweeper.start()
    for i in range(50):
        store.put(make_reading(device_id="fresh", timestamp=now - timedelta(minutes=i)))
    sweeper.join()

    assert deleted == [200]
    assert len(store.scan_device("fresh")) == 50
    assert store.storage_stats().total_count == 50


def test_limiter_throttles_sweeps(store: SqliteReadingRepository, now: datetime) -> None:
    limiter = SweepLimiter(min_interval_seconds=3600)
    retention = RetentionService(repo=store, limiter=limiter)

    first = retention.maybe_sweep(now)
    assert first.skipped is False
    assert first.cutoff == now - timedelta(days=30)

    second = retention.maybe_sweep(now + timedelta(minutes=10))
    assert second.skipped is True
    assert second.retry_after_seconds == 3000

    forced = retention.maybe_sweep(now + timedelta(minutes=10), force=True)
    assert forced.skipped is False

    later = retention.maybe_sweep(now + timedelta(hours=1))
    assert later.skipped is False


def test_custom_retention_window(store: SqliteReadingRepository, now: datetime) -> None:
    store.put(make_reading(timestamp=now - timedelta(days=8)))
    store.put(make_reading(timestamp=now - timedelta(days=6)))

    assert RetentionService(repo=store, retention_days=7).sweep(now) == 1
