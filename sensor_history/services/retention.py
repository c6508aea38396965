from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sensor_history.repositories.base import ReadingRepository

logger = logging.getLogger(__name__)

RETENTION_DAYS = 30


@dataclass(frozen=True)
class SweepResult:
    deleted: int
    skipped: bool
    retry_after_seconds: int | None
    cutoff: datetime | None


class SweepLimiter:
    def __init__(self, *, min_interval_seconds: int) -> None:
        self._min_interval_seconds = max(int(min_interval_seconds), 0)
        self._lock = threading.Lock()
        self._last_sweep: datetime | None = None

    @property
    def min_interval_seconds(self) -> int:
        return self._min_interval_seconds

    @property
    def last_sweep(self) -> datetime | None:
        with self._lock:
            return self._last_sweep

    def try_acquire(self, *, now: datetime) -> tuple[bool, int]:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        with self._lock:
            if self._min_interval_seconds <= 0 or self._last_sweep is None:
                self._last_sweep = now
                return True, 0

            elapsed = (now - self._last_sweep).total_seconds()
            if elapsed >= self._min_interval_seconds:
                self._last_sweep = now
                return True, 0

            retry_after = int(self._min_interval_seconds - elapsed)
            return False, max(retry_after, 1)


class RetentionService:
    def __init__(
        self,
        *,
        repo: ReadingRepository,
        retention_days: int = RETENTION_DAYS,
        batch_size: int = 1,
        limiter: SweepLimiter | None = None,
    ) -> None:
        self._repo = repo
        self._retention = timedelta(days=retention_days)
        self._batch_size = batch_size
        self._limiter = limiter

    def cutoff(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now - self._retention

    def sweep(self, now: datetime) -> int:
        cutoff = self.cutoff(now)
        deleted = self._repo.delete_where(cutoff=cutoff, batch_size=self._batch_size)
        logger.info("Retention sweep removed %d readings at or before %s", deleted, cutoff.isoformat())
        return deleted

    def maybe_sweep(self, now: datetime | None = None, *, force: bool = False) -> SweepResult:
        now = now or datetime.now(tz=timezone.utc)
        if not force and self._limiter is not None:
            allowed, retry_after = self._limiter.try_acquire(now=now)
            if not allowed:
                return SweepResult(
                    deleted=0, skipped=True, retry_after_seconds=retry_after, cutoff=None
                )

        deleted = self.sweep(now)
        return SweepResult(
            deleted=deleted, skipped=False, retry_after_seconds=None, cutoff=self.cutoff(now)
        )
