"""
Reading statistics

Aggregates over readings the caller already fetched. Nothing here queries the
store, so the numbers always describe exactly the sequence passed in.
"""

from __future__ import annotations

from collections.abc import Sequence

from sensor_history.models.reading import (
    Reading,
    ReadingStatistics,
    ReadingType,
    StorageStats,
    TimeRange,
)
from sensor_history.repositories.base import ReadingRepository

TREND_THRESHOLD_PCT = 2.0


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def trend(first: float, last: float) -> str:
    """Classify the change from ``first`` to ``last`` as up, down or stable."""
    if first == 0:
        if last == 0:
            return "stable"
        return "up" if last > 0 else "down"
    change = (last - first) / abs(first) * 100
    if change > TREND_THRESHOLD_PCT:
        return "up"
    if change < -TREND_THRESHOLD_PCT:
        return "down"
    return "stable"


def compute_statistics(readings: Sequence[Reading]) -> ReadingStatistics | None:
    """Summarize same-type readings; ``None`` when there is nothing to summarize.

    Raises:
        ValueError: if the readings mix more than one type.
    """
    if not readings:
        return None

    types = {r.type for r in readings}
    if len(types) > 1:
        raise ValueError(
            "Statistics need readings of a single type, got: "
            + ", ".join(sorted(str(t) for t in types))
        )

    # Chronological, with insertion order breaking ties.
    ordered = sorted(readings, key=lambda r: (r.timestamp, r.record_id or 0))
    values = [r.value for r in ordered]
    lo = min(values)
    hi = max(values)

    return ReadingStatistics(
        type=ordered[0].type,
        min=lo,
        max=hi,
        average=sum(values) / len(values),
        median=median(values),
        count=len(values),
        time_range=TimeRange(start=ordered[0].timestamp, end=ordered[-1].timestamp),
        first=values[0],
        last=values[-1],
        min_at=next(r.timestamp for r in ordered if r.value == lo),
        max_at=next(r.timestamp for r in ordered if r.value == hi),
        trend=trend(values[0], values[-1]),
    )


def summarize_by_type(readings: Sequence[Reading]) -> dict[ReadingType, ReadingStatistics]:
    grouped: dict[ReadingType, list[Reading]] = {}
    for reading in readings:
        grouped.setdefault(reading.type, []).append(reading)

    summary: dict[ReadingType, ReadingStatistics] = {}
    for reading_type in ReadingType:
        stats = compute_statistics(grouped.get(reading_type, []))
        if stats is not None:
            summary[reading_type] = stats
    return summary


def storage_statistics(repo: ReadingRepository) -> StorageStats:
    return repo.storage_stats()
