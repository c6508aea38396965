from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from sensor_history.models.reading import ReadingType
from sensor_history.services.statistics import (
    compute_statistics,
    summarize_by_type,
    trend,
)
from tests.fakes import make_reading


def _series(now: datetime, values: list[float], type: ReadingType = ReadingType.TEMPERATURE):
    return [
        make_reading(timestamp=now + timedelta(minutes=i), value=v, type=type)
        for i, v in enumerate(values)
    ]


def test_statistics_for_odd_count(now: datetime) -> None:
    stats = compute_statistics(_series(now, [20.0, 10.0, 30.0]))

    assert stats is not None
    assert stats.min == 10
    assert stats.max == 30
    assert stats.average == 20
    assert stats.median == 20
    assert stats.count == 3
    assert stats.time_range.start == now
    assert stats.time_range.end == now + timedelta(minutes=2)
    assert stats.min_at == now + timedelta(minutes=1)
    assert stats.max_at == now + timedelta(minutes=2)
    assert stats.first == 20.0
    assert stats.last == 30.0


def test_median_for_even_count(now: datetime) -> None:
    stats = compute_statistics(_series(now, [10.0, 20.0]))
    assert stats is not None
    assert stats.median == 15


def test_input_order_does_not_matter(now: datetime) -> None:
    readings = _series(now, [5.0, 1.0, 9.0, 3.0])
    forward = compute_statistics(readings)
    backward = compute_statistics(list(reversed(readings)))
    assert forward == backward


def test_empty_input_has_no_statistics() -> None:
    assert compute_statistics([]) is None
    assert summarize_by_type([]) == {}


def test_mixed_types_are_rejected(now: datetime) -> None:
    readings = _series(now, [1.0]) + _series(now, [2.0], type=ReadingType.HUMIDITY)
    with pytest.raises(ValueError):
        compute_statistics(readings)


def test_summarize_by_type(now: datetime) -> None:
    readings = _series(now, [20.0, 22.0]) + _series(now, [3.0], type=ReadingType.PM25)

    summary = summarize_by_type(readings)

    assert list(summary) == [ReadingType.TEMPERATURE, ReadingType.PM25]
    assert summary[ReadingType.TEMPERATURE].average == 21.0
    assert summary[ReadingType.PM25].count == 1
    assert summary[ReadingType.PM25].trend == "stable"


@pytest.mark.parametrize(
    ("first", "last", "expected"),
    [
        (20.0, 21.0, "up"),
        (20.0, 19.0, "down"),
        (20.0, 20.3, "stable"),
        (0.0, 0.0, "stable"),
        (0.0, 5.0, "up"),
        (-10.0, -12.0, "down"),
        (-10.0, -5.0, "up"),
    ],
)
def test_trend(first: float, last: float, expected: str) -> None:
    assert trend(first, last) == expected
