from __future__ import annotations

from datetime import datetime, timezone

# Fixed width keeps lexicographic index order equal to chronological order.
# strftime("%Y") does not pad years below 1000, so the year is padded by hand.
KEY_TIME_FORMAT = "%m-%dT%H:%M:%S.%f"

EARLIEST_KEY_INSTANT = datetime.min.replace(tzinfo=timezone.utc)
LATEST_KEY_INSTANT = datetime.max.replace(tzinfo=timezone.utc)


def to_key(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return f"{dt.year:04d}-{dt.strftime(KEY_TIME_FORMAT)}Z"


def from_key(value: str) -> datetime:
    return datetime.fromisoformat(value).astimezone(timezone.utc)
