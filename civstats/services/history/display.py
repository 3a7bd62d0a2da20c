"""Read-side helpers that turn stored histories into chartable series."""

from __future__ import annotations

from dataclasses import fields, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

from civstats.models.document import StatsDocument, TrackedImage
from civstats.models.snapshot import (
    Counters,
    EncodedSnapshot,
    Snapshot,
    TotalCounters,
    ensure_utc,
)
from civstats.services.history.codec import latest, resolve


class TimeRange(str, Enum):
    DAY = "1d"
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"
    ALL = "all"

    @property
    def window(self) -> Optional[timedelta]:
        return _RANGE_WINDOWS.get(self)


_RANGE_WINDOWS = {
    TimeRange.DAY: timedelta(days=1),
    TimeRange.WEEK: timedelta(days=7),
    TimeRange.MONTH: timedelta(days=30),
    TimeRange.QUARTER: timedelta(days=90),
    TimeRange.YEAR: timedelta(days=365),
}

# Short ranges chart reactions gained per period rather than running totals.
GAIN_RANGES = frozenset({TimeRange.DAY, TimeRange.WEEK, TimeRange.MONTH, TimeRange.QUARTER})

Window = Union[TimeRange, str, tuple[datetime, datetime]]

SORT_KEYS = ("newest", "oldest", "reactions", "comments")


def is_gain_range(time_range: Window) -> bool:
    if isinstance(time_range, tuple):
        return False
    return TimeRange(time_range) in GAIN_RANGES


def resolve_for_display(
    history: Sequence[EncodedSnapshot],
    time_range: Window = TimeRange.ALL,
    *,
    now: Optional[datetime] = None,
    counters_type: type[Counters] = Counters,
) -> list[Snapshot]:
    """Absolute snapshots inside a preset range or an explicit `(start, end)` window.

    Resolution always covers the full history so points inside the window
    carry their true cumulative values.
    """

    resolved = resolve(history, counters_type)
    if isinstance(time_range, tuple):
        start, end = (ensure_utc(value) for value in time_range)
        if start > end:
            raise ValueError("Time window start must not be after its end")
        return [item for item in resolved if start <= ensure_utc(item.timestamp) <= end]

    window = TimeRange(time_range).window
    if window is None:
        return resolved

    threshold = ensure_utc(now or datetime.now(UTC)) - window
    return [item for item in resolved if ensure_utc(item.timestamp) >= threshold]


def compute_gains(snapshots: Sequence[Snapshot]) -> list[Snapshot]:
    """Per-period gains between consecutive points.

    The first point has nothing to diff against and is dropped. Negative
    differences are upstream caching artifacts and clamp to 0.
    """

    gains: list[Snapshot] = []
    for previous, current in zip(snapshots, snapshots[1:]):
        changes = {
            item.name: max(0, getattr(current.counters, item.name) - getattr(previous.counters, item.name, 0))
            for item in fields(current.counters)
        }
        gains.append(Snapshot(timestamp=current.timestamp, counters=replace(current.counters, **changes)))
    return gains


def current_counters(image: TrackedImage) -> Counters:
    snapshot = latest(image.history, Counters)
    return snapshot.counters if snapshot else Counters()


def current_totals(document: StatsDocument) -> TotalCounters:
    snapshot = latest(document.total_history, TotalCounters)
    if snapshot is None or not isinstance(snapshot.counters, TotalCounters):
        return TotalCounters(image_count=len(document.images))
    return snapshot.counters


def total_reactions(counters: Counters) -> int:
    return counters.likes + counters.hearts + counters.laughs + counters.cries


def sort_images(images: Iterable[TrackedImage], by: str = "newest") -> list[TrackedImage]:
    """Order images for listing; `by` is a sort key or a counter field name."""

    items = list(images)
    oldest_possible = datetime.min.replace(tzinfo=UTC)

    if by == "newest":
        return sorted(items, key=lambda image: image.created_at or oldest_possible, reverse=True)
    if by == "oldest":
        return sorted(items, key=lambda image: image.created_at or oldest_possible)
    if by == "reactions":
        return sorted(items, key=lambda image: total_reactions(current_counters(image)), reverse=True)

    counter_names = {item.name for item in fields(Counters)}
    if by in counter_names:
        return sorted(items, key=lambda image: getattr(current_counters(image), by), reverse=True)

    raise ValueError(f"Unknown sort key: {by}")
