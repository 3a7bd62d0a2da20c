"""Tiered retention rollups for snapshot histories."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from civstats.config.settings import settings
from civstats.models.snapshot import Snapshot, ensure_utc

DEFAULT_FULL_RESOLUTION_DAYS = 7
DEFAULT_SIX_HOUR_DAYS = 30
DEFAULT_SIX_HOUR_BUCKET_HOURS = 6
DEFAULT_DAILY_BUCKET_HOURS = 24


@dataclass(frozen=True, slots=True)
class RetentionPolicy:
    """Age thresholds and bucket sizes for the three retention tiers."""

    full_resolution_days: int = field(
        default_factory=lambda: getattr(settings, "RETENTION_FULL_RESOLUTION_DAYS", DEFAULT_FULL_RESOLUTION_DAYS)
    )
    six_hour_days: int = field(default_factory=lambda: getattr(settings, "RETENTION_SIX_HOUR_DAYS", DEFAULT_SIX_HOUR_DAYS))
    six_hour_bucket_hours: int = field(
        default_factory=lambda: getattr(settings, "RETENTION_SIX_HOUR_BUCKET_HOURS", DEFAULT_SIX_HOUR_BUCKET_HOURS)
    )
    daily_bucket_hours: int = field(
        default_factory=lambda: getattr(settings, "RETENTION_DAILY_BUCKET_HOURS", DEFAULT_DAILY_BUCKET_HOURS)
    )

    def __post_init__(self) -> None:
        if self.full_resolution_days < 0 or self.six_hour_days < self.full_resolution_days:
            raise ValueError("Retention tiers must satisfy 0 <= full_resolution_days <= six_hour_days")
        if self.six_hour_bucket_hours <= 0 or self.daily_bucket_hours <= 0:
            raise ValueError("Retention bucket sizes must be positive")


def bucket_key(timestamp: datetime, bucket_hours: int) -> int:
    """Start of the epoch-anchored UTC bucket containing `timestamp`, in seconds."""
    size = bucket_hours * 3600
    return math.floor(ensure_utc(timestamp).timestamp() / size) * size


def _latest_per_bucket(snapshots: list[Snapshot], bucket_hours: int) -> list[Snapshot]:
    latest: dict[int, Snapshot] = {}
    for snapshot in snapshots:
        # Input is time-ordered, so the last write per bucket is its period-end value.
        latest[bucket_key(snapshot.timestamp, bucket_hours)] = snapshot
    return list(latest.values())


def apply_retention(
    snapshots: Iterable[Snapshot],
    now: datetime,
    policy: Optional[RetentionPolicy] = None,
) -> list[Snapshot]:
    """Keep recent points verbatim and collapse older ones to the last value per bucket."""

    policy = policy or RetentionPolicy()
    ordered = sorted(snapshots, key=lambda item: ensure_utc(item.timestamp))
    if not ordered:
        return []

    now = ensure_utc(now)
    full_cutoff = now - timedelta(days=policy.full_resolution_days)
    six_hour_cutoff = now - timedelta(days=policy.six_hour_days)

    recent: list[Snapshot] = []
    six_hourly: list[Snapshot] = []
    daily: list[Snapshot] = []
    for snapshot in ordered:
        timestamp = ensure_utc(snapshot.timestamp)
        if timestamp >= full_cutoff:
            recent.append(snapshot)
        elif timestamp >= six_hour_cutoff:
            six_hourly.append(snapshot)
        else:
            daily.append(snapshot)

    rolled = (
        _latest_per_bucket(daily, policy.daily_bucket_hours)
        + _latest_per_bucket(six_hourly, policy.six_hour_bucket_hours)
        + recent
    )
    return sorted(rolled, key=lambda item: ensure_utc(item.timestamp))
