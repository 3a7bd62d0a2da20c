from __future__ import annotations

from datetime import UTC, datetime, timedelta

from civstats.models.snapshot import Counters, Snapshot
from civstats.services.history.retention import RetentionPolicy, apply_retention, bucket_key

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
POLICY = RetentionPolicy(full_resolution_days=7, six_hour_days=30, six_hour_bucket_hours=6, daily_bucket_hours=24)


def _points(timestamps: list[datetime]) -> list[Snapshot]:
    ordered = sorted(timestamps)
    return [Snapshot(timestamp, Counters(likes=index)) for index, timestamp in enumerate(ordered)]


def _forty_day_series() -> list[Snapshot]:
    hourly = [NOW - timedelta(hours=offset) for offset in range(168)]
    six_hourly = [NOW - timedelta(days=7, hours=1) - timedelta(hours=26 * index) for index in range(20)]
    daily = [NOW - timedelta(days=30, hours=1) - timedelta(hours=19 * index) for index in range(12)]
    return _points(hourly + six_hourly + daily)


def test_retention_keeps_recent_week_and_buckets_older_tiers() -> None:
    snapshots = _forty_day_series()
    assert len(snapshots) == 200

    rolled = apply_retention(snapshots, NOW, POLICY)

    recent = [item for item in rolled if item.timestamp >= NOW - timedelta(days=7)]
    six_hourly = [item for item in rolled if NOW - timedelta(days=30) <= item.timestamp < NOW - timedelta(days=7)]
    daily = [item for item in rolled if item.timestamp < NOW - timedelta(days=30)]

    assert len(recent) == 168
    assert len(six_hourly) <= 92
    assert len(daily) <= 10
    assert [item.timestamp for item in rolled] == sorted(item.timestamp for item in rolled)


def test_retention_keeps_latest_value_per_bucket() -> None:
    bucket_start = datetime(2026, 10, 1, 6, 0, tzinfo=UTC)
    snapshots = [
        Snapshot(bucket_start + timedelta(hours=1), Counters(likes=1)),
        Snapshot(bucket_start + timedelta(hours=3), Counters(likes=5)),
        Snapshot(bucket_start + timedelta(hours=5, minutes=59), Counters(likes=9)),
        Snapshot(bucket_start + timedelta(hours=6), Counters(likes=10)),
    ]

    rolled = apply_retention(snapshots, NOW, POLICY)

    assert [item.counters.likes for item in rolled] == [9, 10]


def test_retention_is_idempotent_for_the_same_now() -> None:
    snapshots = _forty_day_series()

    once = apply_retention(snapshots, NOW, POLICY)
    twice = apply_retention(once, NOW, POLICY)

    assert twice == once


def test_daily_points_stay_daily_as_now_advances() -> None:
    snapshots = _forty_day_series()

    first = apply_retention(snapshots, NOW, POLICY)
    later_now = NOW + timedelta(days=3)
    later = apply_retention(first, later_now, POLICY)

    daily_cutoff = later_now - timedelta(days=30)
    keys = [bucket_key(item.timestamp, 24) for item in later if item.timestamp < daily_cutoff]
    assert len(keys) == len(set(keys))
    assert apply_retention(later, later_now, POLICY) == later
    assert len(later) <= len(first)


def test_bucket_keys_are_epoch_anchored_in_utc() -> None:
    assert bucket_key(datetime(1970, 1, 1, 5, 59, tzinfo=UTC), 6) == 0
    assert bucket_key(datetime(1970, 1, 1, 6, 0, tzinfo=UTC), 6) == 6 * 3600
    assert bucket_key(datetime(2026, 10, 1, 23, 0, tzinfo=UTC), 24) == bucket_key(
        datetime(2026, 10, 1, 0, 0, tzinfo=UTC), 24
    )


def test_retention_of_empty_series_is_empty() -> None:
    assert apply_retention([], NOW, POLICY) == []
