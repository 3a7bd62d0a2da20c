from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from civstats.models.snapshot import (
    Counters,
    DeltaSnapshot,
    Snapshot,
    TotalCounters,
    snapshot_from_dict,
    snapshot_to_dict,
)
from civstats.services.history.codec import encode, latest, resolve, resolve_one

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


def _at(hours: int) -> datetime:
    return T0 + timedelta(hours=hours)


def _series() -> list[Snapshot]:
    return [
        Snapshot(_at(0), Counters(likes=10, hearts=5)),
        Snapshot(_at(1), Counters(likes=12, hearts=5)),
        Snapshot(_at(2), Counters(likes=12, hearts=5)),
        Snapshot(_at(3), Counters(likes=15, hearts=7, views=300)),
        Snapshot(_at(4), Counters(likes=14, hearts=7, views=310)),
    ]


def test_encode_then_resolve_restores_absolute_series() -> None:
    series = _series()

    encoded = encode(series)

    assert isinstance(encoded[0], Snapshot)
    assert all(isinstance(entry, DeltaSnapshot) for entry in encoded[1:])
    assert resolve(encoded) == series


def test_encoded_delta_carries_only_changed_fields() -> None:
    encoded = encode(_series())

    assert dict(encoded[1].deltas) == {"likes": 2}
    assert dict(encoded[3].deltas) == {"likes": 3, "hearts": 2, "views": 300}
    assert dict(encoded[4].deltas) == {"likes": -1, "views": 10}


def test_unchanged_interval_stays_a_delta_and_never_resets_counters() -> None:
    encoded = encode(_series())

    assert isinstance(encoded[2], DeltaSnapshot)
    assert dict(encoded[2].deltas) == {}
    assert resolve(encoded)[2].counters == Counters(likes=12, hearts=5)


def test_resolve_one_matches_full_resolution_at_every_index() -> None:
    history = [
        DeltaSnapshot(_at(0), {"likes": 3}),
        DeltaSnapshot(_at(1), {}),
        Snapshot(_at(2), Counters(likes=20, comments=1)),
        DeltaSnapshot(_at(3), {"comments": 2}),
        DeltaSnapshot(_at(4), {"likes": 1, "buzz": 50}),
    ]

    resolved = resolve(history)

    for index in range(len(history)):
        assert resolve_one(history, index) == resolved[index]
    assert resolve_one(history, -1) == resolved[-1]
    assert resolved[1].counters == Counters(likes=3)


def test_resolve_one_rejects_out_of_range_index() -> None:
    with pytest.raises(IndexError):
        resolve_one([Snapshot(_at(0), Counters())], 1)


def test_latest_resolves_total_counters_including_image_count() -> None:
    history = encode(
        [
            Snapshot(_at(0), TotalCounters(likes=1, image_count=1)),
            Snapshot(_at(1), TotalCounters(likes=4, image_count=2)),
        ]
    )

    snapshot = latest(history, TotalCounters)

    assert snapshot is not None
    assert snapshot.counters == TotalCounters(likes=4, image_count=2)
    assert latest([], TotalCounters) is None


def test_delta_entries_serialize_with_marker_and_short_aliases() -> None:
    encoded = encode([Snapshot(_at(0), Counters(likes=10, hearts=5)), Snapshot(_at(1), Counters(likes=12, hearts=5))])

    payload = snapshot_to_dict(encoded[1])

    assert payload == {"timestamp": "2026-10-01T13:00:00.000Z", "dl": 2, "_d": 1}
    assert snapshot_from_dict(payload) == encoded[1]


def test_zero_delta_and_zero_absolute_stay_distinguishable_in_json() -> None:
    zero_delta = snapshot_to_dict(DeltaSnapshot(_at(1), {}))
    zero_absolute = snapshot_to_dict(Snapshot(_at(1), Counters()))

    assert isinstance(snapshot_from_dict(zero_delta), DeltaSnapshot)
    assert isinstance(snapshot_from_dict(zero_absolute), Snapshot)

    history = [snapshot_from_dict(snapshot_to_dict(Snapshot(_at(0), Counters(likes=9)))), snapshot_from_dict(zero_delta)]
    assert resolve(history)[-1].counters == Counters(likes=9)


def test_entries_without_marker_are_read_as_deltas_when_aliases_present() -> None:
    entry = snapshot_from_dict({"timestamp": "2026-10-01T13:00:00Z", "dl": 4, "dvi": 12})

    assert isinstance(entry, DeltaSnapshot)
    assert dict(entry.deltas) == {"likes": 4, "views": 12}


def test_total_history_uses_image_count_keys() -> None:
    absolute = snapshot_to_dict(Snapshot(_at(0), TotalCounters(likes=3, image_count=2)))
    delta = snapshot_to_dict(DeltaSnapshot(_at(1), {"image_count": 1}))

    assert absolute["imageCount"] == 2
    assert delta == {"timestamp": "2026-10-01T13:00:00.000Z", "dic": 1, "_d": 1}
    assert snapshot_from_dict(absolute, TotalCounters) == Snapshot(_at(0), TotalCounters(likes=3, image_count=2))


def test_equal_deltas_hash_equal_regardless_of_field_order() -> None:
    first = DeltaSnapshot(_at(1), {"likes": 1, "views": 5})
    second = DeltaSnapshot(_at(1), {"views": 5, "likes": 1, "hearts": 0})

    assert first == second
    assert hash(first) == hash(second)
    assert len({first, second, Snapshot(_at(0), Counters(likes=1))}) == 2
