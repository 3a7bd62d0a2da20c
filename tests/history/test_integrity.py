from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from civstats.errors import IntegrityGateError
from civstats.models.document import StatsDocument, TrackedImage
from civstats.models.snapshot import Counters, Snapshot, TotalCounters
from civstats.services.history.integrity import check_document_integrity

T0 = datetime(2026, 10, 18, 10, 0, tzinfo=UTC)


def _image(image_id: str, points: int) -> TrackedImage:
    history = tuple(Snapshot(T0 + timedelta(hours=index), Counters(likes=index)) for index in range(points))
    return TrackedImage(id=image_id, display_name=image_id, url="", thumbnail_ref="", history=history)


def _totals(points: int) -> tuple[Snapshot, ...]:
    return tuple(Snapshot(T0 + timedelta(hours=index), TotalCounters(likes=index)) for index in range(points))


def test_gate_aborts_when_images_lose_their_history() -> None:
    old = StatsDocument("artist", T0, _totals(2), (_image("1", 3), _image("2", 3), _image("3", 3)))
    new = StatsDocument("artist", T0, _totals(3), (_image("1", 1), _image("2", 0), _image("3", 0)))

    check = check_document_integrity(old, new)

    assert check.ok is False
    assert check.expected == 3
    assert check.actual == 1
    with pytest.raises(IntegrityGateError) as raised:
        check.raise_for_status()
    assert raised.value.expected == 3


def test_gate_passes_healthy_merge() -> None:
    old = StatsDocument("artist", T0, _totals(2), (_image("1", 2),))
    new = StatsDocument("artist", T0, _totals(3), (_image("1", 3), _image("2", 1)))

    check = check_document_integrity(old, new)

    assert check.ok is True
    check.raise_for_status()


def test_gate_is_not_enforced_before_history_exists() -> None:
    old = StatsDocument("artist", T0, _totals(1), (_image("1", 1),))
    new = StatsDocument("artist", T0, _totals(1), (_image("1", 0), _image("2", 0)))

    assert check_document_integrity(old, new).ok is True
    assert check_document_integrity(StatsDocument.empty("artist"), new).ok is True


def test_gate_aborts_when_tracked_images_disappear() -> None:
    old = StatsDocument("artist", T0, _totals(5), (_image("1", 2), _image("2", 2)))
    new = StatsDocument("artist", T0, _totals(5), (_image("1", 2),))

    check = check_document_integrity(old, new)

    assert check.ok is False
    assert "dropped" in (check.reason or "")


def test_gate_aborts_when_aggregate_history_is_emptied() -> None:
    old = StatsDocument("artist", T0, _totals(5), (_image("1", 2),))
    new = StatsDocument("artist", T0, (), (_image("1", 2),))

    assert check_document_integrity(old, new).ok is False
