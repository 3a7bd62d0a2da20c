from __future__ import annotations

from datetime import UTC, datetime

import pytest

from civstats.models.document import FreshImage, StatsDocument
from civstats.models.snapshot import Counters, DeltaSnapshot, Snapshot, TotalCounters
from civstats.services.history.codec import resolve
from civstats.services.history.integrity import check_document_integrity
from civstats.services.history.merge import SnapshotMergeEngine


def _payload() -> dict:
    return {
        "collectorId": "artist",
        "lastUpdated": "2026-10-18T12:00:00.000Z",
        "totalHistory": [
            {"timestamp": "2026-10-18T11:00:00.000Z", "likes": 4, "hearts": 1, "imageCount": 1},
            {"timestamp": "2026-10-18T12:00:00.000Z", "dl": 1, "dic": 1, "_d": 1},
        ],
        "entities": [
            {
                "id": "101",
                "displayName": "castle at dusk",
                "createdAt": "2026-10-01T08:30:00.000Z",
                "url": "https://civitai.com/images/101",
                "thumbnailRef": "https://image.civitai.com/101.jpeg",
                "history": [
                    {"timestamp": "2026-10-18T11:00:00.000Z", "likes": 4, "hearts": 1},
                    {"timestamp": "2026-10-18T12:00:00.000Z", "_d": 1},
                ],
            }
        ],
    }


def test_document_round_trips_through_json_shape() -> None:
    document = StatsDocument.from_dict(_payload())

    assert document.collector_id == "artist"
    assert document.last_updated == datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
    assert isinstance(document.images[0].history[1], DeltaSnapshot)
    assert StatsDocument.from_dict(document.to_dict()) == document
    assert document.to_dict()["entities"][0]["history"][1] == {"timestamp": "2026-10-18T12:00:00.000Z", "_d": 1}


def test_total_history_decodes_image_count() -> None:
    document = StatsDocument.from_dict(_payload())

    resolved = resolve(document.total_history, TotalCounters)

    assert resolved[-1].counters == TotalCounters(likes=5, hearts=1, image_count=2)


def test_empty_document_serializes_with_null_last_updated() -> None:
    assert StatsDocument.empty("artist").to_dict() == {
        "collectorId": "artist",
        "lastUpdated": None,
        "totalHistory": [],
        "entities": [],
    }


def test_legacy_layout_is_accepted() -> None:
    legacy = {
        "username": "artist",
        "lastUpdated": "2026-09-01T00:00:00.000Z",
        "totalSnapshots": [{"timestamp": "2026-09-01T00:00:00.000Z", "likes": 3, "imageCount": 1}],
        "images": [
            {
                "id": "7",
                "name": "legacy prompt",
                "url": "https://civitai.com/images/7",
                "thumbnailUrl": "https://image.civitai.com/7.jpeg",
                "createdAt": "2026-08-01T00:00:00.000Z",
                "currentStats": {"likes": 3, "hearts": 0, "laughs": 0, "cries": 0, "comments": 2},
            }
        ],
    }

    document = StatsDocument.from_dict(legacy)

    image = document.images[0]
    assert document.collector_id == "artist"
    assert image.display_name == "legacy prompt"
    assert image.thumbnail_ref == "https://image.civitai.com/7.jpeg"
    assert image.history == (Snapshot(datetime(2026, 9, 1, tzinfo=UTC), Counters(likes=3, comments=2)),)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"entities": {"id": "1"}},
        {"entities": [{"displayName": "no id"}]},
        {"totalHistory": [{"likes": 1}]},
        {"totalHistory": [{"timestamp": "not a date", "likes": 1}]},
    ],
)
def test_unreadable_documents_raise_value_error(payload) -> None:
    with pytest.raises(ValueError):
        StatsDocument.from_dict(payload)


def test_duplicate_legacy_images_keep_first_and_pass_integrity_after_merge() -> None:
    legacy = {
        "username": "artist",
        "lastUpdated": "2026-09-01T01:00:00.000Z",
        "totalSnapshots": [
            {"timestamp": "2026-09-01T00:00:00.000Z", "likes": 2, "imageCount": 1},
            {"timestamp": "2026-09-01T01:00:00.000Z", "likes": 3, "imageCount": 1},
        ],
        "images": [
            {"id": "1", "name": "first copy", "currentStats": {"likes": 3}},
            {"id": "1", "name": "second copy", "currentStats": {"likes": 1}},
        ],
    }

    existing = StatsDocument.from_dict(legacy)

    assert [image.display_name for image in existing.images] == ["first copy"]

    fresh = FreshImage(
        id="1",
        counters=Counters(likes=4),
        display_name="first copy",
        url="https://civitai.com/images/1",
        thumbnail_ref="",
    )
    merged = SnapshotMergeEngine().merge([fresh], existing, now=datetime(2026, 9, 1, 2, tzinfo=UTC))

    assert check_document_integrity(existing, merged.document).ok
