"""Persisted stats document: collector identity, aggregate history and tracked images."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from civstats.models.snapshot import (
    Counters,
    EncodedSnapshot,
    Snapshot,
    TotalCounters,
    counters_from_mapping,
    format_timestamp,
    parse_timestamp,
    snapshot_from_dict,
    snapshot_to_dict,
)


@dataclass(frozen=True, slots=True)
class FreshImage:
    """Counters and metadata observed for one image during the current run."""

    id: str
    counters: Counters
    display_name: str
    url: str
    thumbnail_ref: str
    created_at: Optional[datetime] = None
    source: str = "listing"


@dataclass(frozen=True, slots=True)
class TrackedImage:
    """One image and its encoded snapshot history."""

    id: str
    display_name: str
    url: str
    thumbnail_ref: str
    created_at: Optional[datetime] = None
    history: tuple[EncodedSnapshot, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "createdAt": format_timestamp(self.created_at) if self.created_at else None,
            "url": self.url,
            "thumbnailRef": self.thumbnail_ref,
            "history": [snapshot_to_dict(entry) for entry in self.history],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, last_updated: Optional[datetime] = None) -> "TrackedImage":
        if not isinstance(payload, Mapping):
            raise ValueError("Image entry must be an object")

        image_id = payload.get("id")
        if image_id is None or not str(image_id).strip():
            raise ValueError("Image entry missing id")
        image_id = str(image_id).strip()

        raw_history = payload.get("history", payload.get("snapshots"))
        if raw_history is None:
            raw_history = []
        if not isinstance(raw_history, list):
            raise ValueError(f"Image {image_id} history must be a list")
        history = tuple(snapshot_from_dict(entry, Counters) for entry in raw_history)

        # Documents from the first collector version kept only current values.
        legacy_stats = payload.get("currentStats")
        if not history and isinstance(legacy_stats, Mapping) and last_updated is not None:
            history = (Snapshot(timestamp=last_updated, counters=counters_from_mapping(legacy_stats)),)

        raw_created = payload.get("createdAt")
        return cls(
            id=image_id,
            display_name=str(payload.get("displayName") or payload.get("name") or f"Image {image_id}"),
            url=str(payload.get("url") or f"https://civitai.com/images/{image_id}"),
            thumbnail_ref=str(payload.get("thumbnailRef") or payload.get("thumbnailUrl") or ""),
            created_at=parse_timestamp(raw_created) if raw_created else None,
            history=history,
        )


@dataclass(frozen=True, slots=True)
class StatsDocument:
    """Root object replaced as a whole on every save."""

    collector_id: str
    last_updated: Optional[datetime] = None
    total_history: tuple[EncodedSnapshot, ...] = ()
    images: tuple[TrackedImage, ...] = ()

    @classmethod
    def empty(cls, collector_id: str) -> "StatsDocument":
        return cls(collector_id=collector_id)

    @property
    def snapshot_count(self) -> int:
        """Encoded history entries across all tracked images."""
        return sum(len(image.history) for image in self.images)

    def image_by_id(self) -> dict[str, TrackedImage]:
        return {image.id: image for image in self.images}

    def to_dict(self) -> dict[str, Any]:
        return {
            "collectorId": self.collector_id,
            "lastUpdated": format_timestamp(self.last_updated) if self.last_updated else None,
            "totalHistory": [snapshot_to_dict(entry) for entry in self.total_history],
            "entities": [image.to_dict() for image in self.images],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StatsDocument":
        """Decode a stored document, accepting the legacy key layout too.

        Raises `ValueError` for anything that cannot be read faithfully.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("Stats document must be a JSON object")

        raw_updated = payload.get("lastUpdated")
        last_updated = parse_timestamp(raw_updated) if raw_updated else None

        raw_total = payload.get("totalHistory", payload.get("totalSnapshots"))
        if raw_total is None:
            raw_total = []
        if not isinstance(raw_total, list):
            raise ValueError("totalHistory must be a list")

        raw_images = payload.get("entities", payload.get("images"))
        if raw_images is None:
            raw_images = []
        if not isinstance(raw_images, list):
            raise ValueError("entities must be a list")

        # Older collectors could store an image twice; the first entry wins.
        images: dict[str, TrackedImage] = {}
        for entry in raw_images:
            image = TrackedImage.from_dict(entry, last_updated=last_updated)
            images.setdefault(image.id, image)

        return cls(
            collector_id=str(payload.get("collectorId") or payload.get("username") or ""),
            last_updated=last_updated,
            total_history=tuple(snapshot_from_dict(entry, TotalCounters) for entry in raw_total),
            images=tuple(images.values()),
        )
