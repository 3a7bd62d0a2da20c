"""Merge a run's fresh counters into the stored stats document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from civstats.models.document import FreshImage, StatsDocument, TrackedImage
from civstats.models.snapshot import (
    Counters,
    EncodedSnapshot,
    Snapshot,
    ensure_utc,
    sum_counters,
)
from civstats.services.history.codec import encode, resolve
from civstats.services.history.guard import guard
from civstats.services.history.retention import RetentionPolicy, apply_retention

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HistoryUpdate:
    """Outcome of advancing one encoded history by one observation."""

    history: tuple[EncodedSnapshot, ...]
    counters: Counters
    appended: bool
    regressed_fields: tuple[str, ...] = ()
    points_before: int = 0


@dataclass(slots=True)
class MergeResult:
    document: StatsDocument
    appended: int = 0
    total_appended: bool = False
    new_images: int = 0
    carried_forward: int = 0
    regressed: list[dict[str, object]] = field(default_factory=list)
    points_before: int = 0
    points_after: int = 0


class SnapshotMergeEngine:
    """Decode, guard, append-if-changed, downsample and re-encode every history."""

    def __init__(self, policy: Optional[RetentionPolicy] = None) -> None:
        self._policy = policy or RetentionPolicy()

    def advance_history(
        self,
        history: Sequence[EncodedSnapshot],
        fresh: Counters,
        *,
        now: datetime,
    ) -> HistoryUpdate:
        counters_type = type(fresh)
        resolved = resolve(history, counters_type)
        last = resolved[-1] if resolved else None

        outcome = guard(fresh, last.counters if last else None)
        appended = last is None or outcome.corrected != last.counters
        if appended:
            resolved = [*resolved, Snapshot(timestamp=now, counters=outcome.corrected)]

        retained = apply_retention(resolved, now, self._policy)
        return HistoryUpdate(
            history=tuple(encode(retained)),
            counters=outcome.corrected,
            appended=appended,
            regressed_fields=outcome.regressed_fields,
            points_before=len(history),
        )

    def merge(
        self,
        fresh_images: Iterable[FreshImage],
        existing: StatsDocument,
        *,
        now: datetime,
        collector_id: Optional[str] = None,
    ) -> MergeResult:
        now = ensure_utc(now)
        existing_by_id = existing.image_by_id()
        result = MergeResult(document=existing)

        merged: list[TrackedImage] = []
        latest_counters: list[Counters] = []
        seen: set[str] = set()

        for fresh in fresh_images:
            if fresh.id in seen:
                logger.debug("Ignoring duplicate image in fresh listing", extra={"image_id": fresh.id})
                continue
            seen.add(fresh.id)

            previous = existing_by_id.get(fresh.id)
            history = previous.history if previous else ()
            update = self.advance_history(history, fresh.counters, now=now)

            if update.regressed_fields:
                logger.warning(
                    "Stale counters below recorded history; keeping recorded values",
                    extra={"image_id": fresh.id, "fields": list(update.regressed_fields), "source": fresh.source},
                )
                result.regressed.append({"image_id": fresh.id, "fields": list(update.regressed_fields)})

            if previous is None:
                result.new_images += 1
            if update.appended:
                result.appended += 1
            result.points_before += update.points_before
            result.points_after += len(update.history)

            merged.append(
                TrackedImage(
                    id=fresh.id,
                    display_name=fresh.display_name or (previous.display_name if previous else f"Image {fresh.id}"),
                    url=fresh.url or (previous.url if previous else ""),
                    thumbnail_ref=fresh.thumbnail_ref or (previous.thumbnail_ref if previous else ""),
                    created_at=fresh.created_at or (previous.created_at if previous else None),
                    history=update.history,
                )
            )
            latest_counters.append(update.counters)

        for image in existing.images:
            if image.id in seen:
                continue
            # Images missing from the listing keep their history untouched.
            seen.add(image.id)
            merged.append(image)
            result.carried_forward += 1
            result.points_before += len(image.history)
            result.points_after += len(image.history)
            resolved = resolve(image.history, Counters)
            if resolved:
                latest_counters.append(resolved[-1].counters)

        total_update = self.advance_history(
            existing.total_history,
            sum_counters(latest_counters, image_count=len(merged)),
            now=now,
        )
        if total_update.regressed_fields:
            logger.warning(
                "Aggregate total below recorded history; keeping recorded values",
                extra={"fields": list(total_update.regressed_fields)},
            )
        result.total_appended = total_update.appended

        changed = result.appended > 0 or total_update.appended
        result.document = StatsDocument(
            collector_id=collector_id or existing.collector_id,
            last_updated=now if changed else existing.last_updated,
            total_history=total_update.history,
            images=tuple(merged),
        )
        return result

