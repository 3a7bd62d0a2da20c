"""Image collection stage: bulk listing plus authoritative refetch of stale counters."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional, Sequence

from civstats.config.settings import settings
from civstats.crawlers.contracts import FetchState
from civstats.errors import UpstreamUnavailableError
from civstats.log_sanitizer import sanitize_log_extra
from civstats.models.document import FreshImage, StatsDocument
from civstats.models.snapshot import Counters
from civstats.services.history.codec import latest
from civstats.services.history.guard import guard
from civstats.services.image_mapper import map_image_item, map_stats_to_counters

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ImagesCollection:
    """Fresh observations for one run plus refetch bookkeeping."""

    images: list[FreshImage] = field(default_factory=list)
    listed: int = 0
    skipped: int = 0
    refetch_candidates: int = 0
    refetched: int = 0
    refetch_failed: int = 0
    refetch_capped: int = 0


class ImagesStage:
    """Lists a user's images and refetches the ones whose listing counters look stale."""

    def __init__(
        self,
        client: Any,
        *,
        concurrency: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
        max_refetch: Optional[int] = None,
    ) -> None:
        self._client = client
        self._concurrency = max(int(concurrency or getattr(settings, "REFETCH_CONCURRENCY", 5)), 1)
        self._batch_delay_seconds = (
            batch_delay_seconds
            if batch_delay_seconds is not None
            else getattr(settings, "REFETCH_BATCH_DELAY_SECONDS", 1.0)
        )
        self._max_refetch = max_refetch if max_refetch is not None else getattr(settings, "REFETCH_MAX_IMAGES", 100)

    async def collect(self, username: str, existing: StatsDocument, *, now: datetime) -> ImagesCollection:
        listing = await self._client.list_user_images(username)
        if listing.state == FetchState.FAILED:
            raise UpstreamUnavailableError(f"Civitai image listing failed: {listing.error}")

        collection = ImagesCollection()
        for item in listing.data or []:
            collection.listed += 1
            try:
                collection.images.append(map_image_item(item, fallback_created_at=now))
            except ValueError as exc:
                collection.skipped += 1
                logger.warning("Skipping image payload", extra=sanitize_log_extra(error=str(exc)))

        candidates = self._stale_candidates(collection.images, existing)
        collection.refetch_candidates = len(candidates)
        if len(candidates) > self._max_refetch:
            collection.refetch_capped = len(candidates) - self._max_refetch
            candidates = candidates[: self._max_refetch]

        if candidates:
            refreshed = await self._refetch(candidates, collection)
            collection.images = [refreshed.get(image.id, image) for image in collection.images]
        return collection

    @staticmethod
    def _stale_candidates(images: Sequence[FreshImage], existing: StatsDocument) -> list[FreshImage]:
        existing_by_id = existing.image_by_id()
        candidates: list[FreshImage] = []
        for image in images:
            previous = existing_by_id.get(image.id)
            if previous is None:
                continue
            last = latest(previous.history, Counters)
            if last is not None and guard(image.counters, last.counters).regressed:
                candidates.append(image)
        return candidates

    async def _refetch(self, candidates: list[FreshImage], collection: ImagesCollection) -> dict[str, FreshImage]:
        refreshed: dict[str, FreshImage] = {}
        for start in range(0, len(candidates), self._concurrency):
            if start and self._batch_delay_seconds > 0:
                await asyncio.sleep(self._batch_delay_seconds)

            batch = candidates[start : start + self._concurrency]
            responses = await asyncio.gather(*(self._client.get_image(image.id) for image in batch))
            for image, response in zip(batch, responses):
                if response.state != FetchState.OK or not isinstance(response.data, dict):
                    # The listing value stays in place; the merge guard still ratchets it.
                    collection.refetch_failed += 1
                    logger.warning(
                        "Image refetch failed; using listing counters",
                        extra=sanitize_log_extra(image_id=image.id, state=response.state.value, error=response.error),
                    )
                    continue
                refreshed[image.id] = replace(
                    image,
                    counters=map_stats_to_counters(response.data),
                    source="refetch",
                )
                collection.refetched += 1
        return refreshed
