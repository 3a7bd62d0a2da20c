"""Collector orchestrator: one fetch, merge, gate and save run."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any, Callable, Optional

from civstats.config.settings import settings
from civstats.crawlers.civitai.client import CivitaiClient
from civstats.crawlers.civitai.images_stage import ImagesStage
from civstats.crawlers.contracts import FetchState
from civstats.errors import ConfigurationError, DocumentLoadError, DocumentSaveError
from civstats.log_sanitizer import sanitize_log_extra
from civstats.models.document import StatsDocument
from civstats.models.snapshot import format_timestamp
from civstats.services.history.integrity import check_document_integrity
from civstats.services.history.merge import SnapshotMergeEngine
from civstats.storage.gist_store import GistDocumentStore

logger = logging.getLogger(__name__)


class CollectorOrchestrator:
    """Runs a single collection: everything is saved once at the end, or nothing is."""

    def __init__(
        self,
        *,
        username: Optional[str] = None,
        civitai_client_factory: Callable[[], Any] = CivitaiClient,
        store_factory: Callable[[], Any] = GistDocumentStore,
        images_stage_factory: Callable[[Any], Any] = ImagesStage,
        merge_engine: Optional[SnapshotMergeEngine] = None,
        now_provider: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._username = username
        self._civitai_client_factory = civitai_client_factory
        self._store_factory = store_factory
        self._images_stage_factory = images_stage_factory
        self._merge_engine = merge_engine or SnapshotMergeEngine()
        self._now_provider = now_provider

    @property
    def username(self) -> str:
        username = self._username or settings.CIVITAI_USERNAME
        if not username:
            raise ConfigurationError("CIVITAI_USERNAME is not configured")
        return username

    async def run_collection(self) -> dict[str, Any]:
        """Execute one run and return its stats.

        Raises a `CollectorError` subclass on any fatal condition; the stored
        document is untouched in that case.
        """

        username = self.username
        now = self._now_provider()
        run_stats: dict[str, Any] = {
            "collector_id": username,
            "started_at": format_timestamp(now),
            "saved": False,
        }
        logger.info("Collection run started", extra=sanitize_log_extra(collector_id=username))

        async with self._store_factory() as store, self._civitai_client_factory() as client:
            existing = await self._load_existing(store, username)

            stage = self._images_stage_factory(client)
            collection = await stage.collect(username, existing, now=now)
            run_stats["images"] = {
                "listed": collection.listed,
                "skipped": collection.skipped,
                "refetch_candidates": collection.refetch_candidates,
                "refetched": collection.refetched,
                "refetch_failed": collection.refetch_failed,
                "refetch_capped": collection.refetch_capped,
            }

            if not collection.images:
                logger.info("No images found for collector; nothing to save", extra=sanitize_log_extra(collector_id=username))
                run_stats.update(success=True, skipped=True, reason="No images found")
                return run_stats

            merged = self._merge_engine.merge(collection.images, existing, now=now, collector_id=username)
            run_stats["merge"] = {
                "appended": merged.appended,
                "total_appended": merged.total_appended,
                "new_images": merged.new_images,
                "carried_forward": merged.carried_forward,
                "regressed": merged.regressed,
                "points_before": merged.points_before,
                "points_after": merged.points_after,
            }
            if merged.points_before != merged.points_after:
                logger.info(
                    "Retention policy applied",
                    extra=sanitize_log_extra(points_before=merged.points_before, points_after=merged.points_after),
                )

            check = check_document_integrity(existing, merged.document)
            if not check.ok:
                logger.error(
                    "Integrity check failed; stored document left untouched",
                    extra=sanitize_log_extra(reason=check.reason, expected=check.expected, actual=check.actual),
                )
            check.raise_for_status()

            saved = await store.save_document(merged.document)
            if saved.state != FetchState.OK:
                raise DocumentSaveError(f"Failed to save stats document: {saved.error}")

        run_stats.update(
            success=True,
            saved=True,
            tracked_images=len(merged.document.images),
            history_points=merged.document.snapshot_count,
            total_points=len(merged.document.total_history),
            completed_at=format_timestamp(self._now_provider()),
        )
        logger.info("Collection run completed", extra=sanitize_log_extra(**run_stats["merge"]))
        return run_stats

    async def _load_existing(self, store: Any, username: str) -> StatsDocument:
        loaded = await store.load_document()
        if loaded.state == FetchState.EMPTY:
            logger.info("No stored document yet; starting a new one", extra=sanitize_log_extra(collector_id=username))
            return StatsDocument.empty(username)
        if loaded.state != FetchState.OK or loaded.data is None:
            raise DocumentLoadError(f"Failed to load stats document: {loaded.error}")

        document = loaded.data
        if document.collector_id and document.collector_id != username:
            raise DocumentLoadError(
                f"Stored document belongs to {document.collector_id!r}, not {username!r}"
            )
        return document
