"""Async Civitai API client for image listings and per-image refetches."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from civstats.config.settings import settings
from civstats.crawlers.base import BaseApiClient
from civstats.crawlers.contracts import FetchResult, FetchState, ImageContract, ImageListContract
from civstats.log_sanitizer import sanitize_log_extra


class CivitaiClient(BaseApiClient):
    """Typed Civitai client with cursor pagination and rate-limit resilience."""

    BASE_URL = "https://civitai.com/api/v1"
    SERVICE_NAME = "Civitai API"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        per_page: Optional[int] = None,
        page_delay_seconds: Optional[float] = None,
        max_pages: Optional[int] = None,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url=base_url or getattr(settings, "CIVITAI_API_BASE", self.BASE_URL), **kwargs)
        self._api_key = api_key or settings.CIVITAI_API_KEY
        self._per_page = per_page or getattr(settings, "CIVITAI_IMAGES_PER_PAGE", 200)
        self._page_delay_seconds = (
            page_delay_seconds
            if page_delay_seconds is not None
            else getattr(settings, "CIVITAI_PAGE_DELAY_SECONDS", 0.5)
        )
        self._max_pages = max_pages or getattr(settings, "CIVITAI_MAX_PAGES", 500)

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def list_user_images(self, username: str) -> ImageListContract:
        """Fetch every image posted by `username`, following `nextPage` cursors.

        Any failed page fails the whole listing: a partial listing would look
        like images disappearing.
        """

        images: list[dict[str, Any]] = []
        next_url: Optional[str] = "/images"
        params: Optional[dict[str, Any]] = {"username": username, "limit": self._per_page, "sort": "Newest"}
        pages = 0

        while next_url:
            if pages >= self._max_pages:
                self.logger.warning(
                    "Civitai listing stopped at page cap",
                    extra=sanitize_log_extra(username=username, pages=pages, images=len(images)),
                )
                break

            response = self._decode_json(await self._request("GET", next_url, params=params))
            pages += 1
            if response.state != FetchState.OK:
                return FetchResult(
                    state=FetchState.FAILED,
                    status_code=response.status_code,
                    error=f"Listing page {pages} failed: {response.error}",
                )

            payload = response.data if isinstance(response.data, dict) else {}
            items = payload.get("items") if isinstance(payload.get("items"), list) else []
            images.extend(item for item in items if isinstance(item, dict))
            self.logger.info(
                "Fetched Civitai listing page",
                extra=sanitize_log_extra(page=pages, page_items=len(items), images=len(images)),
            )

            metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
            raw_next = metadata.get("nextPage")
            next_url = raw_next if isinstance(raw_next, str) and raw_next.strip() else None
            # The cursor URL already carries the query string.
            params = None
            if next_url and self._page_delay_seconds > 0:
                await asyncio.sleep(self._page_delay_seconds)

        if not images:
            return FetchResult(state=FetchState.EMPTY, data=[])
        return FetchResult(state=FetchState.OK, data=images)

    async def get_image(self, image_id: str) -> ImageContract:
        """Authoritative single-image fetch used to correct stale listing counters."""

        response = self._decode_json(await self._request("GET", "/images", params={"imageId": image_id, "limit": 1}))
        if response.state != FetchState.OK:
            return FetchResult(state=response.state, status_code=response.status_code, error=response.error)

        payload = response.data if isinstance(response.data, dict) else {}
        items = payload.get("items") if isinstance(payload.get("items"), list) else []
        for item in items:
            if isinstance(item, dict) and str(item.get("id")) == str(image_id):
                return FetchResult(state=FetchState.OK, data=item, status_code=response.status_code)

        return FetchResult(state=FetchState.EMPTY, status_code=response.status_code)
