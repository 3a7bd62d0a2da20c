"""Whole-document persistence of the stats JSON inside a GitHub Gist."""

from __future__ import annotations

import json
from typing import Any, Optional

from civstats.config.settings import settings
from civstats.crawlers.base import BaseApiClient
from civstats.crawlers.contracts import FetchResult, FetchState
from civstats.errors import ConfigurationError
from civstats.log_sanitizer import sanitize_log_extra
from civstats.models.document import StatsDocument

# File contents that mean "no document has been written yet".
_EMPTY_CONTENTS = ("", "{}")


class GistDocumentStore(BaseApiClient):
    """Loads and replaces a single JSON file in a Gist."""

    BASE_URL = "https://api.github.com"
    SERVICE_NAME = "GitHub Gist API"
    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"

    def __init__(
        self,
        *,
        gist_id: Optional[str] = None,
        token: Optional[str] = None,
        filename: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url=base_url or getattr(settings, "GIST_API_BASE", self.BASE_URL), **kwargs)
        self._gist_id = gist_id or settings.GIST_ID
        self._token = token or settings.GIST_TOKEN
        self._filename = filename or getattr(settings, "GIST_FILENAME", "stats.json")
        if not self._gist_id:
            raise ConfigurationError("GIST_ID is not configured")

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["Accept"] = self.ACCEPT_JSON
        headers["X-GitHub-Api-Version"] = self.API_VERSION
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def load_document(self) -> FetchResult[StatsDocument]:
        """Read the stored document.

        EMPTY only when the gist file is absent, blank or `{}`. Transport errors
        and unreadable content are FAILED so a caller never mistakes damage for
        a fresh start.
        """

        response = self._decode_json(await self._request("GET", f"/gists/{self._gist_id}"))
        if response.state != FetchState.OK:
            return FetchResult(state=FetchState.FAILED, status_code=response.status_code, error=response.error)

        gist = response.data if isinstance(response.data, dict) else {}
        files = gist.get("files") if isinstance(gist.get("files"), dict) else {}
        entry = files.get(self._filename)
        if entry is None:
            return FetchResult(state=FetchState.EMPTY, status_code=response.status_code)
        if not isinstance(entry, dict):
            return FetchResult(state=FetchState.FAILED, error=f"Unexpected gist file entry for {self._filename}")

        content = entry.get("content")
        if entry.get("truncated") and isinstance(entry.get("raw_url"), str):
            # The gist API inlines at most ~1MB per file; the rest needs the raw URL.
            raw = await self._request("GET", entry["raw_url"])
            if raw.state != FetchState.OK or raw.data is None:
                return FetchResult(state=FetchState.FAILED, status_code=raw.status_code, error=raw.error)
            content = raw.data.text

        if content is None or (isinstance(content, str) and content.strip() in _EMPTY_CONTENTS):
            return FetchResult(state=FetchState.EMPTY, status_code=response.status_code)
        if not isinstance(content, str):
            return FetchResult(state=FetchState.FAILED, error="Gist file content is not text")

        try:
            document = StatsDocument.from_dict(json.loads(content))
        except (ValueError, TypeError, KeyError, OverflowError) as exc:
            self.logger.error(
                "Stored stats document is corrupt",
                extra=sanitize_log_extra(gist_file=self._filename, error=str(exc)),
            )
            return FetchResult(state=FetchState.FAILED, error=f"Corrupt stats document: {exc}")

        return FetchResult(state=FetchState.OK, data=document, status_code=response.status_code)

    async def save_document(self, document: StatsDocument) -> FetchResult[None]:
        """Replace the whole gist file with `document`."""

        content = json.dumps(document.to_dict(), indent=2)
        response = await self._request(
            "PATCH",
            f"/gists/{self._gist_id}",
            json={"files": {self._filename: {"content": content}}},
        )
        if response.state != FetchState.OK:
            return FetchResult(state=FetchState.FAILED, status_code=response.status_code, error=response.error)

        self.logger.info(
            "Stats document saved",
            extra=sanitize_log_extra(gist_file=self._filename, bytes_written=len(content)),
        )
        return FetchResult(state=FetchState.OK, status_code=response.status_code)
