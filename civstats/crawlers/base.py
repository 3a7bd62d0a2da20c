"""Base async HTTP client with retry, backoff and typed fetch results"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from civstats.config.settings import settings
from civstats.crawlers.contracts import FetchResult, FetchState
from civstats.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)


class _RetryableResponseError(Exception):
    """Retryable rate-limit or server error signal for tenacity."""

    def __init__(self, message: str, status_code: int, retry_after_seconds: float = 0.0) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds


def _setting_or(value: Any, name: str, default: Any) -> Any:
    return value if value is not None else getattr(settings, name, default)


class BaseApiClient:
    """
    Shared plumbing for the Civitai and Gist clients

    Subclasses set BASE_URL/SERVICE_NAME and extend the default headers.
    Every request returns a FetchResult instead of raising.
    """

    BASE_URL = ""
    SERVICE_NAME = "API"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        transport: Optional[Any] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._base_url = base_url or self.BASE_URL
        self._timeout_seconds = _setting_or(timeout_seconds, "HTTP_TIMEOUT_SECONDS", 30.0)
        self._max_retries = max(int(_setting_or(max_retries, "HTTP_MAX_RETRIES", 3)), 1)
        self._backoff_base_seconds = _setting_or(backoff_base_seconds, "HTTP_BACKOFF_BASE_SECONDS", 1.0)
        self._backoff_max_seconds = _setting_or(backoff_max_seconds, "HTTP_BACKOFF_MAX_SECONDS", 16.0)
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": settings.USER_AGENT,
        }

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers(),
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> FetchResult[httpx.Response]:
        client = await self._ensure_client()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=self._retry_wait(),
                retry=retry_if_exception_type((_RetryableResponseError, httpx.TransportError)),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, url, params=params, json=json)

                    if response.status_code == 429 or response.status_code >= 500:
                        wait_seconds = self._retry_after_seconds(response.headers)
                        self.logger.warning(
                            f"{self.SERVICE_NAME} request throttled or unavailable",
                            extra=sanitize_log_extra(
                                url=url,
                                params=params,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                                attempt=attempt.retry_state.attempt_number,
                            ),
                        )
                        raise _RetryableResponseError(
                            f"{self.SERVICE_NAME} responded {response.status_code}",
                            response.status_code,
                            wait_seconds,
                        )

                    response.raise_for_status()
                    return FetchResult(state=FetchState.OK, data=response, status_code=response.status_code)
        except _RetryableResponseError as exc:
            self.logger.warning(
                f"{self.SERVICE_NAME} request failed after retries",
                extra=sanitize_log_extra(url=url, params=params, error=str(exc), status_code=exc.status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=exc.status_code)
        except httpx.HTTPError as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            self.logger.warning(
                f"{self.SERVICE_NAME} request failed",
                extra=sanitize_log_extra(url=url, params=params, error=str(exc), status_code=status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=status_code)

        return FetchResult(state=FetchState.FAILED, error=f"Unknown {self.SERVICE_NAME} request failure")

    def _retry_wait(self):
        """Exponential backoff, stretched to any `Retry-After` the server asked for."""
        backoff = wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds)

        def wait(retry_state: RetryCallState) -> float:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            return max(getattr(exc, "retry_after_seconds", 0.0), backoff(retry_state))

        return wait

    @staticmethod
    def _retry_after_seconds(headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is None:
            return 0.0
        try:
            return max(float(retry_after), 0.0)
        except ValueError:
            return 0.0

    @staticmethod
    def _decode_json(result: FetchResult[httpx.Response]) -> FetchResult[Any]:
        if result.state != FetchState.OK or result.data is None:
            return FetchResult(state=result.state, status_code=result.status_code, error=result.error)
        try:
            payload = result.data.json()
        except ValueError as exc:
            return FetchResult(
                state=FetchState.FAILED,
                status_code=result.status_code,
                error=f"Invalid JSON response: {exc}",
            )
        return FetchResult(state=FetchState.OK, data=payload, status_code=result.status_code)
