"""Outbound HTTP with bounded retry and backoff."""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

import httpx

from advisor.config import (
    FETCH_BACKOFF_BASE,
    FETCH_BACKOFF_CAP,
    FETCH_BACKOFF_JITTER,
    FETCH_MAX_ATTEMPTS,
    FETCH_RETRY_AFTER_CAP,
    FETCH_RETRY_AFTER_MIN,
)
from advisor.errors import UpstreamError

logger = logging.getLogger(__name__)


def is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a numeric ``Retry-After`` header, None if absent or a date."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class RetryingFetcher:
    """Performs one outbound call, retrying on HTTP 429/5xx and transport errors.

    Any other response (2xx, 3xx, 4xx other than 429) is returned as-is on the
    first attempt. Backoff honours a numeric ``Retry-After`` (floored at
    ``retry_after_min``), otherwise ``base * 2**attempt`` capped plus jitter.
    No sleep follows the final attempt.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        attempts: int = FETCH_MAX_ATTEMPTS,
        backoff_base: float = FETCH_BACKOFF_BASE,
        backoff_cap: float = FETCH_BACKOFF_CAP,
        jitter: float = FETCH_BACKOFF_JITTER,
        retry_after_min: float = FETCH_RETRY_AFTER_MIN,
        retry_after_cap: float = FETCH_RETRY_AFTER_CAP,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self.attempts = max(1, attempts)
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._jitter = jitter
        self._retry_after_min = retry_after_min
        self._retry_after_cap = retry_after_cap
        self._sleep = sleep

    def backoff_delay(self, attempt: int, retry_after: float | None = None) -> float:
        if retry_after is not None:
            return min(max(self._retry_after_min, retry_after), self._retry_after_cap)
        delay = min(self._backoff_base * 2**attempt, self._backoff_cap)
        return delay + random.uniform(0, self._jitter)

    async def fetch(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        last_status: int | None = None
        last_error = "no attempt made"

        for attempt in range(self.attempts):
            retry_after = None
            try:
                resp = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
                last_status = None
            else:
                if not is_retryable(resp.status_code):
                    return resp
                last_status = resp.status_code
                last_error = f"HTTP {resp.status_code}"
                retry_after = parse_retry_after(resp.headers.get("retry-after"))

            if attempt + 1 < self.attempts:
                delay = self.backoff_delay(attempt, retry_after)
                logger.debug(
                    f"{method} {url} failed ({last_error}), retry {attempt + 1} in {delay:.2f}s"
                )
                await self._sleep(delay)

        raise UpstreamError(
            f"{method} {url} failed after {self.attempts} attempts: {last_error}",
            status_code=last_status,
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.fetch("POST", url, **kwargs)
