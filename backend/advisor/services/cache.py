"""In-memory TTL cache with coalesced loads and rate-limited background refresh."""

import asyncio
import functools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Protocol, TypeVar

from advisor.config import DEFERRED_REFRESH_MIN_DELAY
from advisor.errors import RateLimited, UpstreamUnavailable
from advisor.services.clock import Clock, system_clock
from advisor.services.rate_limiter import TokenBucket

logger = logging.getLogger(__name__)

V = TypeVar("V")
Loader = Callable[[], Awaitable[Any]]

_MISSING: Any = object()


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    stored_at: float


class Deferrer(Protocol):
    """Runs ``func(*args)`` once, roughly ``delay_seconds`` from now."""

    def defer(
        self, job_id: str, delay_seconds: float, func: Callable[..., Awaitable[None]], *args: Any
    ) -> None: ...


class KeyedCache(Generic[V]):
    """TTL cache where at most one loader runs per key at any time.

    ``get`` returns a fresh entry without I/O, joins an in-flight load, or
    starts a new load when the limiter grants a token. Without a token it
    answers immediately with the last known value (or the fallback) and
    defers one background refresh for the key. Failed or empty loads never
    replace a stored value.
    """

    def __init__(
        self,
        name: str,
        ttl: float,
        fallback: V,
        limiter: TokenBucket | None = None,
        deferrer: Deferrer | None = None,
        max_entries: int = 1000,
        clock: Clock = system_clock,
        min_refresh_delay: float = DEFERRED_REFRESH_MIN_DELAY,
    ):
        self.name = name
        self.ttl = ttl
        self.fallback = fallback
        self._limiter = limiter
        self._deferrer = deferrer
        self._max_entries = max_entries
        self._clock = clock
        self._min_refresh_delay = min_refresh_delay
        self._entries: dict[str, CacheEntry[V]] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._scheduled: set[str] = set()
        self._lock = threading.Lock()

    def peek(self, key: str) -> CacheEntry[V] | None:
        with self._lock:
            return self._entries.get(key)

    def is_fresh(self, entry: CacheEntry[V]) -> bool:
        return self._clock.time() - entry.stored_at < self.ttl

    def is_loading(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    @property
    def scheduled_keys(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._scheduled)

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: V) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
                del self._entries[oldest]
                logger.debug(f"{self.name}: evicted {oldest}")
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock.time())

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def get(self, key: str, loader: Loader, fallback: Any = _MISSING) -> V:
        if fallback is _MISSING:
            fallback = self.fallback

        entry = self.peek(key)
        if entry is not None and self.is_fresh(entry):
            return entry.value

        try:
            task = self._join_or_start(key, loader, fallback)
        except RateLimited as e:
            self._schedule_refresh(key, loader, e.retry_after_ms)
            logger.info(f"{self.name}: no token for {key}, serving last known value")
            return entry.value if entry is not None else fallback

        # shield: a cancelled caller must not cancel the load other callers share
        return await asyncio.shield(task)

    def _join_or_start(self, key: str, loader: Loader, fallback: Any) -> asyncio.Task:
        with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                return task
            if self._limiter is not None and not self._limiter.try_consume():
                raise RateLimited(self._limiter.ms_until_next_token())
            task = asyncio.ensure_future(self._load(key, loader, fallback))
            self._in_flight[key] = task
            return task

    async def _load(self, key: str, loader: Loader, fallback: Any) -> V:
        try:
            value = await loader()
            if not value:
                raise UpstreamUnavailable(f"empty result for {key}")
            self.set(key, value)
            return value
        except Exception as e:
            logger.warning(f"{self.name}: load failed for {key}, serving stale/fallback: {e}")
            entry = self.peek(key)
            return entry.value if entry is not None else fallback
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def _schedule_refresh(self, key: str, loader: Loader, delay_ms: int) -> None:
        if self._deferrer is None:
            return
        with self._lock:
            if key in self._scheduled:
                return
            self._scheduled.add(key)
        delay = max(self._min_refresh_delay, delay_ms / 1000)
        self._deferrer.defer(
            f"{self.name}:refresh:{key}",
            delay,
            functools.partial(self._background_refresh, key, loader),
        )
        logger.debug(f"{self.name}: background refresh for {key} in {delay:.2f}s")

    async def _background_refresh(self, key: str, loader: Loader) -> None:
        with self._lock:
            self._scheduled.discard(key)
            if key in self._in_flight:
                return
        try:
            task = self._join_or_start(key, loader, self.fallback)
        except RateLimited as e:
            self._schedule_refresh(key, loader, e.retry_after_ms)
            return
        await task
