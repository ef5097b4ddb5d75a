"""Per-user sticky values that change only on explicit refresh."""

import asyncio
import logging
import math
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from advisor.errors import TooSoon
from advisor.services.clock import Clock, system_clock

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class StickyRecord(Generic[V]):
    value: V
    updated_at: float  # epoch seconds, 0 when never written
    last_refresh_at: float


class StickyUserStore(Generic[V]):
    """Bounded map of user id -> value, evicting the least recently written.

    Reads never touch the network and do not count as use for eviction.
    ``refresh`` is throttled per user: within ``min_refresh_interval`` of the
    last refresh it raises ``TooSoon`` carrying the current record instead of
    calling the loader. Concurrent refreshes for one user share one load.
    """

    def __init__(
        self,
        default: V,
        max_entries: int,
        min_refresh_interval: float = 0.0,
        clock: Clock = system_clock,
        name: str = "sticky",
    ):
        self.default = default
        self.max_entries = max_entries
        self.min_refresh_interval = min_refresh_interval
        self.name = name
        self._clock = clock
        self._records: dict[str, StickyRecord[V]] = {}
        self._refreshing: dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, user_id: object) -> bool:
        return str(user_id) in self._records

    def get(self, user_id) -> StickyRecord[V] | None:
        with self._lock:
            return self._records.get(str(user_id))

    def record(self, user_id) -> StickyRecord[V]:
        """Stored record, or the default value stamped with zero timestamps."""
        found = self.get(user_id)
        if found is None:
            return StickyRecord(value=self.default, updated_at=0, last_refresh_at=0)
        return found

    def read(self, user_id) -> V:
        return self.record(user_id).value

    def write(self, user_id, value: V) -> StickyRecord[V]:
        # an empty value never hides a non-empty default
        if not value and self.default:
            value = self.default
        key = str(user_id)
        now = self._clock.time()
        rec = StickyRecord(value=value, updated_at=now, last_refresh_at=now)
        with self._lock:
            if key not in self._records and len(self._records) >= self.max_entries:
                oldest = min(self._records, key=lambda k: self._records[k].updated_at)
                del self._records[oldest]
                logger.debug(f"{self.name}: evicted user {oldest}")
            self._records[key] = rec
        return rec

    async def refresh(self, user_id, loader: Callable[[], Awaitable[V]]) -> StickyRecord[V]:
        key = str(user_id)
        with self._lock:
            task = self._refreshing.get(key)
            if task is None:
                current = self._records.get(key)
                if current is not None:
                    elapsed = self._clock.time() - current.last_refresh_at
                    if elapsed < self.min_refresh_interval:
                        wait_ms = math.ceil((self.min_refresh_interval - elapsed) * 1000)
                        raise TooSoon(max(1, wait_ms), current)
                task = asyncio.ensure_future(self._run_refresh(key, loader))
                self._refreshing[key] = task
        return await asyncio.shield(task)

    async def _run_refresh(self, key: str, loader: Callable[[], Awaitable[V]]) -> StickyRecord[V]:
        try:
            value = await loader()
            return self.write(key, value)
        finally:
            with self._lock:
                self._refreshing.pop(key, None)
