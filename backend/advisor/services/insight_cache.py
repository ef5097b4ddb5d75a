"""Per-user insight cached for one "day" that starts at a cutoff hour.

A user gets one insight per period. The period key is the calendar date in
the configured time zone, except that hours before the cutoff still belong to
the previous day, so an insight fetched at 23:00 survives until the cutoff
instead of flipping at midnight.
"""

import asyncio
import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Sequence
from zoneinfo import ZoneInfo

from advisor.services.clock import Clock, system_clock
from advisor.services.sticky_store import StickyUserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsightItem:
    id: str
    text: str


@dataclass(frozen=True)
class AiInsightRecord:
    period_key: str
    item: InsightItem
    ts: float  # epoch seconds when stored


def period_key(now: datetime, tz: ZoneInfo, cutoff_hour: int) -> str:
    """``YYYY-MM-DD`` of the period containing ``now`` (an aware datetime)."""
    local = now.astimezone(tz)
    day = local.date()
    if local.hour < cutoff_hour:
        day -= timedelta(days=1)
    return day.isoformat()


class PeriodicInsightCache:
    """Caches one computed item per user per period, coalescing concurrent computes."""

    def __init__(
        self,
        tz: str,
        cutoff_hour: int,
        fallback_texts: Sequence[str],
        max_entries: int,
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ):
        if not 0 <= cutoff_hour <= 23:
            raise ValueError(f"cutoff_hour must be 0-23, got {cutoff_hour}")
        if not fallback_texts:
            raise ValueError("fallback_texts must not be empty")
        self.tz = ZoneInfo(tz)
        self.cutoff_hour = cutoff_hour
        self._fallback_texts = list(fallback_texts)
        self._clock = clock
        self._rng = rng or random.Random()
        self._records: StickyUserStore[AiInsightRecord | None] = StickyUserStore(
            default=None, max_entries=max_entries, clock=clock, name="ai-insight"
        )
        self._in_flight: dict[tuple[str, str], asyncio.Task] = {}
        self._lock = threading.Lock()

    def current_period_key(self) -> str:
        return period_key(self._clock.now(), self.tz, self.cutoff_hour)

    def fallback_item(self) -> InsightItem:
        return InsightItem(id="ai-static", text=self._rng.choice(self._fallback_texts))

    def cached(self, user_id) -> AiInsightRecord | None:
        return self._records.read(user_id)

    def __len__(self) -> int:
        return len(self._records)

    async def get_or_compute(self, user_id, compute: Callable[[], Awaitable[InsightItem]]) -> InsightItem:
        key = self.current_period_key()
        uid = str(user_id)

        existing = self._records.read(uid)
        if existing is not None and existing.period_key == key:
            return existing.item

        # a request after the cutoff never joins the previous period's compute
        flight = (uid, key)
        with self._lock:
            task = self._in_flight.get(flight)
            if task is None:
                task = asyncio.ensure_future(self._compute(uid, key, compute))
                self._in_flight[flight] = task
        return await asyncio.shield(task)

    def _store(self, uid: str, key: str, item: InsightItem) -> None:
        last = self._records.read(uid)
        if last is not None and last.period_key > key:
            logger.debug(f"Dropping insight for user {uid} period {key}, {last.period_key} already stored")
            return
        self._records.write(uid, AiInsightRecord(period_key=key, item=item, ts=self._clock.time()))

    async def _compute(self, uid: str, key: str, compute: Callable[[], Awaitable[InsightItem]]) -> InsightItem:
        try:
            item = await compute()
            if item is None or not item.text:
                raise ValueError("empty insight")
            self._store(uid, key, item)
            return item
        except Exception as e:
            logger.warning(f"AI insight for user {uid} failed, using fallback: {e}")
            last = self._records.read(uid)
            if last is not None and last.period_key == key:
                return last.item
            item = self.fallback_item()
            self._store(uid, key, item)
            return item
        finally:
            with self._lock:
                self._in_flight.pop((uid, key), None)
