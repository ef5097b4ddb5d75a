"""Background scheduler: deferred cache refreshes and periodic warm-ups."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from advisor.config import MEME_FEED_WARM_INTERVAL, PRICE_WARM_INTERVAL

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


class ApschedulerDeferrer:
    """One-shot jobs on the shared scheduler, keyed so a key is pending at most once."""

    def __init__(self, sched: AsyncIOScheduler | None = None):
        self._scheduler = sched or scheduler

    def defer(
        self, job_id: str, delay_seconds: float, func: Callable[..., Awaitable[None]], *args: Any
    ) -> None:
        run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self._scheduler.add_job(
            _run_logged,
            trigger=DateTrigger(run_date=run_at),
            args=[job_id, func, *args],
            id=job_id,
            replace_existing=True,
            misfire_grace_time=None,
        )


async def _run_logged(job_id: str, func: Callable[..., Awaitable[None]], *args: Any) -> None:
    try:
        await func(*args)
    except Exception as e:
        logger.error(f"Deferred job {job_id} failed: {e}")


deferrer = ApschedulerDeferrer()


async def warm_meme_feed(aggregator) -> None:
    """Keep the shared meme feed loaded so dashboards never wait on Reddit."""
    try:
        await aggregator.warm_meme_feed()
    except Exception as e:
        logger.error(f"Failed to warm meme feed: {e}")


async def warm_default_prices(aggregator) -> None:
    """Refresh prices for the default assets."""
    try:
        await aggregator.warm_prices()
    except Exception as e:
        logger.error(f"Failed to warm default prices: {e}")


def start_scheduler(aggregator) -> None:
    """Start the background scheduler."""
    scheduler.add_job(
        warm_meme_feed,
        trigger=IntervalTrigger(seconds=MEME_FEED_WARM_INTERVAL),
        args=[aggregator],
        id="warm_meme_feed",
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    scheduler.add_job(
        warm_default_prices,
        trigger=IntervalTrigger(seconds=PRICE_WARM_INTERVAL),
        args=[aggregator],
        id="warm_default_prices",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, memes every {MEME_FEED_WARM_INTERVAL}s, prices every {PRICE_WARM_INTERVAL}s"
    )


def stop_scheduler() -> None:
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
