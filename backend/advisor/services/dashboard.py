"""Dashboard aggregation over the caches and upstream providers.

Every section degrades on its own: sticky news never touches the network,
prices go through the rate-limited cache, the AI insight is computed at most
once per user per period, and memes come from a shared feed. Only a failing
preference lookup fails the combined dashboard.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Protocol, TypeVar

import httpx

from advisor.config import (
    AI_CACHE_MAX_USERS,
    AI_INSIGHT_CUTOFF_HOUR,
    APP_TZ,
    CG_RATE_PER_MIN,
    DEFAULT_ASSETS,
    MEME_CACHE_TTL,
    MEME_RECENTS_MAX_USERS,
    NEWS_CACHE_MAX_USERS,
    NEWS_CACHE_TTL,
    NEWS_REFRESH_MIN_INTERVAL,
    PRICE_CACHE_MAX_KEYS,
    PRICE_CACHE_TTL,
)
from advisor.errors import PreferenceLookupFailed, TooSoon
from advisor.models.content import (
    FALLBACK_NEWS,
    FALLBACK_PRICES,
    LAST_RESORT_MEME,
    LOCAL_AI_FALLBACKS,
    STATIC_MEMES,
    MemeItem,
    NewsItem,
    UserPreferences,
)
from advisor.services.ai_insight import AiInsightProvider
from advisor.services.cache import Deferrer, KeyedCache
from advisor.services.clock import Clock, system_clock
from advisor.services.fetcher import RetryingFetcher
from advisor.services.insight_cache import InsightItem, PeriodicInsightCache
from advisor.services.market_data import MarketDataService, price_key
from advisor.services.memes import MemeService, RedditClient
from advisor.services.rate_limiter import TokenBucket
from advisor.services.scoring import news_symbols, personalize_news
from advisor.services.sticky_store import StickyUserStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PreferenceLookup(Protocol):
    async def get(self, user_id) -> UserPreferences | None: ...


@dataclass(frozen=True)
class NewsSnapshot:
    items: tuple[NewsItem, ...]
    updated_at: float  # epoch seconds, 0 if the user never refreshed
    too_soon: bool = False
    retry_after_ms: int = 0


def news_key(currencies: str | None = None) -> str:
    return f"news:kind=news:regions=en:currencies={currencies or ''}"


class DashboardAggregator:
    """Answers the dashboard read paths for one user at a time."""

    def __init__(
        self,
        preferences: PreferenceLookup,
        market_data: MarketDataService,
        price_cache: KeyedCache[dict],
        news_cache: KeyedCache[tuple[NewsItem, ...]],
        user_news: StickyUserStore[tuple[NewsItem, ...]],
        insights: PeriodicInsightCache,
        ai_provider: AiInsightProvider,
        memes: MemeService,
        clock: Clock = system_clock,
        default_assets: list[str] | None = None,
    ):
        self.preferences = preferences
        self.market_data = market_data
        self.price_cache = price_cache
        self.news_cache = news_cache
        self.user_news = user_news
        self.insights = insights
        self.ai_provider = ai_provider
        self.memes = memes
        self._clock = clock
        self.default_assets = list(default_assets or DEFAULT_ASSETS)

    async def load_preferences(self, user_id) -> UserPreferences | None:
        try:
            return await self.preferences.get(user_id)
        except PreferenceLookupFailed:
            raise
        except Exception as e:
            raise PreferenceLookupFailed(str(e)) from e

    async def preferences_or_default(self, user_id) -> UserPreferences:
        try:
            prefs = await self.load_preferences(user_id)
        except PreferenceLookupFailed as e:
            logger.warning(f"Using default preferences for user {user_id}: {e}")
            prefs = None
        return prefs or UserPreferences()

    # -- prices ----------------------------------------------------------

    async def get_prices(self, asset_ids: list[str] | None) -> dict[str, dict[str, float]]:
        ids = [str(a).strip().lower() for a in (asset_ids or []) if str(a).strip()]
        ids = ids or self.default_assets
        return await self.price_cache.get(
            price_key(ids), functools.partial(self.market_data.get_prices, ids)
        )

    # -- news ------------------------------------------------------------

    def get_cached_news(self, user_id) -> NewsSnapshot:
        rec = self.user_news.record(user_id)
        return NewsSnapshot(items=tuple(rec.value), updated_at=rec.updated_at)

    async def _load_news(self, currencies: str | None) -> tuple[NewsItem, ...]:
        return tuple(await self.market_data.get_news(page=1, pages=1, kind="news", regions="en", currencies=currencies))

    async def fetch_personalized_news(self, prefs: UserPreferences) -> list[NewsItem]:
        """Coin-scoped headlines first, the generic feed if those come back empty."""
        items: tuple[NewsItem, ...] = ()
        symbols = news_symbols(prefs.assets)
        if symbols:
            currencies = ",".join(symbols)
            items = await self.news_cache.get(
                news_key(currencies), functools.partial(self._load_news, currencies), fallback=()
            )
        if not items:
            items = await self.news_cache.get(news_key(), functools.partial(self._load_news, None))
        return personalize_news(items, prefs, self._clock.now())

    async def refresh_news(self, user_id) -> NewsSnapshot:
        async def load() -> tuple[NewsItem, ...]:
            prefs = await self.preferences_or_default(user_id)
            return tuple(await self.fetch_personalized_news(prefs))

        try:
            rec = await self.user_news.refresh(user_id, load)
        except TooSoon as e:
            return NewsSnapshot(
                items=tuple(e.record.value),
                updated_at=e.record.updated_at,
                too_soon=True,
                retry_after_ms=e.retry_after_ms,
            )
        except Exception as e:
            logger.warning(f"News refresh for user {user_id} failed: {e}")
            return self.get_cached_news(user_id)
        return NewsSnapshot(items=tuple(rec.value), updated_at=rec.updated_at)

    # -- AI insight ------------------------------------------------------

    async def get_ai_insight(self, user_id, prefs: UserPreferences | None) -> InsightItem:
        return await self.insights.get_or_compute(
            user_id, functools.partial(self.ai_provider.generate, prefs)
        )

    # -- memes -----------------------------------------------------------

    async def get_meme_for_user(self, user_id, prefs: UserPreferences | None) -> MemeItem:
        try:
            return await self.memes.meme_for_user(user_id, prefs)
        except Exception as e:
            logger.warning(f"Personalized meme failed for user {user_id}, falling back: {e}")
        try:
            return await self.memes.random_meme()
        except Exception as e:
            logger.warning(f"Random meme failed: {e}")
            return LAST_RESORT_MEME

    # -- combined --------------------------------------------------------

    async def _guard(self, section: str, aw: Awaitable[T], fallback: T) -> T:
        try:
            return await aw
        except Exception as e:
            logger.warning(f"Dashboard section {section} failed, serving fallback: {e}")
            return fallback

    async def get_dashboard(self, user_id) -> dict[str, Any]:
        """Preferences plus news, prices, AI insight and meme.

        Raises PreferenceLookupFailed when the preference store errors; every
        other failure degrades to that section's fallback.
        """
        prefs = await self.load_preferences(user_id)
        effective = prefs or UserPreferences()
        assets = effective.assets or self.default_assets

        # sticky news: no upstream call here
        news = self.get_cached_news(user_id)

        prices, ai_insight, meme = await asyncio.gather(
            self._guard("prices", self.get_prices(assets), FALLBACK_PRICES),
            self._guard("ai_insight", self.get_ai_insight(user_id, effective), self.insights.fallback_item()),
            self._guard("meme", self.get_meme_for_user(user_id, effective), LAST_RESORT_MEME),
        )
        return {
            "preferences": prefs,
            "sections": {
                "news": news.items,
                "prices": prices,
                "ai_insight": ai_insight,
                "meme": meme,
            },
        }

    # -- scheduled warm-up -------------------------------------------------

    async def warm_prices(self) -> None:
        await self.get_prices(self.default_assets)

    async def warm_meme_feed(self) -> None:
        await self.memes.get_feed()


def build_dashboard(
    client: httpx.AsyncClient,
    preferences: PreferenceLookup,
    deferrer: Deferrer | None = None,
    clock: Clock = system_clock,
) -> DashboardAggregator:
    """Wire the process-wide caches and providers around one HTTP client."""
    fetcher = RetryingFetcher(client)
    limiter = TokenBucket.per_minute(CG_RATE_PER_MIN, clock=clock)
    price_cache = KeyedCache(
        "prices",
        ttl=PRICE_CACHE_TTL,
        fallback=FALLBACK_PRICES,
        limiter=limiter,
        deferrer=deferrer,
        max_entries=PRICE_CACHE_MAX_KEYS,
        clock=clock,
    )
    news_cache = KeyedCache("news", ttl=NEWS_CACHE_TTL, fallback=FALLBACK_NEWS, clock=clock)
    meme_cache = KeyedCache("memes", ttl=MEME_CACHE_TTL, fallback=STATIC_MEMES, clock=clock)
    user_news = StickyUserStore(
        default=FALLBACK_NEWS,
        max_entries=NEWS_CACHE_MAX_USERS,
        min_refresh_interval=NEWS_REFRESH_MIN_INTERVAL,
        clock=clock,
        name="user-news",
    )
    insights = PeriodicInsightCache(
        APP_TZ, AI_INSIGHT_CUTOFF_HOUR, LOCAL_AI_FALLBACKS, AI_CACHE_MAX_USERS, clock=clock
    )
    memes = MemeService(
        RedditClient(fetcher, clock=clock),
        meme_cache,
        MemeService.new_user_recents(MEME_RECENTS_MAX_USERS, clock),
    )
    return DashboardAggregator(
        preferences=preferences,
        market_data=MarketDataService(fetcher),
        price_cache=price_cache,
        news_cache=news_cache,
        user_news=user_news,
        insights=insights,
        ai_provider=AiInsightProvider(fetcher, clock=clock),
        memes=memes,
        clock=clock,
    )
