"""Market data service: CoinGecko prices and CryptoPanic news."""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from advisor.config import (
    COINGECKO_DEMO_API_KEY,
    COINGECKO_PRO_API_KEY,
    CRYPTOPANIC_TOKEN,
    NEWS_PAGE_PAUSE,
)
from advisor.errors import UpstreamError, UpstreamUnavailable
from advisor.models.content import NewsItem
from advisor.services.fetcher import RetryingFetcher

logger = logging.getLogger(__name__)

COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
CRYPTOPANIC_POSTS_URL = "https://cryptopanic.com/api/developer/v2/posts/"
USER_AGENT = "ai-crypto-advisor/1.0"


class CoinGeckoQuote(BaseModel):
    usd: float | None = None
    usd_24h_change: float | None = None


class CryptoPanicSource(BaseModel):
    title: str | None = None


class CryptoPanicPost(BaseModel):
    id: int | str | None = None
    title: str | None = None
    url: str | None = None
    published_at: str | None = None
    source: CryptoPanicSource | None = None


def price_key(asset_ids: list[str]) -> str:
    """Cache key for a set of assets: sorted, lower-cased, comma-joined."""
    ids = sorted({str(a).strip().lower() for a in asset_ids if str(a).strip()})
    return ",".join(ids)


def parse_prices(payload: Any) -> dict[str, dict[str, float]]:
    if not isinstance(payload, dict):
        return {}
    result = {}
    for asset_id, raw in payload.items():
        try:
            quote = CoinGeckoQuote.model_validate(raw)
        except ValidationError:
            continue
        if quote.usd is None:
            continue
        result[str(asset_id)] = {
            "price": float(quote.usd),
            "change": float(quote.usd_24h_change or 0.0),
        }
    return result


def parse_news(payload: Any) -> list[NewsItem]:
    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(results, list):
        return []
    items = []
    for raw in results:
        try:
            post = CryptoPanicPost.model_validate(raw)
        except ValidationError:
            continue
        if not post.title or not post.url:
            continue
        items.append(
            NewsItem(
                id=str(post.id if post.id is not None else post.url),
                title=post.title,
                url=post.url,
                source=(post.source.title if post.source and post.source.title else "CryptoPanic"),
                published_at=post.published_at,
            )
        )
    return items


class MarketDataService:
    """Fetches prices and news from public crypto APIs."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        cryptopanic_token: str = CRYPTOPANIC_TOKEN,
        coingecko_pro_key: str = COINGECKO_PRO_API_KEY,
        coingecko_demo_key: str = COINGECKO_DEMO_API_KEY,
        page_pause: float = NEWS_PAGE_PAUSE,
    ):
        self._fetcher = fetcher
        self._cryptopanic_token = cryptopanic_token
        self._coingecko_pro_key = coingecko_pro_key
        self._coingecko_demo_key = coingecko_demo_key
        self._page_pause = page_pause

    def _coingecko_headers(self) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if self._coingecko_pro_key:
            headers["x-cg-pro-api-key"] = self._coingecko_pro_key
        elif self._coingecko_demo_key:
            headers["x-cg-demo-api-key"] = self._coingecko_demo_key
        return headers

    async def get_prices(self, asset_ids: list[str]) -> dict[str, dict[str, float]]:
        """Get USD price and 24h change for each asset id.

        Returns dict mapping asset_id -> {price, change}. Raises
        UpstreamUnavailable when the provider fails or returns nothing usable.
        """
        key = price_key(asset_ids)
        if not key:
            return {}
        resp = await self._fetcher.get(
            COINGECKO_PRICE_URL,
            params={"ids": key, "vs_currencies": "usd", "include_24hr_change": "true"},
            headers=self._coingecko_headers(),
        )
        if resp.status_code >= 400:
            raise UpstreamError(f"CoinGecko error: {resp.status_code}", resp.status_code)
        prices = parse_prices(resp.json())
        if not prices:
            raise UpstreamUnavailable("Empty price payload")
        return prices

    def _news_params(
        self, page: int, kind: str, regions: str | None, currencies: str | None, filter: str | None
    ) -> dict[str, str]:
        params = {"kind": kind, "page": str(page)}
        if filter:
            params["filter"] = filter
        if regions:
            params["regions"] = regions
        if currencies:
            params["currencies"] = currencies
        if self._cryptopanic_token:
            params["auth_token"] = self._cryptopanic_token
        return params

    async def get_news(
        self,
        page: int = 1,
        pages: int = 1,
        kind: str = "news",
        regions: str | None = "en",
        currencies: str | None = None,
        filter: str | None = None,
    ) -> list[NewsItem]:
        """Walk ``pages`` pages of posts, stopping at the first empty page or error.

        Returns whatever was collected; an empty list means nothing usable.
        """
        out: list[NewsItem] = []
        for p in range(page, page + pages):
            try:
                resp = await self._fetcher.get(
                    CRYPTOPANIC_POSTS_URL,
                    params=self._news_params(p, kind, regions, currencies, filter),
                    headers={"Accept": "application/json"},
                )
                if resp.status_code >= 400:
                    raise UpstreamError(f"CryptoPanic {resp.status_code}", resp.status_code)
                items = parse_news(resp.json())
            except (UpstreamUnavailable, ValueError) as e:
                logger.warning(f"Failed to fetch news page {p}: {e}")
                break
            out.extend(items)
            if not items:
                break
            if p + 1 < page + pages:
                await asyncio.sleep(self._page_pause)
        return out
