"""Tests for market data service."""

import httpx
import pytest

from advisor.errors import UpstreamError, UpstreamUnavailable
from advisor.services.fetcher import RetryingFetcher
from advisor.services.market_data import (
    MarketDataService,
    parse_news,
    parse_prices,
    price_key,
)


async def no_sleep(_):
    return None


def make_service(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = RetryingFetcher(client, attempts=1, sleep=no_sleep)
    return MarketDataService(fetcher, page_pause=0, **kwargs)


def test_price_key_is_order_and_case_insensitive():
    assert price_key(["Ethereum", "bitcoin", "bitcoin"]) == "bitcoin,ethereum"
    assert price_key([" ", ""]) == ""


def test_parse_prices():
    payload = {
        "bitcoin": {"usd": 65000, "usd_24h_change": 1.5},
        "ethereum": {"usd": 3100.5},
        "broken": {"eur": 1},
    }
    assert parse_prices(payload) == {
        "bitcoin": {"price": 65000.0, "change": 1.5},
        "ethereum": {"price": 3100.5, "change": 0.0},
    }
    assert parse_prices([]) == {}


def test_parse_news_skips_incomplete_posts():
    payload = {
        "results": [
            {"id": 1, "title": "BTC up", "url": "https://n.test/1", "published_at": "2024-05-01T10:00:00Z",
             "source": {"title": "CoinDesk"}},
            {"id": 2, "title": "", "url": "https://n.test/2"},
            {"id": 3, "title": "No source", "url": "https://n.test/3"},
        ]
    }
    items = parse_news(payload)
    assert [n.id for n in items] == ["1", "3"]
    assert items[0].source == "CoinDesk"
    assert items[1].source == "CryptoPanic"
    assert parse_news({"detail": "nope"}) == []


class TestGetPrices:
    @pytest.mark.asyncio
    async def test_requests_sorted_ids(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"bitcoin": {"usd": 1, "usd_24h_change": 2}})

        service = make_service(handler, coingecko_demo_key="demo-key")
        result = await service.get_prices(["ethereum", "bitcoin"])

        assert result == {"bitcoin": {"price": 1.0, "change": 2.0}}
        assert seen[0].url.params["ids"] == "bitcoin,ethereum"
        assert seen[0].url.params["vs_currencies"] == "usd"
        assert seen[0].headers["x-cg-demo-api-key"] == "demo-key"

    @pytest.mark.asyncio
    async def test_pro_key_wins_over_demo(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"bitcoin": {"usd": 1}})

        service = make_service(handler, coingecko_pro_key="pro", coingecko_demo_key="demo")
        await service.get_prices(["bitcoin"])

        assert seen[0].headers["x-cg-pro-api-key"] == "pro"
        assert "x-cg-demo-api-key" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        service = make_service(lambda request: httpx.Response(401))
        with pytest.raises(UpstreamError):
            await service.get_prices(["bitcoin"])

    @pytest.mark.asyncio
    async def test_empty_payload_raises(self):
        service = make_service(lambda request: httpx.Response(200, json={}))
        with pytest.raises(UpstreamUnavailable):
            await service.get_prices(["bitcoin"])


class TestGetNews:
    @pytest.mark.asyncio
    async def test_walks_pages_until_empty(self):
        pages = {
            "1": [{"id": 1, "title": "a", "url": "https://n.test/1"}],
            "2": [{"id": 2, "title": "b", "url": "https://n.test/2"}],
            "3": [],
        }
        seen = []

        def handler(request):
            page = request.url.params["page"]
            seen.append(page)
            return httpx.Response(200, json={"results": pages[page]})

        service = make_service(handler, cryptopanic_token="tok")
        items = await service.get_news(page=1, pages=5, currencies="btc,eth")

        assert [n.id for n in items] == ["1", "2"]
        assert seen == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_sends_filters_and_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"results": []})

        service = make_service(handler, cryptopanic_token="tok")
        await service.get_news(currencies="btc", filter="rising")

        params = seen[0].url.params
        assert params["auth_token"] == "tok"
        assert params["currencies"] == "btc"
        assert params["filter"] == "rising"
        assert params["regions"] == "en"
        assert params["kind"] == "news"

    @pytest.mark.asyncio
    async def test_error_returns_collected_items(self):
        def handler(request):
            if request.url.params["page"] == "1":
                return httpx.Response(200, json={"results": [{"id": 1, "title": "a", "url": "https://n.test/1"}]})
            return httpx.Response(500)

        service = make_service(handler)
        items = await service.get_news(page=1, pages=3)

        assert [n.id for n in items] == ["1"]
