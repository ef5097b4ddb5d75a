"""Tests for the HTTP API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from advisor.api.deps import get_aggregator
from advisor.errors import PreferenceLookupFailed
from advisor.main import app
from advisor.models.content import FALLBACK_NEWS, LAST_RESORT_MEME, MemeItem, UserPreferences
from advisor.models.database import get_db, init_db, make_engine, make_session_factory
from advisor.services.dashboard import NewsSnapshot
from advisor.services.insight_cache import InsightItem

USER = {"X-User-Id": "user-1"}
MEME = MemeItem(id="m1", title="gm", img="https://i.test/m1.png", source="reddit", permalink=None)
PRICES = {"bitcoin": {"price": 65000.0, "change": 1.5}}


@pytest.fixture
def aggregator():
    agg = MagicMock()
    agg.get_dashboard = AsyncMock(
        return_value={
            "preferences": UserPreferences(assets=["bitcoin"], investor_type="trader", content_types=["news"]),
            "sections": {
                "news": FALLBACK_NEWS,
                "prices": PRICES,
                "ai_insight": InsightItem(id="ai-1", text="Watch funding."),
                "meme": MEME,
            },
        }
    )
    agg.get_cached_news = MagicMock(return_value=NewsSnapshot(items=FALLBACK_NEWS, updated_at=0))
    agg.refresh_news = AsyncMock(return_value=NewsSnapshot(items=FALLBACK_NEWS[:1], updated_at=1700000000.5))
    agg.preferences_or_default = AsyncMock(return_value=UserPreferences(assets=["solana"]))
    agg.get_prices = AsyncMock(return_value=PRICES)
    agg.get_meme_for_user = AsyncMock(return_value=MEME)
    app.dependency_overrides[get_aggregator] = lambda: agg
    yield agg
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def db_session():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    session_factory = make_session_factory(engine)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()
    await engine.dispose()


def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health():
    async with client() as c:
        resp = await c.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_missing_user_header_is_401(aggregator):
    async with client() as c:
        resp = await c.get("/api/dashboard")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_dashboard(aggregator):
    async with client() as c:
        resp = await c.get("/api/dashboard", headers=USER)

    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"
    data = resp.json()
    assert data["preferences"]["assets"] == ["bitcoin"]
    assert [n["id"] for n in data["sections"]["news"]] == [n.id for n in FALLBACK_NEWS]
    assert data["sections"]["prices"]["bitcoin"] == {"price": 65000.0, "change": 1.5}
    assert data["sections"]["ai_insight"] == {"id": "ai-1", "text": "Watch funding."}
    assert data["sections"]["meme"]["id"] == "m1"
    aggregator.get_dashboard.assert_awaited_once_with("user-1")


@pytest.mark.asyncio
async def test_dashboard_preference_failure_is_500(aggregator):
    aggregator.get_dashboard = AsyncMock(side_effect=PreferenceLookupFailed("db down"))
    async with client() as c:
        resp = await c.get("/api/dashboard", headers=USER)

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to load dashboard"}


@pytest.mark.asyncio
async def test_prices_uses_query_ids(aggregator):
    async with client() as c:
        resp = await c.get("/api/dashboard/prices?ids=bitcoin,ethereum", headers=USER)

    assert resp.status_code == 200
    assert resp.json()["prices"]["bitcoin"]["price"] == 65000.0
    aggregator.get_prices.assert_awaited_once_with(["bitcoin", "ethereum"])


@pytest.mark.asyncio
async def test_prices_defaults_to_user_assets(aggregator):
    async with client() as c:
        await c.get("/api/dashboard/prices", headers=USER)

    aggregator.get_prices.assert_awaited_once_with(["solana"])


@pytest.mark.asyncio
async def test_cached_news(aggregator):
    async with client() as c:
        resp = await c.get("/api/dashboard/news", headers=USER)

    data = resp.json()
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"
    assert data["updated_at"] == 0
    assert len(data["items"]) == len(FALLBACK_NEWS)
    aggregator.refresh_news.assert_not_awaited()


@pytest.mark.asyncio
async def test_refresh_news_post_and_get(aggregator):
    async with client() as c:
        posted = await c.post("/api/dashboard/news/refresh", headers=USER)
        got = await c.get("/api/dashboard/news/refresh", headers=USER)

    assert posted.status_code == 200
    assert got.status_code == 200
    assert posted.json()["updated_at"] == 1700000000500
    assert posted.json()["too_soon"] is False
    assert aggregator.refresh_news.await_count == 2


@pytest.mark.asyncio
async def test_refresh_news_too_soon_is_429(aggregator):
    aggregator.refresh_news = AsyncMock(
        return_value=NewsSnapshot(items=FALLBACK_NEWS, updated_at=1700000000.0, too_soon=True, retry_after_ms=12500)
    )
    async with client() as c:
        resp = await c.post("/api/dashboard/news/refresh", headers=USER)

    assert resp.status_code == 429
    assert resp.headers["retry-after"] == "13"
    assert resp.headers["cache-control"] == "no-store"
    data = resp.json()
    assert data["too_soon"] is True
    assert data["retry_after_ms"] == 12500
    assert len(data["items"]) == len(FALLBACK_NEWS)


@pytest.mark.asyncio
async def test_meme(aggregator):
    async with client() as c:
        resp = await c.get("/api/dashboard/meme", headers=USER)

    assert resp.status_code == 200
    assert resp.json()["id"] == "m1"


@pytest.mark.asyncio
async def test_meme_falls_back_on_error(aggregator):
    aggregator.get_meme_for_user = AsyncMock(side_effect=RuntimeError("boom"))
    async with client() as c:
        resp = await c.get("/api/dashboard/meme", headers=USER)

    assert resp.status_code == 200
    assert resp.json()["id"] == LAST_RESORT_MEME.id


@pytest.mark.asyncio
async def test_preferences_roundtrip(db_session):
    async with client() as c:
        empty = await c.get("/api/preferences", headers=USER)
        saved = await c.post(
            "/api/onboarding",
            headers=USER,
            json={"assets": ["Bitcoin", " "], "investor_type": "trader", "content_types": ["memes"]},
        )
        fetched = await c.get("/api/preferences", headers=USER)

    assert empty.json() == {"preferences": None}
    assert saved.status_code == 200
    assert fetched.json()["preferences"] == {
        "assets": ["bitcoin"],
        "investor_type": "trader",
        "content_types": ["memes"],
    }


@pytest.mark.asyncio
async def test_feedback_flow(db_session):
    async with client() as c:
        first = await c.post("/api/feedback/set", headers=USER, json={"type": "news", "id": "n1", "vote": 1})
        toggled = await c.post("/api/feedback/set", headers=USER, json={"type": "news", "id": "n1", "vote": 1})
        await c.post("/api/feedback/set", headers=USER, json={"type": "news", "id": "n2", "vote": -1})
        query = await c.get("/api/feedback/query?type=news&ids=n1,n2,n3", headers=USER)
        cleared = await c.post("/api/feedback/clear", headers=USER, json={"type": "news", "id": "n2"})
        bad = await c.post("/api/feedback/set", headers=USER, json={"type": "news", "id": "n1", "vote": 7})

    assert first.json()["vote"] == 1
    assert toggled.json()["vote"] == 0
    assert query.json() == {"votes": {"n1": 0, "n2": -1}}
    assert cleared.json() == {"type": "news", "id": "n2", "vote": 0}
    assert bad.status_code == 400
