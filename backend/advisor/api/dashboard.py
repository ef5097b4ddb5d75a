"""Dashboard API routes."""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from advisor.api.deps import get_aggregator, get_user_id, no_store
from advisor.api.schemas import (
    DashboardResponse,
    DashboardSections,
    InsightResponse,
    MemeResponse,
    NewsItemResponse,
    NewsResponse,
    PreferencesResponse,
    PriceQuote,
    PricesResponse,
)
from advisor.errors import PreferenceLookupFailed
from advisor.models.content import LAST_RESORT_MEME
from advisor.services.dashboard import DashboardAggregator, NewsSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[Depends(no_store)])

NO_STORE = {"Cache-Control": "no-store"}


def _news_response(snapshot: NewsSnapshot) -> NewsResponse:
    return NewsResponse(
        items=[NewsItemResponse(**asdict(n)) for n in snapshot.items],
        updated_at=int(snapshot.updated_at * 1000),
        too_soon=snapshot.too_soon,
        retry_after_ms=snapshot.retry_after_ms if snapshot.too_soon else None,
    )


def _prices_response(prices: dict) -> dict[str, PriceQuote]:
    return {asset: PriceQuote(**quote) for asset, quote in prices.items()}


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    user_id: str = Depends(get_user_id),
    aggregator: DashboardAggregator = Depends(get_aggregator),
):
    try:
        data = await aggregator.get_dashboard(user_id)
    except PreferenceLookupFailed as e:
        logger.error(f"Dashboard for user {user_id} failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to load dashboard", headers=NO_STORE)

    prefs = data["preferences"]
    sections = data["sections"]
    return DashboardResponse(
        preferences=PreferencesResponse(**asdict(prefs)) if prefs else None,
        sections=DashboardSections(
            news=[NewsItemResponse(**asdict(n)) for n in sections["news"]],
            prices=_prices_response(sections["prices"]),
            ai_insight=InsightResponse(**asdict(sections["ai_insight"])),
            meme=MemeResponse(**asdict(sections["meme"])),
        ),
    )


@router.get("/prices", response_model=PricesResponse)
async def get_prices(
    ids: str | None = Query(default=None, description="Comma-separated asset ids"),
    user_id: str = Depends(get_user_id),
    aggregator: DashboardAggregator = Depends(get_aggregator),
):
    if ids:
        assets = [a for a in ids.split(",") if a.strip()]
    else:
        assets = (await aggregator.preferences_or_default(user_id)).assets
    prices = await aggregator.get_prices(assets)
    return PricesResponse(prices=_prices_response(prices))


@router.get("/news", response_model=NewsResponse)
async def get_news(
    user_id: str = Depends(get_user_id),
    aggregator: DashboardAggregator = Depends(get_aggregator),
):
    """Sticky news: the items from the user's last refresh, never a network call."""
    return _news_response(aggregator.get_cached_news(user_id))


@router.api_route("/news/refresh", methods=["GET", "POST"], response_model=NewsResponse)
async def refresh_news(
    user_id: str = Depends(get_user_id),
    aggregator: DashboardAggregator = Depends(get_aggregator),
):
    snapshot = await aggregator.refresh_news(user_id)
    body = _news_response(snapshot)
    if snapshot.too_soon:
        retry_after = max(1, -(-snapshot.retry_after_ms // 1000))
        return JSONResponse(
            status_code=429,
            content=body.model_dump(),
            headers={**NO_STORE, "Retry-After": str(retry_after)},
        )
    return body


@router.get("/meme", response_model=MemeResponse)
async def get_meme(
    user_id: str = Depends(get_user_id),
    aggregator: DashboardAggregator = Depends(get_aggregator),
):
    try:
        prefs = await aggregator.preferences_or_default(user_id)
        meme = await aggregator.get_meme_for_user(user_id, prefs)
    except Exception as e:
        logger.error(f"Meme for user {user_id} failed: {e}")
        meme = LAST_RESORT_MEME
    return MemeResponse(**asdict(meme))
