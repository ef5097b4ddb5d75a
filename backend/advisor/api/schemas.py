"""Pydantic schemas for API request/response."""

from pydantic import BaseModel, Field


class PreferencesRequest(BaseModel):
    assets: list[str] = Field(default_factory=list)
    investor_type: str = ""
    content_types: list[str] = Field(default_factory=list)


class PreferencesResponse(BaseModel):
    assets: list[str]
    investor_type: str
    content_types: list[str]


class PreferencesEnvelope(BaseModel):
    preferences: PreferencesResponse | None = None


class NewsItemResponse(BaseModel):
    id: str
    title: str
    url: str
    source: str
    published_at: str | None = None


class MemeResponse(BaseModel):
    id: str
    title: str
    img: str
    source: str
    permalink: str | None = None


class InsightResponse(BaseModel):
    id: str
    text: str


class PriceQuote(BaseModel):
    price: float
    change: float


class PricesResponse(BaseModel):
    prices: dict[str, PriceQuote]


class NewsResponse(BaseModel):
    items: list[NewsItemResponse]
    updated_at: int  # epoch ms, 0 before the first refresh
    too_soon: bool = False
    retry_after_ms: int | None = None


class DashboardSections(BaseModel):
    news: list[NewsItemResponse]
    prices: dict[str, PriceQuote]
    ai_insight: InsightResponse
    meme: MemeResponse


class DashboardResponse(BaseModel):
    preferences: PreferencesResponse | None = None
    sections: DashboardSections


class FeedbackSetRequest(BaseModel):
    type: str = Field(min_length=1, max_length=20)
    id: str = Field(min_length=1, max_length=200)
    vote: int


class FeedbackClearRequest(BaseModel):
    type: str = Field(min_length=1, max_length=20)
    id: str = Field(min_length=1, max_length=200)


class FeedbackVoteResponse(BaseModel):
    type: str
    id: str
    vote: int


class FeedbackQueryResponse(BaseModel):
    votes: dict[str, int]
