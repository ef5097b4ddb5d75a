"""Immutable content records shared by providers, caches and scoring."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class NewsItem:
    id: str
    title: str
    url: str
    source: str
    published_at: str | None = None  # ISO-8601 as sent upstream


@dataclass(frozen=True)
class MemeItem:
    id: str
    title: str
    img: str
    source: str
    permalink: str | None = None


@dataclass(frozen=True)
class UserPreferences:
    assets: list[str] = field(default_factory=list)
    investor_type: str = ""
    content_types: list[str] = field(default_factory=list)


FALLBACK_NEWS = (
    NewsItem(
        id="fallback-1",
        title="Bitcoin steadies above key moving average",
        url="https://example.com/bitcoin-steady",
        source="Fallback",
    ),
    NewsItem(
        id="fallback-2",
        title="Ethereum developers hint at next major upgrade",
        url="https://example.com/ethereum-upgrade",
        source="Fallback",
    ),
    NewsItem(
        id="fallback-3",
        title="Solana ecosystem sees surge in NFT activity",
        url="https://example.com/solana-nft",
        source="Fallback",
    ),
)

STATIC_MEMES = (
    MemeItem(
        id="meme-2",
        title="When BTC dumps 2% and CT panics",
        img="https://images.unsplash.com/photo-1622630998477-20aa696ecb05?auto=format&fit=crop&w=900&q=60",
        source="static-json",
    ),
    MemeItem(
        id="meme-1",
        title="Me refreshing prices every 5 seconds",
        img="/memes/meme1.jpg",
        source="static-json",
    ),
)

LAST_RESORT_MEME = MemeItem(
    id="meme-fallback", title="Crypto vibes", img="/memes/meme1.jpg", source="static"
)

FALLBACK_PRICES = {
    "bitcoin": {"price": 64000.0, "change": 1.2},
    "ethereum": {"price": 3200.0, "change": -0.4},
}

LOCAL_AI_FALLBACKS = (
    "BTC holding above support. Watch funding before adding size.",
    "ETH/BTC shows relative strength. Consider gradual rotation.",
    "SOL volume rising. Wait for a confirmed breakout before entering.",
    "Volatility elevated. Keep positions small today.",
)
