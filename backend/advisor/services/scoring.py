"""Personalization scoring for news and memes.

Pure functions, no I/O. Scores are additive:

    news  = recency + asset match + investor-type affinity
    meme  = ticker/subreddit match + investor-type tone + jitter (0..3)

The weights below are tuning knobs, not a contract; only the relative
ordering they produce matters. Randomness (meme jitter and pick) comes from
an injectable ``random.Random``.
"""

import random
import re
from datetime import datetime, timezone
from typing import Sequence

from advisor.config import NEWS_RESULT_LIMIT
from advisor.models.content import MemeItem, NewsItem, UserPreferences

# asset id -> news ticker
ID_TO_SYMBOL = {
    "bitcoin": "btc",
    "ethereum": "eth",
    "solana": "sol",
    "cardano": "ada",
    "ripple": "xrp",
    "dogecoin": "doge",
}
MAX_NEWS_SYMBOLS = 8

# asset id -> aliases looked for in meme titles
ID_TO_TICKERS = {
    "bitcoin": ("btc", "bitcoin"),
    "ethereum": ("eth", "ethereum"),
    "solana": ("sol", "solana"),
    "cardano": ("ada", "cardano"),
    "ripple": ("xrp", "ripple", "ripplex"),
    "dogecoin": ("doge", "dogecoin"),
}

# asset id -> topical communities
COIN_MEME_SUBS = {
    "bitcoin": frozenset({"bitcoinmemes", "bitcoin", "btc"}),
    "ethereum": frozenset({"ethtrader", "ethereum", "ethfinance"}),
    "solana": frozenset({"solana", "solanamemes"}),
    "cardano": frozenset({"cardano", "ada"}),
    "ripple": frozenset({"ripple", "xrp"}),
    "dogecoin": frozenset({"dogecoin", "doge"}),
}

INVESTOR_CATEGORIES = {
    "trader": "short_term",
    "day_trader": "short_term",
    "short_term": "short_term",
    "long_term": "long_term",
    "investor": "long_term",
    "defi": "defi",
    "builder": "defi",
    "conservative": "conservative",
    "risk_averse": "conservative",
}

LONG_TERM = re.compile(
    r"(upgrade|fork|partnership|adoption|etf|institution|regulat|roadmap|ecosystem|integration|on[- ]?chain)",
    re.I,
)
SHORT_TERM = re.compile(
    r"(pump|dump|spike|rally|sell[- ]?off|liquidat|volatil|break(out|down)|funding|open interest"
    r"|perp|futures|leverage|whales?)",
    re.I,
)
DEFI = re.compile(r"(defi|dex|amm|yield|staking|airdrop|liquidity|lend|borrow)", re.I)
RISKY = re.compile(r"(rug|exploit|hack|phish|scam|memecoin)", re.I)
CONSERVATIVE_POSITIVE = re.compile(r"(partnership|regulat|etf|upgrade)", re.I)
EXCHANGES = re.compile(r"binance|bybit|okx|kraken|coinbase", re.I)

MEME_SHORT_TERM = re.compile(r"(pump|dump|spike|rally|sell[- ]?off|liquidat|volatil|leverage|rekt|pnl|scalp)", re.I)
MEME_LONG_TERM = re.compile(r"(hodl|adoption|upgrade|etf|institution|regulat|roadmap|build|dev)", re.I)
MEME_DEFI = re.compile(r"(defi|dex|yield|airdrop|staking|liquidity|farm)", re.I)
MEME_RISK = re.compile(r"(rug|exploit|hack|scam)", re.I)
MEME_CONSERVATIVE_POSITIVE = re.compile(r"(etf|upgrade|adoption)", re.I)

# category -> [(pattern, field, bonus)]; negative bonus is a penalty
NEWS_TYPE_RULES = {
    "short_term": [(SHORT_TERM, "title", 40), (EXCHANGES, "source", 15)],
    "long_term": [(LONG_TERM, "title", 50), (SHORT_TERM, "title", -10)],
    "defi": [(DEFI, "title", 40)],
    "conservative": [(RISKY, "title", -30), (CONSERVATIVE_POSITIVE, "title", 25)],
}
MEME_TYPE_RULES = {
    "short_term": [(MEME_SHORT_TERM, 15)],
    "long_term": [(MEME_LONG_TERM, 15), (MEME_SHORT_TERM, -5)],
    "defi": [(MEME_DEFI, 12)],
    "conservative": [(MEME_RISK, -10), (MEME_CONSERVATIVE_POSITIVE, 8)],
}

RECENCY_WINDOW_MINUTES = 200
SYMBOL_WORD_BONUS = 10
SYMBOL_UPPER_BONUS = 5
MEME_TICKER_BONUS = 12
MEME_SUBREDDIT_BONUS = 25
MEME_JITTER = 3.0
MEME_TOP_N = 40
MEME_PICK_K = 8

_SUBREDDIT = re.compile(r"/r/([^/]+)")


def investor_category(investor_type: str | None) -> str | None:
    return INVESTOR_CATEGORIES.get((investor_type or "").strip().lower())


def news_symbols(assets: Sequence[str]) -> list[str]:
    """Unique tickers for known asset ids, in order, at most 8."""
    symbols: list[str] = []
    for asset in assets or []:
        sym = ID_TO_SYMBOL.get(str(asset or "").strip().lower())
        if sym and sym not in symbols:
            symbols.append(sym)
    return symbols[:MAX_NEWS_SYMBOLS]


def _parse_published(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def recency_score(item: NewsItem, now: datetime) -> float:
    published = _parse_published(item.published_at) or now
    age_minutes = max(1.0, (now - published).total_seconds() / 60)
    return max(0.0, RECENCY_WINDOW_MINUTES - age_minutes)


def asset_match_score(item: NewsItem, symbols: Sequence[str]) -> float:
    title = item.title or ""
    score = 0.0
    for sym in symbols:
        if re.search(rf"\b{re.escape(sym)}\b", title, re.I):
            score += SYMBOL_WORD_BONUS
        if re.search(rf"\b{re.escape(sym.upper())}\b", title):
            score += SYMBOL_UPPER_BONUS
    return score


def type_affinity_score(item: NewsItem, investor_type: str | None) -> float:
    rules = NEWS_TYPE_RULES.get(investor_category(investor_type) or "", [])
    fields = {"title": item.title or "", "source": item.source or ""}
    return float(sum(bonus for pattern, field, bonus in rules if pattern.search(fields[field])))


def score_news(item: NewsItem, prefs: UserPreferences, now: datetime) -> float:
    symbols = news_symbols(prefs.assets)
    return (
        recency_score(item, now)
        + asset_match_score(item, symbols)
        + type_affinity_score(item, prefs.investor_type)
    )


def personalize_news(
    items: Sequence[NewsItem],
    prefs: UserPreferences,
    now: datetime,
    limit: int = NEWS_RESULT_LIMIT,
) -> list[NewsItem]:
    """Items sorted by descending score (stable), truncated to ``limit``."""
    scored = [(score_news(item, prefs, now), i, item) for i, item in enumerate(items)]
    scored.sort(key=lambda t: (-t[0], t[1]))
    return [item for _, _, item in scored[:limit]]


def meme_subreddit(meme: MemeItem) -> str:
    match = _SUBREDDIT.search(meme.permalink or "")
    return match.group(1).lower() if match else ""


def score_meme(meme: MemeItem, prefs: UserPreferences, rng: random.Random | None = None) -> float:
    title = (meme.title or "").lower()
    subreddit = meme_subreddit(meme)
    score = 0.0

    for asset in prefs.assets or []:
        asset_id = str(asset or "").lower()
        for ticker in ID_TO_TICKERS.get(asset_id, ()):
            if ticker in title:
                score += MEME_TICKER_BONUS
        if subreddit and subreddit in COIN_MEME_SUBS.get(asset_id, ()):
            score += MEME_SUBREDDIT_BONUS

    for pattern, bonus in MEME_TYPE_RULES.get(investor_category(prefs.investor_type) or "", []):
        if pattern.search(title):
            score += bonus

    # tie-breaker so the ranking doesn't freeze
    score += (rng or random).random() * MEME_JITTER
    return score


def pick_meme(
    feed: Sequence[MemeItem],
    prefs: UserPreferences,
    recent_ids,
    last_shown: str | None = None,
    rng: random.Random | None = None,
) -> MemeItem | None:
    """Random pick among the top K of the top N unseen candidates.

    When everything was shown recently the whole feed is eligible again,
    minus ``last_shown`` so the same meme never comes up twice in a row.
    """
    rng = rng or random.Random()
    candidates = [m for m in feed if m.id]
    if not candidates:
        return None

    unseen = [m for m in candidates if m.id not in recent_ids]
    if unseen:
        pool = sorted(((score_meme(m, prefs, rng), m) for m in unseen), key=lambda t: -t[0])
    else:
        others = [m for m in candidates if m.id != last_shown]
        pool = [(0.0, m) for m in (others or candidates)]

    top = pool[:MEME_TOP_N]
    return top[rng.randrange(min(MEME_PICK_K, len(top)))][1]
