"""Meme feed from Reddit with a shared cache and anti-repeat selection."""

import asyncio
import logging
import random
import threading
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from advisor.config import (
    MEME_RECENT_MAX,
    REDDIT_CLIENT_ID,
    REDDIT_CLIENT_SECRET,
    REDDIT_USER_AGENT,
    USER_MEME_RECENT_MAX,
)
from advisor.errors import UpstreamError, UpstreamUnavailable
from advisor.models.content import STATIC_MEMES, MemeItem, UserPreferences
from advisor.services.cache import KeyedCache
from advisor.services.clock import Clock, system_clock
from advisor.services.fetcher import RetryingFetcher
from advisor.services.recent import RecentSet
from advisor.services.scoring import pick_meme
from advisor.services.sticky_store import StickyUserStore

logger = logging.getLogger(__name__)

REDDIT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
REDDIT_API_BASE = "https://oauth.reddit.com"
TOKEN_EXPIRY_MARGIN = 10  # seconds

MEME_SUBS = ("CryptoCurrencyMemes", "cryptomemes", "BitcoinMemes")
MEME_SORTS = (
    ("top", "day"),
    ("top", "week"),
    ("top", "month"),
    ("hot", None),
    ("new", None),
)
PAGES_PER_SOURCE = 2
FEED_TARGET_SIZE = 600
FEED_KEY = "feed"


class RedditPost(BaseModel):
    id: str | None = None
    name: str | None = None
    title: str | None = None
    permalink: str | None = None
    url: str | None = None
    url_overridden_by_dest: str | None = None
    over_18: bool = False
    is_gallery: bool = False
    media_metadata: dict[str, Any] | None = None
    preview: dict[str, Any] | None = None


def _unescape(url: str) -> str:
    return url.replace("&amp;", "&")


def _gallery_image(post: RedditPost) -> str | None:
    first = next(iter(post.media_metadata.values()), None) if post.media_metadata else None
    source = first.get("s") if isinstance(first, dict) else None
    if not isinstance(source, dict):
        return None
    for field in ("u", "gif", "mp4"):
        src = source.get(field)
        if isinstance(src, str) and src:
            return src
    return None


def pick_image(post: RedditPost) -> str | None:
    """Gallery first image, then preview source, then the direct link.

    Listing payloads are loosely shaped; anything unexpected yields None.
    """
    if post.is_gallery:
        src = _gallery_image(post)
        if src:
            return _unescape(src)
    try:
        preview = post.preview["images"][0]["source"]["url"] if post.preview else None
    except (KeyError, IndexError, TypeError):
        preview = None
    if isinstance(preview, str) and preview:
        return _unescape(preview)
    direct = post.url_overridden_by_dest or post.url
    return _unescape(direct) if direct else None


def parse_listing(payload: Any) -> tuple[list[MemeItem], str | None]:
    """Meme items from one listing page, plus the ``after`` cursor."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return [], None
    items = []
    children = data.get("children")
    for child in children if isinstance(children, list) else []:
        raw = child.get("data") if isinstance(child, dict) else None
        if not isinstance(raw, dict):
            continue
        try:
            post = RedditPost.model_validate(raw)
        except ValidationError:
            continue
        if post.over_18:
            continue
        img = pick_image(post)
        if not img:
            continue
        meme_id = post.id or post.name or post.permalink
        if not meme_id:
            continue
        items.append(
            MemeItem(
                id=str(meme_id),
                title=post.title or "Crypto meme",
                img=img,
                source="reddit",
                permalink=f"https://reddit.com{post.permalink}" if post.permalink else None,
            )
        )
    after = data.get("after")
    return items, after if isinstance(after, str) and after else None


def dedupe_memes(memes: list[MemeItem]) -> list[MemeItem]:
    """Drop repeats by (id, img) and by image URL, keeping first occurrences."""
    seen: set[tuple[str, str]] = set()
    seen_img: set[str] = set()
    out = []
    for m in memes:
        if (m.id, m.img) in seen or m.img in seen_img:
            continue
        seen.add((m.id, m.img))
        seen_img.add(m.img)
        out.append(m)
    return out


class RedditClient:
    """App-only OAuth client for subreddit listings."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        client_id: str = REDDIT_CLIENT_ID,
        client_secret: str = REDDIT_CLIENT_SECRET,
        clock: Clock = system_clock,
    ):
        self._fetcher = fetcher
        self._client_id = client_id
        self._client_secret = client_secret
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def get_token(self) -> str:
        async with self._token_lock:
            if self._token and self._clock.time() < self._token_expires_at - TOKEN_EXPIRY_MARGIN:
                return self._token
            if not self.configured:
                raise UpstreamUnavailable("Missing REDDIT_CLIENT_ID/REDDIT_CLIENT_SECRET")

            now = self._clock.time()
            resp = await self._fetcher.post(
                REDDIT_TOKEN_URL,
                auth=(self._client_id, self._client_secret),
                data={"grant_type": "client_credentials", "scope": "read"},
                headers={"User-Agent": REDDIT_USER_AGENT},
            )
            if resp.status_code >= 400:
                raise UpstreamError(f"Reddit token error: {resp.status_code}", resp.status_code)
            body = resp.json()
            token = body.get("access_token") if isinstance(body, dict) else None
            if not token:
                raise UpstreamUnavailable("Reddit token response without access_token")
            self._token = token
            self._token_expires_at = now + float(body.get("expires_in") or 3600)
            return token

    async def fetch_listing(self, sub: str, sort: str, t: str | None = None) -> list[MemeItem]:
        params: dict[str, str] = {"limit": "100"}
        if t:
            params["t"] = t
        url = f"{REDDIT_API_BASE}/r/{sub}/{sort}.json"

        aggregated: list[MemeItem] = []
        for _ in range(PAGES_PER_SOURCE):
            token = await self.get_token()
            resp = await self._fetcher.get(
                url,
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "User-Agent": REDDIT_USER_AGENT,
                    "Accept": "application/json",
                },
            )
            if resp.status_code >= 400:
                raise UpstreamError(f"Reddit {url} -> {resp.status_code}", resp.status_code)
            items, after = parse_listing(resp.json())
            aggregated.extend(items)
            if not after:
                break
            params = {**params, "after": after}
        return aggregated


class MemeService:
    """Shared meme feed plus global and per-user anti-repeat windows."""

    def __init__(
        self,
        reddit: RedditClient,
        feed_cache: KeyedCache[tuple[MemeItem, ...]],
        user_recents: StickyUserStore[RecentSet],
        recent_max: int = MEME_RECENT_MAX,
        rng: random.Random | None = None,
    ):
        self._reddit = reddit
        self._feed_cache = feed_cache
        self._user_recents = user_recents
        self._recent = RecentSet(recent_max)
        self._recent_lock = threading.Lock()
        self._rng = rng or random.Random()

    @staticmethod
    def new_user_recents(max_users: int, clock: Clock = system_clock) -> StickyUserStore[RecentSet]:
        return StickyUserStore(
            default=RecentSet(USER_MEME_RECENT_MAX), max_entries=max_users, clock=clock, name="meme-recents"
        )

    async def _load_feed(self) -> tuple[MemeItem, ...]:
        sources = [(sub, sort, t) for sub in MEME_SUBS for sort, t in MEME_SORTS]
        self._rng.shuffle(sources)

        aggregated: list[MemeItem] = []
        for sub, sort, t in sources:
            try:
                aggregated.extend(await self._reddit.fetch_listing(sub, sort, t))
            except (UpstreamUnavailable, httpx.HTTPError, ValueError) as e:
                logger.warning(f"Meme source r/{sub}/{sort} failed: {e}")
                if not self._reddit.configured:
                    break
                continue
            if len(aggregated) > FEED_TARGET_SIZE:
                break

        deduped = dedupe_memes(aggregated)
        if not deduped:
            # cache the static list for a full TTL rather than re-sweeping every source
            logger.warning("No memes collected from Reddit, using static memes")
            return STATIC_MEMES
        logger.info(f"Collected {len(deduped)} memes from Reddit")
        return tuple(deduped)

    async def get_feed(self) -> tuple[MemeItem, ...]:
        return await self._feed_cache.get(FEED_KEY, self._load_feed, fallback=STATIC_MEMES)

    def _record_recent(self, meme_id: str) -> None:
        with self._recent_lock:
            self._recent = self._recent.added(meme_id)

    async def random_meme(self) -> MemeItem:
        """Uniform pick among memes not shown recently to anyone."""
        feed = await self.get_feed() or STATIC_MEMES
        recent = self._recent
        pool = [m for m in feed if m.id not in recent] or list(feed)
        meme = self._rng.choice(pool)
        self._record_recent(meme.id)
        return meme

    async def meme_for_user(self, user_id, prefs: UserPreferences | None) -> MemeItem:
        feed = await self.get_feed()
        if not feed:
            meme = await self.random_meme()
        else:
            recents = self._user_recents.read(user_id)
            meme = pick_meme(feed, prefs or UserPreferences(), recents, recents.last, self._rng)
            if meme is None:
                meme = await self.random_meme()
        self._user_recents.write(user_id, self._user_recents.read(user_id).added(meme.id))
        return meme
