"""Application configuration."""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DB_PATH = BASE_DIR / "data" / "advisor.db"
DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite+aiosqlite:///{DB_PATH}"
DB_BUSY_TIMEOUT = float(os.getenv("DB_BUSY_TIMEOUT", "5"))  # seconds a SQLite write lock is waited on

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Prices (CoinGecko): global token bucket + short TTL
CG_RATE_PER_MIN = float(os.getenv("CG_RATE_PER_MIN", "45"))
PRICE_CACHE_TTL = float(os.getenv("CG_TTL_MS", "2500")) / 1000  # seconds
PRICE_CACHE_MAX_KEYS = int(os.getenv("PRICE_CACHE_MAX_KEYS", "500"))
DEFAULT_ASSETS = ["bitcoin", "ethereum"]
COINGECKO_PRO_API_KEY = os.getenv("COINGECKO_PRO_API_KEY", "").strip()
COINGECKO_DEMO_API_KEY = os.getenv("COINGECKO_DEMO_API_KEY", "").strip()

# News (CryptoPanic): shared fetch cache + per-user sticky store
CRYPTOPANIC_TOKEN = os.getenv("CRYPTOPANIC_TOKEN", "").strip()
NEWS_CACHE_TTL = float(os.getenv("NEWS_TTL_MS", "60000")) / 1000
NEWS_CACHE_MAX_USERS = int(os.getenv("NEWS_CACHE_MAX_USERS", "500"))
NEWS_REFRESH_MIN_INTERVAL = float(os.getenv("NEWS_REFRESH_MIN_INTERVAL_MS", "30000")) / 1000
NEWS_PAGE_PAUSE = 0.12  # seconds between CryptoPanic pages
NEWS_RESULT_LIMIT = 60

# AI insight: one per user per "day", day flips at the cutoff hour
APP_TZ = os.getenv("APP_TZ", "Asia/Jerusalem").strip()
AI_INSIGHT_CUTOFF_HOUR = int(os.getenv("AI_INSIGHT_CUTOFF_HOUR", "7"))
AI_CACHE_MAX_USERS = int(os.getenv("AI_CACHE_MAX_USERS", "1000"))
AI_API_URL = os.getenv("AI_API_URL", "").strip()
AI_API_TOKEN = os.getenv("AI_API_TOKEN", "").strip()
AI_MODEL = os.getenv("AI_MODEL", "").strip()

# Memes (Reddit app-only OAuth)
REDDIT_CLIENT_ID = os.getenv("REDDIT_CLIENT_ID", "").strip()
REDDIT_CLIENT_SECRET = os.getenv("REDDIT_CLIENT_SECRET", "").strip()
REDDIT_USER_AGENT = "ai-crypto-advisor/1.0 (by u/userless)"
MEME_CACHE_TTL = float(os.getenv("MEME_CACHE_TTL_MS", "120000")) / 1000
MEME_RECENT_MAX = int(os.getenv("MEME_RECENT_MAX", "100"))
USER_MEME_RECENT_MAX = int(os.getenv("USER_MEME_RECENT_MAX", "80"))
MEME_RECENTS_MAX_USERS = int(os.getenv("MEME_RECENTS_MAX_USERS", "1000"))

# Outbound HTTP retry/backoff
HTTP_TIMEOUT = 10  # seconds
FETCH_MAX_ATTEMPTS = 3
FETCH_BACKOFF_BASE = 1.2  # seconds, doubled per attempt
FETCH_BACKOFF_CAP = 5.0
FETCH_BACKOFF_JITTER = 0.3
FETCH_RETRY_AFTER_MIN = 0.4
FETCH_RETRY_AFTER_CAP = 10.0

# Scheduler
DEFERRED_REFRESH_MIN_DELAY = 0.2  # seconds
MEME_FEED_WARM_INTERVAL = 300  # seconds
PRICE_WARM_INTERVAL = 60  # seconds

# Ensure data directory exists (only needed for local SQLite, skip if DATABASE_URL is overridden)
if not os.getenv("DATABASE_URL"):
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
