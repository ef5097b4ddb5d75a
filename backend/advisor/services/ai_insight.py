"""AI text provider for the daily insight."""

import logging
import random

from advisor.config import AI_API_TOKEN, AI_API_URL, AI_MODEL
from advisor.errors import UpstreamUnavailable
from advisor.models.content import LOCAL_AI_FALLBACKS, UserPreferences
from advisor.services.clock import Clock, system_clock
from advisor.services.fetcher import RetryingFetcher
from advisor.services.insight_cache import InsightItem

logger = logging.getLogger(__name__)

FALLBACK_MODELS = (
    "google/gemma-2-2b-it",
    "microsoft/Phi-3-mini-4k-instruct",
    "HuggingFaceH4/zephyr-7b-beta",
)
# model-level rejections: try the next model instead of failing
SKIP_MODEL_STATUSES = {400, 402, 404, 422}


def build_prompt(prefs: UserPreferences) -> str:
    assets = ", ".join(prefs.assets) if prefs.assets else "bitcoin, ethereum"
    return "\n".join(
        [
            "You are an AI crypto advisor.",
            f"User type: {prefs.investor_type or 'Unknown'}",
            f"Assets: {assets}",
            "Give ONE actionable crypto insight for the next 24 hours.",
            "Max 80 words. No disclaimers.",
        ]
    )


class AiInsightProvider:
    """Chat-completion client walking a list of models.

    Without an API URL and token it never touches the network and returns a
    canned insight instead.
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        api_url: str = AI_API_URL,
        token: str = AI_API_TOKEN,
        model: str = AI_MODEL,
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ):
        self._fetcher = fetcher
        self._api_url = api_url
        self._token = token
        self._clock = clock
        self._rng = rng or random.Random()
        self.models = [m for m in (model, *FALLBACK_MODELS) if m]

    @property
    def configured(self) -> bool:
        return bool(self._api_url and self._token)

    def local_insight(self) -> InsightItem:
        return InsightItem(id="ai-static", text=self._rng.choice(LOCAL_AI_FALLBACKS))

    async def _complete(self, model: str, prompt: str) -> str | None:
        resp = await self._fetcher.post(
            self._api_url,
            headers={"Authorization": f"Bearer {self._token}", "Content-Type": "application/json"},
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": "You give short, concrete crypto insights."},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": 120,
                "temperature": 0.7,
            },
        )
        if resp.status_code in SKIP_MODEL_STATUSES:
            logger.warning(f"AI model {model} rejected ({resp.status_code}): {resp.text[:200]}")
            return None
        if resp.status_code >= 400:
            raise UpstreamUnavailable(f"AI service error: {resp.status_code}")
        data = resp.json()
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None
        return text.strip() if isinstance(text, str) else None

    async def generate(self, prefs: UserPreferences | None) -> InsightItem:
        if not self.configured:
            return self.local_insight()

        prompt = build_prompt(prefs or UserPreferences())
        for model in self.models:
            try:
                text = await self._complete(model, prompt)
            except (UpstreamUnavailable, ValueError) as e:
                logger.warning(f"AI model {model} error: {e}")
                continue
            if text:
                return InsightItem(id=f"ai-{int(self._clock.time() * 1000)}", text=text)
            logger.warning(f"AI model {model} returned empty text; trying next")

        return self.local_insight()
