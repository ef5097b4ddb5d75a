"""Error taxonomy for the caching and aggregation layer.

Read paths never surface upstream failures to the caller: they are caught at
the fetch boundary and turned into stale or fallback data. ``TooSoon`` and
``PreferenceLookupFailed`` are the two errors the HTTP layer sees.
"""

from typing import Any


class AdvisorError(Exception):
    """Base class for all advisor errors."""


class UpstreamUnavailable(AdvisorError):
    """A third-party source failed or returned nothing usable."""


class UpstreamError(UpstreamUnavailable):
    """Outbound call still failing after all retry attempts."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(AdvisorError):
    """No rate-limiter token was available for an outbound call."""

    def __init__(self, retry_after_ms: int):
        super().__init__(f"rate limited, next token in {retry_after_ms}ms")
        self.retry_after_ms = retry_after_ms


class TooSoon(AdvisorError):
    """A user-initiated refresh arrived before the minimum interval elapsed."""

    def __init__(self, retry_after_ms: int, record: Any):
        super().__init__(f"refresh too soon, retry in {retry_after_ms}ms")
        self.retry_after_ms = retry_after_ms
        self.record = record


class PreferenceLookupFailed(AdvisorError):
    """The user preference store raised unexpectedly."""
