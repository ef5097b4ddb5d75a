"""Token bucket admission control for metered upstream APIs."""

import math
import threading

from advisor.services.clock import Clock, system_clock


class TokenBucket:
    """Thread-safe token bucket.

    The bucket starts full. Tokens refill continuously at ``refill_per_second``
    and never exceed ``capacity``. Refill and debit happen under one lock so
    concurrent callers cannot count the same elapsed time twice.
    """

    def __init__(self, capacity: float, refill_per_second: float, clock: Clock = system_clock):
        if capacity < 1 or refill_per_second <= 0:
            raise ValueError("capacity must be >= 1 and refill rate > 0")
        self.capacity = float(capacity)
        self.refill_per_second = float(refill_per_second)
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock.time()
        self._lock = threading.Lock()

    @classmethod
    def per_minute(cls, rate: float, clock: Clock = system_clock) -> "TokenBucket":
        """Bucket allowing ``rate`` calls per minute with a burst of ``rate``."""
        return cls(capacity=rate, refill_per_second=rate / 60.0, clock=clock)

    def _refill_locked(self) -> None:
        now = self._clock.time()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
            self._last_refill = now

    def try_consume(self) -> bool:
        """Debit one token if available. Never blocks."""
        with self._lock:
            self._refill_locked()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def ms_until_next_token(self) -> int:
        """Advisory wait before the next token; nothing is reserved."""
        with self._lock:
            self._refill_locked()
            if self._tokens >= 1:
                return 0
            deficit = 1 - self._tokens
            return math.ceil(deficit / self.refill_per_second * 1000)

    @property
    def tokens(self) -> float:
        with self._lock:
            self._refill_locked()
            return self._tokens
