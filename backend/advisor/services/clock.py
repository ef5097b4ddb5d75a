"""Wall clock used by every cache and limiter."""

import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def time(self) -> float: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Real time. Tests swap in a clock they can advance by hand."""

    def time(self) -> float:
        return time.time()

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.time(), tz=timezone.utc)


system_clock = SystemClock()
