"""Shared test doubles: a hand-driven clock and deferred-job queue."""

from datetime import datetime, timezone

import pytest


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start

    def time(self) -> float:
        return self._now

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._now, tz=timezone.utc)

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def set(self, when: datetime) -> None:
        self._now = when.timestamp()


class ManualDeferrer:
    """Records deferred jobs; ``run_pending`` executes them in order."""

    def __init__(self):
        self.jobs: list[tuple[str, float, object, tuple]] = []

    def defer(self, job_id, delay_seconds, func, *args):
        self.jobs.append((job_id, delay_seconds, func, args))

    async def run_pending(self) -> int:
        jobs, self.jobs = self.jobs, []
        for _, _, func, args in jobs:
            await func(*args)
        return len(jobs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def deferrer():
    return ManualDeferrer()
